"""Single-package install state machine."""

from __future__ import annotations

import enum
import logging
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from snappy.catalog.client import CatalogClient
from snappy.errors import (
    ActivationFailedError,
    AlreadyInstalledError,
    AlreadyPlacedError,
    InstallError,
    NotFoundError,
    NotInstalledError,
    PackageNameAlreadyInstalledError,
    SnappyError,
    VerificationFailedError,
)
from snappy.flags import InstallFlags
from snappy.models.catalog import CatalogEntry
from snappy.models.identity import SIDELOAD_ORIGIN, PackageIdentity, check_component, split_reference
from snappy.models.manifest import PackageManifest
from snappy.progress import NullProgress, ProgressSink
from snappy.store.version_store import InstalledVersion, VersionStore

from .activation import ActivationHook, UserDataActivator
from .archive import ArchiveUnpacker, ZipArchiveUnpacker
from .auth import AuthenticityChecker, CatalogAuthenticityChecker

LOGGER = logging.getLogger(__name__)


class InstallState(str, enum.Enum):
    RESOLVING = "resolving"
    FETCHING = "fetching"
    VERIFYING = "verifying"
    PLACING = "placing"
    PROMOTING = "promoting"
    ACTIVATING = "activating"
    ROLLING_BACK = "rolling-back"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class GcFailure:
    version: str
    error: Exception


@dataclass
class InstallResult:
    name: str
    origin: str
    version: str
    previous_version: str | None
    path: Path
    states: List[InstallState] = field(default_factory=list)
    gc_removed: List[str] = field(default_factory=list)
    gc_failures: List[GcFailure] = field(default_factory=list)


@dataclass
class _Resolved:
    identity: PackageIdentity
    version: str
    entry: CatalogEntry | None = None
    local_file: Path | None = None
    manifest: PackageManifest | None = None


class _Transitions:
    """Records and logs the states an install passes through."""

    def __init__(self, label: str) -> None:
        self.label = label
        self.states: List[InstallState] = []

    @property
    def state(self) -> InstallState | None:
        return self.states[-1] if self.states else None

    def enter(self, state: InstallState) -> None:
        LOGGER.debug("Install %s: %s -> %s", self.label, self.state.value if self.state else "-", state.value)
        self.states.append(state)


class Installer:
    """Resolve, fetch, verify, place, promote, activate and GC one package."""

    def __init__(
        self,
        store: VersionStore,
        catalog: CatalogClient | None,
        *,
        unpacker: ArchiveUnpacker | None = None,
        checker: AuthenticityChecker | None = None,
        activator: ActivationHook | None = None,
        icons_dir: Path | None = None,
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._unpacker = unpacker or ZipArchiveUnpacker()
        self._checker = checker or CatalogAuthenticityChecker()
        self._activator = activator or UserDataActivator(store.users)
        self._icons_dir = icons_dir

    @property
    def store(self) -> VersionStore:
        return self._store

    def install(
        self,
        ref: str | CatalogEntry,
        flags: InstallFlags = InstallFlags.NONE,
        sink: ProgressSink | None = None,
    ) -> str:
        """Install ``ref`` and return the package name."""

        return self.run(ref, flags, sink).name

    def run(
        self,
        ref: str | CatalogEntry,
        flags: InstallFlags = InstallFlags.NONE,
        sink: ProgressSink | None = None,
    ) -> InstallResult:
        sink = sink or NullProgress()
        label = ref if isinstance(ref, str) else ref.identity.qualified
        transitions = _Transitions(label)
        try:
            return self._run(ref, flags, sink, transitions)
        except InstallError as exc:
            if exc.state is None and transitions.state is not None:
                exc.state = transitions.state.value
            transitions.enter(InstallState.FAILED)
            LOGGER.error("Install of %s failed: %s", label, exc)
            raise
        except (OSError, ValueError) as exc:
            state = transitions.state.value if transitions.state is not None else None
            transitions.enter(InstallState.FAILED)
            LOGGER.error("Install of %s failed while %s: %s", label, state, exc)
            raise InstallError(f"Install of {label} failed while {state}: {exc}", state=state) from exc
        except Exception as exc:
            transitions.enter(InstallState.FAILED)
            LOGGER.error("Install of %s failed: %s", label, exc)
            raise

    def garbage_collect(self, identity: PackageIdentity) -> tuple[List[str], List[GcFailure]]:
        """Keep the current version and the newest other one; remove the rest."""

        versions = self._store.versions(identity)
        if not any(item.active for item in versions):
            LOGGER.debug("Skipping GC of %s: no current version", identity)
            return [], []
        others = [item for item in versions if not item.active]
        removed: List[str] = []
        failures: List[GcFailure] = []
        for stale in others[:-1]:
            try:
                self._store.remove(identity, stale.version)
            except (SnappyError, OSError) as exc:
                LOGGER.warning("GC of %s %s failed: %s", identity, stale.version, exc)
                failures.append(GcFailure(version=stale.version, error=exc))
            else:
                removed.append(stale.version)
        return removed, failures

    def _run(
        self,
        ref: str | CatalogEntry,
        flags: InstallFlags,
        sink: ProgressSink,
        transitions: _Transitions,
    ) -> InstallResult:
        transitions.enter(InstallState.RESOLVING)
        resolved = self._resolve(ref)
        identity = resolved.identity
        self._precheck(resolved)

        with tempfile.TemporaryDirectory(prefix="snappy-install-") as tmp:
            work_dir = Path(tmp)
            transitions.enter(InstallState.FETCHING)
            content = self._fetch(resolved, work_dir, sink)

            transitions.enter(InstallState.VERIFYING)
            self._verify(resolved, content, flags)
            unpacked = self._unpacker.unpack(content, work_dir / "unpacked")

            with self._store.lock(identity):
                previous = self._current_or_none(identity)
                transitions.enter(InstallState.PLACING)
                placed_now = True
                try:
                    path = self._store.place(identity, resolved.version, unpacked)
                except AlreadyPlacedError as exc:
                    placed_now = False
                    path = exc.path
                    if previous is not None and previous.version == resolved.version:
                        LOGGER.info("%s %s is already placed and current", identity, resolved.version)
                        transitions.enter(InstallState.DONE)
                        return self._result(resolved, previous, path, transitions)
                    LOGGER.info("%s %s already placed, re-promoting it", identity, resolved.version)

                transitions.enter(InstallState.PROMOTING)
                self._store.promote(identity, resolved.version)

                if not flags & InstallFlags.INHIBIT_HOOKS:
                    transitions.enter(InstallState.ACTIVATING)
                    installed = self._store.current(identity)
                    try:
                        self._activator.activate(installed, previous, sink)
                    except Exception as exc:  # noqa: BLE001
                        LOGGER.exception("Activation of %s %s failed", identity, resolved.version)
                        transitions.enter(InstallState.ROLLING_BACK)
                        self._roll_back(identity, previous, resolved.version, placed_now)
                        raise ActivationFailedError(
                            f"Activation of {identity} {resolved.version} failed: {exc}",
                            state=InstallState.ACTIVATING.value,
                        ) from exc

                result = self._result(resolved, previous, path, transitions)
                if flags & InstallFlags.DO_INSTALL_GC:
                    result.gc_removed, result.gc_failures = self.garbage_collect(identity)

        transitions.enter(InstallState.DONE)
        LOGGER.info("Installed %s %s", identity, resolved.version)
        return result

    def _resolve(self, ref: str | CatalogEntry) -> _Resolved:
        if isinstance(ref, CatalogEntry):
            return _Resolved(identity=ref.identity, version=ref.version, entry=ref)

        local = Path(ref).expanduser()
        if local.is_file():
            manifest = self._unpacker.read_manifest(local)
            LOGGER.debug("Resolved %s to local package %s %s", ref, manifest.name, manifest.version)
            return _Resolved(
                identity=PackageIdentity(name=manifest.name, origin=SIDELOAD_ORIGIN),
                version=manifest.version,
                local_file=local,
                manifest=manifest,
            )

        name, origin = split_reference(ref)
        check_component(name, "name")
        if origin is not None:
            check_component(origin, "origin")
        if self._catalog is None:
            raise NotFoundError(f"{ref} is not a local file and no catalog is configured")
        entry = self._catalog.details(name, origin)
        LOGGER.debug("Resolved %s to catalog entry %s %s", ref, entry.identity, entry.version)
        return _Resolved(identity=entry.identity, version=entry.version, entry=entry)

    def _precheck(self, resolved: _Resolved) -> None:
        identity = resolved.identity
        conflicting = [other for other in self._store.identities_named(identity.name) if other != identity]
        if conflicting:
            raise PackageNameAlreadyInstalledError(
                f"package name {identity.name} is already installed from origin {conflicting[0].origin}",
                state=InstallState.RESOLVING.value,
            )
        current = self._current_or_none(identity)
        if current is not None and current.version == resolved.version:
            raise AlreadyInstalledError(
                f"{identity} {resolved.version} is already installed",
                state=InstallState.RESOLVING.value,
            )

    def _fetch(self, resolved: _Resolved, work_dir: Path, sink: ProgressSink) -> Path:
        if resolved.local_file is not None:
            return resolved.local_file
        entry = resolved.entry
        if entry is None or self._catalog is None:
            raise NotFoundError(f"No download source for {resolved.identity}")
        dest = work_dir / f"{resolved.identity.qualified}_{resolved.version}.snap"
        self._catalog.download(entry.download_url, dest, sink)
        self._fetch_icon(entry)
        return dest

    def _fetch_icon(self, entry: CatalogEntry) -> None:
        if not entry.icon_url or self._icons_dir is None or self._catalog is None:
            return
        dest = self._icons_dir / f"{entry.identity.qualified}_{entry.version}.icon"
        try:
            self._catalog.download(entry.icon_url, dest)
        except (SnappyError, OSError) as exc:
            LOGGER.warning("Could not fetch icon for %s from %s: %s", entry.identity, entry.icon_url, exc)

    def _verify(self, resolved: _Resolved, content: Path, flags: InstallFlags) -> None:
        if flags & InstallFlags.ALLOW_UNAUTHENTICATED:
            LOGGER.debug("Skipping authenticity check for %s", resolved.identity)
        else:
            self._checker.verify(content, resolved.entry)

        if resolved.manifest is None:
            resolved.manifest = self._unpacker.read_manifest(content)
        manifest = resolved.manifest
        if manifest.name != resolved.identity.name or manifest.version != resolved.version:
            raise VerificationFailedError(
                f"Manifest {manifest.name} {manifest.version} does not match "
                f"{resolved.identity.name} {resolved.version}"
            )

    def _roll_back(
        self,
        identity: PackageIdentity,
        previous: InstalledVersion | None,
        version: str,
        placed_now: bool,
    ) -> None:
        try:
            if previous is not None:
                self._store.promote(identity, previous.version)
            else:
                self._store.clear_current(identity)
            if placed_now:
                self._store.remove(identity, version)
        except (SnappyError, OSError):
            LOGGER.exception("Rollback of %s to %s failed", identity, previous.version if previous else "nothing")
            return
        LOGGER.info("Rolled %s back to %s", identity, previous.version if previous else "nothing")

    def _current_or_none(self, identity: PackageIdentity) -> InstalledVersion | None:
        try:
            return self._store.current(identity)
        except NotInstalledError:
            return None

    @staticmethod
    def _result(
        resolved: _Resolved,
        previous: InstalledVersion | None,
        path: Path,
        transitions: _Transitions,
    ) -> InstallResult:
        return InstallResult(
            name=resolved.identity.name,
            origin=resolved.identity.origin,
            version=resolved.version,
            previous_version=previous.version if previous else None,
            path=path,
            states=transitions.states,
        )


__all__ = ["GcFailure", "InstallResult", "InstallState", "Installer"]
