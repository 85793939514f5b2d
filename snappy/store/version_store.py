"""Version-addressed on-disk layout for installed packages."""

from __future__ import annotations

import json
import logging
import os
import shutil
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List

from snappy.errors import AlreadyPlacedError, CannotRemoveCurrentError, NotInstalledError
from snappy.locking import directory_lock
from snappy.models.identity import CURRENT_MARKER, PackageIdentity, check_version

from .users import UserDirectory

LOGGER = logging.getLogger(__name__)

INSTALL_STAMP = ".snappy-install.json"
_STAGING_PREFIX = ".staging-"
_REMOVING_PREFIX = ".removing-"


@dataclass(frozen=True)
class InstalledVersion:
    identity: PackageIdentity
    version: str
    path: Path
    sequence: int
    installed_at: float
    active: bool

    @property
    def name(self) -> str:
        return self.identity.name

    @property
    def origin(self) -> str:
        return self.identity.origin


class VersionStore:
    """Maps ``(name, origin)`` to its installed versions and the current one.

    Layout::

        <apps_root>/<name>.<origin>/<version>/   complete version trees
        <apps_root>/<name>.<origin>/current      symlink to the active version

    Version directories only appear through a rename of a fully written
    staging directory and ``current`` only changes through ``os.replace``,
    so readers observe either the old or the new state.
    """

    def __init__(self, apps_root: Path, users: UserDirectory) -> None:
        self._root = Path(apps_root)
        self._users = users

    @property
    def apps_root(self) -> Path:
        return self._root

    def namespace_dir(self, identity: PackageIdentity) -> Path:
        return self._root / identity.qualified

    @contextmanager
    def lock(self, identity: PackageIdentity) -> Iterator[Path]:
        """Serialize mutations of one package namespace."""

        with directory_lock(self.namespace_dir(identity)) as lockfile:
            yield lockfile

    def place(self, identity: PackageIdentity, version: str, content: Path) -> Path:
        """Copy ``content`` into a new version directory, all or nothing."""

        check_version(version)
        namespace = self.namespace_dir(identity)
        namespace.mkdir(parents=True, exist_ok=True)
        target = namespace / version
        if target.is_dir() and any(target.iterdir()):
            raise AlreadyPlacedError(f"{identity} {version} is already placed", target)

        self._sweep_leftovers(namespace)
        staging = namespace / f"{_STAGING_PREFIX}{version}-{uuid.uuid4().hex}"
        LOGGER.debug("Staging %s %s in %s", identity, version, staging)
        try:
            shutil.copytree(content, staging, symlinks=True)
            stamp = {"sequence": self._next_sequence(namespace), "installed_at": time.time()}
            (staging / INSTALL_STAMP).write_text(json.dumps(stamp), encoding="utf-8")
            if target.exists():
                # an empty directory left behind by hand
                target.rmdir()
            os.rename(staging, target)
        except BaseException:
            shutil.rmtree(staging, ignore_errors=True)
            raise
        LOGGER.info("Placed %s %s at %s", identity, version, target)
        return target

    def promote(self, identity: PackageIdentity, version: str) -> None:
        """Atomically repoint the current marker at ``version``."""

        namespace = self.namespace_dir(identity)
        if not (namespace / version).is_dir():
            raise NotInstalledError(f"{identity} has no version {version}")
        temp_link = namespace / f".{CURRENT_MARKER}-{uuid.uuid4().hex}"
        os.symlink(version, temp_link)
        try:
            os.replace(temp_link, namespace / CURRENT_MARKER)
        except OSError:
            temp_link.unlink(missing_ok=True)
            raise
        LOGGER.info("Promoted %s to %s", identity, version)

    def clear_current(self, identity: PackageIdentity) -> None:
        """Drop the current marker so the package has no active version."""

        marker = self.namespace_dir(identity) / CURRENT_MARKER
        marker.unlink(missing_ok=True)
        LOGGER.info("Cleared current marker of %s", identity)

    def versions(self, identity: PackageIdentity) -> List[InstalledVersion]:
        """Installed versions, oldest install first."""

        namespace = self.namespace_dir(identity)
        if not namespace.is_dir():
            return []
        current = self._current_version_name(namespace)
        found: List[InstalledVersion] = []
        for entry in namespace.iterdir():
            if entry.name.startswith(".") or entry.name == CURRENT_MARKER:
                continue
            if entry.is_symlink() or not entry.is_dir():
                continue
            stamp = _read_stamp(entry)
            found.append(
                InstalledVersion(
                    identity=identity,
                    version=entry.name,
                    path=entry,
                    sequence=int(stamp.get("sequence", 0)),
                    installed_at=float(stamp.get("installed_at", entry.stat().st_mtime)),
                    active=entry.name == current,
                )
            )
        found.sort(key=lambda item: (item.sequence, item.installed_at, item.version))
        return found

    def current(self, identity: PackageIdentity) -> InstalledVersion:
        for installed in self.versions(identity):
            if installed.active:
                return installed
        raise NotInstalledError(f"{identity} is not installed")

    def remove(self, identity: PackageIdentity, version: str) -> None:
        """Delete a non-current version together with its per-user data."""

        check_version(version)
        namespace = self.namespace_dir(identity)
        target = namespace / version
        if self._current_version_name(namespace) == version:
            raise CannotRemoveCurrentError(f"{identity} {version} is the current version")
        if not target.is_dir():
            raise NotInstalledError(f"{identity} has no version {version}")

        tombstone = namespace / f"{_REMOVING_PREFIX}{version}-{uuid.uuid4().hex}"
        os.rename(target, tombstone)
        shutil.rmtree(tombstone)
        for user in self._users.list_users():
            data_dir = user.apps_dir() / identity.name / version
            if data_dir.is_dir():
                shutil.rmtree(data_dir)
        LOGGER.info("Removed %s %s", identity, version)

    def user_data_paths(self, identity: PackageIdentity) -> List[Path]:
        """Per-user data directories of every version, enumerated live."""

        paths: List[Path] = []
        for user in self._users.list_users():
            package_dir = user.apps_dir() / identity.name
            if not package_dir.is_dir():
                continue
            paths.extend(sorted(entry for entry in package_dir.iterdir() if entry.is_dir()))
        return paths

    @property
    def users(self) -> UserDirectory:
        return self._users

    def identities(self) -> List[PackageIdentity]:
        """Every package namespace present under the apps root."""

        if not self._root.is_dir():
            return []
        identities: List[PackageIdentity] = []
        for entry in sorted(self._root.iterdir()):
            if entry.name.startswith(".") or not entry.is_dir():
                continue
            try:
                identities.append(PackageIdentity.parse(entry.name))
            except ValueError:
                LOGGER.debug("Ignoring unrecognised directory %s", entry)
        return identities

    def identities_named(self, name: str) -> List[PackageIdentity]:
        """Identities of ``name`` that currently have an active version."""

        return [
            identity
            for identity in self.identities()
            if identity.name == name and self._current_version_name(self.namespace_dir(identity))
        ]

    def installed(self) -> List[InstalledVersion]:
        """The current version of every installed package."""

        result: List[InstalledVersion] = []
        for identity in self.identities():
            try:
                result.append(self.current(identity))
            except NotInstalledError:
                continue
        return result

    @staticmethod
    def _current_version_name(namespace: Path) -> str | None:
        marker = namespace / CURRENT_MARKER
        try:
            target = os.readlink(marker)
        except (FileNotFoundError, NotADirectoryError):
            return None
        except OSError:
            LOGGER.warning("Current marker %s is not a symlink", marker)
            return None
        name = Path(target).name
        if not (namespace / name).is_dir():
            return None
        return name

    def _next_sequence(self, namespace: Path) -> int:
        highest = 0
        for entry in namespace.iterdir():
            if entry.name.startswith(".") or entry.is_symlink() or not entry.is_dir():
                continue
            highest = max(highest, int(_read_stamp(entry).get("sequence", 0)))
        return highest + 1

    @staticmethod
    def _sweep_leftovers(namespace: Path) -> None:
        for entry in namespace.iterdir():
            if entry.name.startswith((_STAGING_PREFIX, _REMOVING_PREFIX)) and entry.is_dir():
                LOGGER.warning("Removing leftover %s from an interrupted run", entry)
                shutil.rmtree(entry, ignore_errors=True)


def _read_stamp(version_dir: Path) -> Dict[str, Any]:
    stamp_path = version_dir / INSTALL_STAMP
    try:
        data = json.loads(stamp_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return {}
    return data if isinstance(data, dict) else {}


__all__ = ["CURRENT_MARKER", "InstalledVersion", "VersionStore"]
