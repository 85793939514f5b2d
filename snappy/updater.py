"""Host-wide reconciliation against the catalog and the system image index."""

from __future__ import annotations

import hmac
import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Literal
from urllib.parse import urlparse

from snappy.catalog.client import CatalogClient, installed_refs
from snappy.catalog.image_index import ImageIndexClient
from snappy.errors import CatalogError, PartialUpdateError, SnappyError
from snappy.flags import InstallFlags
from snappy.install.auth import hash_file
from snappy.install.installer import Installer
from snappy.partition.channel import SlotDescriptor
from snappy.partition.controller import PartitionController
from snappy.progress import NullProgress, ProgressSink
from snappy.store.version_store import VersionStore

LOGGER = logging.getLogger(__name__)

SYSTEM_IMAGE_NAME = "system-image"


@dataclass(frozen=True)
class UpdatedPackage:
    name: str
    origin: str
    version: str
    kind: Literal["app", "system-image"] = "app"


@dataclass(frozen=True)
class UpdateFailure:
    name: str
    error: Exception


class Updater:
    """Brings every installed package, and optionally the system image, up to date."""

    def __init__(
        self,
        store: VersionStore,
        catalog: CatalogClient,
        installer: Installer,
        *,
        partition: PartitionController | None = None,
        image_index: ImageIndexClient | None = None,
        channel: str = "stable",
        system_image_updates: bool = True,
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._installer = installer
        self._partition = partition
        self._image_index = image_index
        self._channel = channel
        self._system_image_updates = system_image_updates

    def update(
        self,
        flags: InstallFlags = InstallFlags.NONE,
        sink: ProgressSink | None = None,
    ) -> List[UpdatedPackage]:
        """Install every outdated package; returns what changed.

        Raises ``CatalogError`` when the bulk lookup fails (nothing attempted)
        and ``PartialUpdateError`` when any individual step failed.
        """

        sink = sink or NullProgress()
        installed = self._store.installed()
        LOGGER.info("Checking %d installed package(s) for updates", len(installed))
        entries = self._catalog.bulk_status(installed_refs(installed))
        by_identity = {item.identity: item for item in installed}

        updated: List[UpdatedPackage] = []
        failures: List[UpdateFailure] = []
        for entry in entries:
            current = by_identity.get(entry.identity)
            if current is None:
                LOGGER.debug("Ignoring catalog entry for %s: not installed", entry.identity)
                continue
            if current.version == entry.version:
                continue
            LOGGER.info("Updating %s from %s to %s", entry.identity, current.version, entry.version)
            try:
                result = self._installer.run(entry, flags, sink)
            except SnappyError as exc:
                LOGGER.warning("Update of %s failed: %s", entry.identity, exc)
                failures.append(UpdateFailure(name=entry.name, error=exc))
                continue
            updated.append(UpdatedPackage(name=result.name, origin=result.origin, version=result.version))

        if self._system_image_updates and self._partition is not None and self._image_index is not None:
            try:
                image = self.update_system_image(sink)
            except (SnappyError, OSError, ValueError) as exc:
                LOGGER.warning("System image update failed: %s", exc)
                failures.append(UpdateFailure(name=SYSTEM_IMAGE_NAME, error=exc))
            else:
                if image is not None:
                    updated.append(image)

        if failures:
            raise PartialUpdateError(updated, failures)
        return updated

    def update_system_image(self, sink: ProgressSink | None = None) -> UpdatedPackage | None:
        """Stage the latest channel build into the inactive slot if it differs."""

        if self._partition is None or self._image_index is None:
            raise SnappyError("System image updates are not configured")
        sink = sink or NullProgress()
        partition = self._partition
        latest = self._image_index.latest(self._channel)
        active = partition.active_slot()
        if active.build_number == latest.build_number:
            LOGGER.info("System image is at build %d, nothing to do", latest.build_number)
            return None

        descriptor = SlotDescriptor(channel=self._channel, build_number=latest.build_number)
        with partition.lock():
            target = partition.inactive_slot()
            if target.descriptor == descriptor and partition.next_boot_slot().label == target.label:
                LOGGER.info("Build %d is already staged in slot %s", latest.build_number, target.label)
                return None
            with tempfile.TemporaryDirectory(prefix="snappy-image-") as tmp:
                filename = Path(urlparse(latest.download_url).path).name or "system-image"
                payload = self._catalog.download(latest.download_url, Path(tmp) / filename, sink)
                if latest.sha256:
                    actual = hash_file(payload, "sha256")
                    if not hmac.compare_digest(actual, latest.sha256.strip().lower()):
                        raise CatalogError(f"System image build {latest.build_number} checksum mismatch")
                partition.stage_image(target, payload, descriptor)
            partition.mark_bootable(target)
        LOGGER.info(
            "System image build %d staged in slot %s (active build %s)",
            latest.build_number,
            target.label,
            active.build_number,
        )
        return UpdatedPackage(
            name=SYSTEM_IMAGE_NAME,
            origin=self._channel,
            version=str(latest.build_number),
            kind="system-image",
        )


__all__ = ["SYSTEM_IMAGE_NAME", "UpdateFailure", "UpdatedPackage", "Updater"]
