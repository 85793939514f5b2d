"""Zip package archives with a ``manifest.json`` at the root."""

from __future__ import annotations

import json
import logging
import shutil
import zipfile
from pathlib import Path, PurePosixPath
from typing import Protocol

from pydantic import ValidationError

from snappy.errors import InvalidPackageError
from snappy.models.manifest import PackageManifest

LOGGER = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.json"


class ArchiveUnpacker(Protocol):
    def read_manifest(self, content: Path) -> PackageManifest: ...

    def unpack(self, content: Path, dest: Path) -> Path: ...


def _is_unsafe_entry(entry_name: str) -> bool:
    pure = PurePosixPath(entry_name.replace("\\", "/"))
    if pure.is_absolute():
        return True
    return ".." in pure.parts


def _is_symlink_entry(info: zipfile.ZipInfo) -> bool:
    mode = (info.external_attr >> 16) & 0o170000
    return mode == 0o120000


class ZipArchiveUnpacker:
    """Reads manifests from and extracts zip package archives."""

    def read_manifest(self, content: Path) -> PackageManifest:
        try:
            with zipfile.ZipFile(content) as zip_file:
                self._check_entries(zip_file)
                try:
                    with zip_file.open(MANIFEST_NAME) as handle:
                        payload = json.load(handle)
                except KeyError as exc:
                    raise InvalidPackageError(f"{MANIFEST_NAME} must exist at the archive root.") from exc
        except zipfile.BadZipFile as exc:
            raise InvalidPackageError(f"{content} is not a package archive: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise InvalidPackageError(f"{MANIFEST_NAME} in {content} is not valid JSON") from exc
        try:
            return PackageManifest.model_validate(payload)
        except ValidationError as exc:
            raise InvalidPackageError(f"Invalid manifest in {content}: {exc.errors()[0]['msg']}") from exc

    def unpack(self, content: Path, dest: Path) -> Path:
        dest.mkdir(parents=True, exist_ok=True)
        try:
            with zipfile.ZipFile(content) as zip_file:
                self._check_entries(zip_file)
                for info in zip_file.infolist():
                    target = dest / PurePosixPath(info.filename.replace("\\", "/")).as_posix()
                    if info.is_dir():
                        target.mkdir(parents=True, exist_ok=True)
                        continue
                    target.parent.mkdir(parents=True, exist_ok=True)
                    with zip_file.open(info, "r") as source, target.open("wb") as handle:
                        shutil.copyfileobj(source, handle)
        except zipfile.BadZipFile as exc:
            raise InvalidPackageError(f"{content} is not a package archive: {exc}") from exc
        LOGGER.debug("Unpacked %s into %s", content, dest)
        return dest

    @staticmethod
    def _check_entries(zip_file: zipfile.ZipFile) -> None:
        for info in zip_file.infolist():
            if _is_unsafe_entry(info.filename):
                raise InvalidPackageError("Archive contains invalid paths.")
            if _is_symlink_entry(info):
                raise InvalidPackageError("Archive contains symlink entries.")


__all__ = ["ArchiveUnpacker", "MANIFEST_NAME", "ZipArchiveUnpacker"]
