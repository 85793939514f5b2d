from .catalog import CatalogEntry, ImageIndexEntry
from .identity import (
    CURRENT_MARKER,
    SIDELOAD_ORIGIN,
    PackageIdentity,
    check_component,
    check_version,
    split_reference,
)
from .manifest import PackageManifest

__all__ = [
    "CURRENT_MARKER",
    "CatalogEntry",
    "ImageIndexEntry",
    "PackageIdentity",
    "PackageManifest",
    "SIDELOAD_ORIGIN",
    "check_component",
    "check_version",
    "split_reference",
]
