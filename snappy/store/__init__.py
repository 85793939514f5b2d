"""Installed package layout and per-user data discovery."""

from .users import HomeUserDirectory, UserDirectory, UserHandle
from .version_store import CURRENT_MARKER, InstalledVersion, VersionStore

__all__ = [
    "CURRENT_MARKER",
    "HomeUserDirectory",
    "InstalledVersion",
    "UserDirectory",
    "UserHandle",
    "VersionStore",
]
