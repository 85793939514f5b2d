"""Single-package install pipeline and its collaborators."""

from .activation import ActivationHook, UserDataActivator
from .archive import ArchiveUnpacker, ZipArchiveUnpacker
from .auth import AuthenticityChecker, CatalogAuthenticityChecker
from .installer import GcFailure, InstallResult, InstallState, Installer

__all__ = [
    "ActivationHook",
    "ArchiveUnpacker",
    "AuthenticityChecker",
    "CatalogAuthenticityChecker",
    "GcFailure",
    "InstallResult",
    "InstallState",
    "Installer",
    "UserDataActivator",
    "ZipArchiveUnpacker",
]
