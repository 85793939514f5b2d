"""Error hierarchy for snappy operations."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from snappy.updater import UpdatedPackage, UpdateFailure


class SnappyError(Exception):
    """Base error for all snappy operations."""


class NotFoundError(SnappyError):
    """Raised when the catalog has no entry for the requested package."""


class NotInstalledError(SnappyError):
    """Raised when a package or version is not present in the store."""


class CatalogError(SnappyError):
    """Raised for catalog transport failures and malformed responses."""


class InvalidTargetError(SnappyError):
    """Raised when a system image is staged into the active slot."""


class CannotRemoveCurrentError(SnappyError):
    """Raised when removal targets the version marked current."""


class AlreadyPlacedError(SnappyError):
    """Raised when the exact version directory already exists with content."""

    def __init__(self, message: str, path: Path) -> None:
        super().__init__(message)
        self.path = path


class InstallError(SnappyError):
    """Base error for a failed install; ``state`` is where it stopped."""

    def __init__(self, message: str, *, state: str | None = None) -> None:
        super().__init__(message)
        self.state = state


class AlreadyInstalledError(InstallError):
    """Raised when the identical package is already current at that version."""


class PackageNameAlreadyInstalledError(InstallError):
    """Raised when the name is already taken by a package from another origin."""


class VerificationFailedError(InstallError):
    """Raised when package content fails the authenticity check."""


class InvalidPackageError(InstallError):
    """Raised when package content cannot be read as a package archive."""


class ActivationFailedError(InstallError):
    """Raised after activation failed and the previous version was restored."""


class PartialUpdateError(SnappyError):
    """Raised when a reconciliation run had at least one failing step."""

    def __init__(
        self,
        updated: Sequence["UpdatedPackage"],
        failures: Sequence["UpdateFailure"],
    ) -> None:
        names = ", ".join(failure.name for failure in failures)
        super().__init__(
            f"{len(failures)} update(s) failed ({names}); {len(updated)} succeeded"
        )
        self.updated = list(updated)
        self.failures = list(failures)


__all__ = [
    "SnappyError",
    "NotFoundError",
    "NotInstalledError",
    "CatalogError",
    "InvalidTargetError",
    "CannotRemoveCurrentError",
    "AlreadyPlacedError",
    "InstallError",
    "AlreadyInstalledError",
    "PackageNameAlreadyInstalledError",
    "VerificationFailedError",
    "InvalidPackageError",
    "ActivationFailedError",
    "PartialUpdateError",
]
