"""Authenticity checks applied before a package is placed."""

from __future__ import annotations

import hashlib
import hmac
import logging
from pathlib import Path
from typing import Protocol

from snappy.errors import VerificationFailedError
from snappy.models.catalog import CatalogEntry

LOGGER = logging.getLogger(__name__)


class AuthenticityChecker(Protocol):
    def verify(self, content: Path, entry: CatalogEntry | None) -> None: ...


def hash_file(path: Path, algorithm: str = "sha512") -> str:
    digest = hashlib.new(algorithm)
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


class CatalogAuthenticityChecker:
    """Trusts content delivered by the catalog and nothing else.

    Catalog downloads are checked against the advertised sha512 when the
    entry carries one. Sideloaded files have no trust anchor and are
    rejected; installing them requires ``ALLOW_UNAUTHENTICATED``.
    """

    def verify(self, content: Path, entry: CatalogEntry | None) -> None:
        if entry is None:
            raise VerificationFailedError(
                f"{content.name} does not come from the catalog and cannot be authenticated"
            )
        if not entry.download_sha512:
            LOGGER.debug("Catalog entry %s %s has no digest to check", entry.name, entry.version)
            return
        actual = hash_file(content, "sha512")
        if not hmac.compare_digest(actual, entry.download_sha512.strip().lower()):
            raise VerificationFailedError(
                f"Checksum mismatch for {entry.name} {entry.version}"
            )


__all__ = ["AuthenticityChecker", "CatalogAuthenticityChecker", "hash_file"]
