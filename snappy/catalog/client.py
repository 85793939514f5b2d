"""HTTP client for the remote package catalog."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Iterable, Sequence
from urllib.parse import quote, urljoin

import requests
from pydantic import ValidationError
from requests import Response

from snappy.config import SnappySettings
from snappy.errors import CatalogError, NotFoundError
from snappy.models.catalog import CatalogEntry
from snappy.models.identity import PackageIdentity
from snappy.progress import NullProgress, ProgressSink

LOGGER = logging.getLogger(__name__)

InstalledRef = tuple[PackageIdentity, str]


class CatalogClient:
    """Read-only lookups against the catalog plus streaming downloads."""

    def __init__(
        self,
        *,
        details_url: str,
        bulk_url: str,
        timeout_seconds: int = 30,
        token: str | None = None,
        architecture: str | None = None,
        chunk_size: int = 64 * 1024,
    ) -> None:
        self._details_url = details_url.rstrip("/") + "/"
        self._bulk_url = bulk_url
        self._timeout_seconds = timeout_seconds
        self._token = token
        self._architecture = architecture
        self._chunk_size = chunk_size

    @classmethod
    def from_settings(cls, settings: SnappySettings) -> CatalogClient:
        return cls(
            details_url=settings.catalog_details_url,
            bulk_url=settings.catalog_bulk_url,
            timeout_seconds=int(settings.catalog_timeout_seconds),
            token=settings.catalog_token,
            architecture=settings.architecture,
            chunk_size=int(settings.download_chunk_size),
        )

    def details(self, name: str, origin: str | None = None) -> CatalogEntry:
        """Return the catalog entry for ``name`` (optionally pinned to ``origin``)."""

        ref = f"{name}.{origin}" if origin else name
        url = urljoin(self._details_url, quote(ref, safe="."))
        response = self._request("GET", url, error_status_ok=True)
        if not 200 <= response.status_code < 300 or not response.content.strip():
            raise NotFoundError(f"Package {ref} not found in catalog (status {response.status_code})")
        payload = self._decode(response)
        if not isinstance(payload, dict):
            raise CatalogError(f"Catalog details for {ref} is not an object")
        entry = self._parse_entry(payload)
        if entry.name != name or (origin and entry.origin != origin):
            raise CatalogError(
                f"Catalog answered {entry.name}.{entry.origin} for a lookup of {ref}"
            )
        return entry

    def bulk_status(self, installed: Iterable[InstalledRef]) -> list[CatalogEntry]:
        """Latest catalog entry for each installed package, in one round trip.

        Missing entries mean no newer version is known.
        """

        names = [identity.qualified for identity, _version in installed]
        if not names:
            return []
        response = self._request("POST", self._bulk_url, json_body={"name": names})
        payload = self._decode(response)
        if not isinstance(payload, list):
            raise CatalogError("Catalog bulk response is not a list")
        entries: list[CatalogEntry] = []
        for item in payload:
            if not isinstance(item, dict):
                raise CatalogError("Catalog bulk response contains a non-object entry")
            entries.append(self._parse_entry(item))
        LOGGER.debug("Bulk status returned %d of %d packages", len(entries), len(names))
        return entries

    def download(self, url: str, dest: Path, sink: ProgressSink | None = None) -> Path:
        """Stream ``url`` into ``dest``; the file only appears once complete."""

        sink = sink or NullProgress()
        dest.parent.mkdir(parents=True, exist_ok=True)
        response = self._request("GET", url, stream=True)
        total = _content_length(response)
        fd, tmp_name = tempfile.mkstemp(dir=str(dest.parent), prefix=".download-")
        received = 0
        try:
            sink.start(dest.name, total)
            with os.fdopen(fd, "wb") as handle:
                for chunk in response.iter_content(chunk_size=self._chunk_size):
                    if not chunk:
                        continue
                    handle.write(chunk)
                    received += len(chunk)
                    sink.update(received)
            os.replace(tmp_name, dest)
        except requests.RequestException as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise CatalogError(f"Download of {url} failed: {exc}") from exc
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        finally:
            response.close()
        sink.finish()
        if total is not None and received != total:
            dest.unlink(missing_ok=True)
            raise CatalogError(f"Download of {url} truncated: {received} of {total} bytes")
        LOGGER.debug("Downloaded %s (%d bytes) to %s", url, received, dest)
        return dest

    def _request(
        self,
        method: str,
        url: str,
        *,
        json_body: Any | None = None,
        stream: bool = False,
        error_status_ok: bool = False,
    ) -> Response:
        try:
            response = requests.request(
                method,
                url,
                headers=self._build_headers(),
                json=json_body,
                timeout=self._timeout_seconds,
                stream=stream,
            )
        except requests.RequestException as exc:
            raise CatalogError(str(exc)) from exc
        if error_status_ok:
            return response
        if not 200 <= response.status_code < 300:
            self._raise_for_status(response, url)
        return response

    def _build_headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._architecture:
            headers["X-Architecture"] = self._architecture
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    @staticmethod
    def _decode(response: Response) -> Any:
        try:
            return response.json()
        except (json.JSONDecodeError, ValueError) as exc:
            raise CatalogError("Catalog returned invalid JSON.") from exc

    @staticmethod
    def _parse_entry(payload: dict[str, Any]) -> CatalogEntry:
        try:
            return CatalogEntry.model_validate(payload)
        except ValidationError as exc:
            raise CatalogError(f"Malformed catalog entry: {exc.errors()[0]['msg']}") from exc

    @staticmethod
    def _raise_for_status(response: Response, url: str) -> None:
        if response.status_code == 404:
            raise NotFoundError(f"Catalog resource not found: {url}")
        raise CatalogError(f"Catalog request to {url} failed with status {response.status_code}.")


def _content_length(response: Response) -> int | None:
    """Decoded body size, or ``None`` when the header cannot tell it."""

    if not response.headers:
        return None
    encoding = response.headers.get("Content-Encoding", "").strip().lower()
    if encoding and encoding != "identity":
        # Content-Length counts encoded bytes, iter_content yields decoded ones
        return None
    raw = response.headers.get("Content-Length")
    try:
        return int(raw) if raw is not None else None
    except ValueError:
        return None


def installed_refs(items: Sequence[Any]) -> list[InstalledRef]:
    """Turn installed-version records into ``(identity, version)`` pairs."""

    return [(item.identity, item.version) for item in items]


__all__ = ["CatalogClient", "InstalledRef", "installed_refs"]
