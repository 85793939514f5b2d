"""Client for the channel-keyed system image index."""

from __future__ import annotations

import json
import logging
from typing import Any

import requests
from pydantic import ValidationError

from snappy.config import SnappySettings
from snappy.errors import CatalogError, NotFoundError
from snappy.models.catalog import ImageIndexEntry

LOGGER = logging.getLogger(__name__)


class ImageIndexClient:
    """Reads ``{"<channel>": {"build_number": N, "download_url": ..., "sha256": ...}}``."""

    def __init__(self, *, index_url: str, timeout_seconds: int = 30) -> None:
        self._index_url = index_url
        self._timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(cls, settings: SnappySettings) -> ImageIndexClient | None:
        if not settings.system_image_index_url:
            return None
        return cls(
            index_url=settings.system_image_index_url,
            timeout_seconds=int(settings.catalog_timeout_seconds),
        )

    def latest(self, channel: str) -> ImageIndexEntry:
        index = self._fetch_index()
        raw = index.get(channel)
        if raw is None:
            raise NotFoundError(f"System image channel {channel!r} is not published")
        if not isinstance(raw, dict):
            raise CatalogError(f"System image index entry for {channel!r} is not an object")
        try:
            entry = ImageIndexEntry.model_validate({**raw, "channel": channel})
        except ValidationError as exc:
            raise CatalogError(f"Malformed system image index entry for {channel!r}") from exc
        LOGGER.debug("Channel %s is at build %d", channel, entry.build_number)
        return entry

    def _fetch_index(self) -> dict[str, Any]:
        try:
            response = requests.request(
                "GET",
                self._index_url,
                headers={"Accept": "application/json"},
                timeout=self._timeout_seconds,
            )
        except requests.RequestException as exc:
            raise CatalogError(str(exc)) from exc
        if not 200 <= response.status_code < 300:
            raise CatalogError(
                f"System image index request failed with status {response.status_code}."
            )
        try:
            payload = response.json()
        except (json.JSONDecodeError, ValueError) as exc:
            raise CatalogError("System image index returned invalid JSON.") from exc
        if not isinstance(payload, dict):
            raise CatalogError("System image index is not an object")
        return payload


__all__ = ["ImageIndexClient"]
