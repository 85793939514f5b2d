"""Snappy configuration loading and validation."""

from __future__ import annotations

import json
import os
import platform
from functools import lru_cache
from pathlib import Path
from typing import Any, ClassVar, Dict, Iterable, Literal

import yaml
from pydantic import Field, PositiveInt
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CONFIG_LOCATIONS: tuple[Path, ...] = (
    Path("/etc/snappy/snappy.yaml"),
    Path("/etc/snappy/snappy.yml"),
    Path("./config/snappy.yaml"),
    Path("./config/snappy.yml"),
)

_ARCHITECTURES = {
    "x86_64": "amd64",
    "aarch64": "arm64",
    "armv7l": "armhf",
    "i686": "i386",
}


def _default_architecture() -> str:
    machine = platform.machine().lower()
    return _ARCHITECTURES.get(machine, machine or "all")


class SnappySettings(BaseSettings):
    """Validated settings for the install/update orchestrator."""

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_prefix="SNAPPY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Filesystem layout
    apps_root: Path = Field(
        default=Path("/apps"),
        description="Root holding one <name>.<origin> namespace directory per package.",
    )
    icons_dir: Path | None = Field(
        default=None,
        description="Directory for downloaded package icons (defaults to <apps_root>/.icons).",
    )
    home_root: Path = Field(
        default=Path("/home"),
        description="Root of the per-user home directories holding apps/<name>/<version> data.",
    )

    # Catalog
    catalog_details_url: str = Field(
        default="https://search.apps.ubuntu.com/api/v1/package/",
        description="Base URL for single package detail lookups.",
    )
    catalog_bulk_url: str = Field(
        default="https://search.apps.ubuntu.com/api/v1/click-metadata",
        description="Endpoint answering bulk update-status queries.",
    )
    catalog_timeout_seconds: PositiveInt = Field(
        default=30,
        description="Timeout applied to every catalog request.",
    )
    catalog_token: str | None = Field(
        default=None,
        description="Optional bearer token sent to the catalog.",
        repr=False,
    )
    architecture: str = Field(
        default_factory=_default_architecture,
        description="Architecture advertised to the catalog.",
    )
    download_chunk_size: PositiveInt = Field(
        default=64 * 1024,
        description="Chunk size (bytes) for streaming downloads.",
    )

    # System image
    partition_root: Path | None = Field(
        default=None,
        description="Root of the dual-slot system image layout; unset disables image updates.",
    )
    system_image_index_url: str | None = Field(
        default=None,
        description="URL of the channel-keyed system image index.",
    )
    system_image_channel: str = Field(
        default="stable",
        description="Channel followed for system image updates.",
    )
    system_image_updates: bool = Field(
        default=True,
        description="Whether update runs also consider the system image.",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Minimum log level for the process.",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        if isinstance(value, str):
            return value.upper()
        return value

    config_path: Path | None = Field(
        default=None,
        description="Resolved path to the on-disk config that seeded the settings.",
        exclude=True,
    )

    @property
    def resolved_icons_dir(self) -> Path:
        return self.icons_dir if self.icons_dir is not None else self.apps_root / ".icons"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[SnappySettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._yaml_settings_source,
            file_secret_settings,
        )

    @staticmethod
    def _yaml_settings_source(settings_cls: type[SnappySettings] | None = None) -> Dict[str, Any]:
        candidates: Iterable[Path] = SnappySettings._resolve_candidate_paths()

        for path in candidates:
            data = SnappySettings._load_file(path)
            if data is not None:
                data.setdefault("config_path", path)
                return data
        return {}

    @staticmethod
    def _resolve_candidate_paths() -> Iterable[Path]:
        explicit = os.getenv("SNAPPY_CONFIG_FILE")
        if explicit:
            yield Path(explicit).expanduser()
        yield from DEFAULT_CONFIG_LOCATIONS

    @staticmethod
    def _load_file(path: Path) -> Dict[str, Any] | None:
        if not path.is_file():
            return None
        suffix = path.suffix.lower()
        try:
            with path.open("r", encoding="utf-8") as handle:
                if suffix in {".yaml", ".yml"}:
                    raw = yaml.safe_load(handle)
                elif suffix == ".json":
                    raw = json.load(handle)
                else:
                    return None
        except OSError as exc:
            raise RuntimeError(f"Failed to read snappy config file {path}") from exc
        except (yaml.YAMLError, json.JSONDecodeError) as exc:
            raise ValueError(f"Invalid snappy config file {path}") from exc

        if raw is None:
            return {}
        if not isinstance(raw, dict):
            raise ValueError(f"Snappy config file {path} must contain a mapping at top level.")
        return raw


@lru_cache()
def get_settings() -> SnappySettings:
    """Return memoized settings."""

    settings = SnappySettings()
    # Ensure path fields are absolute for downstream use
    settings.apps_root = settings.apps_root.expanduser().resolve()
    settings.home_root = settings.home_root.expanduser().resolve()
    if settings.icons_dir is not None:
        settings.icons_dir = settings.icons_dir.expanduser().resolve()
    if settings.partition_root is not None:
        settings.partition_root = settings.partition_root.expanduser().resolve()
    return settings
