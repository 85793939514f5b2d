"""Wire models for catalog and system image index responses."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from .identity import PackageIdentity, check_component, check_version


def _stringify(value: Any) -> Any:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


class CatalogEntry(BaseModel):
    """Remote description of one package version."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    name: str = Field(alias="package_name", min_length=1)
    origin: str = Field(min_length=1)
    version: str = Field(min_length=1)
    download_url: str = Field(alias="anon_download_url", min_length=1)
    icon_url: str | None = None
    download_sha512: str | None = None

    @field_validator("version", mode="before")
    @classmethod
    def _coerce_version(cls, value: Any) -> Any:
        return _stringify(value)

    @field_validator("version")
    @classmethod
    def _safe_version(cls, value: str) -> str:
        return check_version(value)

    @field_validator("name", "origin")
    @classmethod
    def _safe_component(cls, value: str, info: ValidationInfo) -> str:
        return check_component(value, info.field_name or "name")

    @field_validator("icon_url", "download_sha512", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def identity(self) -> PackageIdentity:
        return PackageIdentity(name=self.name, origin=self.origin)


class ImageIndexEntry(BaseModel):
    """Latest build published on one system image channel."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    channel: str
    build_number: int = Field(ge=0)
    download_url: str = Field(min_length=1)
    sha256: str | None = None
