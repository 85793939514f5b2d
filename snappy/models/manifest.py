"""Package manifest model read from archives."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .identity import check_component, check_version


class PackageManifest(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str = Field(min_length=1)
    version: str = Field(min_length=1)
    vendor: str | None = None
    icon: str | None = None
    description: str | None = None

    @field_validator("version", mode="before")
    @classmethod
    def _coerce_version(cls, value: Any) -> Any:
        if isinstance(value, (int, float)):
            return str(value)
        return value

    @field_validator("name")
    @classmethod
    def _safe_name(cls, value: str) -> str:
        return check_component(value, "name")

    @field_validator("version")
    @classmethod
    def _safe_version(cls, value: str) -> str:
        return check_version(value)
