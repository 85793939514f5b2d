"""Package identity helpers."""

from __future__ import annotations

import re
from dataclasses import dataclass

SIDELOAD_ORIGIN = "sideload"
CURRENT_MARKER = "current"

# names and origins become directory names; no separators, no dots
_COMPONENT_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_+-]*$")


def check_component(value: str, what: str = "name") -> str:
    """Return ``value`` if it is a safe package name or origin."""

    if not isinstance(value, str) or not _COMPONENT_PATTERN.match(value):
        raise ValueError(f"Invalid package {what}: {value!r}")
    return value


def check_version(version: str) -> str:
    """Return ``version`` if it can name a version directory."""

    if (
        not isinstance(version, str)
        or not version
        or version in {".", "..", CURRENT_MARKER}
        or version.startswith(".")
        or "/" in version
        or "\\" in version
        or "\x00" in version
    ):
        raise ValueError(f"Invalid version string: {version!r}")
    return version


def split_reference(ref: str) -> tuple[str, str | None]:
    """Split ``name[.origin]`` into its parts."""

    name, sep, origin = ref.strip().partition(".")
    if not name:
        raise ValueError(f"Invalid package reference: {ref!r}")
    return name, (origin or None) if sep else None


@dataclass(frozen=True, order=True)
class PackageIdentity:
    name: str
    origin: str

    def __post_init__(self) -> None:
        check_component(self.name, "name")
        check_component(self.origin, "origin")

    @classmethod
    def parse(cls, qualified: str) -> PackageIdentity:
        name, origin = split_reference(qualified)
        if origin is None:
            raise ValueError(f"Package reference {qualified!r} has no origin")
        return cls(name=name, origin=origin)

    @property
    def qualified(self) -> str:
        return f"{self.name}.{self.origin}"

    def __str__(self) -> str:
        return self.qualified
