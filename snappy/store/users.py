"""Enumeration of host users owning per-package data directories."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Protocol


@dataclass(frozen=True)
class UserHandle:
    name: str
    home: Path

    def apps_dir(self) -> Path:
        return self.home / "apps"


class UserDirectory(Protocol):
    def list_users(self) -> List[UserHandle]: ...


class HomeUserDirectory:
    """Lists the users found under a home root at call time."""

    def __init__(self, home_root: Path) -> None:
        self._home_root = Path(home_root)

    @property
    def home_root(self) -> Path:
        return self._home_root

    def list_users(self) -> List[UserHandle]:
        root = self._home_root
        if not root.is_dir():
            return []
        users = [
            UserHandle(name=entry.name, home=entry)
            for entry in root.iterdir()
            if entry.is_dir() and not entry.name.startswith(".")
        ]
        users.sort(key=lambda user: user.name)
        return users


__all__ = ["UserHandle", "UserDirectory", "HomeUserDirectory"]
