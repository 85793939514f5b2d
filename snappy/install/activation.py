"""Activation hooks run after a version becomes current."""

from __future__ import annotations

import logging
import shutil
from typing import Protocol

from snappy.progress import ProgressSink
from snappy.store.users import UserDirectory
from snappy.store.version_store import InstalledVersion

LOGGER = logging.getLogger(__name__)


class ActivationHook(Protocol):
    def activate(
        self,
        installed: InstalledVersion,
        previous: InstalledVersion | None,
        sink: ProgressSink,
    ) -> None: ...


class UserDataActivator:
    """Carries each user's data for the previous version over to the new one."""

    def __init__(self, users: UserDirectory) -> None:
        self._users = users

    def activate(
        self,
        installed: InstalledVersion,
        previous: InstalledVersion | None,
        sink: ProgressSink,
    ) -> None:
        if previous is None or previous.version == installed.version:
            return
        for user in self._users.list_users():
            package_dir = user.apps_dir() / installed.name
            source = package_dir / previous.version
            target = package_dir / installed.version
            if not source.is_dir() or target.exists():
                continue
            LOGGER.info(
                "Copying %s data for %s from %s to %s",
                user.name,
                installed.name,
                previous.version,
                installed.version,
            )
            shutil.copytree(source, target, symlinks=True)


__all__ = ["ActivationHook", "UserDataActivator"]
