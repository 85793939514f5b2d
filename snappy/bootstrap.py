"""Wires the orchestrator object graph from settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from snappy.catalog import CatalogClient, ImageIndexClient
from snappy.config import SnappySettings, get_settings
from snappy.install import Installer, UserDataActivator
from snappy.partition import DirectoryPartitionController, PartitionController
from snappy.store import HomeUserDirectory, VersionStore
from snappy.updater import Updater

LOGGER = logging.getLogger(__name__)


@dataclass
class Services:
    settings: SnappySettings
    store: VersionStore
    catalog: CatalogClient
    installer: Installer
    updater: Updater
    partition: PartitionController | None


def build_services(settings: SnappySettings | None = None) -> Services:
    """Construct store, catalog, installer and updater for ``settings``."""

    settings = settings or get_settings()
    users = HomeUserDirectory(settings.home_root)
    store = VersionStore(settings.apps_root, users)
    catalog = CatalogClient.from_settings(settings)
    installer = Installer(
        store,
        catalog,
        activator=UserDataActivator(users),
        icons_dir=settings.resolved_icons_dir,
    )
    partition: PartitionController | None = None
    if settings.partition_root is not None:
        partition = DirectoryPartitionController(settings.partition_root)
    image_index = ImageIndexClient.from_settings(settings)
    updater = Updater(
        store,
        catalog,
        installer,
        partition=partition,
        image_index=image_index,
        channel=settings.system_image_channel,
        system_image_updates=settings.system_image_updates,
    )
    LOGGER.debug(
        "Services ready (apps_root=%s, partition_root=%s)",
        settings.apps_root,
        settings.partition_root,
    )
    return Services(
        settings=settings,
        store=store,
        catalog=catalog,
        installer=installer,
        updater=updater,
        partition=partition,
    )


__all__ = ["Services", "build_services"]
