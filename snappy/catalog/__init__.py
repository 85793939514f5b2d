"""Remote catalog and system image index clients."""

from .client import CatalogClient, InstalledRef, installed_refs
from .image_index import ImageIndexClient

__all__ = ["CatalogClient", "ImageIndexClient", "InstalledRef", "installed_refs"]
