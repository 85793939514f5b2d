"""Install, update and garbage-collect versioned packages."""

from .errors import SnappyError
from .flags import InstallFlags

__all__ = ["InstallFlags", "SnappyError"]
