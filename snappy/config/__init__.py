from .settings import SnappySettings, get_settings

__all__ = ["SnappySettings", "get_settings"]
