# Config package
from reliability.config.settings import Settings, get_settings, settings

__all__ = ["Settings", "get_settings", "settings"]
