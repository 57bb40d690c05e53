"""personasim configuration module."""

from personasim.config.settings import Settings, get_settings, reset_settings_cache, settings

__all__ = [
    "settings",
    "Settings",
    "get_settings",
    "reset_settings_cache",
]
