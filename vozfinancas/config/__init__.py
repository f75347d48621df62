"""Configuration package."""

from vozfinancas.config.settings import (
    AppSettings,
    AudioSettings,
    GeminiSettings,
    RemoteSyncSettings,
    ServerSettings,
    Settings,
    StorageSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "AudioSettings",
    "GeminiSettings",
    "RemoteSyncSettings",
    "ServerSettings",
    "Settings",
    "StorageSettings",
    "get_settings",
    "validate_all_settings",
]
