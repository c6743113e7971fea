"""Configuration package."""

from src.config.settings import (
    AppSettings,
    GeminiSettings,
    GoogleSheetsSettings,
    GroupSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "GeminiSettings",
    "GoogleSheetsSettings",
    "GroupSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
