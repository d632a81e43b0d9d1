"""
Configuration package
Settings and database lifecycle for the console service
"""
from .settings import Settings, get_settings, settings

__all__ = [
    "Settings",
    "get_settings",
    "settings",
]
