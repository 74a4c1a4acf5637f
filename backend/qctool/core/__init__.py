"""Core module for configuration and utilities."""
from qctool.core.config import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
