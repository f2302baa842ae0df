"""Core module for configuration and utilities."""

from tubely.core.config import settings

__all__ = [
    "settings",
]
