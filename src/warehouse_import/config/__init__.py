"""Configuration package for Warehouse Import."""

from .settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
