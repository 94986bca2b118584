"""Configuration module: exports the Settings class."""

from bookrag.config.settings import Settings

__all__ = ["Settings"]
