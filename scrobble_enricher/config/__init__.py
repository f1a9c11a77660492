"""Configuration module for Scrobble Enricher."""

from .database import DatabaseHandler
from .settings import Settings

__all__ = ["DatabaseHandler", "Settings"]
