"""
Runtime configuration.
"""

from .settings import DatabaseSettings, LoggingSettings, PersistenceSettings, load_settings

__all__ = ["DatabaseSettings", "LoggingSettings", "PersistenceSettings", "load_settings"]
