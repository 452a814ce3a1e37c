"""
Storage Layer.

This package handles local persistence: the configuration file, the stored
sign-in session, and the catalog cache.
"""

from .cache import CacheManager
from .config_manager import ConfigManager
from .session_store import SessionStore, StoredSession

__all__ = ["CacheManager", "ConfigManager", "SessionStore", "StoredSession"]
