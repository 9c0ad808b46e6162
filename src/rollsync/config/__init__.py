"""
Configuration loading and typed settings.
"""

from rollsync.config.loader import Config, load_config, resolve_env
from rollsync.config.settings import SyncSettings

__all__ = ["Config", "load_config", "resolve_env", "SyncSettings"]
