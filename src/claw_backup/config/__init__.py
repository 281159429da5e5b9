"""
Configuration management for claw-backup.

This module handles the home-relative storage locations and the single
configuration record holding the default upload target.
"""

from claw_backup.config.settings import (
    LOCAL_REMOTE,
    BackupPaths,
    ConfigStore,
    ConfigurationError,
    RemoteTarget,
    Settings,
    get_config_path,
)

__all__ = [
    "BackupPaths",
    "ConfigStore",
    "ConfigurationError",
    "LOCAL_REMOTE",
    "RemoteTarget",
    "Settings",
    "get_config_path",
]
