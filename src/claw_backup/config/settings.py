"""
Configuration settings management for claw-backup.

This module handles the well-known filesystem locations derived from the
invoking user's home directory, and loading, validating and saving the
single configuration record (default upload target, retention count,
log level).

Configuration is loaded from ~/.claw-backup/config.yaml by default, with
the path overridable via the CLAW_BACKUP_CONFIG environment variable.
A legacy ~/.claw-backup/config.json record is read when no YAML record
exists yet; saves always write YAML.
"""

from __future__ import annotations

import json
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

LOCAL_REMOTE = "local"
DEFAULT_RETENTION_COUNT = 5

CONFIG_DIR_NAME = ".claw-backup"
CONFIG_FILE_NAME = "config.yaml"
LEGACY_CONFIG_FILE_NAME = "config.json"
BACKUP_DIR_NAME = "claw-backups"
STAGING_DIR_NAME = ".claw-backup-staging"
LOG_FILE_NAME = "claw-backup.log"


class ConfigurationError(Exception):
    """Raised when configuration is invalid or cannot be loaded."""

    pass


@dataclass(frozen=True)
class BackupPaths:
    """
    Filesystem locations used by claw-backup.

    All locations are fixed subpaths of the home directory.

    Attributes:
        home: The invoking user's home directory.
        backup_dir: Local backup-storage directory holding bundles.
        config_dir: Directory holding the configuration record.
        staging_dir: Ephemeral working area assembled before archival.
        log_file: Log file written by scheduled runs.
    """

    home: Path
    backup_dir: Path
    config_dir: Path
    staging_dir: Path
    log_file: Path

    @classmethod
    def from_home(cls, home: Path | str | None = None) -> BackupPaths:
        """Derive all locations from a home directory (default: current user)."""
        home_path = Path(home) if home is not None else Path.home()
        return cls(
            home=home_path,
            backup_dir=home_path / BACKUP_DIR_NAME,
            config_dir=home_path / CONFIG_DIR_NAME,
            staging_dir=home_path / STAGING_DIR_NAME,
            log_file=home_path / LOG_FILE_NAME,
        )

    @property
    def config_file(self) -> Path:
        return self.config_dir / CONFIG_FILE_NAME


@dataclass(frozen=True)
class RemoteTarget:
    """
    Default upload destination.

    Attributes:
        remote: Either "local" or the name of a configured remote endpoint.
        path: Destination directory (local) or path prefix (remote).
    """

    remote: str
    path: str

    @property
    def is_local(self) -> bool:
        return self.remote == LOCAL_REMOTE

    def display(self) -> str:
        """Human-readable form, e.g. ``gdrive:/OpenClaw_Backups``."""
        if self.is_local:
            return self.path
        return f"{self.remote}:{self.path}"

    def to_dict(self) -> dict[str, str]:
        return {"remote": self.remote, "path": self.path}


@dataclass
class Settings:
    """
    Complete claw-backup configuration settings.

    Attributes:
        default_target: Destination used for automatic uploads, or None.
        retention_count: Number of newest local bundles kept after a backup.
        log_level: Logging verbosity (DEBUG, INFO, WARNING, ERROR).
    """

    default_target: RemoteTarget | None = None
    retention_count: int = DEFAULT_RETENTION_COUNT
    log_level: str = "INFO"
    extra: dict[str, Any] = field(default_factory=dict)


def get_config_path(paths: BackupPaths | None = None) -> Path:
    """
    Get the configuration file path.

    Returns the path from CLAW_BACKUP_CONFIG environment variable if set,
    otherwise returns the default path (~/.claw-backup/config.yaml).
    """
    env_path = os.environ.get("CLAW_BACKUP_CONFIG")
    if env_path:
        return Path(env_path)
    if paths is None:
        paths = BackupPaths.from_home()
    return paths.config_file


class ConfigStore:
    """
    Reads and writes the configuration record as a whole document.

    The store is passed explicitly to the components that need the
    default target; nothing caches settings globally.
    """

    def __init__(self, config_path: Path) -> None:
        self.config_path = Path(config_path)

    @property
    def legacy_path(self) -> Path:
        return self.config_path.with_name(LEGACY_CONFIG_FILE_NAME)

    def load(self) -> Settings:
        """
        Load configuration from disk.

        Returns:
            Validated Settings instance (defaults if no record exists).

        Raises:
            ConfigurationError: If the record cannot be read or is invalid.
        """
        settings = Settings()

        config_data = self._read_document()
        if config_data:
            settings = _apply_config_data(settings, config_data)

        settings = _apply_environment_overrides(settings)

        _validate_config(settings)

        return settings

    def save(self, settings: Settings) -> None:
        """
        Save configuration to the YAML record.

        Raises:
            ConfigurationError: If the configuration cannot be written.
        """
        config_data = _settings_to_dict(settings)

        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_path, "w") as f:
                yaml.safe_dump(config_data, f, default_flow_style=False, sort_keys=False)
        except OSError as e:
            raise ConfigurationError(f"Cannot write config file: {e}") from e

    def load_default_target(self) -> RemoteTarget | None:
        return self.load().default_target

    def set_default_target(self, target: RemoteTarget | None) -> Settings:
        """Replace the default target and persist the whole record."""
        settings = self.load()
        settings.default_target = target
        self.save(settings)
        return settings

    def _read_document(self) -> dict[str, Any]:
        if self.config_path.exists():
            try:
                with open(self.config_path) as f:
                    data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid YAML in config file: {e}") from e
            except OSError as e:
                raise ConfigurationError(f"Cannot read config file: {e}") from e
        elif self.legacy_path.exists():
            try:
                with open(self.legacy_path) as f:
                    data = json.load(f) or {}
            except json.JSONDecodeError as e:
                raise ConfigurationError(f"Invalid JSON in legacy config file: {e}") from e
            except OSError as e:
                raise ConfigurationError(f"Cannot read legacy config file: {e}") from e
        else:
            return {}

        if not isinstance(data, dict):
            raise ConfigurationError("Config file must contain a mapping")
        return data


def _apply_config_data(settings: Settings, data: dict[str, Any]) -> Settings:
    """Apply configuration data from the parsed document to settings."""
    target = data.get("default_target")
    if target is not None:
        if not isinstance(target, dict):
            raise ConfigurationError("default_target must be a mapping with remote and path")
        settings.default_target = RemoteTarget(
            remote=str(target.get("remote") or ""),
            path=str(target.get("path") or ""),
        )

    if "retention_count" in data:
        try:
            settings.retention_count = int(data["retention_count"])
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid retention_count: {data['retention_count']}") from e

    if "log_level" in data:
        settings.log_level = str(data["log_level"]).upper()

    known = {"default_target", "retention_count", "log_level"}
    settings.extra = {k: v for k, v in data.items() if k not in known}

    return settings


def _apply_environment_overrides(settings: Settings) -> Settings:
    """Apply environment variable overrides to settings."""
    env_map: dict[str, tuple[str, Callable[[str], Any]]] = {
        "CLAW_BACKUP_RETENTION": ("retention_count", int),
        "CLAW_BACKUP_LOG_LEVEL": ("log_level", lambda x: x.upper()),
    }

    for env_var, (attr, converter) in env_map.items():
        value = os.environ.get(env_var)
        if value is not None:
            try:
                setattr(settings, attr, converter(value))
            except ValueError as e:
                raise ConfigurationError(f"Invalid value for {env_var}: {value}") from e

    return settings


def _validate_config(settings: Settings) -> None:
    """
    Validate configuration settings.

    Raises:
        ConfigurationError: If configuration is invalid.
    """
    valid_log_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
    if settings.log_level not in valid_log_levels:
        raise ConfigurationError(
            f"Invalid log_level: {settings.log_level}. "
            f"Must be one of: {', '.join(sorted(valid_log_levels))}"
        )

    if settings.retention_count < 1:
        raise ConfigurationError("retention_count must be at least 1")

    target = settings.default_target
    if target is not None and not target.remote:
        raise ConfigurationError("default_target.remote must not be empty")
    if target is not None and not target.path:
        raise ConfigurationError("default_target.path must not be empty")


def _settings_to_dict(settings: Settings) -> dict[str, Any]:
    """Convert Settings instance to dictionary for YAML serialization."""
    data: dict[str, Any] = {}
    if settings.default_target is not None:
        data["default_target"] = settings.default_target.to_dict()
    data["retention_count"] = settings.retention_count
    data["log_level"] = settings.log_level
    data.update(settings.extra)
    return data
