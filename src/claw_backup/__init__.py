"""
claw-backup - System Backup & Recovery for OpenClaw

Backs up an OpenClaw installation (agent working directories, custom
skills, key documents, user configuration, secrets, the process
supervisor's state and the environment) into a single compressed bundle,
and restores selected parts of it later.

Key Features:
    - Discovers backup-eligible components heuristically
    - Builds one tar.gz bundle, optionally password-encrypted
    - Keeps the newest bundles locally and prunes the rest
    - Uploads to a local path or any rclone remote (NAS, Google Drive)
    - Restores selected components from a local or remote bundle
    - Daily unattended backups through cron
"""

__version__ = "0.1.0"

from claw_backup.config.settings import BackupPaths, ConfigStore, RemoteTarget, Settings

__all__ = [
    "__version__",
    "BackupPaths",
    "ConfigStore",
    "RemoteTarget",
    "Settings",
]
