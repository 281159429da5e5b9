"""
Backup and restore functionality for claw-backup.

This package discovers backup-eligible artifacts, archives them into a
single compressed bundle, optionally encrypts it, prunes old bundles and
uploads the result. It also restores selected components from a bundle
held locally or on a remote.

Usage:
    from claw_backup.backup import BackupManager, RestorePipeline

    # Create a backup of everything present
    manager = BackupManager(paths, config_store, prompter)
    result = manager.full_backup()

    # Restore from a bundle on the default remote
    result = RestorePipeline(paths, config_store, prompter).run("cloud")
"""

from claw_backup.backup.archive import ArchiveBuilder, extract_members, list_members
from claw_backup.backup.bundle import Bundle
from claw_backup.backup.discovery import Candidate, CandidateKind, discover
from claw_backup.backup.encryption import EncryptionGate, decrypt_file, encrypt_file
from claw_backup.backup.errors import (
    ArchiveError,
    ClawBackupError,
    DecryptionError,
    DownloadError,
    EncryptionError,
    ExtractError,
    ListError,
    RestoreError,
    UploadError,
)
from claw_backup.backup.manager import BackupManager, BackupResult
from claw_backup.backup.restore import (
    RestoreComponent,
    RestorePipeline,
    RestoreResult,
    RestoreSource,
    inventory_components,
)
from claw_backup.backup.retention import clean_local_backups, enforce_retention
from claw_backup.backup.upload import UploadDispatcher, UploadResult

__all__ = [
    # Orchestration
    "BackupManager",
    "BackupResult",
    "RestorePipeline",
    "RestoreResult",
    "RestoreSource",
    "RestoreComponent",
    # Components
    "ArchiveBuilder",
    "Bundle",
    "Candidate",
    "CandidateKind",
    "EncryptionGate",
    "UploadDispatcher",
    "UploadResult",
    "discover",
    "enforce_retention",
    "clean_local_backups",
    "inventory_components",
    "list_members",
    "extract_members",
    "encrypt_file",
    "decrypt_file",
    # Errors
    "ClawBackupError",
    "ArchiveError",
    "ListError",
    "ExtractError",
    "EncryptionError",
    "DecryptionError",
    "UploadError",
    "DownloadError",
    "RestoreError",
]
