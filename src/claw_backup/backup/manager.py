"""
Backup orchestration for claw-backup.

Chains discovery, archiving, optional encryption, retention and upload
into the three backup entry points: quick full backup, custom backup
(user picks components) and the unattended backup used by scheduled runs.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from claw_backup.backup.archive import ArchiveBuilder
from claw_backup.backup.bundle import Bundle
from claw_backup.backup.discovery import (
    Candidate,
    CandidateKind,
    default_selection,
    discover,
    existing_selection,
)
from claw_backup.backup.encryption import EncryptionGate
from claw_backup.backup.errors import ArchiveError, EncryptionError, UploadError
from claw_backup.backup.retention import enforce_retention
from claw_backup.backup.upload import UploadDispatcher, UploadResult
from claw_backup.config.settings import BackupPaths, ConfigStore
from claw_backup.external.pm2 import Pm2Client
from claw_backup.prompts import Choice, Prompter

logger = logging.getLogger(__name__)


@dataclass
class BackupResult:
    """Result of a backup run."""

    success: bool
    bundle: Bundle | None = None
    aborted: bool = False
    error: str | None = None
    deleted_old: list[Path] = field(default_factory=list)
    upload: UploadResult | None = None
    upload_error: str | None = None


class BackupManager:
    """
    Runs backups end to end.

    Usage:
        manager = BackupManager(paths, config_store, prompter)
        result = manager.full_backup()
        result = manager.unattended_backup(silent=True)
    """

    def __init__(
        self,
        paths: BackupPaths,
        config_store: ConfigStore,
        prompter: Prompter,
        pm2: Pm2Client | None = None,
        builder: ArchiveBuilder | None = None,
        gate: EncryptionGate | None = None,
        uploader: UploadDispatcher | None = None,
    ) -> None:
        self.paths = paths
        self.config_store = config_store
        self.prompter = prompter
        self.pm2 = pm2 or Pm2Client(paths.home)
        self.builder = builder or ArchiveBuilder(paths, pm2=self.pm2)
        self.gate = gate or EncryptionGate(prompter)
        self.uploader = uploader or UploadDispatcher(config_store, prompter=prompter)

    def scan(self) -> list[Candidate]:
        return discover(self.paths, pm2=self.pm2)

    def full_backup(self) -> BackupResult:
        """Interactive backup of every component currently present."""
        candidates = self.scan()
        return self.run_backup(existing_selection(candidates), candidates, interactive=True)

    def custom_backup(self) -> BackupResult:
        """Interactive backup of user-selected components."""
        candidates = self.scan()
        choices = [
            Choice(
                label=_candidate_label(c),
                value=c.id,
                checked=c.default_selected,
                disabled=not c.exists,
            )
            for c in candidates
        ]
        selection = self.prompter.choose_many("Select components to backup:", choices)
        if not selection:
            self.prompter.message("Aborted.")
            return BackupResult(success=False, aborted=True)
        return self.run_backup(selection, candidates, interactive=True)

    def unattended_backup(self, silent: bool = False) -> BackupResult:
        """Backup of the default selection, as run from the command line or cron."""
        candidates = self.scan()
        return self.run_backup(
            default_selection(candidates),
            candidates,
            interactive=False,
            silent=silent,
        )

    def run_backup(
        self,
        selected_ids: Iterable[str],
        candidates: list[Candidate],
        interactive: bool,
        silent: bool = False,
    ) -> BackupResult:
        """
        Archive, optionally encrypt, prune and upload.

        Args:
            selected_ids: Candidate ids to include.
            candidates: Discovery result the ids refer to.
            interactive: Whether the user can be asked questions
                (encryption is only offered interactively).
            silent: Unattended upload with no output.

        Returns:
            BackupResult. A failed upload leaves ``success`` True and sets
            ``upload_error``; the bundle stays on local storage.
        """
        try:
            bundle = self.builder.build(selected_ids, candidates)
        except ArchiveError as e:
            logger.error("Backup failed: %s", e)
            return BackupResult(success=False, error=str(e))

        try:
            bundle = self.gate.maybe_encrypt(bundle, interactive=interactive and not silent)
        except EncryptionError as e:
            logger.error("Encryption failed, unencrypted backup kept: %s", e)
            return BackupResult(success=False, bundle=bundle, error=str(e))

        if not silent:
            label = "Encrypted Backup Created" if bundle.encrypted else "Backup Created"
            self.prompter.message(f"{label}: {bundle.name}")

        settings = self.config_store.load()
        deleted = enforce_retention(self.paths.backup_dir, settings.retention_count)
        if deleted and not silent:
            self.prompter.message(f"Retention Policy: Keeping latest {settings.retention_count} backups...")
            for old in deleted:
                self.prompter.message(f"   Deleted old backup: {old.name}")

        result = BackupResult(success=True, bundle=bundle, deleted_old=deleted)

        try:
            result.upload = self.uploader.upload(bundle.path, silent=silent)
        except UploadError as e:
            logger.error("Upload failed, backup kept at %s: %s", bundle.path, e)
            result.upload_error = str(e)

        return result


def _candidate_label(candidate: Candidate) -> str:
    if candidate.kind != CandidateKind.DIRECTORY:
        return candidate.name
    location = f"({candidate.path})" if candidate.exists else "(Not Found)"
    return f"{candidate.name} {location}"
