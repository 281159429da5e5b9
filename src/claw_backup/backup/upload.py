"""
Upload of finished bundles to the default target.

Interactive uploads wait a short grace period (Ctrl+C cancels), show
transfer progress and offer to delete the local copy afterwards. Silent
uploads do the same transfer with no prompts, delay or progress output,
and do nothing at all when no default target is configured.
"""

from __future__ import annotations

import logging
import shutil
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from claw_backup.backup.errors import UploadError
from claw_backup.config.settings import ConfigStore, RemoteTarget
from claw_backup.external.rclone import RcloneClient, is_progress_line
from claw_backup.prompts import NonInteractivePrompter, Prompter

logger = logging.getLogger(__name__)

GRACE_DELAY_SECONDS = 3


@dataclass
class UploadResult:
    """Outcome of one upload attempt."""

    uploaded: bool = False
    destination: str | None = None
    skipped: bool = False
    cancelled: bool = False
    local_deleted: bool = False


class UploadDispatcher:
    """
    Copies bundles to the configured default target.

    Args:
        config_store: Source of the default target.
        rclone: Remote storage client.
        prompter: Interaction boundary for interactive uploads.
        configure_target: Called when no target is set during an
            interactive upload; returns the newly configured target.
        sleep: Delay function (replaced in tests).
    """

    def __init__(
        self,
        config_store: ConfigStore,
        rclone: RcloneClient | None = None,
        prompter: Prompter | None = None,
        configure_target: Callable[[], RemoteTarget | None] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config_store = config_store
        self.rclone = rclone or RcloneClient()
        self.prompter = prompter or NonInteractivePrompter()
        self.configure_target = configure_target
        self.sleep = sleep

    def upload(self, bundle_path: Path, silent: bool = False) -> UploadResult:
        """
        Copy a bundle to the default target.

        Args:
            bundle_path: Local bundle to upload.
            silent: Unattended mode (no prompts, delay or progress).

        Returns:
            UploadResult describing what happened.

        Raises:
            UploadError: If the transfer fails. The local bundle is kept.
        """
        target = self.config_store.load_default_target()

        if target is None:
            if silent:
                logger.info("No default target configured; skipping upload")
                return UploadResult(skipped=True)
            target = self._ask_for_target()
            if target is None:
                return UploadResult(skipped=True)

        if not silent:
            self.prompter.message(
                f"Auto-uploading to [{target.display()}] in {GRACE_DELAY_SECONDS}s... "
                "(Ctrl+C to cancel)"
            )
            try:
                self.sleep(GRACE_DELAY_SECONDS)
            except KeyboardInterrupt:
                self.prompter.message("Upload cancelled. The backup stays on local storage.")
                return UploadResult(cancelled=True)

        if target.is_local:
            destination = self._copy_local(bundle_path, target)
        else:
            destination = self._copy_remote(bundle_path, target, silent)

        logger.info("Uploaded %s to %s", bundle_path.name, destination)
        result = UploadResult(uploaded=True, destination=destination)

        if not silent:
            self.prompter.message("Sync Complete!")
            if self.prompter.confirm("Delete local copy?", default=True):
                bundle_path.unlink(missing_ok=True)
                result.local_deleted = True

        return result

    def _ask_for_target(self) -> RemoteTarget | None:
        self.prompter.message("No default cloud target set.")
        if self.configure_target is not None and self.prompter.confirm(
            "Configure a default target now?", default=True
        ):
            target = self.configure_target()
            if target is not None:
                return target
        self.prompter.message("Please configure a default target first in the menu.")
        return None

    def _copy_local(self, bundle_path: Path, target: RemoteTarget) -> str:
        dest_dir = Path(target.path).expanduser()
        dest_file = dest_dir / bundle_path.name
        try:
            dest_dir.mkdir(parents=True, exist_ok=True)
            shutil.copy2(bundle_path, dest_file)
        except OSError as e:
            raise UploadError(f"Local copy failed: {e}") from e

        if not dest_file.exists():
            raise UploadError(f"Local copy failed: {dest_file} was not created")
        return str(dest_file)

    def _copy_remote(self, bundle_path: Path, target: RemoteTarget, silent: bool) -> str:
        if silent:
            result = self.rclone.copy(str(bundle_path), target.remote, target.path)
        else:
            command = self.rclone.copy_with_progress(str(bundle_path), target.remote, target.path)
            for line in command:
                if is_progress_line(line):
                    self.prompter.progress(line.strip())
            self.prompter.end_progress()
            result = command.result

        if result is None or not result.ok:
            diagnostic = result.diagnostic if result is not None else "no result"
            raise UploadError(f"Upload failed:\n{diagnostic}")
        return target.display()
