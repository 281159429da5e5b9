"""
Restore of bundles, from local storage or from a remote.

The pipeline runs linearly:

    pick source -> (list + download from remote) | (list local)
        -> decrypt if needed -> inventory -> select components
        -> confirm overwrite -> extract -> remove decrypted temp file

Components are the top-level entries under the home directory found in
the bundle. Members stored outside the home directory are never offered
and never extracted.
"""

from __future__ import annotations

import logging
import posixpath
import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from claw_backup.backup.archive import archive_name, extract_members, list_members
from claw_backup.backup.bundle import has_bundle_extension, is_encrypted_name
from claw_backup.backup.encryption import EncryptionGate
from claw_backup.backup.errors import DownloadError, ListError, RestoreError
from claw_backup.config.settings import LOCAL_REMOTE, BackupPaths, ConfigStore
from claw_backup.external.rclone import RcloneClient, remote_spec
from claw_backup.prompts import Choice, Prompter

logger = logging.getLogger(__name__)

DEFAULT_REMOTE_PATH = "/OpenClaw_Backups/Termux"
DECRYPTED_SUFFIX = ".decrypted"


class RestoreSource(Enum):
    """Where the bundle to restore comes from."""

    LOCAL = "local"
    CLOUD = "cloud"


@dataclass
class RestoreComponent:
    """
    A top-level grouping of bundle members under the home directory.

    Attributes:
        name: First path segment relative to home.
        target_path: Absolute location the segment restores to.
        file_count: Number of archive members under the segment.
    """

    name: str
    target_path: Path
    file_count: int = 0

    @property
    def member_prefix(self) -> str:
        return archive_name(self.target_path)


@dataclass
class RestoreResult:
    """Outcome of one restore run."""

    success: bool = False
    aborted: bool = False
    bundle: Path | None = None
    restored: list[str] = field(default_factory=list)
    members_extracted: int = 0


def inventory_components(member_names: list[str], home: Path) -> list[RestoreComponent]:
    """
    Group bundle members by their first path segment below ``home``.

    Returns:
        Components in order of first appearance.
    """
    home_prefix = archive_name(home).rstrip("/") + "/"
    components: dict[str, RestoreComponent] = {}

    for raw_name in member_names:
        name = raw_name.lstrip("/")
        if not name.startswith(home_prefix):
            continue
        top = name[len(home_prefix):].split("/", 1)[0]
        if not top:
            continue
        component = components.get(top)
        if component is None:
            component = RestoreComponent(name=top, target_path=home / top)
            components[top] = component
        component.file_count += 1

    return list(components.values())


class RestorePipeline:
    """
    Interactive restore of one bundle.

    Usage:
        pipeline = RestorePipeline(paths, config_store, prompter)
        result = pipeline.run(RestoreSource.CLOUD)
    """

    def __init__(
        self,
        paths: BackupPaths,
        config_store: ConfigStore,
        prompter: Prompter,
        rclone: RcloneClient | None = None,
        gate: EncryptionGate | None = None,
        extract_root: Path = Path("/"),
    ) -> None:
        self.paths = paths
        self.config_store = config_store
        self.prompter = prompter
        self.rclone = rclone or RcloneClient()
        self.gate = gate or EncryptionGate(prompter)
        self.extract_root = extract_root

    def run(self, source: RestoreSource | str = RestoreSource.LOCAL) -> RestoreResult:
        """
        Select a bundle from ``source`` and restore from it.

        Raises:
            ListError: If a remote or the bundle cannot be listed.
            DownloadError: If the remote bundle cannot be fetched.
            DecryptionError: If the bundle cannot be decrypted.
            ExtractError: If extraction fails.
        """
        try:
            source = RestoreSource(source)
        except ValueError as e:
            raise RestoreError(f"Unknown restore source: {source}") from e
        self.paths.backup_dir.mkdir(parents=True, exist_ok=True)

        if source == RestoreSource.CLOUD:
            bundle_path = self._fetch_from_remote()
        else:
            bundle_path = self._pick_local()

        if bundle_path is None:
            return RestoreResult(aborted=True)
        return self.restore_file(bundle_path)

    def restore_file(self, bundle_path: Path) -> RestoreResult:
        """Decrypt (if needed), inventory, select, confirm and extract."""
        decrypted: Path | None = None
        try:
            archive = bundle_path
            if is_encrypted_name(bundle_path.name):
                password = self.prompter.secret("Enter decryption password:")
                decrypted = self.gate.decrypt(
                    bundle_path,
                    password,
                    dest=bundle_path.with_name(bundle_path.name + DECRYPTED_SUFFIX),
                )
                archive = decrypted

            components = inventory_components(list_members(archive), self.paths.home)
            if not components:
                self.prompter.message("No restorable components found in this backup.")
                return RestoreResult(aborted=True, bundle=bundle_path)

            choices = [
                Choice(label=f"{c.name} ({c.file_count} files)", value=c.name, checked=True)
                for c in components
            ]
            selected = self.prompter.choose_many("Select components to restore:", choices)
            if not selected:
                self.prompter.message("Aborted.")
                return RestoreResult(aborted=True, bundle=bundle_path)

            self.prompter.message("WARNING: Files will be overwritten!")
            if not self.prompter.confirm("Proceed with Restore?", default=False):
                return RestoreResult(aborted=True, bundle=bundle_path)

            chosen = [c for c in components if c.name in selected]
            count = extract_members(
                archive,
                [c.member_prefix for c in chosen],
                root=self.extract_root,
            )
            logger.info("Restored %d members from %s", count, bundle_path.name)
            return RestoreResult(
                success=True,
                bundle=bundle_path,
                restored=[c.name for c in chosen],
                members_extracted=count,
            )
        finally:
            if decrypted is not None:
                decrypted.unlink(missing_ok=True)

    def _pick_local(self) -> Path | None:
        files = sorted(
            (f for f in self.paths.backup_dir.iterdir() if f.is_file() and has_bundle_extension(f.name)),
            key=lambda f: f.name,
            reverse=True,
        )
        if not files:
            self.prompter.message('No local backup files found. Try "Restore from Cloud".')
            return None

        choices = [Choice(label=f.name, value=f) for f in files]
        return self.prompter.choose("Select Local Backup:", choices)

    def _resolve_remote(self) -> tuple[str, str] | None:
        target = self.config_store.load_default_target()
        if target is not None:
            return target.remote, target.path

        remotes = self.rclone.list_remotes()
        if not remotes:
            self.prompter.message("No remotes configured.")
            return None
        remote = self.prompter.choose("Select Remote:", [Choice(label=r, value=r) for r in remotes])
        remote_path = self.prompter.text("Remote Path (optional):", default=DEFAULT_REMOTE_PATH)
        return remote, remote_path

    def _fetch_from_remote(self) -> Path | None:
        resolved = self._resolve_remote()
        if resolved is None:
            return None
        remote, remote_path = resolved

        if remote == LOCAL_REMOTE:
            return self._fetch_from_local_target(Path(remote_path).expanduser())

        self.prompter.message("Fetching file list...")
        result, entries = self.rclone.list_files(remote, remote_path)
        if not result.ok:
            raise ListError(f"Failed to list files:\n{result.diagnostic}")

        names = [e.name for e in entries if has_bundle_extension(e.name)]
        if not names:
            self.prompter.message("No backup files found in cloud.")
            return None

        # Newest first: reverse of the listing order
        names.reverse()
        chosen = self.prompter.choose(
            "Select Cloud Backup to Restore:",
            [Choice(label=n, value=n) for n in names],
        )

        local_dest = self.paths.backup_dir / chosen
        self.prompter.message(f"Downloading {chosen}...")
        download = self.rclone.copyto(
            remote_spec(remote, posixpath.join(remote_path, chosen)),
            str(local_dest),
        )
        if not download.ok:
            local_dest.unlink(missing_ok=True)
            raise DownloadError(f"Download failed:\n{download.diagnostic}")

        self.prompter.message("Download complete!")
        return local_dest

    def _fetch_from_local_target(self, directory: Path) -> Path | None:
        if not directory.is_dir():
            raise ListError(f"Failed to list files: {directory} is not a directory")

        names = sorted(
            (f.name for f in directory.iterdir() if f.is_file() and has_bundle_extension(f.name)),
            reverse=True,
        )
        if not names:
            self.prompter.message("No backup files found at the default target.")
            return None

        chosen = self.prompter.choose(
            "Select Backup to Restore:",
            [Choice(label=n, value=n) for n in names],
        )
        local_dest = self.paths.backup_dir / chosen
        if (directory / chosen).resolve() != local_dest.resolve():
            try:
                shutil.copy2(directory / chosen, local_dest)
            except OSError as e:
                raise DownloadError(f"Download failed: {e}") from e
        return local_dest
