"""
Configuration of upload targets.

Manages the persisted default target and the rclone remotes it can point
at: quick wizards for SFTP, WebDAV and Google Drive remotes, a directory
browser for picking a destination path, a deep connection probe and
remote deletion.
"""

from __future__ import annotations

import logging
import os
import posixpath
import re
import tempfile
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from claw_backup.config.settings import LOCAL_REMOTE, BackupPaths, ConfigStore, RemoteTarget
from claw_backup.external.rclone import RcloneClient, remote_spec
from claw_backup.prompts import Choice, Prompter

logger = logging.getLogger(__name__)

BACKUP_SUBDIR = "OpenClaw_Backups"
DEFAULT_REMOTE_PATH = f"/{BACKUP_SUBDIR}/Termux"
PROBE_FILE = "openclaw_probe.txt"

_IPV4_RE = re.compile(r"^\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}$")

# Browser actions (directory entries are returned as their names)
_SELECT = object()
_CREATE = object()
_UP = object()


@dataclass
class ProbeResult:
    """Outcome of a connection test."""

    success: bool
    stage: str = ""
    detail: str = ""


class TargetConfigurator:
    """
    Interactive management of the default target and rclone remotes.

    Usage:
        configurator = TargetConfigurator(paths, config_store, prompter)
        target = configurator.set_default_target()
    """

    def __init__(
        self,
        paths: BackupPaths,
        config_store: ConfigStore,
        prompter: Prompter,
        rclone: RcloneClient | None = None,
    ) -> None:
        self.paths = paths
        self.config_store = config_store
        self.prompter = prompter
        self.rclone = rclone or RcloneClient()

    def run_menu(self) -> None:
        """Configuration center: show remotes and the default target, loop over actions."""
        actions = {
            "set_default": self.set_default_target,
            "add_webdav": self.add_webdav_remote,
            "add_sftp": self.add_sftp_remote,
            "add_gdrive": self.add_gdrive_remote,
            "test": self.test_connection,
            "delete_remote": self.delete_remote,
        }

        while True:
            remotes = self.rclone.list_remotes()
            if remotes:
                self.prompter.message("Active Remotes:")
                for remote in remotes:
                    self.prompter.message(f"  {remote}")

            target = self.config_store.load_default_target()
            if target is not None:
                where = "Local Path" if target.is_local else target.remote
                self.prompter.message(f"Default Target: {where} -> {target.path}")

            action = self.prompter.choose(
                "Select Action:",
                [
                    Choice(label="Set Default Cloud Target", value="set_default"),
                    Choice(label="Add NAS via WebDAV (Quick Wizard)", value="add_webdav"),
                    Choice(label="Add NAS via SFTP (Quick Wizard)", value="add_sftp"),
                    Choice(label="Add Google Drive (Quick Wizard)", value="add_gdrive"),
                    Choice(label="Test Connection (Deep Probe)", value="test"),
                    Choice(label="Delete Remote", value="delete_remote"),
                    Choice(label="Back", value="back"),
                ],
            )
            if action == "back":
                return
            actions[action]()
            self.prompter.text("Press Enter...")

    # === Default target ===

    def set_default_target(self, preselected_remote: str | None = None) -> RemoteTarget:
        """Pick a destination and persist it as the default target."""
        remote = preselected_remote
        if remote is None:
            choices = [Choice(label="Local / Mounted Storage", value=LOCAL_REMOTE)]
            choices.extend(Choice(label=r, value=r) for r in self.rclone.list_remotes())
            remote = self.prompter.choose("Select Default Cloud Target:", choices)

        is_local = remote == LOCAL_REMOTE
        use_browser = self.prompter.choose(
            "How to set path?",
            [
                Choice(label=f"Browse {'Local' if is_local else 'Remote'} Directory", value=True),
                Choice(label="Manual Entry", value=False),
            ],
        )

        if use_browser:
            dest_path = self.browse_path(None if is_local else remote)
            if self.prompter.confirm(f"Append '/{BACKUP_SUBDIR}' to selected path?", default=True):
                if is_local:
                    dest_path = os.path.join(dest_path, BACKUP_SUBDIR)
                else:
                    dest_path = posixpath.join(dest_path, BACKUP_SUBDIR)
        else:
            default = str(self.paths.home / "storage" / "nasdata") if is_local else DEFAULT_REMOTE_PATH
            dest_path = self.prompter.text("Path:", default=default)

        if not is_local and not dest_path.startswith("/"):
            dest_path = "/" + dest_path

        target = RemoteTarget(remote=remote, path=dest_path)
        self.config_store.set_default_target(target)
        logger.info("Default target set to %s", target.display())
        self.prompter.message(f"Default target set to: {target.display()}")
        return target

    def browse_path(self, remote: str | None = None) -> str:
        """
        Navigate directories and return the chosen one.

        Local browsing starts at the home directory, remote browsing at the
        remote's root.
        """
        current = "" if remote else str(self.paths.home)

        while True:
            where = f"{remote}:" if remote else "Local"
            self.prompter.message(f"Browsing [{where}]: {current or '/'}")
            entries = self._list_dirs(remote, current)

            choices = [
                Choice(label="Select Current Directory", value=_SELECT),
                Choice(label="Create New Folder", value=_CREATE),
                Choice(label="Go Up", value=_UP),
            ]
            choices.extend(Choice(label=f"[dir] {d}", value=d) for d in entries)
            action = self.prompter.choose("Navigate:", choices)

            if action is _SELECT:
                return current or "/"
            if action is _UP:
                current = _parent(current, remote is not None)
            elif action is _CREATE:
                folder = self.prompter.text("New Folder Name:")
                if folder:
                    new_dir = _join(current, folder, remote is not None)
                    if self._make_dir(remote, new_dir):
                        current = new_dir
                    else:
                        self.prompter.message("Failed to create folder.")
            else:
                current = _join(current, action, remote is not None)

    def _list_dirs(self, remote: str | None, current: str) -> list[str]:
        if remote:
            return self.rclone.list_dirs(remote, current)
        try:
            return sorted(e.name for e in Path(current).iterdir() if e.is_dir())
        except OSError:
            return []

    def _make_dir(self, remote: str | None, path: str) -> bool:
        if remote:
            return self.rclone.mkdir(remote, path).ok
        try:
            Path(path).mkdir(parents=True, exist_ok=True)
        except OSError:
            return False
        return True

    # === Remote wizards ===

    def add_sftp_remote(self) -> bool:
        """Create an SFTP remote (e.g. a Synology NAS)."""
        self.prompter.message("Setup Synology/NAS (SFTP)")
        name = self._required_text("Name (e.g. synology):", default="synology")
        host = self._required_text("IP:")
        port = self.prompter.text("Port:", default="22")
        user = self._required_text("User:")
        password = self.prompter.secret("Password:")
        obscured = self.rclone.obscure(password)
        if not obscured.ok:
            return self._finish_wizard(name, False, obscured.diagnostic)

        result = self.rclone.config_create(
            name,
            "sftp",
            {
                "host": host,
                "port": port,
                "user": user,
                "pass": obscured.stdout.strip(),
            },
        )
        return self._finish_wizard(name, result.ok, result.diagnostic)

    def add_webdav_remote(self) -> bool:
        """Create a WebDAV remote."""
        self.prompter.message("Setup NAS via WebDAV")
        name = self._required_text("Name (e.g. nas_webdav):", default="nas_webdav")
        proto = self.prompter.choose(
            "Protocol:",
            [Choice(label="https", value="https"), Choice(label="http", value="http")],
        )
        host = self._required_text("Host (IP or Domain):")
        port = self.prompter.text("Port:", default="5006" if proto == "https" else "5005")
        user = self._required_text("User:")
        password = self.prompter.secret("Password:")

        strict = Choice(label="Strict (Domain)", value="strict")
        skip = Choice(label="Skip (IP/Self-signed)", value="skip")
        ordered = [skip, strict] if _IPV4_RE.match(host) else [strict, skip]
        ssl_policy = self.prompter.choose("SSL Certificate Check:", ordered)
        obscured = self.rclone.obscure(password)
        if not obscured.ok:
            return self._finish_wizard(name, False, obscured.diagnostic)

        options = {
            "url": f"{proto}://{host}:{port}",
            "vendor": "synology",
            "user": user,
            "pass": obscured.stdout.strip(),
            "use_expect_continue": "false",
        }
        if ssl_policy == "skip":
            options["insecure"] = "true"

        result = self.rclone.config_create(name, "webdav", options)
        return self._finish_wizard(name, result.ok, result.diagnostic)

    def add_gdrive_remote(self) -> bool:
        """Create a Google Drive remote using rclone's headless authorization flow."""
        self.prompter.message("Setup Google Drive")
        name = self.prompter.text("Name (e.g. gdrive):", default="gdrive")
        self.prompter.message("INSTRUCTIONS: Copy URL -> Authorize -> Paste Code")
        if not self.prompter.confirm("Start?", default=True):
            return False
        result = self.rclone.config_create(
            name, "drive", {"config_is_local": "false"}, interactive=True
        )
        return self._finish_wizard(name, result.ok, result.diagnostic)

    def _required_text(self, message: str, default: str = "") -> str:
        while True:
            value = self.prompter.text(message, default=default)
            if value:
                return value
            self.prompter.message("Required")

    def _finish_wizard(self, name: str, ok: bool, diagnostic: str) -> bool:
        if not ok:
            self.prompter.message(f"Failed to add remote {name}.")
            if diagnostic:
                self.prompter.message(diagnostic)
            return False
        self.prompter.message(f"Added: {name}")
        if self.prompter.confirm("Set as Default Backup Target now?", default=True):
            self.set_default_target(name)
        return True

    # === Maintenance ===

    def delete_remote(self) -> bool:
        """Delete an rclone remote, clearing the default target if it used it."""
        remotes = self.rclone.list_remotes()
        if not remotes:
            self.prompter.message("No remotes to delete.")
            return False

        remote = self.prompter.choose(
            "Select Remote to DELETE:", [Choice(label=r, value=r) for r in remotes]
        )
        if not self.prompter.confirm(f'Permanently delete "{remote}"?', default=False):
            return False

        result = self.rclone.config_delete(remote)
        if not result.ok:
            self.prompter.message(f"Failed to delete: {result.diagnostic}")
            return False

        self.prompter.message(f"Deleted: {remote}")
        target = self.config_store.load_default_target()
        if target is not None and target.remote == remote:
            self.config_store.set_default_target(None)
            self.prompter.message("  (Removed from Default Target)")
        return True

    def test_connection(self, target: str | None = None) -> ProbeResult:
        """
        Check that a remote (or local path) is reachable and writable.

        Remotes are pinged, then a probe file is written and deleted.
        """
        if target is None:
            choices = [Choice(label="Local Path (Test Write)", value=LOCAL_REMOTE)]
            choices.extend(Choice(label=r, value=r) for r in self.rclone.list_remotes())
            target = self.prompter.choose("Select Target to Test:", choices)

        if target == LOCAL_REMOTE:
            test_path = self.prompter.text(
                "Enter Local Path to Test:", default=str(self.paths.home / "storage")
            )
            result = probe_local_path(Path(test_path).expanduser())
        else:
            result = probe_remote(self.rclone, target)

        if result.success:
            self.prompter.message("Deep Probe Passed.")
        else:
            self.prompter.message(f"{result.stage} Failed.")
            if result.detail:
                self.prompter.message(result.detail)
        return result


def probe_local_path(directory: Path) -> ProbeResult:
    """Write and remove a probe file in ``directory``."""
    probe = directory / PROBE_FILE
    try:
        probe.write_text("Write Test OK")
        exists = probe.exists()
        probe.unlink()
    except OSError as e:
        return ProbeResult(success=False, stage="Local Write", detail=str(e))
    if not exists:
        return ProbeResult(success=False, stage="Local Write", detail=f"{probe} was not created")
    return ProbeResult(success=True)


def probe_remote(rclone: RcloneClient, remote: str) -> ProbeResult:
    """Ping a remote, then write and delete a probe file on it."""
    about = rclone.about(remote)
    if not about.ok:
        return ProbeResult(success=False, stage="Ping", detail=about.diagnostic)

    fd, local_probe = tempfile.mkstemp(suffix=".txt")
    try:
        with os.fdopen(fd, "w") as f:
            f.write(f"Probe test: {datetime.now(UTC).isoformat()}")
        write = rclone.copyto(local_probe, remote_spec(remote, PROBE_FILE))
        if not write.ok:
            return ProbeResult(success=False, stage="Write", detail=write.diagnostic)
        rclone.delete(remote, PROBE_FILE)
    finally:
        os.unlink(local_probe)

    return ProbeResult(success=True)


def _join(current: str, name: str, remote: bool) -> str:
    if remote:
        return posixpath.join(current, name)
    return os.path.join(current, name)


def _parent(current: str, remote: bool) -> str:
    if remote:
        parts = [p for p in current.split("/") if p]
        return "/".join(parts[:-1])
    parent = os.path.dirname(current.rstrip("/"))
    return parent or "/"
