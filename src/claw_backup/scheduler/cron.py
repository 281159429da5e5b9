"""
Scheduled backups through the system crontab.

Installs a single crontab entry that runs the unattended backup entry
point once a day and appends its output to the scheduled-run log. The
entry is identified by the ``claw-backup`` marker, so installing again
replaces it and uninstalling removes only it.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path

from claw_backup.config.settings import BackupPaths

logger = logging.getLogger(__name__)

CRON_MARKER = "claw-backup"
CRONTAB_TIMEOUT = 10
# Every day at 03:00
CRON_SCHEDULE = "0 3 * * *"


@dataclass
class ScheduleStatus:
    """Current crontab state for the backup job."""

    installed: bool
    entry: str | None = None


class SchedulerError(Exception):
    """Base exception for scheduler errors."""

    pass


class CronNotAvailableError(SchedulerError):
    """Raised when the crontab cannot be read or written."""

    pass


class CronScheduler:
    """
    Manages the crontab entry for unattended backups.

    Usage:
        scheduler = CronScheduler(paths)

        if scheduler.status().installed:
            scheduler.uninstall()
        scheduler.install()
    """

    def __init__(self, paths: BackupPaths, command: str | None = None) -> None:
        """
        Initialize the scheduler.

        Args:
            paths: Per-user locations; the scheduled-run log lives there.
            command: Command that starts claw-backup. Detected if omitted.
        """
        self.paths = paths
        self._command = command

    @property
    def command(self) -> str:
        if self._command is None:
            self._command = get_backup_command()
        return self._command

    def build_entry(self) -> str:
        """Return the crontab line for the unattended backup."""
        return (
            f'{CRON_SCHEDULE} {self.command} --backup --silent '
            f'>> "{self.paths.log_file}" 2>&1'
        )

    def status(self) -> ScheduleStatus:
        """Report whether a backup entry is present in the crontab."""
        for line in self._read_crontab():
            if _is_backup_line(line):
                return ScheduleStatus(installed=True, entry=line)
        return ScheduleStatus(installed=False)

    def install(self) -> str:
        """
        Install the backup entry, replacing any existing one.

        Returns:
            The installed crontab line.

        Raises:
            CronNotAvailableError: If the crontab cannot be read or written.
        """
        entry = self.build_entry()
        lines = [line for line in self._read_crontab() if not _is_backup_line(line)]
        lines.append(entry)
        self._write_crontab(lines)

        logger.info("Installed cron entry: %s", entry)
        return entry

    def uninstall(self) -> bool:
        """
        Remove the backup entry.

        Returns:
            True if an entry was removed.
        """
        current = self._read_crontab()
        lines = [line for line in current if not _is_backup_line(line)]
        if len(lines) == len(current):
            return False

        self._write_crontab(lines)
        logger.info("Removed cron entry")
        return True

    def _read_crontab(self) -> list[str]:
        try:
            result = subprocess.run(
                ["crontab", "-l"],
                capture_output=True,
                text=True,
                timeout=CRONTAB_TIMEOUT,
            )
        except (subprocess.SubprocessError, OSError) as e:
            raise CronNotAvailableError(f"Cannot read crontab: {e}") from e

        # crontab -l exits non-zero when the user has no crontab yet
        if result.returncode != 0:
            return []
        return [line for line in result.stdout.splitlines() if line.strip()]

    def _write_crontab(self, lines: list[str]) -> None:
        new_crontab = "\n".join(lines) + "\n" if lines else ""

        try:
            process = subprocess.Popen(
                ["crontab", "-"],
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            )
            _, stderr = process.communicate(input=new_crontab, timeout=CRONTAB_TIMEOUT)
        except (subprocess.SubprocessError, OSError) as e:
            raise CronNotAvailableError(f"Cannot write crontab: {e}") from e

        if process.returncode != 0:
            raise CronNotAvailableError(f"Failed to install crontab: {stderr.strip()}")


def get_backup_command() -> str:
    """Get the full command that starts claw-backup."""
    executable = shutil.which("claw-backup")
    if executable:
        return str(Path(executable).resolve())

    # Fall back to python -m claw_backup
    return f"{sys.executable} -m claw_backup"


def _is_backup_line(line: str) -> bool:
    return CRON_MARKER in line and not line.lstrip().startswith("#")


def get_cron_help() -> str:
    """Get help text for manual cron setup."""
    return """
Manual Cron Setup
=================

To schedule a daily backup at 03:00, add this line to your crontab:

    0 3 * * * claw-backup --backup --silent >> ~/claw-backup.log 2>&1

To view current crontab:
    crontab -l

To edit crontab manually:
    crontab -e

On Termux, install and start the cron daemon first:
    pkg install cronie termux-services
    sv-enable crond
"""
