"""
Typed wrapper around the pm2 process supervisor.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from claw_backup.external.process import run_command

logger = logging.getLogger(__name__)


class ProcessManagerError(Exception):
    """Raised when the process supervisor cannot be queried."""

    pass


@dataclass
class ProcessInfo:
    """A process known to the supervisor."""

    name: str
    cwd: str | None = None


class Pm2Client:
    """Invokes the pm2 executable."""

    def __init__(self, home: Path, executable: str = "pm2") -> None:
        self.home = Path(home)
        self.executable = executable

    @property
    def dump_file(self) -> Path:
        """Location pm2 writes its saved process list to."""
        return self.home / ".pm2" / "dump.pm2"

    def list_processes(self) -> list[ProcessInfo]:
        """
        Query the supervisor for its processes.

        Raises:
            ProcessManagerError: If pm2 fails or returns unparseable output.
        """
        result = run_command([self.executable, "jlist"], timeout=30)
        if not result.ok:
            raise ProcessManagerError(f"pm2 jlist failed: {result.diagnostic}")

        try:
            data = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise ProcessManagerError(f"Invalid pm2 jlist output: {e}") from e

        if not isinstance(data, list):
            raise ProcessManagerError("pm2 jlist did not return a list")

        processes = []
        for entry in data:
            if not isinstance(entry, dict):
                continue
            env = entry.get("pm2_env") or {}
            processes.append(
                ProcessInfo(
                    name=str(entry.get("name", "")),
                    cwd=env.get("pm_cwd") if isinstance(env, dict) else None,
                )
            )
        return processes

    def dump(self) -> bool:
        """Ask pm2 to save its process list. Returns True on success."""
        result = run_command([self.executable, "dump"], timeout=60)
        if not result.ok:
            logger.warning("pm2 dump failed: %s", result.diagnostic)
        return result.ok
