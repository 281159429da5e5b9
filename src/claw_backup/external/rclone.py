"""
Typed wrapper around the rclone remote-storage tool.

Each method builds an argument list and returns a CommandResult (or a
parsed value derived from one). Callers decide how a failure maps onto
their own error type.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from claw_backup.external.process import (
    CommandResult,
    StreamingCommand,
    run_attached,
    run_command,
)

logger = logging.getLogger(__name__)

# Bounded retry/timeout policy for uploads so a stalled target cannot hang a run
COPY_POLICY_ARGS = [
    "--transfers", "4",
    "--timeout", "30s",
    "--contimeout", "30s",
    "--retries", "3",
    "--low-level-retries", "10",
]


@dataclass
class RemoteEntry:
    """One line of a remote file listing."""

    name: str
    modified: str = ""


def remote_spec(remote: str, path: str = "") -> str:
    """Build the ``remote:path`` address rclone expects."""
    return f"{remote}:{path}"


def is_progress_line(line: str) -> bool:
    """Whether an output line from ``--progress`` describes transfer progress."""
    return "Transferred:" in line or "%" in line


class RcloneClient:
    """Invokes the rclone executable."""

    def __init__(self, executable: str = "rclone") -> None:
        self.executable = executable

    def _run(self, *args: str, input_text: str | None = None) -> CommandResult:
        return run_command([self.executable, *args], input_text=input_text)

    def list_remotes(self) -> list[str]:
        """Configured remote names, without the trailing colon."""
        result = self._run("listremotes")
        if not result.ok:
            logger.debug("rclone listremotes failed: %s", result.diagnostic)
            return []
        return [
            line.strip().rstrip(":")
            for line in result.stdout.splitlines()
            if line.strip()
        ]

    def list_files(self, remote: str, path: str) -> tuple[CommandResult, list[RemoteEntry]]:
        """
        List files (not directories) at a remote location.

        Returns:
            The raw result and the parsed entries in rclone's own order.
        """
        result = self._run(
            "lsf", remote_spec(remote, path),
            "--files-only", "--format", "pt", "--separator", ";",
        )
        entries: list[RemoteEntry] = []
        if result.ok:
            for line in result.stdout.splitlines():
                if not line.strip():
                    continue
                name, _, modified = line.partition(";")
                entries.append(RemoteEntry(name=name, modified=modified))
        return result, entries

    def list_dirs(self, remote: str, path: str) -> list[str]:
        result = self._run("lsf", remote_spec(remote, path), "--dirs-only")
        if not result.ok:
            return []
        return [line.rstrip("/") for line in result.stdout.splitlines() if line.strip()]

    def copy_with_progress(self, source: str, remote: str, dest_path: str) -> StreamingCommand:
        """
        Start an upload of ``source`` into ``remote:dest_path``.

        The returned command yields progress output lines lazily.
        """
        return StreamingCommand([
            self.executable, "copy", source, remote_spec(remote, dest_path),
            "--progress", *COPY_POLICY_ARGS,
        ])

    def copy(self, source: str, remote: str, dest_path: str) -> CommandResult:
        return self._run("copy", source, remote_spec(remote, dest_path), *COPY_POLICY_ARGS)

    def copyto(self, source: str, dest: str) -> CommandResult:
        """Copy a single file to an exact destination (either side may be remote)."""
        return self._run("copyto", source, dest)

    def delete(self, remote: str, path: str) -> CommandResult:
        return self._run("delete", remote_spec(remote, path))

    def about(self, remote: str) -> CommandResult:
        """Probe a remote for reachability."""
        return self._run("about", remote_spec(remote))

    def mkdir(self, remote: str, path: str) -> CommandResult:
        return self._run("mkdir", remote_spec(remote, path))

    def obscure(self, secret: str) -> CommandResult:
        """
        Obscure a password for rclone's config; the secret is sent on stdin.

        On success the obscured value is the stripped ``stdout``.
        """
        return self._run("obscure", "-", input_text=secret)

    def config_create(
        self,
        name: str,
        backend: str,
        options: dict[str, str],
        interactive: bool = False,
    ) -> CommandResult:
        args = ["config", "create", name, backend]
        args.extend(f"{key}={value}" for key, value in options.items())
        if interactive:
            return run_attached([self.executable, *args])
        args.append("--non-interactive")
        return self._run(*args)

    def config_delete(self, name: str) -> CommandResult:
        return self._run("config", "delete", name)
