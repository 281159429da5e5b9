"""
Structured invocation of external command-line tools.

Every external primitive (remote storage tool, process supervisor,
crontab) is called with an argument list, never a shell string, and
reports back a CommandResult carrying exit status and captured output.
"""

from __future__ import annotations

import logging
import subprocess
import tempfile
from collections.abc import Iterator, Mapping
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# Exit status reported when the executable itself cannot be started
COMMAND_NOT_FOUND = 127


@dataclass
class CommandResult:
    """Outcome of one external command."""

    args: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def diagnostic(self) -> str:
        """Best available diagnostic text (stderr, else stdout)."""
        return (self.stderr or self.stdout).strip()


def run_command(
    args: list[str],
    input_text: str | None = None,
    timeout: float | None = None,
    env: Mapping[str, str] | None = None,
) -> CommandResult:
    """
    Run a command to completion and capture its output.

    A missing executable or a timeout is reported as a failed result
    rather than raised.

    Args:
        args: Program and arguments.
        input_text: Text fed to the command's standard input.
        timeout: Seconds before the command is killed.
        env: Full environment for the child process (default: inherited).

    Returns:
        CommandResult with exit status and captured output.
    """
    logger.debug("Running: %s", args[0] if args else "")
    try:
        completed = subprocess.run(
            args,
            input=input_text,
            capture_output=True,
            text=True,
            timeout=timeout,
            env=dict(env) if env is not None else None,
        )
    except FileNotFoundError:
        return CommandResult(args, COMMAND_NOT_FOUND, stderr=f"{args[0]}: command not found")
    except subprocess.TimeoutExpired:
        return CommandResult(args, 1, stderr=f"{args[0]}: timed out after {timeout}s")
    except OSError as e:
        return CommandResult(args, 1, stderr=f"{args[0]}: {e}")

    return CommandResult(args, completed.returncode, completed.stdout, completed.stderr)


def run_attached(args: list[str]) -> CommandResult:
    """
    Run a command attached to the terminal so the user can interact with it.

    Output is not captured; only the exit status is reported.
    """
    logger.debug("Running attached: %s", args[0] if args else "")
    try:
        completed = subprocess.run(args)
    except FileNotFoundError:
        return CommandResult(args, COMMAND_NOT_FOUND, stderr=f"{args[0]}: command not found")
    except OSError as e:
        return CommandResult(args, 1, stderr=f"{args[0]}: {e}")
    return CommandResult(args, completed.returncode)


class StreamingCommand:
    """
    A command whose standard output is consumed line by line.

    Iterating yields each output line as it arrives. Once iteration is
    exhausted, ``result`` holds the exit status and the collected
    standard error.

    Usage:
        command = StreamingCommand(["rclone", "copy", src, dest, "--progress"])
        for line in command:
            show(line)
        if not command.result.ok:
            ...
    """

    def __init__(self, args: list[str]) -> None:
        self.args = list(args)
        self.result: CommandResult | None = None

    def __iter__(self) -> Iterator[str]:
        # stderr goes to a temporary file so a chatty tool cannot block on a full pipe
        with tempfile.TemporaryFile(mode="w+") as err_file:
            try:
                process = subprocess.Popen(
                    self.args,
                    stdout=subprocess.PIPE,
                    stderr=err_file,
                    text=True,
                    bufsize=1,
                )
            except FileNotFoundError:
                self.result = CommandResult(
                    self.args, COMMAND_NOT_FOUND, stderr=f"{self.args[0]}: command not found"
                )
                return
            except OSError as e:
                self.result = CommandResult(self.args, 1, stderr=f"{self.args[0]}: {e}")
                return

            stdout_lines: list[str] = []
            try:
                assert process.stdout is not None
                for raw in process.stdout:
                    line = raw.rstrip("\r\n")
                    stdout_lines.append(line)
                    yield line
            finally:
                if process.poll() is None and process.stdout is not None:
                    # Consumer stopped early; let the command finish
                    for raw in process.stdout:
                        stdout_lines.append(raw.rstrip("\r\n"))
                returncode = process.wait()
                err_file.seek(0)
                self.result = CommandResult(
                    self.args, returncode, "\n".join(stdout_lines), err_file.read()
                )
