"""
Wrappers for the external command-line tools claw-backup drives.
"""

from claw_backup.external.pm2 import Pm2Client, ProcessInfo, ProcessManagerError
from claw_backup.external.process import (
    CommandResult,
    StreamingCommand,
    run_attached,
    run_command,
)
from claw_backup.external.rclone import RcloneClient, RemoteEntry

__all__ = [
    "CommandResult",
    "Pm2Client",
    "ProcessInfo",
    "ProcessManagerError",
    "RcloneClient",
    "RemoteEntry",
    "StreamingCommand",
    "run_attached",
    "run_command",
]
