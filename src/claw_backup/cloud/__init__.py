"""
Upload target configuration for claw-backup.
"""

from claw_backup.cloud.targets import (
    ProbeResult,
    TargetConfigurator,
    probe_local_path,
    probe_remote,
)

__all__ = [
    "ProbeResult",
    "TargetConfigurator",
    "probe_local_path",
    "probe_remote",
]
