"""
Scheduled backups for claw-backup.

Installs a system crontab entry that runs ``claw-backup --backup --silent``
daily at 03:00 and appends its output to ``~/claw-backup.log``.

Usage:
    from claw_backup.scheduler import CronScheduler

    scheduler = CronScheduler(paths)
    scheduler.install()
    print(scheduler.status().entry)
    scheduler.uninstall()
"""

from claw_backup.scheduler.cron import (
    CronNotAvailableError,
    CronScheduler,
    SchedulerError,
    ScheduleStatus,
    get_backup_command,
    get_cron_help,
)

__all__ = [
    # Main class
    "CronScheduler",
    # Types
    "ScheduleStatus",
    # Errors
    "SchedulerError",
    "CronNotAvailableError",
    # Utilities
    "get_backup_command",
    "get_cron_help",
]
