"""
Entry point for running claw-backup as a module.

Usage:
    python -m claw_backup [--backup [--silent]]

The scheduled crontab entry falls back to this form when the
claw-backup console script is not on PATH.
"""

from claw_backup.cli import main

if __name__ == "__main__":
    main()
