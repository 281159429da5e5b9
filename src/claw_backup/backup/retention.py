"""
Retention of local bundles.

After every successful backup only the newest bundles in the
backup-storage directory are kept; older ones are deleted without asking.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from claw_backup.backup.bundle import is_bundle_name
from claw_backup.config.settings import DEFAULT_RETENTION_COUNT

logger = logging.getLogger(__name__)


def list_bundles_by_age(backup_dir: Path) -> list[Path]:
    """Bundles in ``backup_dir``, most recently modified first."""
    if not backup_dir.is_dir():
        return []

    bundles = []
    for entry in backup_dir.iterdir():
        if entry.is_file() and is_bundle_name(entry.name):
            bundles.append((entry.stat().st_mtime, entry.name, entry))

    bundles.sort(key=lambda item: (item[0], item[1]), reverse=True)
    return [entry for _, _, entry in bundles]


def enforce_retention(backup_dir: Path, keep: int = DEFAULT_RETENTION_COUNT) -> list[Path]:
    """
    Delete all but the ``keep`` most recently modified bundles.

    A missing directory is not an error.

    Returns:
        Paths of the deleted bundles.
    """
    bundles = list_bundles_by_age(backup_dir)
    if len(bundles) <= keep:
        return []

    logger.info("Retention policy: keeping latest %d backups", keep)
    deleted = []
    for old in bundles[keep:]:
        try:
            old.unlink()
        except FileNotFoundError:
            continue
        except OSError as e:
            logger.warning("Could not delete old backup %s: %s", old.name, e)
            continue
        logger.info("Deleted old backup: %s", old.name)
        deleted.append(old)
    return deleted


def clean_local_backups(backup_dir: Path) -> int:
    """
    Remove everything in the backup-storage directory.

    Returns:
        Number of entries removed.
    """
    if not backup_dir.is_dir():
        return 0

    removed = 0
    for entry in backup_dir.iterdir():
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        else:
            entry.unlink()
        removed += 1
    logger.info("Removed %d entries from %s", removed, backup_dir)
    return removed
