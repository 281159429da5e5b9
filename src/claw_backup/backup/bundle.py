"""
Bundle files and their naming convention.

A bundle is named ``openclaw-backup-YYYYMMDD-HHMMSS.tar.gz`` and carries
an extra ``.enc`` suffix when encrypted. Bundles written by older releases
used the ``claw-backup-`` prefix; both are recognized.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

PRODUCT = "openclaw"
BUNDLE_PREFIX = f"{PRODUCT}-backup-"
LEGACY_BUNDLE_PREFIX = "claw-backup-"
BUNDLE_PREFIXES = (BUNDLE_PREFIX, LEGACY_BUNDLE_PREFIX)

ARCHIVE_SUFFIX = ".tar.gz"
ENCRYPTED_SUFFIX = ".enc"
BUNDLE_SUFFIXES = (ARCHIVE_SUFFIX, ARCHIVE_SUFFIX + ENCRYPTED_SUFFIX)

TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"

_TIMESTAMP_RE = re.compile(r"(\d{8}-\d{6})")


def bundle_filename(created_at: datetime) -> str:
    """Filename for a new plaintext bundle created at ``created_at``."""
    return f"{BUNDLE_PREFIX}{created_at.strftime(TIMESTAMP_FORMAT)}{ARCHIVE_SUFFIX}"


def has_bundle_extension(name: str) -> bool:
    """Whether a filename has a plain or encrypted bundle extension."""
    return name.endswith(ARCHIVE_SUFFIX) or name.endswith(ENCRYPTED_SUFFIX)


def is_bundle_name(name: str) -> bool:
    """Whether a filename follows the current or legacy bundle convention."""
    return name.startswith(BUNDLE_PREFIXES) and name.endswith(BUNDLE_SUFFIXES)


def is_encrypted_name(name: str) -> bool:
    return name.endswith(ENCRYPTED_SUFFIX)


def parse_timestamp(name: str) -> datetime | None:
    """Creation time encoded in a bundle filename, if any."""
    match = _TIMESTAMP_RE.search(name)
    if not match:
        return None
    try:
        return datetime.strptime(match.group(1), TIMESTAMP_FORMAT)
    except ValueError:
        return None


@dataclass(frozen=True)
class Bundle:
    """
    One backup archive on local storage.

    Attributes:
        path: Absolute location of the bundle file.
        created_at: Timestamp encoded in the filename.
        encrypted: Whether the file is password-encrypted.
    """

    path: Path
    created_at: datetime | None
    encrypted: bool = False

    @classmethod
    def from_path(cls, path: Path | str) -> Bundle:
        path = Path(path)
        return cls(
            path=path,
            created_at=parse_timestamp(path.name),
            encrypted=is_encrypted_name(path.name),
        )

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def size_bytes(self) -> int:
        try:
            return self.path.stat().st_size
        except OSError:
            return 0
