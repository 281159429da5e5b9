"""
Error types raised by the backup and restore pipelines.
"""


class ClawBackupError(Exception):
    """Base exception for backup and restore failures."""

    pass


class ArchiveError(ClawBackupError):
    """Raised when the archive cannot be created."""

    pass


class ListError(ClawBackupError):
    """Raised when a bundle's contents or a remote location cannot be listed."""

    pass


class ExtractError(ClawBackupError):
    """Raised when extraction from a bundle fails."""

    pass


class EncryptionError(ClawBackupError):
    """Raised when a bundle cannot be encrypted. The plaintext bundle is kept."""

    pass


class DecryptionError(ClawBackupError):
    """Raised when a bundle cannot be decrypted, usually a wrong password."""

    pass


class UploadError(ClawBackupError):
    """Raised when a bundle cannot be copied to its target. The local copy is kept."""

    pass


class DownloadError(ClawBackupError):
    """Raised when a bundle cannot be fetched from a remote."""

    pass


class RestoreError(ClawBackupError):
    """Raised when a restore cannot proceed."""

    pass
