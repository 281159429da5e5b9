"""
Bundle creation and the archive list/extract operations used by restore.

Members are stored under their absolute path with the leading separator
removed, the way GNU tar stores absolute arguments, so a bundle can be
extracted back into place from the filesystem root.
"""

from __future__ import annotations

import fnmatch
import logging
import os
import shutil
import tarfile
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime
from pathlib import Path

from claw_backup.backup.bundle import ENCRYPTED_SUFFIX, Bundle, bundle_filename
from claw_backup.backup.discovery import (
    ENV_ID,
    KEY_DOCUMENTS_ID,
    PM2_ID,
    Candidate,
    CandidateKind,
)
from claw_backup.backup.errors import ArchiveError, ExtractError, ListError
from claw_backup.config.settings import BACKUP_DIR_NAME, BackupPaths
from claw_backup.external.pm2 import Pm2Client

logger = logging.getLogger(__name__)

# Names never archived, matched against every path component below an input
EXCLUDE_PATTERNS = (
    "node_modules",
    ".git",
    ".cache",
    "tmp",
    "logs",
    "*.log",
    BACKUP_DIR_NAME,
)

PM2_DUMP_NAME = "pm2-dump.json"
ENV_SNAPSHOT_NAME = "env.backup"
KEY_DOCUMENTS_DIR = "soul_files"


def archive_name(path: Path | str) -> str:
    """Member name for a filesystem path: absolute, without the leading separator."""
    return os.path.abspath(path).lstrip("/")


def is_excluded(relative_name: str) -> bool:
    """Whether any component of a member path matches an exclusion rule."""
    for part in relative_name.split("/"):
        if not part:
            continue
        if any(fnmatch.fnmatch(part, pattern) for pattern in EXCLUDE_PATTERNS):
            return True
    return False


class ArchiveBuilder:
    """
    Stages selected candidates and writes one compressed bundle.

    Usage:
        builder = ArchiveBuilder(paths)
        bundle = builder.build(["user_config", "env"], candidates)
    """

    def __init__(
        self,
        paths: BackupPaths,
        pm2: Pm2Client | None = None,
        environ: Mapping[str, str] | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.paths = paths
        self.pm2 = pm2 or Pm2Client(paths.home)
        self.environ = environ
        self.clock = clock

    def build(self, selected_ids: Iterable[str], candidates: list[Candidate]) -> Bundle:
        """
        Create a bundle from the selected candidates.

        The staging directory is removed afterwards whether or not the
        archive was written.

        Args:
            selected_ids: Ids of the candidates to include.
            candidates: Full discovery result the ids refer to.

        Returns:
            The new plaintext bundle.

        Raises:
            ArchiveError: If there is nothing to archive or writing fails.
        """
        selected = set(selected_ids)
        staging = self.paths.staging_dir

        try:
            self._reset_staging(staging)
            inputs = self._stage_snapshots(selected, candidates, staging)
            inputs.extend(self._directory_inputs(selected, candidates, inputs))

            if not inputs:
                raise ArchiveError("Nothing to back up: no selected component is present")

            self.paths.backup_dir.mkdir(parents=True, exist_ok=True)
            created_at = self.clock()
            backup_path = self.paths.backup_dir / bundle_filename(created_at)
            # Names have one-second resolution; never replace an earlier bundle
            for existing in (backup_path, backup_path.with_name(backup_path.name + ENCRYPTED_SUFFIX)):
                if existing.exists():
                    raise ArchiveError(f"Backup {existing.name} already exists; try again in a moment")
            self._write_archive(backup_path, inputs)
        finally:
            shutil.rmtree(staging, ignore_errors=True)

        bundle = Bundle(path=backup_path, created_at=created_at.replace(microsecond=0))
        logger.info("Backup created: %s (%s bytes)", bundle.path, f"{bundle.size_bytes:,}")
        return bundle

    def _reset_staging(self, staging: Path) -> None:
        try:
            if staging.exists():
                shutil.rmtree(staging)
            staging.mkdir(parents=True)
        except OSError as e:
            raise ArchiveError(f"Cannot prepare staging directory {staging}: {e}") from e

    def _stage_snapshots(
        self,
        selected: set[str],
        candidates: list[Candidate],
        staging: Path,
    ) -> list[Path]:
        staged: list[Path] = []

        if PM2_ID in selected:
            self.pm2.dump()
            if self.pm2.dump_file.is_file():
                dest = staging / PM2_DUMP_NAME
                shutil.copy2(self.pm2.dump_file, dest)
                staged.append(dest)
            else:
                logger.info("No pm2 dump file at %s; skipping", self.pm2.dump_file)

        if ENV_ID in selected:
            dest = staging / ENV_SNAPSHOT_NAME
            environ = self.environ if self.environ is not None else os.environ
            with open(dest, "w") as f:
                for key, value in environ.items():
                    f.write(f"{key}={value}\n")
            os.chmod(dest, 0o600)
            staged.append(dest)

        group = next((c for c in candidates if c.id == KEY_DOCUMENTS_ID), None)
        if group is not None and group.root is not None and KEY_DOCUMENTS_ID in selected:
            dest_dir = staging / KEY_DOCUMENTS_DIR
            dest_dir.mkdir()
            for member in group.members:
                source = group.root / member
                if source.is_file():
                    shutil.copy2(source, dest_dir / member)
            staged.append(dest_dir)

        return staged

    def _directory_inputs(
        self,
        selected: set[str],
        candidates: list[Candidate],
        already: list[Path],
    ) -> list[Path]:
        seen = {os.path.abspath(p) for p in already}
        inputs: list[Path] = []
        for candidate in candidates:
            if candidate.kind != CandidateKind.DIRECTORY or candidate.id not in selected:
                continue
            if candidate.path is None:
                continue
            key = os.path.abspath(candidate.path)
            if key in seen:
                continue
            if not candidate.path.exists():
                logger.warning("Skipping %s: %s does not exist", candidate.id, candidate.path)
                continue
            seen.add(key)
            inputs.append(candidate.path)

        # A directory inside another selected directory is already covered
        keys = [os.path.abspath(p) for p in inputs]
        return [
            path
            for path, key in zip(inputs, keys)
            if not any(key.startswith(other + os.sep) for other in keys if other != key)
        ]

    def _write_archive(self, backup_path: Path, inputs: list[Path]) -> None:
        backup_arc = archive_name(self.paths.backup_dir)
        try:
            with tarfile.open(backup_path, "w:gz") as tar:
                for source in inputs:
                    root_arc = archive_name(source)
                    tar.add(
                        str(source),
                        arcname=root_arc,
                        filter=_exclusion_filter(root_arc, backup_arc),
                    )
        except (OSError, tarfile.TarError) as e:
            backup_path.unlink(missing_ok=True)
            raise ArchiveError(f"Archiving failed: {e}") from e


def _exclusion_filter(
    root_arc: str,
    backup_arc: str,
) -> Callable[[tarfile.TarInfo], tarfile.TarInfo | None]:
    """Build a tarfile filter applying the exclusion rules below ``root_arc``."""

    def _filter(tarinfo: tarfile.TarInfo) -> tarfile.TarInfo | None:
        name = tarinfo.name
        if name == backup_arc or name.startswith(backup_arc + "/"):
            return None
        relative = name[len(root_arc):] if name.startswith(root_arc) else name
        if is_excluded(relative):
            return None
        return tarinfo

    return _filter


def list_members(archive_path: Path) -> list[str]:
    """
    Member names of a bundle, in archive order.

    Raises:
        ListError: If the file is not a readable gzip tar archive.
    """
    try:
        with tarfile.open(archive_path, "r:gz") as tar:
            return tar.getnames()
    except (OSError, tarfile.TarError, EOFError) as e:
        raise ListError(f"Cannot read archive {Path(archive_path).name}: {e}") from e


def _under_any(name: str, prefixes: list[str]) -> bool:
    return any(name == p or name.startswith(p + "/") for p in prefixes)


def extract_members(
    archive_path: Path,
    prefixes: Iterable[str],
    root: Path = Path("/"),
) -> int:
    """
    Extract only the members at or below the given member-name prefixes.

    Existing files are overwritten.

    Args:
        archive_path: Plaintext bundle.
        prefixes: Member-name prefixes (no leading separator).
        root: Directory extraction is rooted at.

    Returns:
        Number of members extracted.

    Raises:
        ExtractError: If nothing matches or extraction fails.
    """
    wanted = [p.strip("/") for p in prefixes if p.strip("/")]
    try:
        with tarfile.open(archive_path, "r:gz") as tar:
            members = [m for m in tar.getmembers() if _under_any(m.name, wanted)]
            if not members:
                raise ExtractError(f"Not found in archive: {', '.join(wanted)}")
            tar.extractall(root, members=members, filter="tar")
    except ExtractError:
        raise
    except (OSError, tarfile.TarError, EOFError) as e:
        raise ExtractError(str(e)) from e
    return len(members)
