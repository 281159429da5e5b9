"""
Discovery of backup-eligible artifacts on the local machine.

Discovery only inspects the filesystem and the process supervisor; it
never modifies anything. Probes run in a fixed order and a later probe
never registers a path an earlier probe already registered.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from claw_backup.config.settings import BackupPaths
from claw_backup.external.pm2 import Pm2Client, ProcessManagerError

logger = logging.getLogger(__name__)

# Process names that identify an assistant service under pm2
SERVICE_NAME_MARKERS = ("moltbot", "openclaw", "clawdbot", "vertex-proxy")
# Working-directory keyword that also identifies one
WORKDIR_KEYWORD = "claw"

SKILLS_DIRS = (
    Path("claw") / "skills",
    Path("clawdbot") / "skills",
    Path("openclaw") / "skills",
)

KEY_DOCUMENTS = (
    "MEMORY.md",
    "USER.md",
    "TOOLS.md",
    "IDENTITY.md",
    "SOUL.md",
    "AGENTS.md",
    "HEARTBEAT.md",
    "BOOTSTRAP.md",
)
KEY_DOCUMENT_ROOTS = (Path("."), Path("clawdbot"), Path("openclaw"))

USER_CONFIG_DIR = "claw"
SECRET_DIRS = (".openclaw", ".moltbot", ".clawdbot")

# Stable ids of the non-directory candidates
PM2_ID = "pm2"
ENV_ID = "env"
KEY_DOCUMENTS_ID = "key_markdowns"
SKILLS_ID = "custom_skills"
USER_CONFIG_ID = "user_config"


class CandidateKind(Enum):
    """What a candidate represents."""

    DIRECTORY = "dir"
    FILE_GROUP = "md_group"
    PROCESS_SNAPSHOT = "process"
    ENVIRONMENT_SNAPSHOT = "env"


@dataclass
class Candidate:
    """
    A discovered backup unit.

    Attributes:
        id: Stable key, unique within one discovery run.
        name: Human-readable label.
        kind: What the candidate represents.
        path: Filesystem location (directories only).
        exists: Whether the artifact is currently on disk.
        default_selected: Whether unattended runs include it.
        root: Base directory of a file group.
        members: Relative filenames of a file group, in order.
    """

    id: str
    name: str
    kind: CandidateKind
    path: Path | None = None
    exists: bool = True
    default_selected: bool = True
    root: Path | None = None
    members: list[str] = field(default_factory=list)


class _Registry:
    """Ordered candidate list that refuses duplicate paths."""

    def __init__(self) -> None:
        self.candidates: list[Candidate] = []
        self._paths: set[str] = set()

    def add(self, candidate: Candidate) -> bool:
        if candidate.path is not None:
            key = _resolved(candidate.path)
            if key in self._paths:
                return False
            self._paths.add(key)
        self.candidates.append(candidate)
        return True


def _resolved(path: Path) -> str:
    return os.path.realpath(os.path.abspath(path))


def _is_dir(path: Path) -> bool:
    """``Path.is_dir`` that treats an unreadable path as absent."""
    try:
        return path.is_dir()
    except OSError as e:
        logger.debug("Cannot inspect %s: %s", path, e)
        return False


def _is_file(path: Path) -> bool:
    try:
        return path.is_file()
    except OSError as e:
        logger.debug("Cannot inspect %s: %s", path, e)
        return False


def _exists(path: Path) -> bool:
    try:
        return path.exists()
    except OSError as e:
        logger.debug("Cannot inspect %s: %s", path, e)
        return False


def discover(paths: BackupPaths, pm2: Pm2Client | None = None) -> list[Candidate]:
    """
    Inspect the machine for backup-eligible artifacts.

    Never raises: a probe that fails contributes no candidates.

    Args:
        paths: Home-relative locations.
        pm2: Process supervisor client (default: one rooted at ``paths.home``).

    Returns:
        Candidates in probe order.
    """
    if pm2 is None:
        pm2 = Pm2Client(paths.home)

    registry = _Registry()
    home = paths.home

    _probe_running_processes(registry, pm2)
    _probe_skills(registry, home)
    _probe_key_documents(registry, home)
    _probe_user_config(registry, home)
    _probe_secrets(registry, home)

    registry.add(Candidate(id=PM2_ID, name="PM2 Process List", kind=CandidateKind.PROCESS_SNAPSHOT))
    registry.add(Candidate(id=ENV_ID, name="Environment Variables", kind=CandidateKind.ENVIRONMENT_SNAPSHOT))

    logger.debug("Discovered %d candidates", len(registry.candidates))
    return registry.candidates


def _probe_running_processes(registry: _Registry, pm2: Pm2Client) -> None:
    try:
        processes = pm2.list_processes()
    except ProcessManagerError as e:
        logger.debug("Process probe skipped: %s", e)
        return
    except Exception as e:
        logger.debug("Process probe failed: %s", e)
        return

    for proc in processes:
        matches_name = any(marker in proc.name for marker in SERVICE_NAME_MARKERS)
        matches_cwd = bool(proc.cwd) and WORKDIR_KEYWORD in proc.cwd
        if not (matches_name or matches_cwd) or not proc.cwd:
            continue
        cwd = Path(proc.cwd)
        if not _is_dir(cwd):
            continue
        registry.add(
            Candidate(
                id=f"running_{proc.name}",
                name=f"Running Instance ({proc.name})",
                kind=CandidateKind.DIRECTORY,
                path=cwd,
            )
        )


def _probe_skills(registry: _Registry, home: Path) -> None:
    for rel in SKILLS_DIRS:
        skills = home / rel
        if _is_dir(skills):
            registry.add(
                Candidate(
                    id=SKILLS_ID,
                    name="Custom Skills",
                    kind=CandidateKind.DIRECTORY,
                    path=skills,
                )
            )
            return


def _probe_key_documents(registry: _Registry, home: Path) -> None:
    for rel in KEY_DOCUMENT_ROOTS:
        root = home / rel
        if not _is_dir(root):
            continue
        if not any(_is_file(root / doc) for doc in KEY_DOCUMENTS):
            continue
        registry.add(
            Candidate(
                id=KEY_DOCUMENTS_ID,
                name="Key Soul Files (MEMORY.md, USER.md...)",
                kind=CandidateKind.FILE_GROUP,
                root=root,
                members=list(KEY_DOCUMENTS),
            )
        )
        return


def _probe_user_config(registry: _Registry, home: Path) -> None:
    user_path = home / USER_CONFIG_DIR
    registry.add(
        Candidate(
            id=USER_CONFIG_ID,
            name=f"User Config (~/{USER_CONFIG_DIR})",
            kind=CandidateKind.DIRECTORY,
            path=user_path,
            exists=_is_dir(user_path),
        )
    )


def _probe_secrets(registry: _Registry, home: Path) -> None:
    for name in SECRET_DIRS:
        secret = home / name
        if _exists(secret):
            registry.add(
                Candidate(
                    id=f"secret_{name}",
                    name=f"Secrets ({name})",
                    kind=CandidateKind.DIRECTORY,
                    path=secret,
                )
            )


def default_selection(candidates: list[Candidate]) -> list[str]:
    """Ids an unattended run backs up: present and selected by default."""
    return [c.id for c in candidates if c.exists and c.default_selected]


def existing_selection(candidates: list[Candidate]) -> list[str]:
    """Ids of every candidate currently present."""
    return [c.id for c in candidates if c.exists]
