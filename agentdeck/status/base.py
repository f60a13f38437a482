"""Base class and file helpers for transcript-based status adapters."""

import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, List, Optional

from pydantic import ValidationError

from ..error_handling import NotDeterminedError
from ..models import AgentStatus, AgentType

logger = logging.getLogger(__name__)

TAIL_BYTES = 2 * 1024 * 1024


def role_status(role: Optional[str], assistant: str = "assistant", user: str = "user") -> Optional[AgentStatus]:
    """Map a transcript role to a status; unrecognised roles give None."""
    if role == assistant:
        return AgentStatus.WAITING
    if role == user:
        return AgentStatus.ACTIVE
    return None


def path_matches(candidate: str, worktree_path: str) -> bool:
    """True if candidate is worktree_path or a directory below it."""
    if not candidate:
        return False
    candidate = os.path.normpath(candidate)
    worktree_path = os.path.normpath(worktree_path)
    return candidate == worktree_path or candidate.startswith(worktree_path + os.sep)


def newest_file(
    directory: Path,
    suffix: str,
    prefix: str = "",
    exclude_prefix: str = "",
) -> Optional[Path]:
    """
    Find the most recently modified regular file in a directory.

    Args:
        directory: Directory to list (not recursive)
        suffix: Required file suffix, e.g. ".jsonl"
        prefix: Required filename prefix, if any
        exclude_prefix: Filenames starting with this are skipped

    Returns:
        Path of the newest match, or None if nothing matches

    Raises:
        OSError: If the directory cannot be listed
    """
    newest: Optional[Path] = None
    newest_mtime = -1

    with os.scandir(directory) as entries:
        for entry in entries:
            name = entry.name
            if not name.endswith(suffix) or not entry.is_file():
                continue
            if prefix and not name.startswith(prefix):
                continue
            if exclude_prefix and name.startswith(exclude_prefix):
                continue
            try:
                mtime = entry.stat().st_mtime_ns
            except OSError:
                continue
            if mtime > newest_mtime:
                newest_mtime = mtime
                newest = Path(entry.path)

    return newest


def read_tail_lines(path: Path, max_bytes: int = TAIL_BYTES) -> List[str]:
    """
    Read up to max_bytes from the end of a file and split it into lines.

    If the read starts mid-file, the first (possibly partial) line is dropped.
    """
    with open(path, "rb") as f:
        f.seek(0, os.SEEK_END)
        size = f.tell()
        if size == 0:
            return []
        start = max(0, size - max_bytes)
        f.seek(start)
        data = f.read()

    lines = data.decode("utf-8", errors="replace").split("\n")
    if start > 0 and lines:
        lines = lines[1:]
    return lines


def iter_newest_first(lines: List[str]) -> Iterable[str]:
    for line in reversed(lines):
        line = line.strip()
        if line:
            yield line


class StatusAdapter(ABC):
    """
    Reads one agent tool's on-disk transcript to classify waiting vs active.

    Subclasses implement ``_detect`` and may raise NotDeterminedError, OSError
    or ValueError freely; ``detect`` turns all of those into None.
    """

    agent_type: AgentType = AgentType.NONE

    def __init__(
        self,
        home: Optional[Path] = None,
        tail_bytes: int = TAIL_BYTES,
        root: Optional[Path] = None,
    ):
        """
        Args:
            home: Home directory the default transcript location hangs off
            tail_bytes: Read window for line-oriented transcripts
            root: Explicit transcript root, replaces the default location
        """
        self.home = Path(home) if home else Path.home()
        self.tail_bytes = tail_bytes
        self.root = Path(root).expanduser() if root else self.default_root()

    def default_root(self) -> Path:
        return self.home

    def detect(self, worktree_path: str) -> Optional[AgentStatus]:
        """Return WAITING, ACTIVE, or None when the transcript is inconclusive."""
        try:
            abs_path = os.path.abspath(worktree_path)
            return self._detect(abs_path)
        except NotDeterminedError as e:
            logger.debug(f"{self.agent_type.value}: status undetermined for {worktree_path}: {e}")
        except (OSError, ValueError, ValidationError) as e:
            logger.debug(f"{self.agent_type.value}: transcript read failed for {worktree_path}: {e}")
        return None

    @abstractmethod
    def _detect(self, abs_path: str) -> Optional[AgentStatus]:
        pass
