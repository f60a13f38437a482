"""
Conflict Detector

Finds files modified concurrently in more than one worktree.

The check is file-level only: two worktrees conflict when they both touch
the same path, regardless of whether git could merge the edits.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Set

from ..git.worktrees import modified_files
from ..models import Worktree

logger = logging.getLogger(__name__)


# ============================================================================
# Data Classes
# ============================================================================

@dataclass
class Conflict:
    """Two worktrees modifying the same files."""
    worktrees: List[str]
    files: List[str] = field(default_factory=list)

    @property
    def file_count(self) -> int:
        return len(self.files)

    def involves(self, name: str) -> bool:
        return name in self.worktrees


# ============================================================================
# Pairwise overlap
# ============================================================================

def find_conflicts(file_sets: Dict[str, Set[str]]) -> List[Conflict]:
    """
    Compare every unordered pair of worktrees.

    Args:
        file_sets: Worktree name -> modified paths. Empty sets are ignored.

    Returns:
        One Conflict per overlapping pair, files sorted
    """
    names = [name for name, files in file_sets.items() if files]
    conflicts = []

    for i, a in enumerate(names):
        for b in names[i + 1:]:
            overlap = file_sets[a] & file_sets[b]
            if overlap:
                conflicts.append(Conflict(worktrees=[a, b], files=sorted(overlap)))

    return conflicts


def has_conflict(name: str, conflicts: Iterable[Conflict]) -> bool:
    return any(c.involves(name) for c in conflicts)


def conflicting_files(name: str, conflicts: Iterable[Conflict]) -> List[str]:
    """All files of a worktree that overlap with any other worktree."""
    files: Set[str] = set()
    for c in conflicts:
        if c.involves(name):
            files.update(c.files)
    return sorted(files)


def conflicting_worktrees(name: str, conflicts: Iterable[Conflict]) -> List[str]:
    """Names of the other worktrees that overlap with name."""
    others: Set[str] = set()
    for c in conflicts:
        if c.involves(name):
            others.update(w for w in c.worktrees if w != name)
    return sorted(others)


# ============================================================================
# Conflict Detector
# ============================================================================

class ConflictDetector:
    """
    Collects modified files for each worktree and reports overlaps.

    Collection runs concurrently; a worktree whose git calls fail is treated
    as having no modifications.
    """

    async def collect(self, worktrees: List[Worktree]) -> Dict[str, Set[str]]:
        results = await asyncio.gather(
            *(modified_files(wt.path) for wt in worktrees),
            return_exceptions=True,
        )

        file_sets: Dict[str, Set[str]] = {}
        for wt, result in zip(worktrees, results):
            if isinstance(result, Exception):
                logger.warning(f"Could not list modified files in {wt.name}: {result}")
                continue
            file_sets[wt.name] = result
        return file_sets

    async def detect(self, worktrees: List[Worktree]) -> List[Conflict]:
        """
        Detect file overlaps between worktrees.

        Args:
            worktrees: Worktrees to compare

        Returns:
            List of conflicts (empty when fewer than two worktrees changed)
        """
        if len(worktrees) < 2:
            return []

        conflicts = find_conflicts(await self.collect(worktrees))
        if conflicts:
            logger.info(f"Detected {len(conflicts)} conflicting worktree pair(s)")
        return conflicts


async def detect_conflicts(worktrees: List[Worktree]) -> List[Conflict]:
    """
    Convenience function to detect conflicts.

    Args:
        worktrees: Worktrees to compare

    Returns:
        List of Conflict
    """
    return await ConflictDetector().detect(worktrees)
