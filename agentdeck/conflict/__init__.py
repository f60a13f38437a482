"""
Conflict Detection Module

Detects files modified concurrently in more than one worktree.
"""

from .detector import (
    Conflict,
    ConflictDetector,
    conflicting_files,
    conflicting_worktrees,
    detect_conflicts,
    find_conflicts,
    has_conflict,
)

__all__ = [
    "Conflict",
    "ConflictDetector",
    "conflicting_files",
    "conflicting_worktrees",
    "detect_conflicts",
    "find_conflicts",
    "has_conflict",
]
