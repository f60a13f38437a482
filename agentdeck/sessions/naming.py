"""Deterministic tmux session names for agent and shell slots."""

import os
import re
from typing import Iterable, Optional

from ..models import DEFAULT_SHELL_NAME

AGENT_PREFIX = "sidecar-wt-"
SHELL_PREFIX = "sidecar-sh-"

_SUFFIX_PATTERN = re.compile(r"-(\d+)$")
_DEFAULT_DISPLAY_PATTERN = re.compile(r"^Shell \d+$")


def sanitize_name(name: str) -> str:
    """Replace characters tmux treats specially in targets."""
    return name.replace(".", "-").replace(":", "-").replace("/", "-")


def agent_session_name(worktree_name: str, prefix: str = AGENT_PREFIX) -> str:
    return prefix + sanitize_name(worktree_name)


def shell_base_name(project_dir: str, prefix: str = SHELL_PREFIX) -> str:
    project = os.path.basename(os.path.normpath(project_dir))
    return prefix + sanitize_name(project)


def shell_index(base: str, session_name: str) -> Optional[int]:
    """
    Index of a shell session name, or None if it is not one of ours.

    The legacy suffix-less base name counts as index 1.
    """
    match = re.match(r"^" + re.escape(base) + r"(?:-(\d+))?$", session_name)
    if match is None:
        return None
    return int(match.group(1)) if match.group(1) else 1


def next_shell_name(base: str, existing: Iterable[str]) -> str:
    """Allocate base-(max index + 1) so killed indices are never reused."""
    max_index = 0
    for name in existing:
        index = shell_index(base, name)
        if index is not None and index > max_index:
            max_index = index
    return f"{base}-{max_index + 1}"


def default_display_name(base: str, session_name: str) -> str:
    index = shell_index(base, session_name)
    if index is None:
        match = _SUFFIX_PATTERN.search(session_name)
        index = int(match.group(1)) if match else 1
    return DEFAULT_SHELL_NAME.format(index=index)


def is_default_display_name(name: str) -> bool:
    """True for auto-generated names like "Shell 3"."""
    return bool(_DEFAULT_DISPLAY_PATTERN.match(name))
