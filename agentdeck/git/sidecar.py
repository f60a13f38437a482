"""
Per-worktree metadata files.

Each file lives at the worktree root and holds a single value plus a
trailing newline. Saving an empty value removes the file.
"""

import logging
import os
from typing import Optional

from ..models import AgentType, Worktree

logger = logging.getLogger(__name__)

TASK_FILE = ".sidecar-task"
AGENT_FILE = ".sidecar-agent"
PR_FILE = ".sidecar-pr"
BASE_FILE = ".sidecar-base"
LAUNCHER_FILE = ".sidecar-start.sh"

SIDECAR_FILES = (TASK_FILE, AGENT_FILE, PR_FILE, BASE_FILE, LAUNCHER_FILE)


def _save(worktree_path: str, filename: str, value: Optional[str]) -> None:
    path = os.path.join(worktree_path, filename)
    if not value:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        return
    with open(path, "w") as f:
        f.write(value + "\n")


def _load(worktree_path: str, filename: str) -> str:
    try:
        with open(os.path.join(worktree_path, filename)) as f:
            return f.read().strip()
    except FileNotFoundError:
        return ""
    except OSError as e:
        logger.debug(f"Could not read {filename} in {worktree_path}: {e}")
        return ""


def save_task_link(worktree_path: str, task_id: str) -> None:
    _save(worktree_path, TASK_FILE, task_id)


def load_task_link(worktree_path: str) -> str:
    return _load(worktree_path, TASK_FILE)


def save_agent_type(worktree_path: str, agent_type: AgentType) -> None:
    value = agent_type.value if agent_type != AgentType.NONE else ""
    _save(worktree_path, AGENT_FILE, value)


def load_agent_type(worktree_path: str) -> AgentType:
    return AgentType.parse(_load(worktree_path, AGENT_FILE))


def save_pr_url(worktree_path: str, url: str) -> None:
    _save(worktree_path, PR_FILE, url)


def load_pr_url(worktree_path: str) -> str:
    return _load(worktree_path, PR_FILE)


def save_base_branch(worktree_path: str, branch: str) -> None:
    _save(worktree_path, BASE_FILE, branch)


def load_base_branch(worktree_path: str) -> str:
    return _load(worktree_path, BASE_FILE)


def load_sidecars(wt: Worktree) -> Worktree:
    """Fill task, agent, PR and base branch fields from the worktree's files."""
    wt.task_id = load_task_link(wt.path)
    wt.chosen_agent = load_agent_type(wt.path)
    wt.pr_url = load_pr_url(wt.path)
    wt.base_branch = load_base_branch(wt.path)
    return wt
