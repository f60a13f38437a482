"""
Core data model: worktrees, agent sessions and shell sessions.

Instances are owned by the controller's event loop and mutated only there.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from .output_buffer import OutputBuffer, DEFAULT_CAPACITY


class AgentType(str, Enum):
    """Coding-agent tools that can run inside a session."""
    NONE = "none"
    CLAUDE = "claude"
    CODEX = "codex"
    GEMINI = "gemini"
    CURSOR = "cursor"
    OPENCODE = "opencode"
    AIDER = "aider"

    @classmethod
    def parse(cls, value: Optional[str]) -> "AgentType":
        """Parse a stored agent tag, treating unknown values as NONE."""
        if not value:
            return cls.NONE
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.NONE


class AgentStatus(str, Enum):
    """Observed state of a worktree's agent."""
    PAUSED = "paused"
    ACTIVE = "active"
    THINKING = "thinking"
    WAITING = "waiting"
    DONE = "done"
    ERROR = "error"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Agent:
    """A live tmux session hosting an agent (or a plain shell)."""
    agent_type: AgentType
    session_name: str
    worktree_name: str = ""
    output_buffer: OutputBuffer = field(default_factory=lambda: OutputBuffer(DEFAULT_CAPACITY))
    status: AgentStatus = AgentStatus.ACTIVE
    waiting_for: str = ""
    started_at: datetime = field(default_factory=_now)
    last_output_at: Optional[datetime] = None


@dataclass
class Worktree:
    """A git worktree tracked by the controller."""
    name: str
    path: str
    branch: str = ""
    base_branch: str = ""
    task_id: str = ""
    chosen_agent: AgentType = AgentType.NONE
    pr_url: str = ""
    status: AgentStatus = AgentStatus.PAUSED
    agent: Optional[Agent] = None


DEFAULT_SHELL_NAME = "Shell {index}"


@dataclass
class ShellSession:
    """A free-standing shell session not bound to a worktree."""
    tmux_name: str
    display_name: str
    agent: Agent

    @property
    def output_buffer(self) -> OutputBuffer:
        return self.agent.output_buffer


@dataclass
class UncommittedChanges:
    """Counts from git status used to gate the merge workflow."""
    staged: int = 0
    modified: int = 0
    untracked: int = 0

    @property
    def has_changes(self) -> bool:
        return self.staged > 0 or self.modified > 0 or self.untracked > 0


@dataclass
class CommitStatus:
    """A commit on a worktree branch that is not on its base branch."""
    hash: str
    subject: str
    pushed: bool = False
    merged: bool = False
