"""
Events delivered to the controller loop.

Every asynchronous operation resolves to exactly one of these. An Effect is
a zero-argument coroutine factory the controller runs as a task.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from .models import AgentStatus, AgentType, CommitStatus, UncommittedChanges, Worktree


@dataclass(frozen=True)
class Event:
    """Base class for all controller events."""
    pass


Effect = Callable[[], Awaitable[Event]]


async def after(delay: float, event: Event) -> Event:
    """Resolve to event once delay seconds have passed."""
    if delay > 0:
        await asyncio.sleep(delay)
    return event


# ============================================================================
# Polling
# ============================================================================

@dataclass(frozen=True)
class PollDue(Event):
    """A poll timer fired; stale when generation no longer matches."""
    session: str
    generation: int
    shell: bool = False


@dataclass(frozen=True)
class AgentOutput(Event):
    worktree_name: str
    session: str
    status: AgentStatus
    waiting_for: str = ""


@dataclass(frozen=True)
class PollUnchanged(Event):
    worktree_name: str
    session: str


@dataclass(frozen=True)
class PollFailed(Event):
    """A capture failed for a reason other than the session being gone."""
    session: str
    error: str
    worktree_name: str = ""
    shell: bool = False


# ============================================================================
# Agent sessions
# ============================================================================

@dataclass(frozen=True)
class AgentStarted(Event):
    worktree_name: str
    session_name: str
    agent_type: AgentType
    reconnected: bool = False
    error: str = ""


@dataclass(frozen=True)
class AgentStopped(Event):
    worktree_name: str
    session: str = ""


@dataclass(frozen=True)
class AgentsReconnected(Event):
    """Worktree name -> session name of agents found running."""
    sessions: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class AttachFinished(Event):
    session: str
    worktree_name: str = ""
    shell: bool = False
    error: str = ""


@dataclass(frozen=True)
class KeysSent(Event):
    """Approve/reject/text delivery result."""
    session: str
    worktree_name: str = ""
    action: str = ""
    error: str = ""


# ============================================================================
# Shell sessions
# ============================================================================

@dataclass(frozen=True)
class ShellsDiscovered(Event):
    shells: tuple = ()


@dataclass(frozen=True)
class ShellCreated(Event):
    tmux_name: str
    display_name: str
    index: int = 0
    error: str = ""


@dataclass(frozen=True)
class ShellOutput(Event):
    tmux_name: str
    changed: bool


@dataclass(frozen=True)
class ShellSessionDead(Event):
    tmux_name: str


@dataclass(frozen=True)
class ShellKilled(Event):
    tmux_name: str


# ============================================================================
# Worktrees and conflicts
# ============================================================================

@dataclass(frozen=True)
class RefreshDone(Event):
    worktrees: List[Worktree] = field(default_factory=list)
    error: str = ""


@dataclass(frozen=True)
class ConflictsDetected(Event):
    conflicts: List = field(default_factory=list)


@dataclass(frozen=True)
class WorktreeCreated(Event):
    worktree: Optional[Worktree] = None
    error: str = ""


@dataclass(frozen=True)
class WorktreeDeleted(Event):
    name: str
    error: str = ""


# ============================================================================
# Merge workflow
# ============================================================================

@dataclass(frozen=True)
class CommitRequired(Event):
    """The worktree has uncommitted changes; the merge was not started."""
    worktree_name: str
    changes: UncommittedChanges


@dataclass(frozen=True)
class MergeReady(Event):
    """Preconditions passed; the workflow can be created."""
    worktree_name: str
    base_branch: str
    current_branch: str = ""
    error: str = ""


@dataclass(frozen=True)
class MergeCommitDone(Event):
    worktree_name: str
    commit: str = ""
    error: str = ""


@dataclass(frozen=True)
class MergeStepComplete(Event):
    worktree_name: str
    step: str
    diff_summary: str = ""
    commits: Tuple[CommitStatus, ...] = ()
    pr_url: str = ""
    existing_pr: bool = False
    error: str = ""


@dataclass(frozen=True)
class PRCheckDue(Event):
    worktree_name: str
    generation: int = 0


@dataclass(frozen=True)
class PRChecked(Event):
    worktree_name: str
    merged: bool = False
    generation: int = 0
    error: str = ""


@dataclass(frozen=True)
class DirectMergeDone(Event):
    worktree_name: str
    error: str = ""


@dataclass(frozen=True)
class LocalCleanupDone(Event):
    worktree_name: str
    worktree_deleted: bool = False
    branch_deleted: bool = False
    errors: tuple = ()


@dataclass(frozen=True)
class RemoteBranchDeleted(Event):
    worktree_name: str
    error: str = ""


@dataclass(frozen=True)
class PullAfterMergeDone(Event):
    worktree_name: str
    success: bool = False
    error: str = ""
    summary: str = ""
    category: str = ""

    @property
    def diverged(self) -> bool:
        return self.category == "divergence"


@dataclass(frozen=True)
class DivergenceResolved(Event):
    worktree_name: str
    action: str
    error: str = ""
    summary: str = ""
    category: str = ""


# ============================================================================
# Generic
# ============================================================================

@dataclass(frozen=True)
class CommandFailed(Event):
    """An effect raised instead of resolving to an event."""
    operation: str
    error: str
