"""
PollScheduler - adaptive output polling for agent and shell sessions.

Each tracked session has one pending timer. A timer resolves to PollDue;
the controller then runs a capture which resolves to a result event and
reschedules. A per-session generation counter makes superseded timers
no-ops.
"""

import asyncio
import logging
from functools import partial
from typing import Dict, Optional

from .config import PollConfig
from .error_handling import TmuxError
from .events import (
    AgentOutput,
    AgentStopped,
    Effect,
    Event,
    PollDue,
    PollFailed,
    PollUnchanged,
    ShellOutput,
    ShellSessionDead,
    after,
)
from .models import Agent, AgentStatus, ShellSession, Worktree
from .sessions.registry import SessionRegistry
from .sessions.tmux import is_session_gone
from .status.detector import StatusDetector
from .status.patterns import detect_status, extract_prompt, tail_text

logger = logging.getLogger(__name__)

TRANSCRIPT_WAITING_PROMPT = "Waiting for input"


def stagger_offset(name: str, max_ms: int = 400) -> float:
    """Deterministic per-session delay in seconds, in [0, max_ms)."""
    if max_ms <= 0:
        return 0.0
    h = 0
    for byte in name.encode("utf-8"):
        h = (h * 31 + byte) & 0xFFFFFFFF
    return (h % max_ms) / 1000.0


class PollScheduler:
    """
    Schedules and performs pane captures.

    Args:
        registry: Session registry used for captures
        detector: Transcript status detector (None disables it)
        config: Poll intervals
    """

    def __init__(
        self,
        registry: SessionRegistry,
        detector: Optional[StatusDetector] = None,
        config: Optional[PollConfig] = None,
    ):
        self.registry = registry
        self.detector = detector
        self.config = config or PollConfig()
        self.generations: Dict[str, int] = {}

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def schedule(self, session: str, delay: float, shell: bool = False) -> Effect:
        """
        Replace the session's timer.

        Returns:
            Effect resolving to PollDue after delay plus the session's stagger
        """
        generation = self.generations.get(session, 0) + 1
        self.generations[session] = generation
        delay += stagger_offset(session, self.config.stagger_max_ms)
        return partial(after, delay, PollDue(session, generation, shell))

    def schedule_initial(self, session: str, shell: bool = False) -> Effect:
        return self.schedule(session, self.config.initial, shell)

    def is_current(self, event: PollDue) -> bool:
        return self.generations.get(event.session) == event.generation

    def forget(self, session: str) -> None:
        """Drop a session; any timer still pending for it becomes stale."""
        self.generations.pop(session, None)

    def next_interval(
        self,
        status: AgentStatus,
        changed: bool,
        visible: bool = True,
        focused: bool = True,
    ) -> float:
        """Pick the delay before the next capture."""
        cfg = self.config
        if changed and status in (AgentStatus.ACTIVE, AgentStatus.THINKING):
            interval = cfg.active
        elif status == AgentStatus.WAITING:
            interval = cfg.waiting
        elif status in (AgentStatus.DONE, AgentStatus.ERROR):
            interval = cfg.done
        else:
            interval = cfg.idle

        if not visible:
            floor = cfg.background if focused else cfg.unfocused
            interval = max(interval, floor)
        return interval

    # ------------------------------------------------------------------
    # Captures
    # ------------------------------------------------------------------

    async def capture_agent(self, worktree: Worktree, agent: Agent) -> Event:
        """Capture an agent pane and derive its status."""
        session = agent.session_name
        try:
            content = await self.registry.capture(session)
        except TmuxError as e:
            if is_session_gone(e):
                return AgentStopped(worktree.name, session)
            logger.debug(f"Capture of {session} failed: {e}")
            return PollFailed(session, str(e), worktree_name=worktree.name)

        if not agent.output_buffer.update(content):
            return PollUnchanged(worktree.name, session)

        status = detect_status(content)
        waiting_for = extract_prompt(content) if status == AgentStatus.WAITING else ""

        if status == AgentStatus.ACTIVE and self.detector is not None and self.detector.supports(agent.agent_type):
            transcript_status = await asyncio.to_thread(self.detector.detect, agent.agent_type, worktree.path)
            if transcript_status == AgentStatus.WAITING:
                status = AgentStatus.WAITING
                waiting_for = TRANSCRIPT_WAITING_PROMPT

        return AgentOutput(worktree.name, session, status, waiting_for)

    async def capture_shell(self, shell: ShellSession) -> Event:
        name = shell.tmux_name
        try:
            content = await self.registry.capture(name)
        except TmuxError as e:
            if not await self.registry.exists(name):
                return ShellSessionDead(name)
            logger.debug(f"Capture of shell {name} failed: {e}")
            return ShellOutput(name, changed=False)

        content = tail_text(content, self.config.shell_max_bytes)
        return ShellOutput(name, changed=shell.output_buffer.update(content))
