"""Tests for adaptive polling and pane captures."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from agentdeck.config import PollConfig
from agentdeck.error_handling import TmuxError
from agentdeck.events import (
    AgentOutput,
    AgentStopped,
    PollDue,
    PollFailed,
    PollUnchanged,
    ShellOutput,
    ShellSessionDead,
    after,
)
from agentdeck.models import Agent, AgentStatus, AgentType, ShellSession
from agentdeck.poll import TRANSCRIPT_WAITING_PROMPT, PollScheduler, stagger_offset


@pytest.fixture
def registry():
    return MagicMock(capture=AsyncMock(return_value="working..."), exists=AsyncMock(return_value=True))


@pytest.fixture
def scheduler(registry):
    return PollScheduler(registry, config=PollConfig())


class TestStagger:
    def test_deterministic_and_bounded(self):
        first = stagger_offset("sidecar-wt-feat")
        assert first == stagger_offset("sidecar-wt-feat")
        assert 0 <= first < 0.4

    def test_known_value(self):
        # "a" = 97 -> 97 % 400 ms
        assert stagger_offset("a") == pytest.approx(0.097)

    def test_disabled(self):
        assert stagger_offset("anything", max_ms=0) == 0.0


class TestSchedule:
    """Timers and generation counters."""

    def test_schedule_returns_poll_due_after_delay(self, scheduler):
        effect = scheduler.schedule("s1", 5.0)
        assert effect.func is after
        delay, event = effect.args
        assert delay == pytest.approx(5.0 + stagger_offset("s1"))
        assert event == PollDue("s1", 1)

    def test_reschedule_makes_old_timer_stale(self, scheduler):
        old = scheduler.schedule("s1", 1.0).args[1]
        new = scheduler.schedule("s1", 1.0).args[1]
        assert not scheduler.is_current(old)
        assert scheduler.is_current(new)

    def test_forget_makes_timer_stale(self, scheduler):
        event = scheduler.schedule("s1", 1.0, shell=True).args[1]
        assert event.shell
        scheduler.forget("s1")
        assert not scheduler.is_current(event)

    @pytest.mark.asyncio
    async def test_after_resolves_to_event(self):
        due = PollDue("s", 3)
        assert await after(0, due) is due


class TestNextInterval:
    @pytest.mark.parametrize("status,changed,expected", [
        (AgentStatus.ACTIVE, True, 0.5),
        (AgentStatus.THINKING, True, 0.5),
        (AgentStatus.ACTIVE, False, 5.0),
        (AgentStatus.WAITING, True, 5.0),
        (AgentStatus.DONE, False, 20.0),
        (AgentStatus.ERROR, True, 20.0),
        (AgentStatus.PAUSED, False, 5.0),
    ])
    def test_visible_focused(self, scheduler, status, changed, expected):
        assert scheduler.next_interval(status, changed) == expected

    def test_hidden_session_uses_background_floor(self, scheduler):
        assert scheduler.next_interval(AgentStatus.ACTIVE, True, visible=False) == 10.0

    def test_unfocused_floor(self, scheduler):
        assert scheduler.next_interval(AgentStatus.ACTIVE, True, visible=False, focused=False) == 20.0

    def test_floor_never_shortens(self, scheduler):
        assert scheduler.next_interval(AgentStatus.DONE, False, visible=False) == 20.0


class TestCaptureAgent:
    """Status derivation from a captured pane."""

    @pytest.fixture
    def worktree(self, make_worktree):
        return make_worktree("feat", with_agent=True)

    @pytest.mark.asyncio
    async def test_unchanged_content(self, scheduler, worktree):
        worktree.agent.output_buffer.update("working...")
        event = await scheduler.capture_agent(worktree, worktree.agent)
        assert event == PollUnchanged("feat", "sidecar-wt-feat")

    @pytest.mark.asyncio
    async def test_waiting_prompt_is_extracted(self, scheduler, registry, worktree):
        registry.capture.return_value = "edit main.py\nAllow edit to main.py? [y/n]\n"
        event = await scheduler.capture_agent(worktree, worktree.agent)
        assert event == AgentOutput("feat", "sidecar-wt-feat", AgentStatus.WAITING, "Allow edit to main.py? [y/n]")

    @pytest.mark.asyncio
    async def test_transcript_overrides_active(self, registry, worktree):
        detector = MagicMock()
        detector.supports.return_value = True
        detector.detect.return_value = AgentStatus.WAITING
        scheduler = PollScheduler(registry, detector=detector)

        event = await scheduler.capture_agent(worktree, worktree.agent)

        assert event.status == AgentStatus.WAITING
        assert event.waiting_for == TRANSCRIPT_WAITING_PROMPT
        detector.detect.assert_called_once_with(AgentType.CLAUDE, worktree.path)

    @pytest.mark.asyncio
    async def test_transcript_undetermined_keeps_active(self, registry, worktree):
        detector = MagicMock()
        detector.supports.return_value = True
        detector.detect.return_value = None
        scheduler = PollScheduler(registry, detector=detector)

        event = await scheduler.capture_agent(worktree, worktree.agent)
        assert event.status == AgentStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_gone_session_means_stopped(self, scheduler, registry, worktree):
        registry.capture.side_effect = TmuxError("capture-pane: can't find session: sidecar-wt-feat")
        event = await scheduler.capture_agent(worktree, worktree.agent)
        assert event == AgentStopped("feat", "sidecar-wt-feat")

    @pytest.mark.asyncio
    async def test_other_failure_is_transient(self, scheduler, registry, worktree):
        registry.capture.side_effect = TmuxError("capture-pane: timed out")
        event = await scheduler.capture_agent(worktree, worktree.agent)
        assert isinstance(event, PollFailed)
        assert event.worktree_name == "feat"


class TestCaptureShell:
    @pytest.fixture
    def shell(self):
        agent = Agent(agent_type=AgentType.NONE, session_name="sidecar-sh-p-1")
        return ShellSession("sidecar-sh-p-1", "Shell 1", agent)

    @pytest.mark.asyncio
    async def test_changed(self, scheduler, shell):
        assert await scheduler.capture_shell(shell) == ShellOutput("sidecar-sh-p-1", changed=True)
        assert await scheduler.capture_shell(shell) == ShellOutput("sidecar-sh-p-1", changed=False)

    @pytest.mark.asyncio
    async def test_dead_session(self, scheduler, registry, shell):
        registry.capture.side_effect = TmuxError("capture-pane: no server running")
        registry.exists.return_value = False
        assert await scheduler.capture_shell(shell) == ShellSessionDead("sidecar-sh-p-1")

    @pytest.mark.asyncio
    async def test_output_is_capped(self, registry, shell):
        registry.capture.return_value = "x" * 50
        scheduler = PollScheduler(registry, config=PollConfig(shell_max_bytes=10))
        await scheduler.capture_shell(shell)
        assert str(shell.output_buffer) == "x" * 10
