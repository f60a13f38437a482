"""Tests for session naming and the tmux-backed session registry."""

import os
import subprocess
from unittest.mock import MagicMock, call, patch

import pytest

from agentdeck.config import AgentConfig, TmuxConfig
from agentdeck.error_handling import RetryPolicy, SessionNotFoundError, SessionNotReadyError, TmuxError
from agentdeck.models import AgentType
from agentdeck.sessions.naming import (
    agent_session_name,
    default_display_name,
    is_default_display_name,
    next_shell_name,
    sanitize_name,
    shell_base_name,
    shell_index,
)
from agentdeck.sessions.registry import SessionRegistry, write_launcher
from agentdeck.sessions.tmux import TmuxClient, is_session_gone


BASE = "sidecar-sh-myproject"


class TestNaming:
    """Deterministic session names."""

    def test_sanitize_replaces_tmux_specials(self):
        assert sanitize_name("feat/a.b:c") == "feat-a-b-c"

    def test_agent_session_name(self):
        assert agent_session_name("fix.bug") == "sidecar-wt-fix-bug"

    def test_shell_base_uses_directory_name(self):
        assert shell_base_name("/home/me/my.project/") == "sidecar-sh-my-project"

    def test_shell_index(self):
        assert shell_index(BASE, BASE + "-3") == 3
        assert shell_index(BASE, BASE) == 1
        assert shell_index(BASE, "sidecar-sh-other-2") is None
        assert shell_index(BASE, BASE + "-x") is None

    def test_next_name_after_gap_uses_max_plus_one(self):
        """Killing shell 2 of 1..3 must not reuse index 2."""
        existing = [BASE + "-1", BASE + "-3"]
        assert next_shell_name(BASE, existing) == BASE + "-4"

    def test_next_name_with_none_existing(self):
        assert next_shell_name(BASE, []) == BASE + "-1"

    def test_legacy_base_counts_as_one(self):
        assert next_shell_name(BASE, [BASE]) == BASE + "-2"

    def test_default_display_names(self):
        assert default_display_name(BASE, BASE + "-7") == "Shell 7"
        assert is_default_display_name("Shell 12")
        assert not is_default_display_name("Backend logs")


# ============================================================================
# Registry
# ============================================================================

@pytest.fixture
def tmux():
    """In-memory stand-in for TmuxClient tracking live session names."""
    client = MagicMock()
    client.sessions = set()
    client.has_session.side_effect = lambda name: name in client.sessions
    client.new_session.side_effect = lambda name, cwd: client.sessions.add(name)
    client.kill_session.side_effect = lambda name: client.sessions.discard(name)
    client.list_sessions.side_effect = lambda: sorted(client.sessions)
    return client


@pytest.fixture
def registry(tmp_path, tmux):
    project = tmp_path / "myproject"
    project.mkdir()
    return SessionRegistry(project, tmux=tmux, config=TmuxConfig(stop_grace_seconds=0))


class TestShells:
    """Numbered shell sessions."""

    @pytest.mark.asyncio
    async def test_create_kill_create_never_reuses_index(self, registry, tmux):
        names = []
        for _ in range(3):
            info = await registry.create_shell(names)
            names.append(info.tmux_name)
        assert names == [BASE + "-1", BASE + "-2", BASE + "-3"]

        await registry.kill(BASE + "-2")
        names.remove(BASE + "-2")

        info = await registry.create_shell(names)
        assert info.tmux_name == BASE + "-4"
        assert info.display_name == "Shell 4"
        assert info.index == 4

    @pytest.mark.asyncio
    async def test_discover_orders_by_index_and_skips_foreign(self, registry, tmux):
        tmux.sessions.update({BASE + "-10", BASE + "-2", "sidecar-wt-x", "unrelated"})
        shells = await registry.discover_shells()
        assert [s.index for s in shells] == [2, 10]
        assert shells[1].display_name == "Shell 10"

    @pytest.mark.asyncio
    async def test_create_waits_for_session(self, registry, tmux):
        """A session that never shows up fails after the readiness retries."""
        policy = RetryPolicy(max_attempts=3, initial_delay_ms=0, max_delay_ms=0)
        with pytest.raises(SessionNotReadyError):
            await registry.wait_for_session(BASE + "-1", policy)
        assert tmux.has_session.call_count == 3


class TestAgents:
    """Agent session lifecycle."""

    @pytest.mark.asyncio
    async def test_start_agent_sends_command(self, registry, tmux, tmp_path):
        result = await registry.start_agent("feat", str(tmp_path), AgentType.CLAUDE)

        assert result.session_name == "sidecar-wt-feat"
        assert not result.reconnected
        tmux.send_keys.assert_called_once_with("sidecar-wt-feat", "claude", "Enter")

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, registry, tmux, tmp_path):
        tmux.sessions.add("sidecar-wt-feat")
        result = await registry.start_agent("feat", str(tmp_path), AgentType.CLAUDE)

        assert result.reconnected
        tmux.new_session.assert_not_called()
        tmux.send_keys.assert_not_called()

    @pytest.mark.asyncio
    async def test_skip_permissions_flag(self, registry, tmux, tmp_path):
        await registry.start_agent("feat", str(tmp_path), AgentType.CODEX, skip_permissions=True)
        tmux.send_keys.assert_called_once_with(
            "sidecar-wt-feat", "codex --dangerously-bypass-approvals-and-sandbox", "Enter"
        )

    @pytest.mark.asyncio
    async def test_launch_failure_kills_session(self, registry, tmux, tmp_path):
        tmux.send_keys.side_effect = TmuxError("send-keys: boom")
        with pytest.raises(TmuxError):
            await registry.start_agent("feat", str(tmp_path), AgentType.CLAUDE)
        assert "sidecar-wt-feat" not in tmux.sessions

    @pytest.mark.asyncio
    async def test_prompt_goes_through_launcher(self, registry, tmux, tmp_path):
        await registry.start_agent("feat", str(tmp_path), AgentType.CLAUDE, prompt="fix it")
        launcher = tmp_path / ".sidecar-start.sh"
        tmux.send_keys.assert_called_once_with("sidecar-wt-feat", f"bash {launcher}", "Enter")
        assert launcher.exists()

    @pytest.mark.asyncio
    async def test_stop_interrupts_then_kills(self, registry, tmux):
        tmux.sessions.add("sidecar-wt-feat")
        await registry.stop_agent("sidecar-wt-feat")

        tmux.send_keys.assert_called_once_with("sidecar-wt-feat", "C-c")
        tmux.kill_session.assert_called_once_with("sidecar-wt-feat")

    @pytest.mark.asyncio
    async def test_reconnect_matches_known_worktrees(self, registry, tmux):
        tmux.sessions.update({"sidecar-wt-feat-x", "sidecar-wt-orphan", BASE + "-1"})
        found = await registry.reconnect_agents(["feat.x", "other"])
        assert found == {"feat.x": "sidecar-wt-feat-x"}

    @pytest.mark.asyncio
    async def test_send_text_is_literal_then_enter(self, registry, tmux):
        await registry.send_text("s", "echo $HOME")
        assert tmux.send_keys.call_args_list == [
            call("s", "echo $HOME", literal=True),
            call("s", "Enter"),
        ]

    def test_command_overrides_from_config(self, tmp_path, tmux):
        registry = SessionRegistry(
            tmp_path,
            tmux=tmux,
            agent_config=AgentConfig(commands={"claude": "claude-beta"}),
        )
        assert registry.agent_command(AgentType.CLAUDE) == "claude-beta"
        assert registry.agent_command(AgentType.GEMINI, skip_permissions=True) == "gemini --yolo"


class TestLauncher:
    def test_prompt_is_not_shell_expanded(self, tmp_path):
        command = write_launcher(str(tmp_path), AgentType.CLAUDE, "claude", "echo $(whoami) `id`")
        launcher = tmp_path / ".sidecar-start.sh"

        assert command == f"bash {launcher}"
        script = launcher.read_text()
        assert "<<'SIDECAR_PROMPT_EOF'" in script
        assert "echo $(whoami) `id`\n" in script
        assert os.access(launcher, os.X_OK)

    def test_aider_uses_message_flag(self, tmp_path):
        write_launcher(str(tmp_path), AgentType.AIDER, "aider", "hi")
        assert 'aider --message "$(cat' in (tmp_path / ".sidecar-start.sh").read_text()


class TestSessionGone:
    @pytest.mark.parametrize("message", [
        "can't find session: x",
        "no server running on /tmp/tmux-0/default",
        "session not found: x",
    ])
    def test_gone_messages(self, message):
        assert is_session_gone(TmuxError(message))

    def test_other_errors(self):
        assert not is_session_gone(TmuxError("capture-pane: timed out"))

    def test_not_found_error_is_gone(self):
        assert is_session_gone(SessionNotFoundError("capture-pane: exit status 1"))


class TestCapturePane:
    """capture-pane failures are split into gone sessions and other errors."""

    def _result(self, returncode, stdout="", stderr=""):
        return subprocess.CompletedProcess(["tmux"], returncode, stdout=stdout, stderr=stderr)

    def test_returns_output(self):
        with patch("agentdeck.sessions.tmux.subprocess.run", return_value=self._result(0, "hello\n")):
            assert TmuxClient().capture_pane("sidecar-wt-feat") == "hello\n"

    def test_missing_session_raises_not_found(self):
        result = self._result(1, stderr="can't find session: sidecar-wt-feat")
        with patch("agentdeck.sessions.tmux.subprocess.run", return_value=result):
            with pytest.raises(SessionNotFoundError):
                TmuxClient().capture_pane("sidecar-wt-feat")

    def test_other_failure_raises_tmux_error(self):
        result = self._result(1, stderr="invalid option")
        with patch("agentdeck.sessions.tmux.subprocess.run", return_value=result):
            with pytest.raises(TmuxError) as exc:
                TmuxClient().capture_pane("sidecar-wt-feat")
        assert not isinstance(exc.value, SessionNotFoundError)
