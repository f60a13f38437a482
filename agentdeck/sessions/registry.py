"""
SessionRegistry - tmux-backed sessions for agents and free shells.

Each logical slot (a worktree's agent, or a numbered shell) maps to at most
one live tmux session. Names are deterministic so sessions survive restarts
and are re-adopted on discovery.
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .naming import (
    agent_session_name,
    default_display_name,
    next_shell_name,
    sanitize_name,
    shell_base_name,
    shell_index,
)
from .tmux import TmuxClient
from ..config import AgentConfig, TmuxConfig
from ..error_handling import (
    RetryPolicy,
    SessionNotReadyError,
    TmuxError,
    TransientIOError,
    retry_async,
)
from ..git.sidecar import LAUNCHER_FILE
from ..models import AgentType

logger = logging.getLogger(__name__)

AGENT_COMMANDS: Dict[AgentType, str] = {
    AgentType.CLAUDE: "claude",
    AgentType.CODEX: "codex",
    AgentType.GEMINI: "gemini",
    AgentType.CURSOR: "cursor-agent",
    AgentType.OPENCODE: "opencode",
    AgentType.AIDER: "aider",
}

SKIP_PERMISSIONS_FLAGS: Dict[AgentType, str] = {
    AgentType.CLAUDE: "--dangerously-skip-permissions",
    AgentType.CODEX: "--dangerously-bypass-approvals-and-sandbox",
    AgentType.GEMINI: "--yolo",
    AgentType.CURSOR: "-f",
    AgentType.AIDER: "--yes",
}

READINESS_POLICY = RetryPolicy(max_attempts=10, initial_delay_ms=10, max_delay_ms=200)


@dataclass
class StartResult:
    """Outcome of starting (or re-adopting) an agent session."""
    worktree_name: str
    session_name: str
    agent_type: AgentType
    reconnected: bool = False


@dataclass
class ShellInfo:
    """A discovered or newly created shell session."""
    tmux_name: str
    display_name: str
    index: int


class SessionRegistry:
    """
    Creates, discovers, attaches and kills tmux sessions.

    Methods are coroutines; the blocking tmux calls run in worker threads.
    """

    def __init__(
        self,
        project_dir: Path,
        tmux: Optional[TmuxClient] = None,
        config: Optional[TmuxConfig] = None,
        agent_config: Optional[AgentConfig] = None,
    ):
        self.project_dir = Path(project_dir)
        self.config = config or TmuxConfig()
        self.agent_config = agent_config or AgentConfig()
        self.tmux = tmux or TmuxClient(self.config)
        self.shell_base = shell_base_name(str(self.project_dir), self.config.shell_prefix)

    # ------------------------------------------------------------------
    # Naming
    # ------------------------------------------------------------------

    def agent_session_name(self, worktree_name: str) -> str:
        return agent_session_name(worktree_name, self.config.agent_prefix)

    def agent_command(self, agent_type: AgentType, skip_permissions: bool = False) -> str:
        """Command line that launches an agent tool."""
        commands = {**AGENT_COMMANDS, **_typed(self.agent_config.commands)}
        flags = {**SKIP_PERMISSIONS_FLAGS, **_typed(self.agent_config.skip_permissions_flags)}

        command = commands.get(agent_type, AGENT_COMMANDS[AgentType.CLAUDE])
        if skip_permissions and flags.get(agent_type):
            command = f"{command} {flags[agent_type]}"
        return command

    # ------------------------------------------------------------------
    # Agent sessions
    # ------------------------------------------------------------------

    async def start_agent(
        self,
        worktree_name: str,
        worktree_path: str,
        agent_type: AgentType,
        skip_permissions: bool = False,
        prompt: str = "",
    ) -> StartResult:
        """
        Start an agent in a new session for a worktree.

        Idempotent: an existing session for the worktree is re-adopted.

        Raises:
            TmuxError: If the session cannot be created or the agent launched
        """
        name = self.agent_session_name(worktree_name)

        if await asyncio.to_thread(self.tmux.has_session, name):
            logger.info(f"Reconnected to existing session {name}")
            return StartResult(worktree_name, name, agent_type, reconnected=True)

        await asyncio.to_thread(self.tmux.new_session, name, worktree_path)

        command = self.agent_command(agent_type, skip_permissions)
        if prompt:
            command = write_launcher(worktree_path, agent_type, command, prompt)

        try:
            await asyncio.to_thread(self.tmux.send_keys, name, command, "Enter")
        except TmuxError:
            await asyncio.to_thread(self.tmux.kill_session, name)
            raise

        logger.info(f"Started {agent_type.value} in {name}")
        return StartResult(worktree_name, name, agent_type)

    async def stop_agent(self, session_name: str) -> None:
        """Interrupt the agent, then kill its session if it is still alive."""
        try:
            await asyncio.to_thread(self.tmux.send_keys, session_name, "C-c")
        except TmuxError as e:
            logger.debug(f"Interrupt of {session_name} failed: {e}")

        await asyncio.sleep(self.config.stop_grace_seconds)

        if await asyncio.to_thread(self.tmux.has_session, session_name):
            await asyncio.to_thread(self.tmux.kill_session, session_name)
        logger.info(f"Stopped session {session_name}")

    async def reconnect_agents(self, worktree_names: Iterable[str]) -> Dict[str, str]:
        """
        Match running agent sessions to known worktrees.

        Returns:
            Mapping of worktree name to session name. Sessions with no
            matching worktree are orphans and are left alone.
        """
        by_sanitized = {sanitize_name(name): name for name in worktree_names}
        prefix = self.config.agent_prefix
        found: Dict[str, str] = {}

        for session in await asyncio.to_thread(self.tmux.list_sessions):
            if not session.startswith(prefix):
                continue
            worktree_name = by_sanitized.get(session[len(prefix):])
            if worktree_name is not None:
                found[worktree_name] = session
        return found

    # ------------------------------------------------------------------
    # Shell sessions
    # ------------------------------------------------------------------

    async def discover_shells(self) -> List[ShellInfo]:
        """Existing shell sessions for this project, ordered by index."""
        shells = []
        for session in await asyncio.to_thread(self.tmux.list_sessions):
            index = shell_index(self.shell_base, session)
            if index is None:
                continue
            shells.append(ShellInfo(session, default_display_name(self.shell_base, session), index))
        return sorted(shells, key=lambda s: s.index)

    async def create_shell(self, existing: Iterable[str]) -> ShellInfo:
        """
        Create the next numbered shell session in the project directory.

        Args:
            existing: tmux names of the shells currently tracked

        Raises:
            TmuxError: If creation fails
            SessionNotReadyError: If the session never becomes visible
        """
        name = next_shell_name(self.shell_base, existing)
        info = ShellInfo(name, default_display_name(self.shell_base, name), shell_index(self.shell_base, name))

        if await asyncio.to_thread(self.tmux.has_session, name):
            return info

        await asyncio.to_thread(self.tmux.new_session, name, str(self.project_dir))
        await self.wait_for_session(name)
        return info

    async def wait_for_session(self, name: str, policy: RetryPolicy = READINESS_POLICY) -> None:
        """
        Poll until tmux reports the session, backing off 10ms -> 200ms.

        Raises:
            SessionNotReadyError: After the final attempt fails
        """
        async def check() -> None:
            if not await asyncio.to_thread(self.tmux.has_session, name):
                raise TransientIOError(f"session {name} not ready")

        try:
            await retry_async(check, policy)
        except TransientIOError as e:
            raise SessionNotReadyError(str(e)) from e

    # ------------------------------------------------------------------
    # Common operations
    # ------------------------------------------------------------------

    async def kill(self, name: str) -> None:
        await asyncio.to_thread(self.tmux.kill_session, name)

    async def exists(self, name: str) -> bool:
        return await asyncio.to_thread(self.tmux.has_session, name)

    async def capture(self, name: str) -> str:
        return await asyncio.to_thread(self.tmux.capture_pane, name)

    async def send_text(self, name: str, text: str) -> None:
        await asyncio.to_thread(self.tmux.send_keys, name, text, literal=True)
        await asyncio.to_thread(self.tmux.send_keys, name, "Enter")

    async def send_key(self, name: str, key: str) -> None:
        await asyncio.to_thread(self.tmux.send_keys, name, key, "Enter")

    async def attach(self, name: str) -> int:
        """Hand the terminal to tmux until the user detaches."""
        return await asyncio.to_thread(self.tmux.attach, name)


def _typed(overrides: Dict[str, str]) -> Dict[AgentType, str]:
    return {AgentType.parse(k): v for k, v in (overrides or {}).items() if AgentType.parse(k) != AgentType.NONE}


def write_launcher(worktree_path: str, agent_type: AgentType, command: str, prompt: str) -> str:
    """
    Write a launcher script that passes an initial prompt to the agent.

    The prompt is embedded in a quoted heredoc so no shell expansion happens.
    The script deletes itself after starting the agent.

    Returns:
        The command to send to the session
    """
    launcher = os.path.join(worktree_path, LAUNCHER_FILE)
    if agent_type == AgentType.AIDER:
        invocation = f"{command} --message"
    elif agent_type == AgentType.OPENCODE:
        invocation = f"{command} run"
    else:
        invocation = command

    script = (
        "#!/bin/bash\n"
        'export NVM_DIR="${NVM_DIR:-$HOME/.nvm}"\n'
        '[ -s "$NVM_DIR/nvm.sh" ] && source "$NVM_DIR/nvm.sh" 2>/dev/null\n'
        f"{invocation} \"$(cat <<'SIDECAR_PROMPT_EOF'\n"
        f"{prompt}\n"
        "SIDECAR_PROMPT_EOF\n"
        ')"\n'
        f"rm -f '{launcher}'\n"
    )
    with open(launcher, "w") as f:
        f.write(script)
    os.chmod(launcher, 0o700)
    return f"bash {launcher}"
