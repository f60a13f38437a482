"""
tmux session management.

Usage:
    from agentdeck.sessions import SessionRegistry

    registry = SessionRegistry(project_dir)
    result = await registry.start_agent("feature-x", "/repo-feature-x", AgentType.CLAUDE)
    shell = await registry.create_shell(existing=[])
"""

from .naming import (
    AGENT_PREFIX,
    SHELL_PREFIX,
    agent_session_name,
    next_shell_name,
    sanitize_name,
    shell_base_name,
    shell_index,
)
from .registry import SessionRegistry, ShellInfo, StartResult
from .tmux import TmuxClient, is_session_gone, is_tmux_installed

__all__ = [
    "AGENT_PREFIX",
    "SHELL_PREFIX",
    "agent_session_name",
    "next_shell_name",
    "sanitize_name",
    "shell_base_name",
    "shell_index",
    "SessionRegistry",
    "ShellInfo",
    "StartResult",
    "TmuxClient",
    "is_session_gone",
    "is_tmux_installed",
]
