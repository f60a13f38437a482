"""
agentdeck - run coding agents in parallel git worktrees.

Core pieces:
- SessionRegistry: tmux sessions for agents and shells
- PollScheduler: adaptive output polling with status detection
- ConflictDetector: files touched by more than one worktree
- MergeWorkflow: push/PR or direct merge, then cleanup
- Controller: the event loop tying them together
"""

__version__ = "0.1.0"

from .config import ConfigManager, DeckConfig, load_config
from .controller import Controller
from .models import Agent, AgentStatus, AgentType, ShellSession, Worktree
from .output_buffer import OutputBuffer

__all__ = [
    "__version__",
    "ConfigManager",
    "DeckConfig",
    "load_config",
    "Controller",
    "Agent",
    "AgentStatus",
    "AgentType",
    "ShellSession",
    "Worktree",
    "OutputBuffer",
]
