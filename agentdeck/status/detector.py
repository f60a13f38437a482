"""
AgentStatusDetector - transcript-based status for every supported agent tool.

Cursor keeps its chats in a SQLite store and is deliberately unsupported:
it always reports undetermined and relies on pane-text detection.
"""

import logging
from pathlib import Path
from typing import Dict, Optional

from .base import StatusAdapter, TAIL_BYTES
from .claude import ClaudeAdapter
from .codex import CodexAdapter
from .gemini import GeminiAdapter
from .opencode import OpenCodeAdapter
from ..config import TranscriptConfig
from ..models import AgentStatus, AgentType

logger = logging.getLogger(__name__)


class StatusDetector:
    """Dispatches status detection to the adapter for an agent type."""

    def __init__(self, config: Optional[TranscriptConfig] = None, home: Optional[Path] = None):
        config = config or TranscriptConfig()
        tail = config.tail_bytes or TAIL_BYTES
        self.adapters: Dict[AgentType, StatusAdapter] = {
            AgentType.CLAUDE: ClaudeAdapter(home=home, tail_bytes=tail, root=config.claude_dir),
            AgentType.CODEX: CodexAdapter(home=home, tail_bytes=tail, root=config.codex_dir),
            AgentType.GEMINI: GeminiAdapter(home=home, tail_bytes=tail, root=config.gemini_dir),
            AgentType.OPENCODE: OpenCodeAdapter(home=home, tail_bytes=tail, root=config.opencode_dir),
        }

    def supports(self, agent_type: AgentType) -> bool:
        return agent_type in self.adapters

    def detect(self, agent_type: AgentType, worktree_path: str) -> Optional[AgentStatus]:
        """
        Classify an agent as WAITING or ACTIVE from its transcript.

        Args:
            agent_type: Agent tool running in the worktree
            worktree_path: Worktree directory the agent was started in

        Returns:
            AgentStatus.WAITING, AgentStatus.ACTIVE, or None if undetermined.
            Never raises.
        """
        adapter = self.adapters.get(agent_type)
        if adapter is None:
            return None
        return adapter.detect(worktree_path)


_default_detector: Optional[StatusDetector] = None


def detect_transcript_status(agent_type: AgentType, worktree_path: str) -> Optional[AgentStatus]:
    """Module-level convenience wrapper around a shared StatusDetector."""
    global _default_detector
    if _default_detector is None:
        _default_detector = StatusDetector()
    return _default_detector.detect(agent_type, worktree_path)
