"""
Transcript record schemas using Pydantic

Only the fields used for status detection are declared; everything else in
the agents' records is ignored.
"""

from pydantic import BaseModel, ConfigDict
from typing import Optional


class TranscriptModel(BaseModel):
    """Base model that tolerates unknown fields."""
    model_config = ConfigDict(extra="ignore")


# ============================================================================
# Claude Code (~/.claude/projects/<dashed path>/*.jsonl)
# ============================================================================

class ClaudeRecord(TranscriptModel):
    """One line of a Claude Code session transcript."""
    type: Optional[str] = None


# ============================================================================
# Codex (~/.codex/sessions/**/*.jsonl)
# ============================================================================

class CodexPayload(TranscriptModel):
    type: Optional[str] = None
    role: Optional[str] = None
    cwd: Optional[str] = None


class CodexRecord(TranscriptModel):
    """One line of a Codex rollout file."""
    type: Optional[str] = None
    payload: Optional[CodexPayload] = None


# ============================================================================
# Gemini CLI (~/.gemini/tmp/<sha256>/chats/session-*.json)
# ============================================================================

class GeminiMessage(TranscriptModel):
    type: Optional[str] = None  # "user", "gemini", "info"


class GeminiSession(TranscriptModel):
    messages: list[GeminiMessage] = []


# ============================================================================
# OpenCode (<data dir>/opencode/storage/{project,session,message})
# ============================================================================

class OpenCodeProject(TranscriptModel):
    id: str = ""
    worktree: str = ""


class OpenCodeMessage(TranscriptModel):
    role: Optional[str] = None
