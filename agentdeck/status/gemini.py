"""Gemini CLI transcript adapter."""

import hashlib
from pathlib import Path
from typing import Optional

from .base import StatusAdapter, newest_file, role_status
from .schema import GeminiSession
from ..error_handling import NotDeterminedError
from ..models import AgentStatus, AgentType


def project_hash(abs_path: str) -> str:
    """Gemini names project directories by the SHA-256 hex of the path."""
    return hashlib.sha256(abs_path.encode("utf-8")).hexdigest()


class GeminiAdapter(StatusAdapter):
    """Reads ~/.gemini/tmp/<sha256>/chats/session-*.json."""

    agent_type = AgentType.GEMINI

    def default_root(self) -> Path:
        return self.home / ".gemini" / "tmp"

    def chats_dir(self, abs_path: str) -> Path:
        return self.root / project_hash(abs_path) / "chats"

    def _detect(self, abs_path: str) -> Optional[AgentStatus]:
        session_file = newest_file(self.chats_dir(abs_path), ".json", prefix="session-")
        if session_file is None:
            raise NotDeterminedError("no chat session")

        session = GeminiSession.model_validate_json(session_file.read_bytes())
        for message in reversed(session.messages):
            status = role_status(message.type, assistant="gemini")
            if status is not None:
                return status
        return None
