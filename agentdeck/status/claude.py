"""Claude Code transcript adapter."""

from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from .base import StatusAdapter, iter_newest_first, newest_file, read_tail_lines, role_status
from .schema import ClaudeRecord
from ..error_handling import NotDeterminedError
from ..models import AgentStatus, AgentType

# Sub-agent transcripts live next to the main session file.
SUBAGENT_PREFIX = "agent-"


class ClaudeAdapter(StatusAdapter):
    """
    Claude stores sessions in ~/.claude/projects/<dashed path>/*.jsonl.

    /Users/foo/code/project becomes -Users-foo-code-project. Each line has a
    top-level ``type`` of "assistant" or "user" for conversation turns.
    """

    agent_type = AgentType.CLAUDE

    def default_root(self) -> Path:
        return self.home / ".claude" / "projects"

    def session_dir(self, abs_path: str) -> Path:
        return self.root / abs_path.replace("/", "-")

    def _detect(self, abs_path: str) -> Optional[AgentStatus]:
        session_file = newest_file(self.session_dir(abs_path), ".jsonl", exclude_prefix=SUBAGENT_PREFIX)
        if session_file is None:
            raise NotDeterminedError("no session file")

        for line in iter_newest_first(read_tail_lines(session_file, self.tail_bytes)):
            try:
                record = ClaudeRecord.model_validate_json(line)
            except ValidationError:
                continue
            status = role_status(record.type)
            if status is not None:
                return status
        return None
