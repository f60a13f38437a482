"""Codex transcript adapter."""

import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from pydantic import ValidationError

from .base import StatusAdapter, iter_newest_first, path_matches, read_tail_lines, role_status
from .schema import CodexRecord
from ..error_handling import NotDeterminedError
from ..models import AgentStatus, AgentType

logger = logging.getLogger(__name__)


class CodexAdapter(StatusAdapter):
    """
    Codex writes rollout files under ~/.codex/sessions/YYYY/MM/DD/*.jsonl.

    Files are not keyed by project, so each file's working directory is read
    from its first ``session_meta`` record and compared with the worktree.
    """

    agent_type = AgentType.CODEX

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        # path -> ((mtime_ns, size), cwd)
        self._cwd_cache: Dict[str, Tuple[Tuple[int, int], str]] = {}

    def default_root(self) -> Path:
        return self.home / ".codex" / "sessions"

    def _walk_candidates(self) -> List[str]:
        found = []
        for dirpath, _dirnames, filenames in os.walk(self.root):
            for name in filenames:
                if name.endswith(".jsonl"):
                    found.append(os.path.join(dirpath, name))
        return found

    def _flat_candidates(self) -> List[str]:
        with os.scandir(self.root) as entries:
            return [e.path for e in entries if e.name.endswith(".jsonl") and e.is_file()]

    def session_cwd(self, path: str) -> str:
        """Return payload.cwd from the first session_meta record, or ""."""
        stat = os.stat(path)
        key = (stat.st_mtime_ns, stat.st_size)
        cached = self._cwd_cache.get(path)
        if cached and cached[0] == key:
            return cached[1]

        cwd = ""
        with open(path, encoding="utf-8", errors="replace") as f:
            for line in f:
                try:
                    record = CodexRecord.model_validate_json(line)
                except ValidationError:
                    continue
                if record.type == "session_meta" and record.payload and record.payload.cwd:
                    cwd = record.payload.cwd
                    break

        self._cwd_cache[path] = (key, cwd)
        return cwd

    def find_session(self, abs_path: str) -> Optional[str]:
        """Most recently modified session file whose cwd is at or below abs_path."""
        candidates = self._walk_candidates() or self._flat_candidates()

        best: Optional[str] = None
        best_mtime = -1
        for path in candidates:
            try:
                if not path_matches(self.session_cwd(path), abs_path):
                    continue
                mtime = os.stat(path).st_mtime_ns
            except OSError as e:
                logger.debug(f"Skipping unreadable codex session {path}: {e}")
                continue
            if mtime > best_mtime:
                best_mtime = mtime
                best = path
        return best

    def _detect(self, abs_path: str) -> Optional[AgentStatus]:
        session_file = self.find_session(abs_path)
        if session_file is None:
            raise NotDeterminedError("no session for path")

        for line in iter_newest_first(read_tail_lines(Path(session_file), self.tail_bytes)):
            try:
                record = CodexRecord.model_validate_json(line)
            except ValidationError:
                continue
            if record.type != "response_item" or record.payload is None:
                continue
            if record.payload.type != "message":
                continue
            status = role_status(record.payload.role)
            if status is not None:
                return status
        return None
