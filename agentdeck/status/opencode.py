"""OpenCode transcript adapter."""

import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from .base import StatusAdapter, newest_file, path_matches, role_status
from .schema import OpenCodeMessage, OpenCodeProject
from ..error_handling import NotDeterminedError
from ..models import AgentStatus, AgentType

logger = logging.getLogger(__name__)


def storage_candidates(home: Path) -> List[Path]:
    """Platform-specific OpenCode storage locations, most specific first."""
    candidates = []
    if sys.platform == "darwin":
        candidates.append(home / "Library" / "Application Support" / "opencode" / "storage")
    elif sys.platform.startswith("win"):
        local_app_data = os.environ.get("LOCALAPPDATA")
        if local_app_data:
            candidates.append(Path(local_app_data) / "opencode" / "Data" / "storage")
    else:
        xdg_data = os.environ.get("XDG_DATA_HOME") or str(home / ".local" / "share")
        candidates.append(Path(xdg_data) / "opencode" / "storage")

    default = home / ".local" / "share" / "opencode" / "storage"
    if default not in candidates:
        candidates.append(default)
    return candidates


class OpenCodeAdapter(StatusAdapter):
    """
    OpenCode keeps a three-level index under its storage directory:

        project/<id>.json            {"id": ..., "worktree": ...}
        session/<project id>/<session id>.json
        message/<session id>/<message id>.json   {"role": ...}
    """

    agent_type = AgentType.OPENCODE

    def default_root(self) -> Path:
        candidates = storage_candidates(self.home)
        for path in candidates:
            if path.is_dir():
                return path
        return candidates[0]

    def find_project(self, abs_path: str) -> Optional[str]:
        with os.scandir(self.root / "project") as entries:
            for entry in entries:
                if not entry.name.endswith(".json") or not entry.is_file():
                    continue
                try:
                    project = OpenCodeProject.model_validate_json(Path(entry.path).read_bytes())
                except (OSError, ValidationError):
                    continue
                if project.id and path_matches(project.worktree, abs_path):
                    return project.id
        return None

    def find_session(self, project_id: str) -> Optional[str]:
        newest = newest_file(self.root / "session" / project_id, ".json")
        return newest.stem if newest else None

    def _detect(self, abs_path: str) -> Optional[AgentStatus]:
        project_id = self.find_project(abs_path)
        if not project_id:
            raise NotDeterminedError("no project for path")

        session_id = self.find_session(project_id)
        if not session_id:
            raise NotDeterminedError(f"no session for project {project_id}")

        message_file = newest_file(self.root / "message" / session_id, ".json")
        if message_file is None:
            raise NotDeterminedError(f"no messages in session {session_id}")

        message = OpenCodeMessage.model_validate_json(message_file.read_bytes())
        return role_status(message.role)
