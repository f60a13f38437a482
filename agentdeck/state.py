"""
Persistent UI state shared across agentdeck runs.

Remembers, per project, the last selected worktree or shell and any custom
shell names. The file is shared between projects and guarded by a file lock.
"""

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, Optional

from filelock import FileLock

from .sessions.naming import is_default_display_name

logger = logging.getLogger(__name__)

STATE_PATH = Path.home() / ".agentdeck" / "state.json"


@dataclass
class ProjectState:
    """Persisted state for one project directory."""
    worktree_name: str = ""
    shell_tmux_name: str = ""
    shell_display_names: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ProjectState":
        return cls(
            worktree_name=data.get("worktree_name", ""),
            shell_tmux_name=data.get("shell_tmux_name", ""),
            shell_display_names=dict(data.get("shell_display_names") or {}),
        )


class DeckState:
    """
    File-backed store of ProjectState keyed by absolute project path.

    Every method reloads from disk so concurrent instances see each other's
    writes.
    """

    def __init__(self, state_file: Optional[Path] = None):
        self.state_file = Path(state_file) if state_file else STATE_PATH
        self.lock_file = self.state_file.with_suffix(".lock")
        self.state_file.parent.mkdir(parents=True, exist_ok=True)

    def _load(self) -> Dict[str, ProjectState]:
        if not self.state_file.exists():
            return {}

        with FileLock(self.lock_file):
            try:
                data = json.loads(self.state_file.read_text())
            except json.JSONDecodeError as e:
                logger.warning(f"Ignoring corrupt state file {self.state_file}: {e}")
                return {}
            return {path: ProjectState.from_dict(entry) for path, entry in data.items()}

    def _save(self, projects: Dict[str, ProjectState]) -> None:
        with FileLock(self.lock_file):
            data = {path: entry.to_dict() for path, entry in projects.items()}
            self.state_file.write_text(json.dumps(data, indent=2))

    @staticmethod
    def _key(project_dir: Path) -> str:
        return str(Path(project_dir).resolve())

    def get(self, project_dir: Path) -> ProjectState:
        return self._load().get(self._key(project_dir), ProjectState())

    def save_selection(self, project_dir: Path, worktree_name: str = "", shell_tmux_name: str = "") -> None:
        """Remember the selected worktree or shell (one of them, not both)."""
        projects = self._load()
        entry = projects.setdefault(self._key(project_dir), ProjectState())
        entry.worktree_name = worktree_name
        entry.shell_tmux_name = shell_tmux_name if not worktree_name else ""
        self._save(projects)

    def save_shell_name(self, project_dir: Path, tmux_name: str, display_name: str) -> None:
        """Store a custom shell name; default "Shell N" names are not stored."""
        projects = self._load()
        entry = projects.setdefault(self._key(project_dir), ProjectState())
        if display_name and not is_default_display_name(display_name):
            entry.shell_display_names[tmux_name] = display_name
        else:
            entry.shell_display_names.pop(tmux_name, None)
        self._save(projects)

    def forget_shell(self, project_dir: Path, tmux_name: str) -> None:
        projects = self._load()
        entry = projects.get(self._key(project_dir))
        if entry is None:
            return
        entry.shell_display_names.pop(tmux_name, None)
        if entry.shell_tmux_name == tmux_name:
            entry.shell_tmux_name = ""
        self._save(projects)
