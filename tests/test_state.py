"""Tests for persisted per-project UI state."""

import pytest

from agentdeck.state import DeckState, ProjectState


@pytest.fixture
def store(tmp_path):
    return DeckState(tmp_path / "state" / "state.json")


@pytest.fixture
def project(tmp_path):
    path = tmp_path / "project"
    path.mkdir()
    return path


class TestSelection:
    def test_missing_file_gives_empty_state(self, store, project):
        assert store.get(project) == ProjectState()

    def test_worktree_selection(self, store, project):
        store.save_selection(project, worktree_name="feat")
        assert store.get(project).worktree_name == "feat"

    def test_worktree_wins_over_shell(self, store, project):
        store.save_selection(project, worktree_name="feat", shell_tmux_name="sidecar-sh-project-1")
        state = store.get(project)
        assert state.worktree_name == "feat"
        assert state.shell_tmux_name == ""

    def test_shell_selection_clears_worktree(self, store, project):
        store.save_selection(project, worktree_name="feat")
        store.save_selection(project, shell_tmux_name="sidecar-sh-project-1")
        state = store.get(project)
        assert state.worktree_name == ""
        assert state.shell_tmux_name == "sidecar-sh-project-1"

    def test_projects_are_separate(self, store, project, tmp_path):
        other = tmp_path / "other"
        other.mkdir()
        store.save_selection(project, worktree_name="a")
        store.save_selection(other, worktree_name="b")
        assert store.get(project).worktree_name == "a"
        assert store.get(other).worktree_name == "b"

    def test_visible_to_second_instance(self, store, project):
        store.save_selection(project, worktree_name="feat")
        assert DeckState(store.state_file).get(project).worktree_name == "feat"


class TestShellNames:
    """Custom display names; defaults are never persisted."""

    def test_custom_name_saved(self, store, project):
        store.save_shell_name(project, "sidecar-sh-project-1", "Build")
        assert store.get(project).shell_display_names == {"sidecar-sh-project-1": "Build"}

    def test_default_name_removes_entry(self, store, project):
        store.save_shell_name(project, "sidecar-sh-project-1", "Build")
        store.save_shell_name(project, "sidecar-sh-project-1", "Shell 1")
        assert store.get(project).shell_display_names == {}

    def test_forget_shell(self, store, project):
        store.save_shell_name(project, "sidecar-sh-project-2", "Logs")
        store.save_selection(project, shell_tmux_name="sidecar-sh-project-2")

        store.forget_shell(project, "sidecar-sh-project-2")

        state = store.get(project)
        assert state.shell_display_names == {}
        assert state.shell_tmux_name == ""

    def test_forget_unknown_project_is_noop(self, store, project):
        store.forget_shell(project, "sidecar-sh-project-9")
        assert not store.state_file.exists()


class TestCorruption:
    def test_corrupt_file_is_ignored(self, store, project):
        store.state_file.write_text("{not json")
        assert store.get(project) == ProjectState()

        store.save_selection(project, worktree_name="feat")
        assert store.get(project).worktree_name == "feat"
