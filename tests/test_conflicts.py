"""Tests for cross-worktree file overlap detection."""

from unittest.mock import AsyncMock, patch

import pytest

from agentdeck.conflict import (
    Conflict,
    ConflictDetector,
    conflicting_files,
    conflicting_worktrees,
    find_conflicts,
    has_conflict,
)


class TestFindConflicts:
    """Pairwise overlap of modified file sets."""

    def test_disjoint_sets_have_no_conflicts(self):
        assert find_conflicts({"a": {"x.py"}, "b": {"y.py"}}) == []

    def test_overlap_reports_sorted_files(self):
        conflicts = find_conflicts({
            "a": {"z.py", "shared.py", "b.py"},
            "b": {"b.py", "shared.py"},
        })
        assert len(conflicts) == 1
        assert conflicts[0].worktrees == ["a", "b"]
        assert conflicts[0].files == ["b.py", "shared.py"]
        assert conflicts[0].file_count == 2

    def test_three_way_overlap_gives_three_pairs(self):
        conflicts = find_conflicts({
            "a": {"common.py"},
            "b": {"common.py"},
            "c": {"common.py"},
        })
        pairs = {tuple(c.worktrees) for c in conflicts}
        assert pairs == {("a", "b"), ("a", "c"), ("b", "c")}

    def test_empty_sets_are_ignored(self):
        assert find_conflicts({"a": set(), "b": set(), "c": {"x"}}) == []


class TestHelpers:
    @pytest.fixture
    def conflicts(self):
        return [
            Conflict(worktrees=["a", "b"], files=["one.py"]),
            Conflict(worktrees=["a", "c"], files=["two.py", "one.py"]),
        ]

    def test_has_conflict(self, conflicts):
        assert has_conflict("c", conflicts)
        assert not has_conflict("d", conflicts)

    def test_conflicting_files_are_deduplicated(self, conflicts):
        assert conflicting_files("a", conflicts) == ["one.py", "two.py"]

    def test_conflicting_worktrees_exclude_self(self, conflicts):
        assert conflicting_worktrees("a", conflicts) == ["b", "c"]
        assert conflicting_worktrees("b", conflicts) == ["a"]


class TestConflictDetector:
    """Collection of modified files across worktrees."""

    @pytest.mark.asyncio
    async def test_single_worktree_skips_git(self, make_worktree):
        with patch("agentdeck.conflict.detector.modified_files", new=AsyncMock()) as mock_files:
            assert await ConflictDetector().detect([make_worktree("a")]) == []
        mock_files.assert_not_called()

    @pytest.mark.asyncio
    async def test_detects_overlap(self, make_worktree):
        worktrees = [make_worktree("a"), make_worktree("b")]
        by_path = {worktrees[0].path: {"api.py", "x.py"}, worktrees[1].path: {"api.py"}}

        async def fake_modified(path):
            return by_path[path]

        with patch("agentdeck.conflict.detector.modified_files", new=fake_modified):
            conflicts = await ConflictDetector().detect(worktrees)

        assert len(conflicts) == 1
        assert conflicts[0].files == ["api.py"]

    @pytest.mark.asyncio
    async def test_failing_worktree_is_skipped(self, make_worktree):
        worktrees = [make_worktree("a"), make_worktree("b"), make_worktree("c")]

        async def fake_modified(path):
            if path == worktrees[1].path:
                raise OSError("gone")
            return {"shared.py"}

        with patch("agentdeck.conflict.detector.modified_files", new=fake_modified):
            conflicts = await ConflictDetector().detect(worktrees)

        assert [c.worktrees for c in conflicts] == [["a", "c"]]

    @pytest.mark.asyncio
    async def test_real_repository(self, git_repo):
        """Two worktrees editing README.md conflict; a third does not."""
        from agentdeck.git import create_worktree, list_worktrees

        for name in ("wt-a", "wt-b", "wt-c"):
            await create_worktree(git_repo, name)

        (git_repo.parent / "wt-a" / "README.md").write_text("changed in a\n")
        (git_repo.parent / "wt-b" / "README.md").write_text("changed in b\n")
        (git_repo.parent / "wt-c" / "other.txt").write_text("new\n")

        worktrees = await list_worktrees(git_repo)
        conflicts = await ConflictDetector().detect(worktrees)

        assert len(conflicts) == 1
        assert sorted(conflicts[0].worktrees) == ["wt-a", "wt-b"]
        assert conflicts[0].files == ["README.md"]
