"""Tests for worktree discovery and git queries against a real repository."""

import subprocess

import pytest

from agentdeck.git import (
    create_worktree,
    current_branch,
    delete_branch,
    delete_worktree,
    detect_default_branch,
    diff_stat_from_base,
    is_commit_in_branch,
    list_worktrees,
    parse_commit_log,
    parse_status_counts,
    parse_worktree_list,
    sanitize_branch_name,
    stage_all_and_commit,
    uncommitted_changes,
    validate_branch_name,
    worktree_commits,
)
from agentdeck.git.sidecar import load_sidecars, save_pr_url, save_task_link
from agentdeck.models import AgentType, Worktree


def run_git(args, cwd):
    return subprocess.run(["git"] + args, cwd=cwd, capture_output=True, text=True)


class TestParsing:
    """Pure parsers for porcelain output."""

    def test_parse_worktree_list_skips_main(self):
        output = (
            "worktree /repo\nHEAD abc\nbranch refs/heads/main\n\n"
            "worktree /feat\nHEAD def\nbranch refs/heads/feature/x\n\n"
            "worktree /detached\nHEAD 123\ndetached\n"
        )
        worktrees = parse_worktree_list(output, "/repo")
        assert [(w.name, w.branch) for w in worktrees] == [
            ("feat", "feature/x"),
            ("detached", "(detached)"),
        ]

    def test_parse_status_counts(self):
        porcelain = "M  staged.py\n M modified.py\nMM both.py\n?? new.py\n!! ignored.py\n"
        counts = parse_status_counts(porcelain)
        assert (counts.staged, counts.modified, counts.untracked) == (2, 2, 1)
        assert counts.has_changes

    def test_clean_status(self):
        assert not parse_status_counts("").has_changes

    def test_parse_commit_log(self):
        output = "abc1234|Add login | with pipe\n\ndef5678|Fix tests\nnot a commit line\n"
        assert parse_commit_log(output) == [("abc1234", "Add login | with pipe"), ("def5678", "Fix tests")]


class TestBranchNames:
    @pytest.mark.parametrize("name", ["feature/login", "fix-123", "a.b"])
    def test_valid(self, name):
        assert validate_branch_name(name) == (True, [])

    @pytest.mark.parametrize("name", ["", ".hidden", "-x", "a..b", "a b", "x.lock", "a@{b", "trailing/"])
    def test_invalid(self, name):
        valid, errors = validate_branch_name(name)
        assert not valid
        assert errors

    @pytest.mark.parametrize("raw", ["My Feature: v2?", "..odd..name.lock", "--a//b--"])
    def test_sanitized_names_validate(self, raw):
        assert validate_branch_name(sanitize_branch_name(raw))[0]

    def test_sanitize_spaces(self):
        assert sanitize_branch_name("add user login") == "add-user-login"


class TestCreateAndList:
    """Worktree creation and discovery."""

    @pytest.mark.asyncio
    async def test_create_sibling_worktree(self, git_repo):
        wt = await create_worktree(git_repo, "feat-a", agent_type=AgentType.CLAUDE, task_id="td-42")

        assert wt.path == str(git_repo.parent / "feat-a")
        assert wt.branch == "feat-a"
        assert wt.base_branch == "main"
        assert (git_repo.parent / "feat-a" / ".sidecar-base").read_text() == "main\n"
        assert await current_branch(wt.path) == "feat-a"

    @pytest.mark.asyncio
    async def test_metadata_files_are_excluded(self, git_repo):
        wt = await create_worktree(git_repo, "feat-a", agent_type=AgentType.CODEX, task_id="td-1")
        save_pr_url(wt.path, "https://x/pr/1")

        changes = await uncommitted_changes(wt.path)
        assert not changes.has_changes

    @pytest.mark.asyncio
    async def test_exclude_is_written_once(self, git_repo):
        await create_worktree(git_repo, "one")
        await create_worktree(git_repo, "two")
        exclude = (git_repo / ".git" / "info" / "exclude").read_text()
        assert exclude.count(".sidecar-base") == 1

    @pytest.mark.asyncio
    async def test_list_loads_sidecars(self, git_repo):
        await create_worktree(git_repo, "feat-a", agent_type=AgentType.GEMINI, task_id="td-7")
        await create_worktree(git_repo, "feat-b")

        worktrees = {wt.name: wt for wt in await list_worktrees(git_repo)}

        assert set(worktrees) == {"feat-a", "feat-b"}
        assert worktrees["feat-a"].chosen_agent == AgentType.GEMINI
        assert worktrees["feat-a"].task_id == "td-7"
        assert worktrees["feat-b"].chosen_agent == AgentType.NONE

    @pytest.mark.asyncio
    async def test_invalid_name_rejected(self, git_repo):
        with pytest.raises(ValueError):
            await create_worktree(git_repo, "bad name")

    @pytest.mark.asyncio
    async def test_explicit_base_branch(self, git_repo):
        run_git(["branch", "develop"], git_repo)
        wt = await create_worktree(git_repo, "feat", base_branch="develop")
        assert wt.base_branch == "develop"


class TestBranchQueries:
    @pytest.mark.asyncio
    async def test_default_branch_falls_back_to_local_main(self, git_repo):
        assert await detect_default_branch(git_repo) == "main"

    @pytest.mark.asyncio
    async def test_commit_and_diff(self, git_repo):
        wt = await create_worktree(git_repo, "feat")
        with open(f"{wt.path}/app.py", "w") as f:
            f.write("print('hi')\n")

        changes = await uncommitted_changes(wt.path)
        assert changes.untracked == 1

        commit = await stage_all_and_commit(wt.path, "Add app")
        assert len(commit) == 40
        assert not (await uncommitted_changes(wt.path)).has_changes

        stat = await diff_stat_from_base(wt.path, "main")
        assert "app.py" in stat
        assert ".sidecar" not in stat

        assert await is_commit_in_branch(wt.path, commit, "feat")
        assert not await is_commit_in_branch(wt.path, commit, "main")

    @pytest.mark.asyncio
    async def test_ancestry_with_bad_inputs(self, git_repo):
        assert not await is_commit_in_branch(git_repo, "", "main")
        assert not await is_commit_in_branch(git_repo, "deadbeef", "main")

    @pytest.mark.asyncio
    async def test_default_branch_uses_configured_fallback(self, git_repo):
        run_git(["branch", "-m", "main", "trunk"], git_repo)
        assert await detect_default_branch(git_repo) == "main"
        assert await detect_default_branch(git_repo, fallback="trunk") == "trunk"


class TestWorktreeCommits:
    """Branch commits with pushed and merged flags."""

    @pytest.mark.asyncio
    async def test_local_commits_are_listed_newest_first(self, git_repo):
        wt = await create_worktree(git_repo, "feat")
        for name in ("a.txt", "b.txt"):
            (git_repo.parent / "feat" / name).write_text(name)
            await stage_all_and_commit(wt.path, f"Add {name}")

        commits = await worktree_commits(wt.path, "main", timeout=2.0)

        assert [c.subject for c in commits] == ["Add b.txt", "Add a.txt"]
        assert not any(c.pushed or c.merged for c in commits)

    @pytest.mark.asyncio
    async def test_pushed_when_upstream_contains_commit(self, git_repo):
        wt = await create_worktree(git_repo, "feat")
        (git_repo.parent / "feat" / "a.txt").write_text("a")
        await stage_all_and_commit(wt.path, "Add a")
        run_git(["branch", "feat-upstream", "feat"], git_repo)
        run_git(["branch", "--set-upstream-to=feat-upstream"], wt.path)

        commits = await worktree_commits(wt.path, "main")
        assert len(commits) == 1
        assert commits[0].pushed

    @pytest.mark.asyncio
    async def test_stale_base_is_redetected(self, git_repo):
        wt = await create_worktree(git_repo, "feat")
        (git_repo.parent / "feat" / "a.txt").write_text("a")
        await stage_all_and_commit(wt.path, "Add a")

        commits = await worktree_commits(wt.path, "no-such-branch")
        assert [c.subject for c in commits] == ["Add a"]

    @pytest.mark.asyncio
    async def test_no_commits(self, git_repo):
        wt = await create_worktree(git_repo, "feat")
        assert await worktree_commits(wt.path, "main") == []


class TestDelete:
    @pytest.mark.asyncio
    async def test_delete_worktree_and_unmerged_branch(self, git_repo):
        wt = await create_worktree(git_repo, "feat")
        (git_repo.parent / "feat" / "x.txt").write_text("x\n")
        await stage_all_and_commit(wt.path, "unmerged work")

        await delete_worktree(git_repo, wt.path)
        await delete_branch(git_repo, "feat")

        assert await list_worktrees(git_repo) == []
        branches = run_git(["branch", "--list", "feat"], git_repo).stdout
        assert branches.strip() == ""

    @pytest.mark.asyncio
    async def test_delete_dirty_worktree_forces(self, git_repo):
        wt = await create_worktree(git_repo, "feat")
        (git_repo.parent / "feat" / "README.md").write_text("dirty\n")

        await delete_worktree(git_repo, wt.path)
        assert not (git_repo.parent / "feat").exists()


class TestSidecars:
    def test_round_trip_and_removal(self, tmp_path):
        wt = Worktree(name="w", path=str(tmp_path))
        save_task_link(wt.path, "td-9")
        save_pr_url(wt.path, "https://x/pr/2")
        load_sidecars(wt)
        assert (wt.task_id, wt.pr_url, wt.chosen_agent) == ("td-9", "https://x/pr/2", AgentType.NONE)

        save_task_link(wt.path, "")
        assert not (tmp_path / ".sidecar-task").exists()
