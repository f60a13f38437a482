"""Shared fixtures for agentdeck tests."""

import subprocess
from pathlib import Path

import pytest

from agentdeck.models import Agent, AgentStatus, AgentType, Worktree


def run_git(args: list[str], cwd: Path) -> subprocess.CompletedProcess:
    """Run a git command."""
    return subprocess.run(
        ["git"] + args,
        cwd=cwd,
        capture_output=True,
        text=True,
    )


@pytest.fixture
def git_repo(tmp_path):
    """
    Create a git repository with an initial commit on main.

    The repository lives one level down so sibling worktrees land inside
    tmp_path.
    """
    repo = tmp_path / "project"
    repo.mkdir()
    run_git(["init"], repo)
    run_git(["symbolic-ref", "HEAD", "refs/heads/main"], repo)
    run_git(["config", "user.email", "test@test.com"], repo)
    run_git(["config", "user.name", "Test User"], repo)
    run_git(["config", "commit.gpgsign", "false"], repo)

    (repo / "README.md").write_text("# Test\n")
    run_git(["add", "README.md"], repo)
    run_git(["commit", "-m", "Initial commit"], repo)
    return repo


@pytest.fixture
def make_worktree(tmp_path):
    """Factory for in-memory Worktree objects, optionally with an agent."""
    def _make(name: str = "feature-x", with_agent: bool = False, status: AgentStatus = AgentStatus.ACTIVE) -> Worktree:
        wt = Worktree(name=name, path=str(tmp_path / name), branch=name, base_branch="main")
        if with_agent:
            wt.agent = Agent(
                agent_type=AgentType.CLAUDE,
                session_name=f"sidecar-wt-{name}",
                worktree_name=name,
                status=status,
            )
            wt.status = status
        return wt
    return _make
