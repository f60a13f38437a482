"""
Git and GitHub CLI helpers.

Usage:
    from agentdeck.git import list_worktrees, detect_default_branch

    worktrees = await list_worktrees(project_dir)
    base = await detect_default_branch(worktrees[0].path)
"""

from .runner import gh, git, run_command, run_git
from .sidecar import (
    load_pr_url,
    load_sidecars,
    save_agent_type,
    save_base_branch,
    save_pr_url,
    save_task_link,
)
from .worktrees import (
    create_worktree,
    current_branch,
    delete_branch,
    delete_worktree,
    detect_default_branch,
    diff_stat_from_base,
    exclude_sidecar_files,
    is_commit_in_branch,
    list_worktrees,
    modified_files,
    parse_commit_log,
    parse_status_counts,
    parse_worktree_list,
    remote_tracking_branch,
    resolve_base_branch,
    sanitize_branch_name,
    stage_all_and_commit,
    uncommitted_changes,
    validate_branch_name,
    worktree_commits,
)

__all__ = [
    "gh",
    "git",
    "run_command",
    "run_git",
    "load_pr_url",
    "load_sidecars",
    "save_agent_type",
    "save_base_branch",
    "save_pr_url",
    "save_task_link",
    "create_worktree",
    "current_branch",
    "delete_branch",
    "delete_worktree",
    "detect_default_branch",
    "diff_stat_from_base",
    "exclude_sidecar_files",
    "is_commit_in_branch",
    "list_worktrees",
    "modified_files",
    "parse_commit_log",
    "parse_status_counts",
    "parse_worktree_list",
    "remote_tracking_branch",
    "resolve_base_branch",
    "sanitize_branch_name",
    "stage_all_and_commit",
    "uncommitted_changes",
    "validate_branch_name",
    "worktree_commits",
]
