"""
Merge operations.

Each coroutine performs one git/gh step of the merge workflow and resolves
to exactly one event. Failures are reported in the event, never raised.
"""

import json
import logging
import re
from pathlib import Path
from typing import Callable, Optional

from ..config import MergeConfig
from ..error_handling import AlreadySatisfied, CommandFailure, DivergenceError, TmuxError
from ..events import (
    CommitRequired,
    DirectMergeDone,
    DivergenceResolved,
    Event,
    LocalCleanupDone,
    MergeCommitDone,
    MergeReady,
    MergeStepComplete,
    PRChecked,
    PullAfterMergeDone,
    RemoteBranchDeleted,
)
from ..git import worktrees as gitwt
from ..git.runner import gh, git, run_git
from ..git.sidecar import save_pr_url
from ..models import Worktree
from .state import MergeStep

logger = logging.getLogger(__name__)

DEFAULT_PR_BODY = "Created from worktree manager"

DIVERGENCE_PATTERNS = (
    "cannot fast-forward",
    "not possible to fast-forward",
    "have diverged",
    "diverging",
    "divergent",
)

REMOTE_GONE_MARKERS = (
    "remote ref does not exist",
    "unable to delete",
    "couldn't find remote ref",
)

# Checked in order; first match wins
ERROR_SUMMARIES = (
    (("not possible to fast-forward", "cannot fast-forward", "have diverged"),
     "Local and remote branches have diverged"),
    (("conflict",), "Conflicts detected - resolve manually"),
    (("rebase failed",), "Rebase failed - resolve conflicts manually"),
    (("merge failed",), "Merge failed - resolve conflicts manually"),
    (("unmerged files",), "Unmerged files - resolve conflicts manually"),
    (("your local changes",), "Uncommitted local changes blocking pull"),
    (("could not resolve host",), "Network error - unable to reach remote"),
    (("permission denied",), "Authentication failed"),
    (("not a git repository",), "Git repository not found"),
)

_STRIP_PREFIXES = ("pull: ", "rebase failed: ", "merge failed: ")
_MAX_SUMMARY = 60


# ============================================================================
# Output parsing
# ============================================================================

def parse_existing_pr_url(output: str) -> str:
    """
    Extract the PR URL from gh's "already exists" failure.

    Returns:
        The URL, or "" if output does not describe an existing PR
    """
    marker = "already exists:"
    idx = output.find(marker)
    if idx < 0:
        return ""

    rest = output[idx + len(marker):].strip()
    if not rest.startswith("http"):
        return ""

    cut = rest.find(": exit")
    if cut >= 0:
        rest = rest[:cut]
    else:
        match = re.search(r"\s", rest)
        if match:
            rest = rest[:match.start()]
    return rest.strip()


def is_divergence(output: str) -> bool:
    lower = output.lower()
    return any(p in lower for p in DIVERGENCE_PATTERNS)


def summarize_git_error(output: str) -> tuple[str, str, bool]:
    """
    Reduce git output to a one-line summary.

    Returns:
        Tuple of (summary, full_output, is_diverged)
    """
    full = output.strip()
    lower = full.lower()
    diverged = classify_git_error(full) == "divergence"

    for patterns, summary in ERROR_SUMMARIES:
        if any(p in lower for p in patterns):
            return summary, full, diverged

    first = full.split("\n", 1)[0].strip()
    for prefix in _STRIP_PREFIXES:
        if first.startswith(prefix):
            first = first[len(prefix):]
    if len(first) > _MAX_SUMMARY:
        first = first[:_MAX_SUMMARY - 3] + "..."
    return first, full, diverged


def classify_git_error(output: str) -> str:
    """Category of a git failure: divergence, conflict, auth, network or generic."""
    lower = output.lower()
    if is_divergence(lower):
        return "divergence"
    if "conflict" in lower or "unmerged files" in lower:
        return "conflict"
    if "permission denied" in lower or "authentication" in lower:
        return "auth"
    if "could not resolve host" in lower or "unable to access" in lower:
        return "network"
    return "generic"


def _error_text(e: CommandFailure) -> str:
    return e.output or str(e)


# ============================================================================
# Operations
# ============================================================================

class MergeOperations:
    """
    git/gh side of the merge workflow for one repository.

    Args:
        project_dir: Main worktree of the repository
        config: Merge configuration
        kill_session: Coroutine function stopping a worktree's agent session
    """

    def __init__(
        self,
        project_dir: Path,
        config: Optional[MergeConfig] = None,
        kill_session: Optional[Callable] = None,
    ):
        self.project_dir = Path(project_dir)
        self.config = config or MergeConfig()
        self.kill_session = kill_session

    @property
    def remote(self) -> str:
        return self.config.remote

    # ------------------------------------------------------------------
    # Preconditions
    # ------------------------------------------------------------------

    async def prepare(self, wt: Worktree) -> Event:
        """Gate the merge on a clean worktree and resolve its base branch."""
        try:
            changes = await gitwt.uncommitted_changes(wt.path)
            if changes.has_changes:
                return CommitRequired(wt.name, changes)
            base = await gitwt.resolve_base_branch(wt, self.config.default_base)
            current = await gitwt.current_branch(self.project_dir)
        except CommandFailure as e:
            return MergeReady(wt.name, "", error=str(e))
        return MergeReady(wt.name, base, current)

    async def commit_all(self, wt: Worktree, message: str) -> Event:
        try:
            commit = await gitwt.stage_all_and_commit(wt.path, message)
        except CommandFailure as e:
            return MergeCommitDone(wt.name, error=str(e))
        logger.info(f"Committed {commit[:8]} in {wt.name} before merge")
        return MergeCommitDone(wt.name, commit=commit)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def load_diff(self, wt: Worktree, base_branch: str) -> Event:
        """Diff stat plus the branch's own commits, marked pushed or merged."""
        step = MergeStep.REVIEW_DIFF.value
        try:
            summary = await gitwt.diff_stat_from_base(wt.path, base_branch)
        except CommandFailure as e:
            return MergeStepComplete(wt.name, step, error=str(e))
        commits = await gitwt.worktree_commits(
            wt.path, base_branch, self.config.default_base, self.config.ancestry_timeout
        )
        return MergeStepComplete(wt.name, step, diff_summary=summary, commits=tuple(commits))

    async def push(self, wt: Worktree) -> Event:
        try:
            await git("push", "-u", self.remote, wt.branch, cwd=wt.path, label="push")
        except CommandFailure as e:
            return MergeStepComplete(wt.name, MergeStep.PUSH.value, error=str(e))
        logger.info(f"Pushed {wt.branch} to {self.remote}")
        return MergeStepComplete(wt.name, MergeStep.PUSH.value)

    async def _create_pr(self, wt: Worktree, title: str, body: str, base_branch: str) -> str:
        try:
            output = await gh("pr", "create", "--title", title, "--body", body, "--base", base_branch, cwd=wt.path)
        except CommandFailure as e:
            url = parse_existing_pr_url(e.output)
            if url:
                raise AlreadySatisfied(f"PR already exists for {wt.branch}", value=url) from e
            raise
        return output.strip()

    async def create_pr(self, wt: Worktree, title: str, body: str, base_branch: str) -> Event:
        """Open a PR, treating an already existing PR as success."""
        step = MergeStep.CREATE_PR.value
        try:
            url = await self._create_pr(wt, title or wt.branch, body or DEFAULT_PR_BODY, base_branch)
        except AlreadySatisfied as e:
            logger.info(f"Using existing PR {e.value}")
            return MergeStepComplete(wt.name, step, pr_url=e.value, existing_pr=True)
        except CommandFailure as e:
            return MergeStepComplete(wt.name, step, error=str(e))
        logger.info(f"Created PR {url}")
        return MergeStepComplete(wt.name, step, pr_url=url)

    async def check_pr_merged(self, wt: Worktree, generation: int = 0) -> Event:
        """Ask gh whether the worktree's PR has been merged."""
        try:
            output = await gh("pr", "view", "--json", "state,mergedAt", cwd=wt.path)
            data = json.loads(output)
        except CommandFailure as e:
            return PRChecked(wt.name, generation=generation, error=str(e))
        except json.JSONDecodeError as e:
            return PRChecked(wt.name, generation=generation, error=f"gh pr view: invalid JSON: {e}")

        merged = bool(data.get("mergedAt")) or data.get("state") == "MERGED"
        return PRChecked(wt.name, merged=merged, generation=generation)

    async def direct_merge(self, wt: Worktree, base_branch: str) -> Event:
        """Merge the branch into base in the main repo and push base."""
        remote = self.remote
        sequence = (
            (f"fetch {remote}", ("fetch", remote, base_branch)),
            (f"checkout {base_branch}", ("checkout", base_branch)),
            (f"pull {remote} {base_branch}", ("pull", remote, base_branch)),
            (f"merge {wt.branch}", ("merge", wt.branch, "--no-ff", "-m", f"Merge branch '{wt.branch}'")),
            (f"push {remote} {base_branch}", ("push", remote, base_branch)),
        )
        for label, args in sequence:
            try:
                await git(*args, cwd=self.project_dir, label=label)
            except CommandFailure as e:
                logger.warning(f"Direct merge of {wt.branch} stopped at {label}")
                return DirectMergeDone(wt.name, error=str(e))

        logger.info(f"Merged {wt.branch} into {base_branch}")
        return DirectMergeDone(wt.name)

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    async def local_cleanup(self, wt: Worktree, delete_worktree: bool, delete_branch: bool) -> Event:
        """Stop the agent, remove the worktree, then delete the branch."""
        errors = []
        worktree_deleted = False
        branch_deleted = False

        if self.kill_session is not None:
            try:
                await self.kill_session(wt)
            except TmuxError as e:
                logger.debug(f"Stopping session for {wt.name} failed: {e}")

        if delete_worktree:
            try:
                await gitwt.delete_worktree(self.project_dir, wt.path)
                worktree_deleted = True
            except CommandFailure as e:
                errors.append(f"Worktree: {_error_text(e)}")

        if delete_branch and wt.branch and wt.branch != gitwt.DETACHED:
            try:
                await gitwt.delete_branch(self.project_dir, wt.branch)
                branch_deleted = True
            except CommandFailure as e:
                errors.append(f"Branch: {_error_text(e)}")

        return LocalCleanupDone(wt.name, worktree_deleted, branch_deleted, tuple(errors))

    async def delete_remote_branch(self, wt: Worktree) -> Event:
        code, stdout, stderr = await run_git("push", self.remote, "--delete", wt.branch, cwd=self.project_dir)
        if code != 0:
            output = (stderr + stdout).strip()
            if not any(marker in output.lower() for marker in REMOTE_GONE_MARKERS):
                return RemoteBranchDeleted(wt.name, error=output or f"exit status {code}")
        return RemoteBranchDeleted(wt.name)

    async def _pull(self, base_branch: str, current_branch: str) -> None:
        try:
            if current_branch == base_branch:
                await git("pull", "--ff-only", self.remote, base_branch, cwd=self.project_dir, label="pull")
            else:
                await git("fetch", self.remote, base_branch, cwd=self.project_dir, label="fetch")
                await git("update-ref", f"refs/heads/{base_branch}", f"{self.remote}/{base_branch}",
                          cwd=self.project_dir, label="update-ref")
        except CommandFailure as e:
            if classify_git_error(e.output) == "divergence":
                raise DivergenceError(e.command, e.returncode, e.output) from e
            raise

    async def pull_after_merge(self, wt: Worktree, base_branch: str, current_branch: str) -> Event:
        """Bring the local base branch up to date with the remote."""
        try:
            await self._pull(base_branch, current_branch)
        except DivergenceError as e:
            summary, full, _ = summarize_git_error(str(e))
            logger.warning(f"{base_branch} diverged from {self.remote}/{base_branch}")
            return PullAfterMergeDone(wt.name, error=full, summary=summary, category="divergence")
        except CommandFailure as e:
            summary, full, _ = summarize_git_error(str(e))
            return PullAfterMergeDone(wt.name, error=full, summary=summary, category=classify_git_error(full))
        return PullAfterMergeDone(wt.name, success=True)

    async def resolve_divergence(self, wt: Worktree, action: str, base_branch: str) -> Event:
        """Reconcile a diverged base branch by rebasing or merging."""
        if action == "rebase":
            args, label = ("pull", "--rebase", self.remote, base_branch), "rebase failed"
        elif action == "merge":
            args, label = ("pull", self.remote, base_branch), "merge failed"
        else:
            return DivergenceResolved(wt.name, action, error=f"unknown action: {action}")

        try:
            await git(*args, cwd=self.project_dir, label=label)
        except CommandFailure as e:
            summary, full, _ = summarize_git_error(str(e))
            return DivergenceResolved(wt.name, action, error=full, summary=summary, category=classify_git_error(full))
        return DivergenceResolved(wt.name, action)

    def record_pr_url(self, wt: Worktree, url: str) -> None:
        wt.pr_url = url
        try:
            save_pr_url(wt.path, url)
        except OSError as e:
            logger.warning(f"Could not save PR URL for {wt.name}: {e}")
