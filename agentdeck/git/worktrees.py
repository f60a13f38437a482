"""
Worktree discovery and git queries used by refresh, conflicts and merge.

All functions are coroutines built on ``runner.run_git``.
"""

import asyncio
import logging
import os
import re
import unicodedata
from pathlib import Path
from typing import List, Optional, Set, Tuple

from .runner import PathLike, git, run_git
from .sidecar import (
    SIDECAR_FILES,
    load_sidecars,
    save_agent_type,
    save_base_branch,
    save_task_link,
)
from ..error_handling import CommandFailure
from ..models import AgentStatus, AgentType, CommitStatus, UncommittedChanges, Worktree

logger = logging.getLogger(__name__)

DETACHED = "(detached)"
FALLBACK_BASE_BRANCHES = ("main", "master")
DEFAULT_BASE_BRANCH = "main"
ANCESTRY_TIMEOUT = 5.0

_INVALID_BRANCH_CHARS = re.compile(r"[ ~:?*\[\\^]")


# ============================================================================
# Worktree list
# ============================================================================

def parse_worktree_list(output: str, main_dir: str) -> List[Worktree]:
    """
    Parse ``git worktree list --porcelain`` output.

    The main worktree (main_dir) is excluded.
    """
    worktrees: List[Worktree] = []
    current: Optional[Worktree] = None
    main_dir = os.path.realpath(main_dir)

    for line in output.split("\n"):
        if line.startswith("worktree "):
            if current is not None:
                worktrees.append(current)
            path = line[len("worktree "):]
            if os.path.realpath(path) == main_dir:
                current = None
                continue
            current = Worktree(name=os.path.basename(path), path=path, status=AgentStatus.PAUSED)
        elif current is not None:
            if line.startswith("branch "):
                current.branch = line[len("branch "):].removeprefix("refs/heads/")
            elif line == "detached":
                current.branch = DETACHED

    if current is not None:
        worktrees.append(current)
    return worktrees


async def list_worktrees(main_dir: PathLike) -> List[Worktree]:
    """List linked worktrees with their sidecar metadata loaded."""
    output = await git("worktree", "list", "--porcelain", cwd=main_dir, label="git worktree list")
    worktrees = parse_worktree_list(output, str(main_dir))
    for wt in worktrees:
        load_sidecars(wt)
    return worktrees


async def create_worktree(
    main_dir: PathLike,
    name: str,
    base_branch: str = "",
    task_id: str = "",
    agent_type: AgentType = AgentType.NONE,
) -> Worktree:
    """
    Create a sibling worktree on a new branch named after it.

    Raises:
        ValueError: If name is not a valid branch name
        CommandFailure: If git worktree add fails
    """
    valid, errors = validate_branch_name(name)
    if not valid:
        raise ValueError(f"Invalid branch name '{name}': {', '.join(errors)}")

    main_dir = Path(main_dir)
    path = main_dir.parent / name
    await exclude_sidecar_files(main_dir)
    await git("worktree", "add", "-b", name, str(path), base_branch or "HEAD",
              cwd=main_dir, label="git worktree add")

    actual_base = base_branch
    if not actual_base:
        actual_base = await current_branch(main_dir)

    wt = Worktree(
        name=name,
        path=str(path),
        branch=name,
        base_branch=actual_base,
        task_id=task_id,
        chosen_agent=agent_type,
    )
    save_base_branch(str(path), actual_base)
    save_agent_type(str(path), agent_type)
    if task_id:
        save_task_link(str(path), task_id)

    logger.info(f"Created worktree {name} at {path} from {actual_base}")
    return wt


async def exclude_sidecar_files(main_dir: PathLike) -> None:
    """
    Add the metadata file names to the repository's shared info/exclude.

    Linked worktrees read the common exclude file, so status, ``add -A`` and
    conflict detection never see the metadata files.
    """
    common = (await git("rev-parse", "--git-common-dir", cwd=main_dir)).strip()
    exclude = Path(common)
    if not exclude.is_absolute():
        exclude = Path(main_dir) / exclude
    exclude = exclude / "info" / "exclude"

    existing = exclude.read_text().split("\n") if exclude.exists() else []
    missing = [name for name in SIDECAR_FILES if name not in existing]
    if not missing:
        return

    exclude.parent.mkdir(parents=True, exist_ok=True)
    with open(exclude, "a") as f:
        if existing and existing[-1] != "":
            f.write("\n")
        f.write("\n".join(missing) + "\n")


async def delete_worktree(main_dir: PathLike, path: str) -> None:
    """Remove a worktree, forcing removal if the plain remove fails."""
    code, _, _ = await run_git("worktree", "remove", path, cwd=main_dir)
    if code == 0:
        return
    await git("worktree", "remove", "--force", path, cwd=main_dir, label="git worktree remove")


async def delete_branch(main_dir: PathLike, branch: str) -> None:
    """Delete a local branch: safe delete first, force delete on failure."""
    code, _, _ = await run_git("branch", "-d", branch, cwd=main_dir)
    if code == 0:
        return
    await git("branch", "-D", branch, cwd=main_dir, label="delete branch")


# ============================================================================
# Branch queries
# ============================================================================

async def current_branch(workdir: PathLike) -> str:
    output = await git("rev-parse", "--abbrev-ref", "HEAD", cwd=workdir)
    return output.strip()


async def detect_default_branch(workdir: PathLike, fallback: str = DEFAULT_BASE_BRANCH) -> str:
    """Remote HEAD, then the first existing common name, then fallback."""
    code, stdout, _ = await run_git("symbolic-ref", "refs/remotes/origin/HEAD", cwd=workdir)
    if code == 0:
        ref = stdout.strip()
        if ref.startswith("refs/remotes/origin/"):
            return ref[len("refs/remotes/origin/"):]

    for branch in FALLBACK_BASE_BRANCHES:
        code, _, _ = await run_git("rev-parse", "--verify", branch, cwd=workdir)
        if code == 0:
            return branch

    return fallback


async def resolve_base_branch(wt: Worktree, fallback: str = DEFAULT_BASE_BRANCH) -> str:
    if wt.base_branch:
        return wt.base_branch
    return await detect_default_branch(wt.path, fallback)


async def diff_stat_from_base(workdir: PathLike, base_branch: str) -> str:
    """``git diff --stat`` from the merge-base with base_branch to HEAD."""
    code, stdout, _ = await run_git("merge-base", base_branch, "HEAD", cwd=workdir)
    merge_base = stdout.strip()
    if code == 0 and len(merge_base) >= 40:
        range_spec = f"{merge_base[:40]}..HEAD"
    else:
        range_spec = f"{base_branch}..HEAD"

    output = await git("diff", "--stat", range_spec, cwd=workdir, label="git diff")
    return output.strip()


async def is_commit_in_branch(
    workdir: PathLike,
    commit: str,
    branch: str,
    timeout: float = ANCESTRY_TIMEOUT,
) -> bool:
    """
    Check commit reachability with a hard timeout.

    Returns False for empty inputs, unknown refs, non-ancestors and timeouts.
    """
    if not commit or not branch or not workdir:
        return False
    try:
        code, _, _ = await run_git("merge-base", "--is-ancestor", commit, branch, cwd=workdir, timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"Ancestry check {commit} in {branch} timed out")
        return False
    except CommandFailure:
        return False
    return code == 0


async def remote_tracking_branch(workdir: PathLike) -> str:
    """Upstream of HEAD (e.g. "origin/feat"), or "" when none is set."""
    code, stdout, _ = await run_git("rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{upstream}", cwd=workdir)
    return stdout.strip() if code == 0 else ""


def parse_commit_log(output: str) -> List[Tuple[str, str]]:
    """Split ``git log --format=%h|%s`` output into (hash, subject) pairs."""
    commits = []
    for line in output.split("\n"):
        hash_, sep, subject = line.partition("|")
        if sep and hash_.strip():
            commits.append((hash_.strip(), subject))
    return commits


async def _log_since(workdir: PathLike, base_ref: str) -> Optional[str]:
    code, stdout, _ = await run_git("log", f"{base_ref}..HEAD", "--format=%h|%s", cwd=workdir)
    return stdout if code == 0 else None


async def _first_log(workdir: PathLike, base_branch: str) -> Optional[str]:
    for ref in (base_branch, f"origin/{base_branch}"):
        output = await _log_since(workdir, ref)
        if output is not None:
            return output
    return None


async def worktree_commits(
    workdir: PathLike,
    base_branch: str = "",
    fallback: str = DEFAULT_BASE_BRANCH,
    timeout: float = ANCESTRY_TIMEOUT,
) -> List[CommitStatus]:
    """
    Commits on HEAD that are not on the base branch.

    The base is tried locally, then on origin, then re-detected in case the
    recorded base is stale. Each commit is marked pushed when the upstream
    branch contains it and merged when the base branch does.

    Returns:
        Newest first; empty when no base ref can be resolved
    """
    if not base_branch:
        base_branch = await detect_default_branch(workdir, fallback)

    output = await _first_log(workdir, base_branch)
    if output is None:
        detected = await detect_default_branch(workdir, fallback)
        if detected != base_branch:
            output = await _first_log(workdir, detected)
            base_branch = detected
    if output is None:
        return []

    upstream = await remote_tracking_branch(workdir)
    commits = []
    for hash_, subject in parse_commit_log(output):
        pushed = bool(upstream) and await is_commit_in_branch(workdir, hash_, upstream, timeout)
        merged = await is_commit_in_branch(workdir, hash_, base_branch, timeout)
        commits.append(CommitStatus(hash_, subject, pushed=pushed, merged=merged))
    return commits


# ============================================================================
# Working tree state
# ============================================================================

def parse_status_counts(porcelain: str) -> UncommittedChanges:
    """Count staged, modified and untracked entries in ``git status --porcelain``."""
    counts = UncommittedChanges()
    for line in porcelain.split("\n"):
        if len(line) < 2:
            continue
        index, worktree = line[0], line[1]
        if index == "?" and worktree == "?":
            counts.untracked += 1
            continue
        if index not in (" ", "!"):
            counts.staged += 1
        if worktree not in (" ", "!"):
            counts.modified += 1
    return counts


async def uncommitted_changes(workdir: PathLike) -> UncommittedChanges:
    output = await git("status", "--porcelain", cwd=workdir, label="git status")
    return parse_status_counts(output)


async def stage_all_and_commit(workdir: PathLike, message: str) -> str:
    """Stage everything and commit; returns the new commit hash."""
    await git("add", "-A", cwd=workdir, label="stage")
    await git("commit", "-m", message, cwd=workdir, label="commit")
    output = await git("rev-parse", "HEAD", cwd=workdir)
    return output.strip()


async def modified_files(workdir: PathLike) -> Set[str]:
    """Staged, unstaged and untracked paths relative to the worktree root."""
    code, stdout, _ = await run_git("diff", "--name-only", "HEAD", cwd=workdir)
    if code != 0:
        # No HEAD yet (fresh repository)
        code, stdout, _ = await run_git("diff", "--name-only", cwd=workdir)
    files = {line.strip() for line in stdout.split("\n") if line.strip()} if code == 0 else set()

    code, stdout, _ = await run_git("ls-files", "--others", "--exclude-standard", cwd=workdir)
    if code == 0:
        files.update(line.strip() for line in stdout.split("\n") if line.strip())
    return files


# ============================================================================
# Branch names
# ============================================================================

def validate_branch_name(name: str) -> tuple[bool, list[str]]:
    """
    Check a name against git's ref-format rules.

    Returns:
        Tuple of (is_valid, errors)
    """
    errors = []
    if not name:
        return False, ["branch name cannot be empty"]

    if name.startswith("."):
        errors.append("cannot start with '.'")
    if name.startswith("-"):
        errors.append("cannot start with '-'")
    if name.endswith("/"):
        errors.append("cannot end with '/'")
    if name.endswith(".lock"):
        errors.append("cannot end with '.lock'")
    if ".." in name:
        errors.append("cannot contain '..'")
    if "//" in name:
        errors.append("cannot contain '//'")
    if "/." in name:
        errors.append("cannot contain '/.'")
    if name == "@":
        errors.append("cannot be exactly '@'")
    if "@{" in name:
        errors.append("cannot contain '@{'")
    for i, ch in enumerate(name):
        if ord(ch) < 32 or ord(ch) == 127:
            errors.append(f"cannot contain control character at position {i}")
            break
    if _INVALID_BRANCH_CHARS.search(name):
        errors.append("cannot contain space, ~, :, ?, *, [, \\, or ^")

    return len(errors) == 0, errors


def sanitize_branch_name(name: str) -> str:
    """Transform arbitrary text into a name that passes validate_branch_name."""
    if not name:
        return ""

    name = name.replace(" ", "-").replace("_", "-")
    name = "".join(ch for ch in name if ord(ch) >= 32 and ord(ch) != 127
                   and unicodedata.category(ch) != "Cc")
    name = _INVALID_BRANCH_CHARS.sub("-", name)

    while name.endswith(".lock"):
        name = name[: -len(".lock")]
    while ".." in name:
        name = name.replace("..", ".")
    while "/." in name:
        name = name.replace("/.", "/")
    while "//" in name:
        name = name.replace("//", "/")
    name = name.replace("@{", "")
    if name == "@":
        name = "at"

    name = name.lstrip(".-").rstrip("/")
    while "--" in name:
        name = name.replace("--", "-")
    return name
