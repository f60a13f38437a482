"""
Merge workflow state.

One MergeWorkflowState exists per controller while a merge is in progress.
Each step carries exactly one StepStatus.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from ..models import CommitStatus, Worktree


class MergeStep(str, Enum):
    """Steps of the merge workflow, in display order."""
    REVIEW_DIFF = "review_diff"
    MERGE_METHOD = "merge_method"
    PUSH = "push"
    CREATE_PR = "create_pr"
    WAITING_MERGE = "waiting_merge"
    DIRECT_MERGE = "direct_merge"
    POST_MERGE_CONFIRMATION = "post_merge_confirmation"
    CLEANUP = "cleanup"
    DONE = "done"

    @property
    def display_name(self) -> str:
        return STEP_DISPLAY_NAMES[self]


STEP_DISPLAY_NAMES = {
    MergeStep.REVIEW_DIFF: "Review Diff",
    MergeStep.MERGE_METHOD: "Merge Method",
    MergeStep.PUSH: "Push Branch",
    MergeStep.CREATE_PR: "Create PR",
    MergeStep.WAITING_MERGE: "Waiting for Merge",
    MergeStep.DIRECT_MERGE: "Direct Merge",
    MergeStep.POST_MERGE_CONFIRMATION: "Confirm Cleanup",
    MergeStep.CLEANUP: "Cleanup",
    MergeStep.DONE: "Done",
}


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    ERROR = "error"
    SKIPPED = "skipped"


class MergeMethod(str, Enum):
    PULL_REQUEST = "pr"
    DIRECT = "direct"


PR_STEPS = (MergeStep.PUSH, MergeStep.CREATE_PR, MergeStep.WAITING_MERGE)


@dataclass
class CleanupResults:
    """Outcome of the post-merge cleanup fan-out."""
    local_worktree_deleted: bool = False
    local_branch_deleted: bool = False
    remote_branch_deleted: bool = False
    pull_attempted: bool = False
    pull_success: bool = False
    pull_error: str = ""
    pull_error_summary: str = ""
    pull_error_full: str = ""
    pull_error_category: str = ""
    branch_diverged: bool = False
    base_branch: str = ""
    errors: List[str] = field(default_factory=list)

    @property
    def has_warnings(self) -> bool:
        return bool(self.errors) or bool(self.pull_error)


@dataclass
class MergeWorkflowState:
    """Everything the merge workflow knows about one in-flight merge."""
    worktree: Worktree
    base_branch: str
    step: MergeStep = MergeStep.REVIEW_DIFF
    step_status: Dict[MergeStep, StepStatus] = field(
        default_factory=lambda: {step: StepStatus.PENDING for step in MergeStep}
    )
    diff_summary: str = ""
    commits: List[CommitStatus] = field(default_factory=list)
    pr_title: str = ""
    pr_body: str = ""
    pr_url: str = ""
    existing_pr: bool = False
    error: Optional[str] = None
    merge_method: MergeMethod = MergeMethod.PULL_REQUEST
    use_direct_merge: bool = False
    delete_local_worktree: bool = False
    delete_local_branch: bool = False
    delete_remote_branch: bool = False
    pull_after_merge: bool = False
    current_branch: str = ""
    cleanup_results: Optional[CleanupResults] = None
    pending_cleanup_ops: int = 0

    def __post_init__(self):
        if not self.pr_title:
            self.pr_title = self.worktree.branch

    def status_of(self, step: MergeStep) -> StepStatus:
        return self.step_status[step]

    def set_status(self, step: MergeStep, status: StepStatus) -> None:
        self.step_status[step] = status

    def enter(self, step: MergeStep) -> None:
        """Make step current and mark it running."""
        self.step = step
        self.step_status[step] = StepStatus.RUNNING

    def fail(self, step: MergeStep, error: str) -> None:
        self.error = error
        self.step_status[step] = StepStatus.ERROR

    @property
    def is_done(self) -> bool:
        return self.step == MergeStep.DONE
