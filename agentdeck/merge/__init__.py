"""
Merge workflow: review, push/PR or direct merge, then confirmable cleanup.

Usage:
    from agentdeck.merge import MergeOperations, MergeWorkflow

    workflow = MergeWorkflow(MergeOperations(project_dir))
    effects = workflow.begin(worktree)
"""

from .operations import (
    DIVERGENCE_PATTERNS,
    MergeOperations,
    classify_git_error,
    parse_existing_pr_url,
    summarize_git_error,
)
from .state import (
    CleanupResults,
    MergeMethod,
    MergeStep,
    MergeWorkflowState,
    StepStatus,
)
from .workflow import MergeWorkflow

__all__ = [
    "DIVERGENCE_PATTERNS",
    "MergeOperations",
    "classify_git_error",
    "parse_existing_pr_url",
    "summarize_git_error",
    "CleanupResults",
    "MergeMethod",
    "MergeStep",
    "MergeWorkflowState",
    "StepStatus",
    "MergeWorkflow",
]
