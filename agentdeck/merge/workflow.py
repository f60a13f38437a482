"""
MergeWorkflow - the merge state machine.

Commands and events mutate MergeWorkflowState and return the effects the
controller must run next. At most one workflow is active at a time.

Flow:
    REVIEW_DIFF -> MERGE_METHOD -> PUSH -> CREATE_PR -> WAITING_MERGE
                                \\-> DIRECT_MERGE ----------------------\\
    -> POST_MERGE_CONFIRMATION -> CLEANUP -> DONE
"""

import logging
from functools import partial
from typing import List, Optional

from ..config import MergeConfig
from ..events import (
    DirectMergeDone,
    DivergenceResolved,
    Effect,
    Event,
    LocalCleanupDone,
    MergeCommitDone,
    MergeReady,
    MergeStepComplete,
    PRCheckDue,
    PRChecked,
    PullAfterMergeDone,
    RemoteBranchDeleted,
    after,
)
from ..models import Worktree
from .operations import MergeOperations, summarize_git_error
from .state import (
    PR_STEPS,
    CleanupResults,
    MergeMethod,
    MergeStep,
    MergeWorkflowState,
    StepStatus,
)

logger = logging.getLogger(__name__)

# Steps that finish asynchronously and must not be skipped by advance()
_ASYNC_STEPS = (
    MergeStep.REVIEW_DIFF,
    MergeStep.PUSH,
    MergeStep.CREATE_PR,
    MergeStep.WAITING_MERGE,
    MergeStep.DIRECT_MERGE,
    MergeStep.CLEANUP,
)


class MergeWorkflow:
    """
    Drives a single worktree through the merge steps.

    Example:
        workflow = MergeWorkflow(ops)
        effects = workflow.begin(worktree)
        # run effects; feed resulting events back through handle()
    """

    def __init__(self, ops: MergeOperations, config: Optional[MergeConfig] = None):
        self.ops = ops
        self.config = config or ops.config
        self.state: Optional[MergeWorkflowState] = None
        self._pending: Optional[Worktree] = None
        self._check_generation = 0

    @property
    def active(self) -> bool:
        """True while a merge is in progress; a finished merge keeps its state for display."""
        return self.state is not None and not self.state.is_done

    def _owns(self, worktree_name: str) -> bool:
        return self.state is not None and self.state.worktree.name == worktree_name

    # ------------------------------------------------------------------
    # Starting
    # ------------------------------------------------------------------

    def begin(self, wt: Worktree) -> List[Effect]:
        """Check preconditions; the workflow starts when MergeReady arrives."""
        self._pending = wt
        return [partial(self.ops.prepare, wt)]

    def commit_for_merge(self, wt: Worktree, message: str) -> List[Effect]:
        """Commit everything in the worktree, then retry begin()."""
        self._pending = wt
        return [partial(self.ops.commit_all, wt, message)]

    def start(self, wt: Worktree, base_branch: str, current_branch: str = "") -> List[Effect]:
        self._pending = None
        self._check_generation += 1
        self.state = MergeWorkflowState(worktree=wt, base_branch=base_branch, current_branch=current_branch)
        self.state.enter(MergeStep.REVIEW_DIFF)
        logger.info(f"Merge started for {wt.name} into {base_branch}")
        return [partial(self.ops.load_diff, wt, base_branch)]

    def cancel(self) -> None:
        if self.state is not None:
            logger.info(f"Merge cancelled for {self.state.worktree.name}")
        self.state = None
        self._pending = None
        self._check_generation += 1

    # ------------------------------------------------------------------
    # User commands
    # ------------------------------------------------------------------

    def advance(self) -> List[Effect]:
        """Leave the current step and start the next one."""
        state = self.state
        if state is None:
            return []

        status = state.status_of(state.step)
        if status == StepStatus.ERROR:
            return []
        if status == StepStatus.RUNNING and state.step in _ASYNC_STEPS:
            return []

        step = state.step
        wt = state.worktree

        if step == MergeStep.REVIEW_DIFF:
            state.set_status(MergeStep.REVIEW_DIFF, StepStatus.DONE)
            state.enter(MergeStep.MERGE_METHOD)
            return []

        if step == MergeStep.MERGE_METHOD:
            state.set_status(MergeStep.MERGE_METHOD, StepStatus.DONE)
            if state.merge_method == MergeMethod.DIRECT:
                state.use_direct_merge = True
                for skipped in PR_STEPS:
                    state.set_status(skipped, StepStatus.SKIPPED)
                state.enter(MergeStep.DIRECT_MERGE)
                return [partial(self.ops.direct_merge, wt, state.base_branch)]
            state.enter(MergeStep.PUSH)
            return [partial(self.ops.push, wt)]

        if step == MergeStep.PUSH:
            state.enter(MergeStep.CREATE_PR)
            return [partial(self.ops.create_pr, wt, state.pr_title, state.pr_body, state.base_branch)]

        if step == MergeStep.CREATE_PR:
            state.enter(MergeStep.WAITING_MERGE)
            return [self._schedule_check(self.config.first_check_delay)]

        if step in (MergeStep.WAITING_MERGE, MergeStep.DIRECT_MERGE):
            state.set_status(step, StepStatus.DONE)
            state.enter(MergeStep.POST_MERGE_CONFIRMATION)
            state.delete_local_worktree = True
            state.delete_local_branch = True
            state.delete_remote_branch = False
            state.pull_after_merge = state.current_branch == state.base_branch
            return []

        if step == MergeStep.POST_MERGE_CONFIRMATION:
            return self.confirm_cleanup()

        return []

    def set_merge_method(self, method: MergeMethod) -> bool:
        """
        Choose PR or direct merge.

        Allowed while choosing the method, or after a PR step failed; in the
        latter case the workflow returns to MERGE_METHOD.

        Returns:
            True if the method was applied
        """
        state = self.state
        if state is None:
            return False

        if state.step == MergeStep.MERGE_METHOD:
            state.merge_method = MergeMethod(method)
            return True

        if state.step in PR_STEPS and state.status_of(state.step) == StepStatus.ERROR:
            state.merge_method = MergeMethod(method)
            state.error = None
            for step in PR_STEPS:
                state.set_status(step, StepStatus.PENDING)
            state.enter(MergeStep.MERGE_METHOD)
            self._check_generation += 1
            return True

        return False

    def set_pr_details(self, title: Optional[str] = None, body: Optional[str] = None) -> None:
        if self.state is None:
            return
        if title is not None:
            self.state.pr_title = title
        if body is not None:
            self.state.pr_body = body

    def set_cleanup_options(
        self,
        delete_local_worktree: Optional[bool] = None,
        delete_local_branch: Optional[bool] = None,
        delete_remote_branch: Optional[bool] = None,
        pull_after_merge: Optional[bool] = None,
    ) -> None:
        state = self.state
        if state is None or state.step != MergeStep.POST_MERGE_CONFIRMATION:
            return
        if delete_local_worktree is not None:
            state.delete_local_worktree = delete_local_worktree
        if delete_local_branch is not None:
            state.delete_local_branch = delete_local_branch
        if delete_remote_branch is not None:
            state.delete_remote_branch = delete_remote_branch
        if pull_after_merge is not None:
            state.pull_after_merge = pull_after_merge

    def confirm_cleanup(self) -> List[Effect]:
        """Fan out the selected cleanup operations."""
        state = self.state
        if state is None or state.step != MergeStep.POST_MERGE_CONFIRMATION:
            return []

        state.set_status(MergeStep.POST_MERGE_CONFIRMATION, StepStatus.DONE)
        wt = state.worktree
        results = CleanupResults(base_branch=state.base_branch)
        state.cleanup_results = results

        effects: List[Effect] = []
        if state.delete_local_worktree or state.delete_local_branch:
            effects.append(partial(self.ops.local_cleanup, wt, state.delete_local_worktree, state.delete_local_branch))
        if state.delete_remote_branch:
            effects.append(partial(self.ops.delete_remote_branch, wt))
        if state.pull_after_merge:
            results.pull_attempted = True
            effects.append(partial(self.ops.pull_after_merge, wt, state.base_branch, state.current_branch))

        if not effects:
            state.set_status(MergeStep.CLEANUP, StepStatus.SKIPPED)
            self._finish()
            return []

        state.enter(MergeStep.CLEANUP)
        state.pending_cleanup_ops = len(effects)
        return effects

    def check_merge_now(self) -> List[Effect]:
        """Force an immediate PR merge check."""
        if self.state is None or self.state.step != MergeStep.WAITING_MERGE:
            return []
        return [self._schedule_check(0)]

    def retry(self) -> List[Effect]:
        """Re-run the current step after an error."""
        state = self.state
        if state is None or state.status_of(state.step) != StepStatus.ERROR:
            return []

        step = state.step
        wt = state.worktree
        state.error = None
        state.enter(step)

        if step == MergeStep.REVIEW_DIFF:
            return [partial(self.ops.load_diff, wt, state.base_branch)]
        if step == MergeStep.PUSH:
            return [partial(self.ops.push, wt)]
        if step == MergeStep.CREATE_PR:
            return [partial(self.ops.create_pr, wt, state.pr_title, state.pr_body, state.base_branch)]
        if step == MergeStep.WAITING_MERGE:
            return [self._schedule_check(0)]
        if step == MergeStep.DIRECT_MERGE:
            return [partial(self.ops.direct_merge, wt, state.base_branch)]
        return []

    def resolve_divergence(self, action: str) -> List[Effect]:
        """Rebase onto or merge the remote base after a diverged pull."""
        state = self.state
        if state is None or state.cleanup_results is None or not state.cleanup_results.branch_diverged:
            return []
        return [partial(self.ops.resolve_divergence, state.worktree, action, state.base_branch)]

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def handle(self, event: Event) -> List[Effect]:
        """Apply an operation result. Results for other worktrees are ignored."""
        if isinstance(event, MergeReady):
            return self._on_ready(event)
        if isinstance(event, MergeCommitDone):
            return self._on_commit(event)

        if not self._owns(getattr(event, "worktree_name", None)):
            return []

        if isinstance(event, MergeStepComplete):
            return self._on_step_complete(event)
        if isinstance(event, PRCheckDue):
            return self._on_check_due(event)
        if isinstance(event, PRChecked):
            return self._on_checked(event)
        if isinstance(event, DirectMergeDone):
            return self._on_direct_merge(event)
        if isinstance(event, LocalCleanupDone):
            return self._on_local_cleanup(event)
        if isinstance(event, RemoteBranchDeleted):
            return self._on_remote_deleted(event)
        if isinstance(event, PullAfterMergeDone):
            return self._on_pull(event)
        if isinstance(event, DivergenceResolved):
            return self._on_divergence_resolved(event)
        return []

    def _on_ready(self, event: MergeReady) -> List[Effect]:
        wt = self._pending
        if wt is None or wt.name != event.worktree_name:
            return []
        if event.error:
            logger.warning(f"Cannot start merge for {wt.name}: {event.error}")
            self._pending = None
            return []
        return self.start(wt, event.base_branch, event.current_branch)

    def _on_commit(self, event: MergeCommitDone) -> List[Effect]:
        wt = self._pending
        if wt is None or wt.name != event.worktree_name:
            return []
        if event.error:
            logger.warning(f"Commit before merge failed in {wt.name}: {event.error}")
            self._pending = None
            return []
        return self.begin(wt)

    def _on_step_complete(self, event: MergeStepComplete) -> List[Effect]:
        state = self.state
        step = MergeStep(event.step)
        if step != state.step:
            return []

        if event.error:
            logger.warning(f"Merge step {step.display_name} failed: {event.error}")
            state.fail(step, event.error)
            return []

        if step == MergeStep.REVIEW_DIFF:
            state.diff_summary = event.diff_summary
            state.commits = list(event.commits)
            state.set_status(step, StepStatus.DONE)
            return []

        if step == MergeStep.PUSH:
            state.set_status(step, StepStatus.DONE)
            return self.advance()

        if step == MergeStep.CREATE_PR:
            state.pr_url = event.pr_url
            state.existing_pr = event.existing_pr
            self.ops.record_pr_url(state.worktree, event.pr_url)
            state.set_status(step, StepStatus.DONE)
            return self.advance()

        return []

    def _schedule_check(self, delay: float) -> Effect:
        self._check_generation += 1
        due = PRCheckDue(self.state.worktree.name, self._check_generation)
        return partial(after, delay, due)

    def _on_check_due(self, event: PRCheckDue) -> List[Effect]:
        if self.state.step != MergeStep.WAITING_MERGE or event.generation != self._check_generation:
            return []
        return [partial(self.ops.check_pr_merged, self.state.worktree, event.generation)]

    def _on_checked(self, event: PRChecked) -> List[Effect]:
        state = self.state
        if state.step != MergeStep.WAITING_MERGE or event.generation != self._check_generation:
            return []

        if event.error:
            logger.warning(f"PR merge check failed: {event.error}")
            return [self._schedule_check(self.config.check_interval)]
        if not event.merged:
            return [self._schedule_check(self.config.check_interval)]

        logger.info(f"PR for {state.worktree.branch} merged")
        state.set_status(MergeStep.WAITING_MERGE, StepStatus.DONE)
        return self.advance()

    def _on_direct_merge(self, event: DirectMergeDone) -> List[Effect]:
        state = self.state
        if state.step != MergeStep.DIRECT_MERGE:
            return []
        if event.error:
            state.fail(MergeStep.DIRECT_MERGE, event.error)
            return []
        state.set_status(MergeStep.DIRECT_MERGE, StepStatus.DONE)
        return self.advance()

    def _on_local_cleanup(self, event: LocalCleanupDone) -> List[Effect]:
        results = self.state.cleanup_results
        if self.state.step != MergeStep.CLEANUP or results is None:
            return []
        results.local_worktree_deleted = event.worktree_deleted
        results.local_branch_deleted = event.branch_deleted
        results.errors.extend(event.errors)
        self.check_cleanup_complete()
        return []

    def _on_remote_deleted(self, event: RemoteBranchDeleted) -> List[Effect]:
        results = self.state.cleanup_results
        if self.state.step != MergeStep.CLEANUP or results is None:
            return []
        if event.error:
            results.errors.append(f"Remote branch: {event.error}")
        else:
            results.remote_branch_deleted = True
        self.check_cleanup_complete()
        return []

    def _on_pull(self, event: PullAfterMergeDone) -> List[Effect]:
        results = self.state.cleanup_results
        if self.state.step != MergeStep.CLEANUP or results is None:
            return []
        if event.success:
            results.pull_success = True
        else:
            results.pull_error = event.error
            results.pull_error_summary = event.summary
            results.pull_error_full = event.error
            results.pull_error_category = event.category
            results.branch_diverged = event.diverged
        self.check_cleanup_complete()
        return []

    def _on_divergence_resolved(self, event: DivergenceResolved) -> List[Effect]:
        results = self.state.cleanup_results
        if results is None:
            return []
        if event.error:
            summary = event.summary or summarize_git_error(event.error)[0]
            results.pull_error = event.error
            results.pull_error_summary = summary
            results.pull_error_full = event.error
            results.pull_error_category = event.category
            return []
        logger.info(f"Resolved divergence on {results.base_branch} via {event.action}")
        results.pull_success = True
        results.pull_error = ""
        results.pull_error_summary = ""
        results.pull_error_full = ""
        results.pull_error_category = ""
        results.branch_diverged = False
        return []

    def check_cleanup_complete(self) -> None:
        """Count down one finished cleanup op; finish the workflow at zero."""
        state = self.state
        if state is None or state.step != MergeStep.CLEANUP:
            return
        state.pending_cleanup_ops -= 1
        if state.pending_cleanup_ops <= 0:
            state.set_status(MergeStep.CLEANUP, StepStatus.DONE)
            self._finish()

    def _finish(self) -> None:
        self.state.enter(MergeStep.DONE)
        self.state.set_status(MergeStep.DONE, StepStatus.DONE)
        logger.info(f"Merge of {self.state.worktree.name} complete")
