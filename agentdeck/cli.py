#!/usr/bin/env python3
"""
agentdeck CLI

Headless commands over the orchestration core: inspect worktrees and agents,
report conflicts, manage shells, create worktrees and drive merges.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import ConfigManager
from .conflict import detect_conflicts
from .controller import Controller
from .error_handling import CommandFailure, ConfigurationError, TmuxError
from .events import (
    AgentStarted,
    CommandFailed,
    CommitRequired,
    Event,
    MergeCommitDone,
    MergeReady,
    WorktreeCreated,
)
from .git import list_worktrees
from .logging_setup import configure_logging
from .merge import MergeMethod, MergeStep, StepStatus
from .models import AgentStatus, AgentType
from .sessions import SessionRegistry
from .state import DeckState
from .status import StatusDetector, detect_status

console = Console()

STATUS_STYLES = {
    AgentStatus.ACTIVE: "green",
    AgentStatus.THINKING: "green",
    AgentStatus.WAITING: "yellow",
    AgentStatus.DONE: "cyan",
    AgentStatus.ERROR: "red",
    AgentStatus.PAUSED: "dim",
}


def _load(args) -> ConfigManager:
    manager = ConfigManager(
        project_dir=Path(args.dir),
        config_file=Path(args.config) if args.config else None,
    )
    if args.log_level:
        manager.update("logging", "level", args.log_level.upper())
    configure_logging(manager.config.logging)
    return manager


def _styled(status: AgentStatus) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status.value}[/{style}]"


# ============================================================================
# Commands
# ============================================================================

async def _collect_status(project_dir: Path, manager: ConfigManager) -> list:
    config = manager.config
    registry = SessionRegistry(project_dir, config=config.tmux, agent_config=config.agent)
    detector = StatusDetector(config.transcripts)

    worktrees = await list_worktrees(project_dir)
    sessions = await registry.reconnect_agents([wt.name for wt in worktrees])

    rows = []
    for wt in worktrees:
        session = sessions.get(wt.name, "")
        status = AgentStatus.PAUSED
        if session:
            try:
                content = await registry.capture(session)
            except TmuxError:
                rows.append((wt, session, AgentStatus.ERROR))
                continue
            status = detect_status(content)
            if status == AgentStatus.ACTIVE and detector.supports(wt.chosen_agent):
                transcript = await asyncio.to_thread(detector.detect, wt.chosen_agent, wt.path)
                status = transcript or status
        rows.append((wt, session, status))
    return rows


def cmd_status(args):
    """Show worktrees with their agents and observed status."""
    manager = _load(args)
    project_dir = Path(args.dir).resolve()

    try:
        rows = asyncio.run(_collect_status(project_dir, manager))
    except CommandFailure as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    if args.json:
        print(json.dumps([
            {
                "name": wt.name,
                "branch": wt.branch,
                "agent": wt.chosen_agent.value,
                "session": session,
                "status": status.value,
                "pr_url": wt.pr_url,
            }
            for wt, session, status in rows
        ], indent=2))
        return

    if not rows:
        console.print("[yellow]No worktrees found[/yellow]")
        return

    table = Table(title=f"Worktrees in {project_dir.name}")
    table.add_column("Name")
    table.add_column("Branch")
    table.add_column("Agent")
    table.add_column("Status")
    table.add_column("PR")
    for wt, session, status in rows:
        agent = wt.chosen_agent.value if wt.chosen_agent != AgentType.NONE else "-"
        table.add_row(wt.name, wt.branch, agent, _styled(status), wt.pr_url or "")
    console.print(table)


def cmd_conflicts(args):
    """Report files modified in more than one worktree."""
    _load(args)
    project_dir = Path(args.dir).resolve()

    async def collect():
        return await detect_conflicts(await list_worktrees(project_dir))

    try:
        conflicts = asyncio.run(collect())
    except CommandFailure as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    if args.json:
        print(json.dumps([{"worktrees": c.worktrees, "files": c.files} for c in conflicts], indent=2))
        return

    if not conflicts:
        console.print("[green]No conflicts[/green]")
        return

    table = Table(title="Conflicts")
    table.add_column("Worktrees")
    table.add_column("Files")
    for c in conflicts:
        table.add_row(" <-> ".join(c.worktrees), "\n".join(c.files))
    console.print(table)
    sys.exit(2)


def cmd_detect(args):
    """Classify an agent from its transcript."""
    manager = _load(args)
    agent_type = AgentType.parse(args.agent)
    detector = StatusDetector(manager.config.transcripts)

    if not detector.supports(agent_type):
        console.print(f"[yellow]No transcript support for {args.agent}[/yellow]")
        sys.exit(1)

    status = detector.detect(agent_type, str(Path(args.path).resolve()))
    if status is None:
        console.print("undetermined")
        sys.exit(1)
    console.print(_styled(status))


def cmd_shells(args):
    """List this project's shell sessions."""
    manager = _load(args)
    project_dir = Path(args.dir).resolve()
    registry = SessionRegistry(project_dir, config=manager.config.tmux)
    custom = DeckState().get(project_dir).shell_display_names

    shells = asyncio.run(registry.discover_shells())
    if not shells:
        console.print("[yellow]No shell sessions[/yellow]")
        return

    table = Table(title="Shells")
    table.add_column("Name")
    table.add_column("Session")
    for shell in shells:
        table.add_row(custom.get(shell.tmux_name, shell.display_name), shell.tmux_name)
    console.print(table)


def cmd_create(args):
    """Create a worktree and optionally start an agent in it."""
    manager = _load(args)
    project_dir = Path(args.dir).resolve()
    controller = Controller(project_dir, manager.config, state_store=DeckState())
    agent_type = AgentType.parse(args.agent)

    def on_event(event: Event) -> None:
        if isinstance(event, WorktreeCreated):
            if event.error:
                console.print(f"[red]Error: {event.error}[/red]")
                controller.stop()
                return
            console.print(f"Created [bold]{event.worktree.name}[/bold] at {event.worktree.path}")
            if agent_type == AgentType.NONE:
                controller.stop()
        elif isinstance(event, AgentStarted) and event.worktree_name == args.name:
            if event.error:
                console.print(f"[red]Agent failed to start: {event.error}[/red]")
            else:
                console.print(f"Started {event.agent_type.value} in session {event.session_name}")
            controller.stop()

    async def run():
        controller.subscribe(on_event)
        controller.create_worktree(args.name, args.base or "", args.task or "", agent_type, args.prompt or "")
        await controller.run()

    asyncio.run(run())


class MergeDriver:
    """Walks a merge through its steps without user interaction."""

    def __init__(self, controller: Controller, args):
        self.controller = controller
        self.args = args
        self.exit_code = 0
        self._reported = set()

    def _finish(self, code: int) -> None:
        self.exit_code = code
        self.controller.stop()

    def on_event(self, event: Event) -> None:
        if isinstance(event, CommitRequired):
            c = event.changes
            if self.args.commit:
                console.print(f"Committing {c.staged + c.modified + c.untracked} change(s)")
                self.controller.commit_for_merge(self.args.worktree, self.args.commit)
                return
            console.print(
                f"[yellow]Uncommitted changes: {c.staged} staged, {c.modified} modified, "
                f"{c.untracked} untracked. Use --commit MESSAGE.[/yellow]"
            )
            self._finish(1)
            return
        if isinstance(event, (MergeReady, MergeCommitDone)) and event.error:
            console.print(f"[red]Error: {event.error}[/red]")
            self._finish(1)
            return
        if isinstance(event, CommandFailed):
            console.print(f"[red]{event.operation}: {event.error}[/red]")
            self._finish(1)
            return

        # Steps entered synchronously produce no event, so keep driving until
        # the workflow stops moving.
        while self._drive():
            pass

    def _drive(self) -> bool:
        workflow = self.controller.merge
        state = workflow.state
        if state is None or not self.controller.running:
            return False

        before = (state.step, state.status_of(state.step))
        status = state.status_of(state.step)
        if status == StepStatus.ERROR:
            console.print(f"[red]{state.step.display_name} failed: {state.error}[/red]")
            self._finish(1)
            return False

        if state.step == MergeStep.REVIEW_DIFF and status == StepStatus.DONE:
            console.print(state.diff_summary or "[dim]No changes[/dim]")
            for commit in state.commits:
                marks = ("pushed" if commit.pushed else "local") + (", merged" if commit.merged else "")
                console.print(f"  {commit.hash} {escape(commit.subject)} [dim]({marks})[/dim]")
            self.controller.advance_merge()
        elif state.step == MergeStep.MERGE_METHOD:
            method = MergeMethod.DIRECT if self.args.direct else MergeMethod.PULL_REQUEST
            self.controller.set_merge_method(method)
            workflow.set_pr_details(self.args.title, self.args.body)
            self.controller.advance_merge()
        elif state.step == MergeStep.WAITING_MERGE and state.pr_url not in self._reported:
            self._reported.add(state.pr_url)
            console.print(f"Waiting for {state.pr_url} to be merged...")
        elif state.step == MergeStep.POST_MERGE_CONFIRMATION:
            workflow.set_cleanup_options(
                delete_local_worktree=not (self.args.keep_worktree or self.args.no_cleanup),
                delete_local_branch=not (self.args.keep_branch or self.args.no_cleanup),
                delete_remote_branch=self.args.delete_remote,
            )
            self.controller.confirm_cleanup()
        elif state.is_done:
            self._report(state)
            self._finish(0)
            return False
        return (state.step, state.status_of(state.step)) != before

    def _report(self, state) -> None:
        console.print(f"[green]Merged {state.worktree.branch} into {state.base_branch}[/green]")
        results = state.cleanup_results
        if results is None:
            return
        for error in results.errors:
            console.print(f"[yellow]Warning: {error}[/yellow]")
        if results.pull_error:
            console.print(f"[yellow]Pull failed: {results.pull_error_summary}[/yellow]")
            if results.branch_diverged:
                console.print("Run `git pull --rebase` or `git pull` on the base branch to reconcile")


def cmd_merge(args):
    """Merge a worktree via PR or directly, then clean up."""
    manager = _load(args)
    project_dir = Path(args.dir).resolve()
    controller = Controller(project_dir, manager.config)
    driver = MergeDriver(controller, args)

    async def run():
        try:
            worktrees = await list_worktrees(project_dir)
        except CommandFailure as e:
            console.print(f"[red]Error: {e}[/red]")
            return 1
        controller.worktrees = worktrees
        if controller.find_worktree(args.worktree) is None:
            console.print(f"[red]Unknown worktree: {args.worktree}[/red]")
            return 1

        controller.subscribe(driver.on_event)
        controller.start_merge(args.worktree)
        await controller.run()
        return driver.exit_code

    sys.exit(asyncio.run(run()))


def cmd_watch(args):
    """Follow agent status changes until interrupted."""
    manager = _load(args)
    project_dir = Path(args.dir).resolve()
    controller = Controller(project_dir, manager.config, state_store=DeckState())
    last: dict = {}

    def on_event(event: Event) -> None:
        for wt in controller.worktrees:
            status = wt.agent.status if wt.agent else AgentStatus.PAUSED
            if last.get(wt.name) != status:
                last[wt.name] = status
                extra = f" ({wt.agent.waiting_for})" if wt.agent and wt.agent.waiting_for else ""
                console.print(f"{wt.name}: {_styled(status)}{extra}")

    async def run():
        controller.subscribe(on_event)
        controller.refresh()
        controller.restore_selection()
        controller.discover_shells()
        await controller.run()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        console.print("Stopped")


def cmd_config(args):
    """Validate and print the effective configuration."""
    try:
        manager = _load(args)
    except ConfigurationError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    valid, errors = manager.validate()
    if args.show:
        print(json.dumps(manager.config.to_dict(), indent=2))
    if not valid:
        for error in errors:
            console.print(f"[red]- {error}[/red]")
        sys.exit(1)
    console.print("[green]Configuration is valid[/green]")


# ============================================================================
# Entry point
# ============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="agentdeck",
        description="Run coding agents in parallel git worktrees and merge their work",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  agentdeck status
  agentdeck create feature-x --agent claude --prompt "Add login form"
  agentdeck conflicts
  agentdeck merge feature-x --direct
  agentdeck detect codex ../feature-x
  agentdeck watch
        """,
    )
    parser.add_argument("--dir", "-d", default=".", help="Project directory (default: current)")
    parser.add_argument("--config", "-c", help="Configuration file (default: <dir>/.agentdeck.yaml)")
    parser.add_argument("--log-level", help="Override logging level")
    parser.add_argument("--version", "-v", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    status_parser = subparsers.add_parser("status", help="Show worktrees and agent status")
    status_parser.add_argument("--json", action="store_true", help="Output as JSON")
    status_parser.set_defaults(func=cmd_status)

    conflicts_parser = subparsers.add_parser("conflicts", help="Show files modified in several worktrees")
    conflicts_parser.add_argument("--json", action="store_true", help="Output as JSON")
    conflicts_parser.set_defaults(func=cmd_conflicts)

    detect_parser = subparsers.add_parser("detect", help="Detect agent status from its transcript")
    detect_parser.add_argument("agent", help="Agent type (claude, codex, gemini, opencode)")
    detect_parser.add_argument("path", help="Worktree path the agent runs in")
    detect_parser.set_defaults(func=cmd_detect)

    shells_parser = subparsers.add_parser("shells", help="List shell sessions")
    shells_parser.set_defaults(func=cmd_shells)

    create_parser = subparsers.add_parser("create", help="Create a worktree")
    create_parser.add_argument("name", help="Worktree and branch name")
    create_parser.add_argument("--base", "-b", help="Base branch (default: current HEAD)")
    create_parser.add_argument("--agent", "-a", help="Agent to start in the worktree")
    create_parser.add_argument("--prompt", "-p", help="Initial prompt for the agent")
    create_parser.add_argument("--task", "-t", help="Task id to link")
    create_parser.set_defaults(func=cmd_create)

    merge_parser = subparsers.add_parser("merge", help="Merge a worktree's branch")
    merge_parser.add_argument("worktree", help="Worktree name")
    merge_parser.add_argument("--direct", action="store_true", help="Merge locally instead of via PR")
    merge_parser.add_argument("--title", help="PR title (default: branch name)")
    merge_parser.add_argument("--body", help="PR body")
    merge_parser.add_argument("--commit", metavar="MESSAGE", help="Commit uncommitted changes first")
    merge_parser.add_argument("--keep-worktree", action="store_true", help="Do not remove the worktree")
    merge_parser.add_argument("--keep-branch", action="store_true", help="Do not delete the local branch")
    merge_parser.add_argument("--delete-remote", action="store_true", help="Delete the remote branch")
    merge_parser.add_argument("--no-cleanup", action="store_true", help="Keep the worktree and branch")
    merge_parser.set_defaults(func=cmd_merge)

    watch_parser = subparsers.add_parser("watch", help="Follow agent status changes")
    watch_parser.set_defaults(func=cmd_watch)

    config_parser = subparsers.add_parser("config", help="Validate configuration")
    config_parser.add_argument("--show", action="store_true", help="Print the effective configuration")
    config_parser.set_defaults(func=cmd_config)

    return parser


def main(argv: Optional[list] = None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    args.func(args)


if __name__ == "__main__":
    main()
