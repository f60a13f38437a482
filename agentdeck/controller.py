"""
Controller - the single event loop that owns all mutable state.

Commands from the UI spawn effects. Every effect resolves to exactly one
Event on the queue, and run() applies events one at a time, so handlers
never need locks. Results for sessions or worktrees that are no longer
tracked are dropped without touching state.
"""

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional

from .config import DeckConfig
from .conflict import ConflictDetector
from .error_handling import CommandFailure, TmuxError
from .events import (
    AgentOutput,
    AgentStarted,
    AgentStopped,
    AgentsReconnected,
    AttachFinished,
    CommandFailed,
    CommitRequired,
    ConflictsDetected,
    Effect,
    Event,
    KeysSent,
    LocalCleanupDone,
    PollDue,
    PollFailed,
    PollUnchanged,
    RefreshDone,
    ShellCreated,
    ShellKilled,
    ShellOutput,
    ShellSessionDead,
    ShellsDiscovered,
    WorktreeCreated,
    WorktreeDeleted,
)
from .git import worktrees as gitwt
from .git.sidecar import save_agent_type
from .merge import MergeMethod, MergeOperations, MergeWorkflow
from .models import Agent, AgentStatus, AgentType, ShellSession, Worktree
from .output_buffer import OutputBuffer
from .poll import PollScheduler
from .sessions.registry import SessionRegistry
from .state import DeckState
from .status.detector import StatusDetector

logger = logging.getLogger(__name__)

APPROVE_KEY = "y"
REJECT_KEY = "n"

Listener = Callable[[Event], None]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Controller:
    """
    Orchestrates worktrees, agent and shell sessions, polling and merges.

    Example:
        controller = Controller(project_dir, config)
        controller.subscribe(print)
        controller.refresh()
        await controller.run()
    """

    def __init__(
        self,
        project_dir: Path,
        config: Optional[DeckConfig] = None,
        registry: Optional[SessionRegistry] = None,
        detector: Optional[StatusDetector] = None,
        state_store: Optional[DeckState] = None,
        merge_ops: Optional[MergeOperations] = None,
    ):
        self.project_dir = Path(project_dir)
        self.config = config or DeckConfig()
        self.registry = registry or SessionRegistry(
            self.project_dir, config=self.config.tmux, agent_config=self.config.agent
        )
        self.poller = PollScheduler(
            self.registry,
            detector if detector is not None else StatusDetector(self.config.transcripts),
            self.config.poll,
        )
        self.state_store = state_store
        ops = merge_ops or MergeOperations(self.project_dir, self.config.merge, kill_session=self._kill_agent_session)
        self.merge = MergeWorkflow(ops, self.config.merge)
        self.conflict_detector = ConflictDetector()

        self.queue: asyncio.Queue = asyncio.Queue()
        self.worktrees: List[Worktree] = []
        self.shells: List[ShellSession] = []
        self.conflicts: List = []
        self.selected_worktree = ""
        self.selected_shell = ""
        self._restore_pending = False
        self.visible_session: Optional[str] = None
        self.focused = True
        self.attached: Optional[str] = None

        self._listeners: List[Listener] = []
        self._tasks: set = set()
        self._pending_prompts: Dict[str, str] = {}
        self._running = False

        self._handlers: Dict[type, Callable[[Event], None]] = {
            PollDue: self._on_poll_due,
            AgentOutput: self._on_agent_output,
            PollUnchanged: self._on_poll_unchanged,
            PollFailed: self._on_poll_failed,
            AgentStarted: self._on_agent_started,
            AgentStopped: self._on_agent_stopped,
            AgentsReconnected: self._on_agents_reconnected,
            ShellsDiscovered: self._on_shells_discovered,
            ShellCreated: self._on_shell_created,
            ShellOutput: self._on_shell_output,
            ShellSessionDead: self._on_shell_gone,
            ShellKilled: self._on_shell_gone,
            AttachFinished: self._on_attach_finished,
            KeysSent: self._on_keys_sent,
            RefreshDone: self._on_refresh_done,
            ConflictsDetected: self._on_conflicts,
            WorktreeCreated: self._on_worktree_created,
            WorktreeDeleted: self._on_worktree_deleted,
            LocalCleanupDone: self._on_local_cleanup,
            CommitRequired: self._on_commit_required,
            CommandFailed: self._on_command_failed,
        }

    # ============================================================================
    # Loop
    # ============================================================================

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a callback for every handled event; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def spawn(self, coro: Awaitable[Event], operation: str = "") -> asyncio.Task:
        """Run a coroutine as a task that puts exactly one event on the queue."""
        task = asyncio.create_task(self._resolve(coro, operation))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _resolve(self, coro: Awaitable[Event], operation: str) -> None:
        try:
            event = await coro
        except Exception as e:
            logger.exception(f"Operation {operation or 'effect'} failed")
            event = CommandFailed(operation or "effect", str(e))
        await self.queue.put(event)

    def run_effects(self, effects: List[Effect]) -> None:
        for effect in effects:
            name = getattr(getattr(effect, "func", effect), "__name__", "effect")
            self.spawn(effect(), name)

    async def run(self) -> None:
        """Apply queued events until stop() is called."""
        self._running = True
        while self._running:
            event = await self.queue.get()
            if event is None:
                break
            try:
                self.handle(event)
            except Exception:
                logger.exception(f"Handler for {type(event).__name__} raised")

    @property
    def running(self) -> bool:
        return self._running

    def stop(self) -> None:
        self._running = False
        self.queue.put_nowait(None)

    def handle(self, event: Event) -> None:
        """Apply one event to controller state and notify listeners."""
        handler = self._handlers.get(type(event))
        if handler is not None:
            handler(event)
        self.run_effects(self.merge.handle(event))

        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Event listener raised")

    # ============================================================================
    # Lookups
    # ============================================================================

    def find_worktree(self, name: str) -> Optional[Worktree]:
        for wt in self.worktrees:
            if wt.name == name:
                return wt
        return None

    def find_shell(self, tmux_name: str) -> Optional[ShellSession]:
        for shell in self.shells:
            if shell.tmux_name == tmux_name:
                return shell
        return None

    def _tracked_agent(self, worktree_name: str, session: str) -> Optional[Worktree]:
        """The worktree whose live agent is session, or None if untracked."""
        wt = self.find_worktree(worktree_name)
        if wt is None or wt.agent is None or wt.agent.session_name != session:
            return None
        return wt

    def _worktree_for_session(self, session: str) -> Optional[Worktree]:
        for wt in self.worktrees:
            if wt.agent is not None and wt.agent.session_name == session:
                return wt
        return None

    def _is_visible(self, session: str) -> bool:
        return self.visible_session == session

    def _new_agent(self, agent_type: AgentType, session: str, worktree_name: str = "") -> Agent:
        return Agent(
            agent_type=agent_type,
            session_name=session,
            worktree_name=worktree_name,
            output_buffer=OutputBuffer(self.config.poll.buffer_lines),
        )

    # ============================================================================
    # Polling
    # ============================================================================

    def _reschedule(self, session: str, status: AgentStatus, changed: bool, shell: bool = False) -> None:
        delay = self.poller.next_interval(status, changed, self._is_visible(session), self.focused)
        self.run_effects([self.poller.schedule(session, delay, shell)])

    def _on_poll_due(self, event: PollDue) -> None:
        if not self.poller.is_current(event) or self.attached == event.session:
            return
        if event.shell:
            shell = self.find_shell(event.session)
            if shell is not None:
                self.spawn(self.poller.capture_shell(shell), "capture_shell")
            return
        wt = self._worktree_for_session(event.session)
        if wt is not None:
            self.spawn(self.poller.capture_agent(wt, wt.agent), "capture_agent")

    def _on_agent_output(self, event: AgentOutput) -> None:
        wt = self._tracked_agent(event.worktree_name, event.session)
        if wt is None:
            return
        wt.agent.status = event.status
        wt.agent.waiting_for = event.waiting_for
        wt.agent.last_output_at = _now()
        wt.status = event.status
        self._reschedule(event.session, event.status, changed=True)

    def _on_poll_unchanged(self, event: PollUnchanged) -> None:
        wt = self._tracked_agent(event.worktree_name, event.session)
        if wt is None:
            return
        self._reschedule(event.session, wt.agent.status, changed=False)

    def _on_poll_failed(self, event: PollFailed) -> None:
        if event.shell:
            if self.find_shell(event.session) is not None:
                self._reschedule(event.session, AgentStatus.ACTIVE, changed=False, shell=True)
            return
        wt = self._tracked_agent(event.worktree_name, event.session)
        if wt is None:
            return
        logger.debug(f"Poll of {event.session} failed: {event.error}")
        self._reschedule(event.session, wt.agent.status, changed=False)

    # ============================================================================
    # Agents
    # ============================================================================

    def start_agent(
        self,
        worktree_name: str,
        agent_type: Optional[AgentType] = None,
        prompt: str = "",
        skip_permissions: Optional[bool] = None,
    ) -> None:
        wt = self.find_worktree(worktree_name)
        if wt is None:
            return
        if agent_type is None:
            agent_type = wt.chosen_agent
        if agent_type == AgentType.NONE:
            agent_type = AgentType.parse(self.config.agent.default_agent)
        if skip_permissions is None:
            skip_permissions = self.config.agent.skip_permissions
        self.spawn(self._start_agent(wt, agent_type, prompt, skip_permissions), "start_agent")

    async def _start_agent(self, wt: Worktree, agent_type: AgentType, prompt: str, skip: bool) -> Event:
        try:
            result = await self.registry.start_agent(wt.name, wt.path, agent_type, skip, prompt)
        except TmuxError as e:
            return AgentStarted(wt.name, self.registry.agent_session_name(wt.name), agent_type, error=str(e))
        return AgentStarted(wt.name, result.session_name, agent_type, reconnected=result.reconnected)

    def _on_agent_started(self, event: AgentStarted) -> None:
        if event.error:
            logger.error(f"Failed to start agent in {event.worktree_name}: {event.error}")
            return
        wt = self.find_worktree(event.worktree_name)
        if wt is None:
            return
        wt.agent = self._new_agent(event.agent_type, event.session_name, wt.name)
        wt.status = AgentStatus.ACTIVE
        if wt.chosen_agent != event.agent_type:
            wt.chosen_agent = event.agent_type
            save_agent_type(wt.path, event.agent_type)
        self.run_effects([self.poller.schedule_initial(event.session_name)])

    def stop_agent(self, worktree_name: str) -> None:
        wt = self.find_worktree(worktree_name)
        if wt is None or wt.agent is None:
            return
        self.spawn(self._stop_agent(wt.name, wt.agent.session_name), "stop_agent")

    async def _stop_agent(self, worktree_name: str, session: str) -> Event:
        await self.registry.stop_agent(session)
        return AgentStopped(worktree_name, session)

    async def _kill_agent_session(self, wt: Worktree) -> None:
        session = wt.agent.session_name if wt.agent else self.registry.agent_session_name(wt.name)
        await self.registry.kill(session)

    def _on_agent_stopped(self, event: AgentStopped) -> None:
        wt = self.find_worktree(event.worktree_name)
        if wt is None or wt.agent is None:
            return
        if event.session and wt.agent.session_name != event.session:
            return
        self.poller.forget(wt.agent.session_name)
        wt.agent = None
        wt.status = AgentStatus.PAUSED

    async def _reconnect(self, names: List[str]) -> Event:
        return AgentsReconnected(await self.registry.reconnect_agents(names))

    def _on_agents_reconnected(self, event: AgentsReconnected) -> None:
        for name, session in event.sessions.items():
            wt = self.find_worktree(name)
            if wt is None or wt.agent is not None:
                continue
            wt.agent = self._new_agent(wt.chosen_agent, session, wt.name)
            wt.status = AgentStatus.ACTIVE
            logger.info(f"Reconnected agent session {session}")
            self.run_effects([self.poller.schedule_initial(session)])

    # ============================================================================
    # Interaction
    # ============================================================================

    def attach(self, name: str, shell: bool = False) -> None:
        """Hand the terminal to a worktree's agent or to a shell until detach."""
        if shell:
            target = self.find_shell(name)
            session = target.tmux_name if target else None
            worktree_name = ""
        else:
            wt = self.find_worktree(name)
            session = wt.agent.session_name if wt and wt.agent else None
            worktree_name = name
        if session is None:
            return
        self.attached = session
        self.spawn(self._attach(session, worktree_name, shell), "attach")

    async def _attach(self, session: str, worktree_name: str, shell: bool) -> Event:
        try:
            await self.registry.attach(session)
        except TmuxError as e:
            return AttachFinished(session, worktree_name, shell, error=str(e))
        return AttachFinished(session, worktree_name, shell)

    def _on_attach_finished(self, event: AttachFinished) -> None:
        self.attached = None
        if event.error:
            logger.warning(f"Attach to {event.session} failed: {event.error}")
        tracked = self.find_shell(event.session) if event.shell else self._worktree_for_session(event.session)
        if tracked is not None:
            self.run_effects([self.poller.schedule(event.session, 0, event.shell)])
        self.refresh()

    def send_text(self, worktree_name: str, text: str) -> None:
        wt = self.find_worktree(worktree_name)
        if wt is None or wt.agent is None:
            return
        self.spawn(self._send(wt.agent.session_name, wt.name, "text", text), "send_text")

    def approve(self, worktree_name: str) -> None:
        self._send_key(worktree_name, "approve", APPROVE_KEY)

    def reject(self, worktree_name: str) -> None:
        self._send_key(worktree_name, "reject", REJECT_KEY)

    def approve_all(self) -> None:
        for wt in self.worktrees:
            if wt.agent is not None and wt.agent.status == AgentStatus.WAITING:
                self.approve(wt.name)

    def _send_key(self, worktree_name: str, action: str, key: str) -> None:
        wt = self.find_worktree(worktree_name)
        if wt is None or wt.agent is None:
            return
        self.spawn(self._send(wt.agent.session_name, wt.name, action, key, as_key=True), action)

    async def _send(self, session: str, worktree_name: str, action: str, payload: str, as_key: bool = False) -> Event:
        try:
            if as_key:
                await self.registry.send_key(session, payload)
            else:
                await self.registry.send_text(session, payload)
        except TmuxError as e:
            return KeysSent(session, worktree_name, action, error=str(e))
        return KeysSent(session, worktree_name, action)

    def _on_keys_sent(self, event: KeysSent) -> None:
        if event.error:
            logger.warning(f"{event.action} to {event.session} failed: {event.error}")
            return
        if event.action not in ("approve", "reject"):
            return
        wt = self._tracked_agent(event.worktree_name, event.session)
        if wt is None:
            return
        wt.agent.waiting_for = ""
        wt.agent.status = AgentStatus.ACTIVE
        wt.status = AgentStatus.ACTIVE
        self.run_effects([self.poller.schedule(event.session, 0)])

    # ============================================================================
    # Shells
    # ============================================================================

    def create_shell(self) -> None:
        existing = [s.tmux_name for s in self.shells]
        self.spawn(self._create_shell(existing), "create_shell")

    async def _create_shell(self, existing: List[str]) -> Event:
        try:
            info = await self.registry.create_shell(existing)
        except TmuxError as e:
            return ShellCreated("", "", error=str(e))
        return ShellCreated(info.tmux_name, info.display_name, info.index)

    def _add_shell(self, tmux_name: str, display_name: str) -> ShellSession:
        shell = ShellSession(tmux_name, display_name, self._new_agent(AgentType.NONE, tmux_name))
        self.shells.append(shell)
        self.run_effects([self.poller.schedule_initial(tmux_name, shell=True)])
        return shell

    def _on_shell_created(self, event: ShellCreated) -> None:
        if event.error:
            logger.error(f"Failed to create shell: {event.error}")
            return
        if self.find_shell(event.tmux_name) is None:
            self._add_shell(event.tmux_name, event.display_name)
        self.select(shell_tmux_name=event.tmux_name)

    async def _discover_shells(self) -> Event:
        return ShellsDiscovered(tuple(await self.registry.discover_shells()))

    def _on_shells_discovered(self, event: ShellsDiscovered) -> None:
        custom = self.state_store.get(self.project_dir).shell_display_names if self.state_store else {}
        for info in event.shells:
            if self.find_shell(info.tmux_name) is None:
                self._add_shell(info.tmux_name, custom.get(info.tmux_name, info.display_name))

    def _on_shell_output(self, event: ShellOutput) -> None:
        if self.find_shell(event.tmux_name) is None:
            return
        self._reschedule(event.tmux_name, AgentStatus.ACTIVE, event.changed, shell=True)

    def kill_shell(self, tmux_name: str) -> None:
        if self.find_shell(tmux_name) is None:
            return
        self.poller.forget(tmux_name)
        self.spawn(self._kill_shell(tmux_name), "kill_shell")

    async def _kill_shell(self, tmux_name: str) -> Event:
        await self.registry.kill(tmux_name)
        return ShellKilled(tmux_name)

    def _on_shell_gone(self, event) -> None:
        shell = self.find_shell(event.tmux_name)
        if shell is None:
            return
        self.shells.remove(shell)
        self.poller.forget(event.tmux_name)
        if self.selected_shell == event.tmux_name:
            self.selected_shell = ""
        if self.state_store:
            self.state_store.forget_shell(self.project_dir, event.tmux_name)

    def rename_shell(self, tmux_name: str, display_name: str) -> None:
        shell = self.find_shell(tmux_name)
        if shell is None or not display_name.strip():
            return
        shell.display_name = display_name.strip()
        if self.state_store:
            self.state_store.save_shell_name(self.project_dir, tmux_name, shell.display_name)

    # ============================================================================
    # Worktrees
    # ============================================================================

    def refresh(self) -> None:
        """Reload worktrees, then re-detect conflicts and running agents."""
        self.spawn(self._load_worktrees(), "refresh")

    def discover_shells(self) -> None:
        self.spawn(self._discover_shells(), "discover_shells")

    async def _load_worktrees(self) -> Event:
        try:
            worktrees = await gitwt.list_worktrees(self.project_dir)
        except CommandFailure as e:
            return RefreshDone(error=str(e))
        return RefreshDone(worktrees)

    def _on_refresh_done(self, event: RefreshDone) -> None:
        if event.error:
            logger.error(f"Refresh failed: {event.error}")
            return

        previous = {wt.name: wt for wt in self.worktrees}
        for wt in event.worktrees:
            old = previous.pop(wt.name, None)
            if old is not None:
                wt.agent = old.agent
                wt.status = old.status
        for removed in previous.values():
            if removed.agent is not None:
                self.poller.forget(removed.agent.session_name)
        self.worktrees = list(event.worktrees)
        if self._restore_pending:
            self._apply_saved_selection()

        self.spawn(self._detect_conflicts(list(self.worktrees)), "detect_conflicts")
        unattached = [wt.name for wt in self.worktrees if wt.agent is None]
        if unattached:
            self.spawn(self._reconnect(unattached), "reconnect_agents")

    async def _detect_conflicts(self, worktrees: List[Worktree]) -> Event:
        return ConflictsDetected(await self.conflict_detector.detect(worktrees))

    def _on_conflicts(self, event: ConflictsDetected) -> None:
        self.conflicts = list(event.conflicts)

    def create_worktree(
        self,
        name: str,
        base_branch: str = "",
        task_id: str = "",
        agent_type: AgentType = AgentType.NONE,
        prompt: str = "",
    ) -> None:
        if prompt:
            self._pending_prompts[name] = prompt
        self.spawn(self._create_worktree(name, base_branch, task_id, agent_type), "create_worktree")

    async def _create_worktree(self, name: str, base_branch: str, task_id: str, agent_type: AgentType) -> Event:
        try:
            wt = await gitwt.create_worktree(self.project_dir, name, base_branch, task_id, agent_type)
        except (CommandFailure, ValueError) as e:
            return WorktreeCreated(error=str(e))
        return WorktreeCreated(wt)

    def _on_worktree_created(self, event: WorktreeCreated) -> None:
        if event.error:
            logger.error(f"Failed to create worktree: {event.error}")
            return
        wt = event.worktree
        if self.find_worktree(wt.name) is None:
            self.worktrees.append(wt)
        self.select(worktree_name=wt.name)
        prompt = self._pending_prompts.pop(wt.name, "")
        if wt.chosen_agent != AgentType.NONE:
            self.start_agent(wt.name, wt.chosen_agent, prompt)

    def delete_worktree(self, worktree_name: str, delete_branch: bool = False) -> None:
        wt = self.find_worktree(worktree_name)
        if wt is None:
            return
        self.spawn(self._delete_worktree(wt, delete_branch), "delete_worktree")

    async def _delete_worktree(self, wt: Worktree, delete_branch: bool) -> Event:
        await self._kill_agent_session(wt)
        try:
            await gitwt.delete_worktree(self.project_dir, wt.path)
            if delete_branch and wt.branch and wt.branch != gitwt.DETACHED:
                await gitwt.delete_branch(self.project_dir, wt.branch)
        except CommandFailure as e:
            return WorktreeDeleted(wt.name, error=str(e))
        return WorktreeDeleted(wt.name)

    def _remove_worktree(self, name: str) -> None:
        wt = self.find_worktree(name)
        if wt is None:
            return
        if wt.agent is not None:
            self.poller.forget(wt.agent.session_name)
        self.worktrees.remove(wt)
        self.conflicts = [c for c in self.conflicts if name not in c.worktrees]
        if self.selected_worktree == name:
            self.selected_worktree = ""

    def _on_worktree_deleted(self, event: WorktreeDeleted) -> None:
        if event.error:
            logger.error(f"Failed to delete worktree {event.name}: {event.error}")
            return
        self._remove_worktree(event.name)

    def _on_local_cleanup(self, event: LocalCleanupDone) -> None:
        if event.worktree_deleted:
            self._remove_worktree(event.worktree_name)

    # ============================================================================
    # Selection and visibility
    # ============================================================================

    def select(self, worktree_name: str = "", shell_tmux_name: str = "") -> None:
        self.selected_worktree = worktree_name
        self.selected_shell = "" if worktree_name else shell_tmux_name
        if self.state_store:
            self.state_store.save_selection(self.project_dir, worktree_name, shell_tmux_name)

    def restore_selection(self) -> None:
        """Restore the saved selection once the worktree list has loaded."""
        if not self.state_store:
            return
        self._restore_pending = True
        if self.worktrees:
            self._apply_saved_selection()

    def _apply_saved_selection(self) -> None:
        self._restore_pending = False
        saved = self.state_store.get(self.project_dir)
        if saved.worktree_name and self.find_worktree(saved.worktree_name) is not None:
            self.selected_worktree = saved.worktree_name
            self.selected_shell = ""
        elif saved.shell_tmux_name:
            self.selected_shell = saved.shell_tmux_name

    def set_visibility(self, visible_session: Optional[str], focused: bool = True) -> None:
        """Record which session's output is on screen and whether the app has focus."""
        newly_visible = visible_session is not None and visible_session != self.visible_session
        self.visible_session = visible_session
        self.focused = focused
        if not newly_visible:
            return
        if self.find_shell(visible_session) is not None:
            self.run_effects([self.poller.schedule(visible_session, 0, shell=True)])
        elif self._worktree_for_session(visible_session) is not None:
            self.run_effects([self.poller.schedule(visible_session, 0)])

    # ============================================================================
    # Merge
    # ============================================================================

    def start_merge(self, worktree_name: str) -> None:
        wt = self.find_worktree(worktree_name)
        if wt is None or self.merge.active:
            return
        self.run_effects(self.merge.begin(wt))

    def commit_for_merge(self, worktree_name: str, message: str) -> None:
        wt = self.find_worktree(worktree_name)
        if wt is None or self.merge.active:
            return
        self.run_effects(self.merge.commit_for_merge(wt, message))

    def advance_merge(self) -> None:
        self.run_effects(self.merge.advance())

    def set_merge_method(self, method: MergeMethod) -> None:
        self.merge.set_merge_method(method)

    def confirm_cleanup(self) -> None:
        self.run_effects(self.merge.confirm_cleanup())

    def check_merge_now(self) -> None:
        self.run_effects(self.merge.check_merge_now())

    def retry_merge(self) -> None:
        self.run_effects(self.merge.retry())

    def resolve_divergence(self, action: str) -> None:
        self.run_effects(self.merge.resolve_divergence(action))

    def cancel_merge(self) -> None:
        self.merge.cancel()

    def _on_commit_required(self, event: CommitRequired) -> None:
        c = event.changes
        logger.info(
            f"{event.worktree_name} has uncommitted changes "
            f"({c.staged} staged, {c.modified} modified, {c.untracked} untracked)"
        )

    def _on_command_failed(self, event: CommandFailed) -> None:
        logger.error(f"{event.operation}: {event.error}")
