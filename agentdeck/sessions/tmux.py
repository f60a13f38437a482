"""
Thin synchronous wrapper around the tmux CLI.

All calls shell out to ``tmux``; async callers run them through
``asyncio.to_thread``.
"""

import logging
import shutil
import subprocess
import sys
import threading
from typing import List, Optional

from ..config import TmuxConfig
from ..error_handling import SessionNotFoundError, TmuxError, TmuxNotAvailableError

logger = logging.getLogger(__name__)

# Substrings tmux prints when the target session or server is gone.
SESSION_GONE_MARKERS = ("can't find", "no server", "session not found")

_tmux_installed: Optional[bool] = None
_tmux_installed_lock = threading.Lock()


def is_tmux_installed() -> bool:
    """Check once per process whether tmux is on PATH."""
    global _tmux_installed
    with _tmux_installed_lock:
        if _tmux_installed is None:
            _tmux_installed = shutil.which("tmux") is not None
        return _tmux_installed


def is_session_gone(error: Exception) -> bool:
    """True if a tmux error means the session (or server) no longer exists."""
    if isinstance(error, SessionNotFoundError):
        return True
    text = str(error).lower()
    return any(marker in text for marker in SESSION_GONE_MARKERS)


class TmuxClient:
    """Direct tmux commands used by the session registry and poller."""

    def __init__(self, config: Optional[TmuxConfig] = None):
        self.config = config or TmuxConfig()

    def _run_tmux(
        self,
        args: List[str],
        check: bool = False,
        timeout: Optional[float] = None,
        cwd: Optional[str] = None,
    ) -> subprocess.CompletedProcess:
        """Run tmux command with error handling."""
        cmd = ["tmux"] + args

        logger.debug(f"Running: {' '.join(cmd)}")

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout or self.config.command_timeout,
                cwd=cwd,
            )
        except subprocess.TimeoutExpired:
            raise TmuxError(f"tmux command timed out: {' '.join(args)}")
        except FileNotFoundError:
            raise TmuxNotAvailableError(
                "tmux is not installed. Install with: brew install tmux (macOS) "
                "or apt install tmux (Linux)"
            )

        if check and result.returncode != 0:
            stderr = result.stderr.strip()
            logger.warning(f"tmux command failed: {' '.join(args)}, stderr: {stderr}")
            raise TmuxError(f"tmux {args[0]}: {stderr or f'exit status {result.returncode}'}")

        return result

    def has_session(self, name: str) -> bool:
        return self._run_tmux(["has-session", "-t", name]).returncode == 0

    def new_session(self, name: str, cwd: str) -> None:
        """Create a detached session rooted at cwd."""
        self._run_tmux(["new-session", "-d", "-s", name, "-c", cwd], check=True)
        self._run_tmux(["set-option", "-t", name, "history-limit", str(self.config.history_limit)])
        logger.info(f"Created tmux session: {name}")

    def kill_session(self, name: str) -> None:
        """Kill a session; a session that does not exist is not an error."""
        result = self._run_tmux(["kill-session", "-t", name])
        if result.returncode != 0:
            logger.debug(f"kill-session {name}: {result.stderr.strip()}")

    def send_keys(self, name: str, *keys: str, literal: bool = False) -> None:
        args = ["send-keys"]
        if literal:
            args.append("-l")
        args += ["-t", name, *keys]
        self._run_tmux(args, check=True)

    def list_sessions(self) -> List[str]:
        """Names of all sessions; empty when no tmux server is running."""
        result = self._run_tmux(["list-sessions", "-F", "#{session_name}"])
        if result.returncode != 0:
            return []
        return [line.strip() for line in result.stdout.split("\n") if line.strip()]

    def capture_pane(self, name: str, lines: Optional[int] = None) -> str:
        """
        Capture the last lines of a pane with escape sequences preserved.

        Raises:
            SessionNotFoundError: When the session or server is gone
            TmuxError: On timeout or any other capture failure
        """
        lines = lines or self.config.capture_lines
        result = self._run_tmux(
            ["capture-pane", "-p", "-e", "-J", "-S", f"-{lines}", "-t", name],
            timeout=self.config.capture_timeout,
        )
        if result.returncode != 0:
            stderr = result.stderr.strip()
            message = f"capture-pane: {stderr or f'exit status {result.returncode}'}"
            if any(marker in stderr.lower() for marker in SESSION_GONE_MARKERS):
                raise SessionNotFoundError(message)
            raise TmuxError(message)
        return result.stdout

    def attach(self, name: str) -> int:
        """
        Attach the current terminal to a session and block until detach.

        Terminal attributes are saved before attaching and restored after.
        """
        saved = _save_tty()
        try:
            return subprocess.run(["tmux", "attach-session", "-t", name]).returncode
        finally:
            _restore_tty(saved)


def _save_tty():
    if sys.platform == "win32" or not sys.stdin.isatty():
        return None
    import termios
    return termios.tcgetattr(sys.stdin.fileno())


def _restore_tty(saved) -> None:
    if saved is None:
        return
    import termios
    termios.tcsetattr(sys.stdin.fileno(), termios.TCSADRAIN, saved)
