"""Pane-text status classification for captured agent output."""

from ..models import AgentStatus

STATUS_CHECK_BYTES = 2048
PROMPT_CHECK_BYTES = 2560
PROMPT_CHECK_LINES = 10

WAITING_PATTERNS = (
    "[y/n]",        # Claude Code permission prompt
    "(y/n)",        # Aider style
    "allow edit",
    "allow bash",
    "waiting for",
    "press enter",
    "continue?",
    "approve",
    "confirm",
    "do you want",
    "❯",            # Claude Code input prompt
    "╰─❯",
)

DONE_PATTERNS = (
    "task completed",
    "all done",
    "finished",
    "exited with code 0",
    "goodbye",
)

ERROR_PATTERNS = (
    "error:",
    "failed",
    "exited with code 1",
    "panic:",
    "exception:",
    "traceback",
)

PROMPT_PATTERNS = ("[y/n]", "(y/n)", "allow edit", "allow bash", "approve", "confirm")


def tail_text(text: str, max_bytes: int) -> str:
    """Last max_bytes of text, never splitting a UTF-8 sequence."""
    data = text.encode("utf-8", errors="replace")
    if len(data) <= max_bytes:
        return text
    return data[-max_bytes:].decode("utf-8", errors="ignore")


def detect_status(output: str) -> AgentStatus:
    """
    Classify pane output by the patterns near its end.

    Waiting wins over done, done over error; anything else is active.
    """
    text = tail_text(output, STATUS_CHECK_BYTES).lower()

    if any(p in text for p in WAITING_PATTERNS):
        return AgentStatus.WAITING
    if any(p in text for p in DONE_PATTERNS):
        return AgentStatus.DONE
    if any(p in text for p in ERROR_PATTERNS):
        return AgentStatus.ERROR
    return AgentStatus.ACTIVE


def extract_prompt(output: str) -> str:
    """Return the most recent prompt line among the last ten lines, or ""."""
    text = tail_text(output, PROMPT_CHECK_BYTES)
    for line in text.split("\n")[::-1][:PROMPT_CHECK_LINES]:
        lowered = line.lower()
        if any(p in lowered for p in PROMPT_PATTERNS):
            return line.strip()
    return ""
