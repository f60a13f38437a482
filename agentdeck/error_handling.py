"""
Error Handling Utilities

Exception taxonomy for the orchestration core plus the backoff helper used
for session readiness polling.
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Type, TypeVar


T = TypeVar("T")


# ============================================================================
# EXCEPTIONS
# ============================================================================

class DeckError(Exception):
    """Base exception for agentdeck errors"""
    pass


class NotDeterminedError(DeckError):
    """Status detection was inconclusive (never fatal)"""
    pass


class TransientIOError(DeckError):
    """A single poll or read failed; the caller reschedules"""
    pass


class CommandFailure(DeckError):
    """An external command exited non-zero"""

    def __init__(self, command: str, returncode: int = 1, output: str = ""):
        self.command = command
        self.returncode = returncode
        self.output = output.strip()
        message = f"{command}: {self.output}" if self.output else f"{command} failed (exit {returncode})"
        super().__init__(message)


class DivergenceError(CommandFailure):
    """Local and remote histories diverged; guided recovery is possible"""
    pass


class AlreadySatisfied(DeckError):
    """The requested outcome already exists (e.g. an open PR)"""

    def __init__(self, message: str, value: str = ""):
        super().__init__(message)
        self.value = value


class ConfigurationError(DeckError):
    """Configuration is invalid"""
    pass


class TmuxError(DeckError):
    """Base exception for tmux operations."""
    pass


class TmuxNotAvailableError(TmuxError):
    """tmux is not installed or not available."""
    pass


class SessionNotFoundError(TmuxError):
    """Session does not exist."""
    pass


class SessionNotReadyError(TmuxError):
    """Session did not become ready after creation."""
    pass


# ============================================================================
# RETRY LOGIC
# ============================================================================

@dataclass
class RetryPolicy:
    """Retry policy configuration"""
    max_attempts: int = 10
    initial_delay_ms: int = 10
    max_delay_ms: int = 200
    exponential_base: float = 2.0
    jitter: bool = False
    retryable_exceptions: tuple[Type[Exception], ...] = (TransientIOError,)

    def delay_ms(self, attempt: int) -> float:
        """
        Calculate delay for retry attempt

        Args:
            attempt: Attempt number (1-indexed)

        Returns:
            Delay in milliseconds
        """
        delay = self.initial_delay_ms * (self.exponential_base ** (attempt - 1))
        delay = min(delay, self.max_delay_ms)

        if self.jitter:
            # Random jitter between 0% and 25% of delay
            delay = delay + random.uniform(0, delay * 0.25)

        return delay


async def retry_async(
    func: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Execute a coroutine factory with exponential backoff

    Args:
        func: Zero-argument callable returning an awaitable
        policy: Retry policy (uses defaults if not provided)
        sleep: Sleep function (overridable in tests)

    Returns:
        Result of the first successful attempt

    Raises:
        Exception: Last retryable exception if every attempt fails
    """
    policy = policy or RetryPolicy()
    last_exception: Optional[Exception] = None

    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await func()
        except policy.retryable_exceptions as e:
            last_exception = e
            if attempt == policy.max_attempts:
                break
            await sleep(policy.delay_ms(attempt) / 1000.0)

    raise last_exception
