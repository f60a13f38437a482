"""Tests for the error taxonomy and retry helper."""

from unittest.mock import AsyncMock

import pytest

from agentdeck.error_handling import (
    AlreadySatisfied,
    CommandFailure,
    DivergenceError,
    RetryPolicy,
    TransientIOError,
    retry_async,
)


class TestCommandFailure:
    def test_message_includes_output(self):
        error = CommandFailure("git pull", 1, "  fatal: boom\n")
        assert str(error) == "git pull: fatal: boom"
        assert error.output == "fatal: boom"

    def test_message_without_output(self):
        assert str(CommandFailure("gh pr view", 4)) == "gh pr view failed (exit 4)"

    def test_divergence_is_command_failure(self):
        assert isinstance(DivergenceError("pull", 128, "diverged"), CommandFailure)

    def test_already_satisfied_carries_value(self):
        error = AlreadySatisfied("PR exists", value="https://x/pr/1")
        assert error.value == "https://x/pr/1"


class TestRetryPolicy:
    def test_exponential_delay_is_capped(self):
        policy = RetryPolicy(initial_delay_ms=10, max_delay_ms=200)
        assert [policy.delay_ms(n) for n in range(1, 7)] == [10, 20, 40, 80, 160, 200]

    def test_jitter_stays_within_quarter(self):
        policy = RetryPolicy(initial_delay_ms=100, jitter=True)
        for _ in range(20):
            assert 100 <= policy.delay_ms(1) <= 125


class TestRetryAsync:
    """Backoff without real sleeping."""

    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self):
        func = AsyncMock(side_effect=[TransientIOError("a"), TransientIOError("b"), "ok"])
        sleep = AsyncMock()

        assert await retry_async(func, RetryPolicy(), sleep=sleep) == "ok"
        assert func.await_count == 3
        assert [c.args[0] for c in sleep.await_args_list] == [0.01, 0.02]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        func = AsyncMock(side_effect=TransientIOError("never"))
        sleep = AsyncMock()

        with pytest.raises(TransientIOError):
            await retry_async(func, RetryPolicy(max_attempts=3), sleep=sleep)
        assert func.await_count == 3
        assert sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_non_retryable_propagates_immediately(self):
        func = AsyncMock(side_effect=ValueError("bad"))
        with pytest.raises(ValueError):
            await retry_async(func, sleep=AsyncMock())
        assert func.await_count == 1
