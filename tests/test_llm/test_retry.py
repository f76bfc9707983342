"""
Tests for RetryExecutor — backoff schedule, transient/permanent handling,
fallback, and correlation ids.
"""

from __future__ import annotations

import asyncio
import logging

import pytest

from switchboard.exceptions import BackendError, ToolExecutionError, TransientBackendError
from switchboard.llm.retry import RetryExecutor
from switchboard.observability.logging_config import get_correlation_id


class _RecordingSleep:
    """Stands in for asyncio.sleep and remembers the requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class _Operation:
    """Async operation that fails with the queued errors, then succeeds."""

    def __init__(self, *errors: BaseException, result: str = "ok"):
        self._errors = list(errors)
        self.calls = 0
        self.result = result
        self.correlation_ids: list = []

    async def __call__(self) -> str:
        self.calls += 1
        self.correlation_ids.append(get_correlation_id())
        if self._errors:
            raise self._errors.pop(0)
        return self.result


def _executor(**kwargs) -> tuple[RetryExecutor, _RecordingSleep]:
    sleep = _RecordingSleep()
    return RetryExecutor(sleep=sleep, **kwargs), sleep


class TestBackoff:

    def test_exponential_schedule(self):
        executor = RetryExecutor(initial_delay=0.5)
        assert [executor.backoff_delay(n) for n in (1, 2, 3, 4)] == [0.5, 1.0, 2.0, 4.0]

    def test_invalid_attempts(self):
        with pytest.raises(ValueError):
            RetryExecutor(max_attempts=0)


class TestExecuteWithRetry:

    @pytest.mark.asyncio
    async def test_success_first_try(self):
        executor, sleep = _executor()
        operation = _Operation()
        assert await executor.execute_with_retry(operation) == "ok"
        assert operation.calls == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_always_transient_three_attempts_then_fallback(self):
        executor, sleep = _executor(max_attempts=3, initial_delay=1)
        operation = _Operation(*(TransientBackendError("503") for _ in range(5)))
        fallback_errors = []

        def fallback(err):
            fallback_errors.append(err)
            return "fallback"

        result = await executor.execute_with_retry(operation, fallback)

        assert result == "fallback"
        assert operation.calls == 3
        assert sleep.delays == [1, 2]
        assert isinstance(fallback_errors[0], TransientBackendError)

    @pytest.mark.asyncio
    async def test_recovers_after_transient(self):
        executor, sleep = _executor(max_attempts=3, initial_delay=1)
        operation = _Operation(TransientBackendError("429"))
        assert await executor.execute_with_retry(operation) == "ok"
        assert operation.calls == 2
        assert sleep.delays == [1]

    @pytest.mark.asyncio
    async def test_permanent_goes_straight_to_fallback(self):
        executor, sleep = _executor(max_attempts=5)
        operation = _Operation(BackendError("400"))
        result = await executor.execute_with_retry(operation, lambda err: "fallback")
        assert result == "fallback"
        assert operation.calls == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_tool_error_follows_its_flag(self):
        executor, _ = _executor(max_attempts=3, initial_delay=0)

        transient = _Operation(ToolExecutionError("x", tool_name="t", is_transient=True))
        assert await executor.execute_with_retry(transient) == "ok"
        assert transient.calls == 2

        permanent = _Operation(ToolExecutionError("x", tool_name="t", is_transient=False))
        with pytest.raises(ToolExecutionError):
            await executor.execute_with_retry(permanent)
        assert permanent.calls == 1

    @pytest.mark.asyncio
    async def test_reraises_without_fallback(self):
        executor, _ = _executor(max_attempts=2, initial_delay=0)
        operation = _Operation(TransientBackendError("a"), TransientBackendError("b"))
        with pytest.raises(TransientBackendError, match="b"):
            await executor.execute_with_retry(operation)
        assert operation.calls == 2

    @pytest.mark.asyncio
    async def test_async_fallback(self):
        executor, _ = _executor()

        async def fallback(err):
            return f"recovered from {err}"

        result = await executor.execute_with_retry(_Operation(BackendError("bad")), fallback)
        assert result == "recovered from bad"

    @pytest.mark.asyncio
    async def test_per_call_overrides(self):
        executor, sleep = _executor(max_attempts=5, initial_delay=10)
        operation = _Operation(*(TransientBackendError("x") for _ in range(5)))
        with pytest.raises(TransientBackendError):
            await executor.execute_with_retry(operation, max_attempts=2, initial_delay=0.25)
        assert operation.calls == 2
        assert sleep.delays == [0.25]

    @pytest.mark.asyncio
    async def test_cancellation_not_retried(self):
        executor, sleep = _executor(max_attempts=3)
        operation = _Operation(asyncio.CancelledError())
        fallback_called = []

        with pytest.raises(asyncio.CancelledError):
            await executor.execute_with_retry(operation, lambda err: fallback_called.append(err))

        assert operation.calls == 1
        assert fallback_called == []
        assert sleep.delays == []


class TestCorrelation:

    @pytest.mark.asyncio
    async def test_same_id_across_attempts(self):
        executor, _ = _executor(max_attempts=3, initial_delay=0)
        operation = _Operation(TransientBackendError("x"), TransientBackendError("y"))
        await executor.execute_with_retry(operation)

        ids = operation.correlation_ids
        assert len(ids) == 3
        assert ids[0] and len(set(ids)) == 1
        assert get_correlation_id() is None

    @pytest.mark.asyncio
    async def test_supplied_id_is_used(self):
        executor, _ = _executor()
        operation = _Operation()
        await executor.execute_with_retry(operation, correlation_id="given-id")
        assert operation.correlation_ids == ["given-id"]

    @pytest.mark.asyncio
    async def test_distinct_ids_per_invocation(self):
        executor, _ = _executor()
        first, second = _Operation(), _Operation()
        await asyncio.gather(
            executor.execute_with_retry(first),
            executor.execute_with_retry(second),
        )
        assert first.correlation_ids[0] != second.correlation_ids[0]

    @pytest.mark.asyncio
    async def test_log_records_carry_id(self, caplog):
        executor, _ = _executor(max_attempts=2, initial_delay=0)
        operation = _Operation(TransientBackendError("x"))
        with caplog.at_level(logging.INFO, logger="switchboard.llm.retry"):
            await executor.execute_with_retry(operation, correlation_id="log-id")

        events = [r.getMessage() for r in caplog.records]
        assert events == [
            "operation_started",
            "operation_attempt_failed",
            "operation_retry_scheduled",
            "operation_succeeded",
        ]
        assert all(r.correlation_id == "log-id" for r in caplog.records)
