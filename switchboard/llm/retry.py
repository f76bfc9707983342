"""
Retry / Fallback Executor — exponential backoff for non-streaming calls.

Wraps an async operation: transient failures (TransientBackendError, or a
ToolExecutionError from a tool registered as transient) are retried after
initial_delay * 2^(attempt-1) seconds, up to max_attempts total attempts.
Permanent failures, and transient ones that exhaust the budget, go to the
fallback if one is supplied, otherwise they propagate.

Streaming calls are never routed through this executor: content already
delivered to a live consumer cannot be taken back, so a retry would
re-deliver duplicate text.

Usage:
    from switchboard.llm.retry import RetryExecutor

    executor = RetryExecutor()
    response = await executor.execute_with_retry(
        lambda: backend.send(messages),
        fallback=lambda err: apology(err),
        operation_name="send_orchestrated",
    )
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from typing import Any, Awaitable, Callable, Optional, TypeVar, Union

from switchboard.exceptions import is_transient_error
from switchboard.observability.logging_config import correlation_scope

logger = logging.getLogger(__name__)

T = TypeVar("T")

Fallback = Callable[[Exception], Union[T, Awaitable[T]]]


class RetryExecutor:
    """
    Applies backoff retry and fallback to one logical call.

    Each invocation runs inside its own correlation scope, so every log
    record emitted by the operation (backend calls, tool invocations)
    carries the same correlation_id.
    """

    def __init__(
        self,
        *,
        max_attempts: int = 3,
        initial_delay: float = 1.0,
        is_transient: Callable[[BaseException], bool] = is_transient_error,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._max_attempts = max_attempts
        self._initial_delay = initial_delay
        self._is_transient = is_transient
        self._sleep = sleep

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    @property
    def initial_delay(self) -> float:
        return self._initial_delay

    def backoff_delay(self, attempt: int, initial_delay: Optional[float] = None) -> float:
        """Delay to wait after the given (1-based) failed attempt."""
        base = self._initial_delay if initial_delay is None else initial_delay
        return base * (2 ** (attempt - 1))

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        fallback: Optional[Fallback] = None,
        *,
        max_attempts: Optional[int] = None,
        initial_delay: Optional[float] = None,
        operation_name: str = "operation",
        correlation_id: Optional[str] = None,
    ) -> T:
        """
        Run `operation` with retry, then fallback.

        Args:
            operation: Zero-argument coroutine factory; called once per attempt.
            fallback: Called with the last error when retry cannot help.
            max_attempts: Total attempts including the first (default: executor's).
            initial_delay: Seconds before the first retry (default: executor's).
            operation_name: Label for log records.
            correlation_id: Reuse an existing id instead of generating one.

        Raises:
            The last error, when no fallback is supplied.
        """
        attempts = max_attempts if max_attempts is not None else self._max_attempts
        if attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        with correlation_scope(correlation_id) as cid:
            log_extra = {"operation": operation_name, "correlation_id": cid}
            logger.info("operation_started", extra={**log_extra, "max_attempts": attempts})

            last_error: Optional[Exception] = None
            for attempt in range(1, attempts + 1):
                start = time.monotonic()
                try:
                    result = await operation()
                except Exception as err:
                    last_error = err
                    transient = self._is_transient(err)
                    logger.warning(
                        "operation_attempt_failed",
                        extra={
                            **log_extra,
                            "attempt": attempt,
                            "transient": transient,
                            "error_type": type(err).__name__,
                            "error": str(err)[:200],
                        },
                    )
                    if not transient or attempt >= attempts:
                        break
                    delay = self.backoff_delay(attempt, initial_delay)
                    logger.info(
                        "operation_retry_scheduled",
                        extra={**log_extra, "attempt": attempt + 1, "delay_s": delay},
                    )
                    await self._sleep(delay)
                    continue

                logger.info(
                    "operation_succeeded",
                    extra={
                        **log_extra,
                        "attempt": attempt,
                        "duration_ms": round((time.monotonic() - start) * 1000, 1),
                    },
                )
                return result

            assert last_error is not None

            if fallback is None:
                logger.error(
                    "operation_failed",
                    extra={**log_extra, "error": str(last_error)[:200]},
                )
                raise last_error

            logger.error(
                "operation_fallback_used",
                extra={
                    **log_extra,
                    "error_type": type(last_error).__name__,
                    "error": str(last_error)[:200],
                },
            )
            outcome = fallback(last_error)
            if inspect.isawaitable(outcome):
                outcome = await outcome
            return outcome
