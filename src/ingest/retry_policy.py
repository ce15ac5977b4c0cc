"""Retry with backoff for fallible async calls.

This module wraps remote calls with classifier-driven retries built on
tenacity. The general policy grows its delay geometrically up to a cap;
the network policy waits a fixed long interval and retries transport
faults forever.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    stop_never,
    wait_exponential,
    wait_fixed,
)
from tenacity.stop import stop_base
from tenacity.wait import wait_base

from core.constants import (
    DEFAULT_RETRY_BACKOFF_MULTIPLIER,
    DEFAULT_RETRY_INITIAL_DELAY_SECONDS,
    DEFAULT_RETRY_MAX_DELAY_SECONDS,
    NETWORK_RETRY_DELAY_SECONDS,
)
from core.logging_config import get_logger
from ingest.error_classification import is_network_error

_LOGGER = get_logger(__name__)

T = TypeVar("T")

RetryCallback = Callable[[int, Exception, float], None]
SleepFunction = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff schedule for retried calls.

    Attributes:
        initial_delay_seconds: Delay before the first retry.
        max_delay_seconds: Upper bound for any single delay.
        backoff_multiplier: Growth factor applied after each retry.
        max_attempts: Total attempts allowed, None for unlimited.
    """

    initial_delay_seconds: float = DEFAULT_RETRY_INITIAL_DELAY_SECONDS
    max_delay_seconds: float = DEFAULT_RETRY_MAX_DELAY_SECONDS
    backoff_multiplier: float = DEFAULT_RETRY_BACKOFF_MULTIPLIER
    max_attempts: int | None = None

    def wait_strategy(self) -> wait_base:
        """Build the tenacity wait strategy for this schedule."""
        if self.backoff_multiplier == 1.0:
            return wait_fixed(min(self.initial_delay_seconds, self.max_delay_seconds))
        return wait_exponential(
            multiplier=self.initial_delay_seconds,
            exp_base=self.backoff_multiplier,
            max=self.max_delay_seconds,
        )

    def stop_strategy(self) -> stop_base:
        """Build the tenacity stop condition for this schedule."""
        if self.max_attempts is None:
            return stop_never
        return stop_after_attempt(self.max_attempts)


DEFAULT_RETRY_POLICY = RetryPolicy()

NETWORK_RETRY_POLICY = RetryPolicy(
    initial_delay_seconds=NETWORK_RETRY_DELAY_SECONDS,
    max_delay_seconds=NETWORK_RETRY_DELAY_SECONDS,
    backoff_multiplier=1.0,
    max_attempts=None,
)


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    should_retry: Callable[[Exception], bool] = lambda error: True,
    on_retry: RetryCallback | None = None,
    sleep: SleepFunction = asyncio.sleep,
) -> T:
    """Run an async operation, retrying classified failures with backoff.

    Args:
        operation: Zero-argument factory returning a fresh awaitable per attempt.
        policy: Delay schedule and attempt limit.
        should_retry: Classifier; errors it rejects propagate immediately.
        on_retry: Optional callback receiving attempt, error and delay.
        sleep: Awaitable sleep used between attempts.

    Returns:
        Result of the first successful attempt.

    Raises:
        Exception: The last error when it is not retryable or attempts ran out.
    """

    def _before_sleep(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception()
        delay = retry_state.next_action.sleep
        _LOGGER.warning(
            "retry_scheduled",
            attempt=retry_state.attempt_number,
            error=str(error),
            error_type=type(error).__name__,
            delay_seconds=delay,
        )
        if on_retry is not None:
            on_retry(retry_state.attempt_number, error, delay)

    def _on_exhausted(retry_state: RetryCallState) -> T:
        _LOGGER.error(
            "retry_attempts_exhausted",
            attempts=retry_state.attempt_number,
            max_attempts=policy.max_attempts,
            error=str(retry_state.outcome.exception()),
        )
        return retry_state.outcome.result()

    retrying = AsyncRetrying(
        retry=retry_if_exception(
            lambda error: isinstance(error, Exception) and should_retry(error)
        ),
        wait=policy.wait_strategy(),
        stop=policy.stop_strategy(),
        before_sleep=_before_sleep,
        retry_error_callback=_on_exhausted,
        sleep=sleep,
        reraise=True,
    )
    return await retrying(operation)


async def retry_on_network_error(
    operation: Callable[[], Awaitable[T]],
    on_retry: RetryCallback | None = None,
    sleep: SleepFunction = asyncio.sleep,
    policy: RetryPolicy = NETWORK_RETRY_POLICY,
) -> T:
    """Retry an operation indefinitely on transient network faults.

    Only errors matching ``is_network_error`` are retried; pruned-state and
    other errors propagate on the first failure.
    """
    return await retry_with_backoff(
        operation,
        policy=policy,
        should_retry=is_network_error,
        on_retry=on_retry,
        sleep=sleep,
    )
