"""Retry policy for calls into the workflow collaborator.

Only transport-type failures are retried. Malformed responses and
programming errors surface on the first attempt.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

import logfire
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from session_research.core.exceptions import ExternalServiceError

P = ParamSpec("P")
T = TypeVar("T")

RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    ExternalServiceError,
    ConnectionError,
    TimeoutError,
)


def collaborator_retry_policy(
    operation: str,
    *,
    attempts: int,
    base_delay: float,
    max_delay: float,
    retry_on: tuple[type[BaseException], ...],
) -> AsyncRetrying:
    def before_sleep(state: RetryCallState) -> None:
        error = state.outcome.exception() if state.outcome else None
        logfire.warning(
            "Retrying collaborator call",
            operation=operation,
            attempt=state.attempt_number,
            of=attempts,
            sleep=state.next_action.sleep if state.next_action else None,
            error=str(error) if error else None,
        )

    return AsyncRetrying(
        stop=stop_after_attempt(max(1, attempts)),
        wait=wait_exponential(multiplier=base_delay, min=base_delay, max=max_delay),
        retry=retry_if_exception_type(retry_on),
        before_sleep=before_sleep,
        reraise=True,
    )


async def retry_async(
    func: Callable[P, Awaitable[T]],
    *args: P.args,
    attempts: int = 3,
    base_delay: float = 0.2,
    max_delay: float = 2.0,
    retry_on: tuple[type[BaseException], ...] = RETRYABLE_ERRORS,
    operation: str | None = None,
    **kwargs: P.kwargs,
) -> T:
    """Await ``func`` with exponential backoff between retryable failures.

    With ``attempts=1`` the callable runs exactly once and its exception
    propagates unchanged.
    """
    policy = collaborator_retry_policy(
        operation or getattr(func, "__qualname__", "call"),
        attempts=attempts,
        base_delay=base_delay,
        max_delay=max_delay,
        retry_on=retry_on,
    )
    async for attempt in policy:
        with attempt:
            return await func(*args, **kwargs)

    raise RuntimeError(f"{operation or 'call'} produced no attempt")  # pragma: no cover
