# ABOUTME: Exponential-backoff retry decorator shared by model, provider and geolocation calls.
# ABOUTME: Wraps tenacity so each call site only supplies a policy and a transient-error predicate.

import functools
import logging
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

import httpx
from tenacity import AsyncRetrying, before_sleep_log, retry_if_exception, stop_after_attempt, wait_exponential

from nimbus.config import RetryPolicy

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


def retrying(
    policy: RetryPolicy,
    retry_on: Callable[[BaseException], bool],
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Build a decorator that retries an async callable while `retry_on(exc)` is true.

    Waits base_delay, then doubles, capped at max_delay. After max_attempts the
    last exception is re-raised unchanged so callers can translate it.
    """

    def decorator(fn: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @functools.wraps(fn)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(policy.max_attempts),
                wait=wait_exponential(multiplier=policy.base_delay, max=policy.max_delay),
                retry=retry_if_exception(retry_on),
                before_sleep=before_sleep_log(logger, logging.DEBUG),
                reraise=True,
            ):
                with attempt:
                    result = await fn(*args, **kwargs)
            return result

        return wrapper

    return decorator


def is_transient_http_error(exc: BaseException) -> bool:
    """Network failures, timeouts and 5xx responses are worth retrying; other statuses are not."""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return isinstance(exc, httpx.TransportError)
