"""Retry combinator shared by every request the client sends.

A request is retried while the predicate accepts the failure and attempts
remain; the delay before retry ``n`` (zero-based) comes from the backoff
function. The sleep coroutine is a parameter too, so tests can record the
delays instead of waiting them out.

Example:
    from cloudrift.retry import exponential, retry

    @retry(on=aiohttp.ClientConnectionError, max_attempts=5)
    async def fetch():
        ...

    @retry(on=lambda e: getattr(e, "status", 0) == 429, backoff=lambda _: 2.0)
    async def rate_limited():
        ...
"""

from __future__ import annotations

import asyncio
import functools
import random
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass

from loguru import logger

type RetryPredicate = Callable[[Exception], bool]
type RetryOn = type[Exception] | tuple[type[Exception], ...] | RetryPredicate
type Backoff = Callable[[int], float]
type Sleep = Callable[[float], Awaitable[None]]


def exponential(
    base_delay: float = 1.0,
    exponential_base: float = 2.0,
    max_delay: float = 60.0,
    jitter: bool = False,
) -> Backoff:
    """Delay ``min(base_delay * exponential_base ** n, max_delay)`` before retry ``n``.

    With the defaults: 1s, 2s, 4s, 8s, ... With ``jitter`` up to 10% is
    added on top.
    """

    def backoff(n: int) -> float:
        delay = min(base_delay * exponential_base**n, max_delay)
        return delay + random.uniform(0, delay * 0.1) if jitter else delay

    return backoff


def _as_predicate(on: RetryOn) -> RetryPredicate:
    match on:
        case type() if issubclass(on, Exception):
            return lambda e: isinstance(e, on)
        case tuple():
            return lambda e: isinstance(e, on)
        case _:
            return on


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    should_retry: RetryPredicate
    max_attempts: int
    backoff: Backoff

    def delays(self) -> Iterator[float]:
        """One delay per retry, i.e. ``max_attempts - 1`` of them."""
        return (self.backoff(n) for n in range(self.max_attempts - 1))


def retry[**P, T](
    on: RetryOn = Exception,
    max_attempts: int = 5,
    backoff: Backoff | None = None,
    sleep: Sleep = asyncio.sleep,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Retry an async function.

    Args:
        on: An exception class, a tuple of them, or a predicate over the
            raised exception. Anything else is raised immediately.
        max_attempts: Total attempts including the first one (at least 1).
        backoff: Delay before each retry given its zero-based number.
            Default: ``exponential()``.
        sleep: Coroutine used to wait between attempts.

    When every attempt fails the last exception is raised unchanged.
    """
    policy = RetryPolicy(
        should_retry=_as_predicate(on),
        max_attempts=max(max_attempts, 1),
        backoff=backoff or exponential(),
    )
    log = logger.bind(component="retry")

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            delays = policy.delays()
            retried = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    if not policy.should_retry(e):
                        raise
                    if (delay := next(delays, None)) is None:
                        raise
                    retried += 1
                    log.warning(
                        "Retry {n}/{total} after {kind}: {error}. Waiting {delay:.1f}s...",
                        n=retried,
                        total=policy.max_attempts - 1,
                        kind=type(e).__name__,
                        error=e,
                        delay=delay,
                    )
                    await sleep(delay)

        return wrapper

    return decorator
