# src/services/retry_policy.py

"""Bounded-retry combinator shared by browser launch and navigation."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

logger = logging.getLogger("pricepulse.retry")

T = TypeVar("T")

Backoff = Callable[[int], float]
Sleep = Callable[[float], Awaitable[None]]


def linear_backoff(base: float) -> Backoff:
    """Delay of ``attempt * base`` seconds after the given failed attempt."""
    def _delay(attempt: int) -> float:
        return attempt * base
    return _delay


def no_backoff(attempt: int) -> float:
    """Retry immediately."""
    return 0.0


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try an operation and how long to wait between.

    ``backoff`` receives the 1-based number of the attempt that just
    failed and returns the seconds to sleep before the next one.
    ``retry_on`` limits which exceptions are retried; anything else
    propagates immediately.
    """

    max_attempts: int = 3
    backoff: Backoff = no_backoff
    retry_on: tuple[type[BaseException], ...] = field(
        default=(Exception,)
    )

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        description: str = "operation",
        sleep: Sleep = asyncio.sleep,
    ) -> T:
        """Await *operation* until it succeeds or attempts run out.

        The exception from the final attempt is re-raised unchanged.
        """
        attempts = max(1, self.max_attempts)
        for attempt in range(1, attempts + 1):
            try:
                return await operation()
            except self.retry_on as exc:
                if attempt >= attempts:
                    logger.warning(
                        "%s failed on final attempt %d/%d: %s",
                        description,
                        attempt,
                        attempts,
                        exc,
                    )
                    raise
                delay = self.backoff(attempt)
                logger.warning(
                    "%s failed on attempt %d/%d: %s (retrying in %.1fs)",
                    description,
                    attempt,
                    attempts,
                    exc,
                    delay,
                )
                if delay > 0:
                    await sleep(delay)
        # unreachable: the loop either returns or raises
        raise RuntimeError(f"{description}: retry loop exited")
