"""
Retry Policy
============

Bounded exponential backoff with jitter.

Used by the optimistic-concurrency loops (ticket writes) and by the audit
append retry in the lifecycle committer. The number of attempts and the
backoff shape are tunable from Settings instead of being baked into loops.
"""

import asyncio
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

from supportdesk.core import ConflictException
from supportdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    How many times to try an operation and how long to wait in between.

    delay(attempt) = min(max_delay, base_delay * 2 ** (attempt - 1)) + U(0, jitter)
    """

    max_attempts: int = 3
    base_delay: float = 0.05
    max_delay: float = 0.5
    jitter: float = 0.05
    rng: Callable[[], float] = field(default=random.random, compare=False, repr=False)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0 or self.jitter < 0:
            raise ValueError("delays must be non-negative")

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        """Build the ticket-write policy from application settings."""
        return cls(
            max_attempts=settings.concurrency_max_attempts,
            base_delay=settings.concurrency_base_delay_seconds,
            max_delay=settings.concurrency_max_delay_seconds,
            jitter=settings.concurrency_jitter_seconds,
        )

    @classmethod
    def immediate(cls, max_attempts: int = 3) -> "RetryPolicy":
        """Policy with no waiting between attempts."""
        return cls(max_attempts=max_attempts, base_delay=0.0, max_delay=0.0, jitter=0.0)

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after the given (1-based) failed attempt."""
        backoff = min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))
        return backoff + self.jitter * self.rng()

    def has_attempts_left(self, attempt: int) -> bool:
        return attempt < self.max_attempts

    async def backoff(self, attempt: int) -> None:
        delay = self.delay_for(attempt)
        if delay > 0:
            await asyncio.sleep(delay)


async def retry_on_conflict(
    policy: RetryPolicy,
    operation: Callable[[], Awaitable[T]],
    *,
    name: str,
    ticket_id: str,
) -> T:
    """
    Run a read-decide-commit operation, re-running it on version conflicts.

    `operation` must re-read whatever it decides on, every attempt. The last
    ConflictException is re-raised once the policy has no attempts left.
    """
    attempt = 1
    while True:
        try:
            return await operation()
        except ConflictException:
            if not policy.has_attempts_left(attempt):
                logger.warning(
                    f"{name} gave up after version conflicts",
                    extra={"ticket_id": ticket_id, "attempts": attempt}
                )
                raise
            logger.info(
                f"{name} hit a version conflict, retrying",
                extra={"ticket_id": ticket_id, "attempt": attempt}
            )
            await policy.backoff(attempt)
            attempt += 1
