"""Retry policy for agent turns: exponential backoff with jitter and a
per-attempt timeout."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from spawnkit.config import Settings
from spawnkit.errors import UpstreamError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    max_jitter: float = 1.0
    timeout: float = 30.0
    retry_on: tuple[type[BaseException], ...] = (UpstreamError, TimeoutError)
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, compare=False)

    @classmethod
    def from_settings(cls, settings: Settings, **overrides) -> RetryPolicy:
        values = {
            "max_attempts": settings.retry_max_attempts,
            "base_delay": settings.retry_base_delay,
            "max_jitter": settings.retry_max_jitter,
            "timeout": settings.turn_timeout,
        }
        values.update(overrides)
        return cls(**values)

    def delay(self, attempt: int) -> float:
        """Backoff before the retry following ``attempt`` (1-based)."""
        return self.base_delay * (2**attempt) + random.uniform(0, self.max_jitter)

    async def run(self, fn: Callable[[], Awaitable[T]], label: str = "operation") -> T:
        """Run ``fn`` until it succeeds or attempts are exhausted.

        Exceptions outside ``retry_on`` propagate immediately; after the
        last attempt the final error is re-raised.
        """
        last_error: BaseException | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await asyncio.wait_for(fn(), timeout=self.timeout)
            except self.retry_on as e:
                last_error = e
                if attempt == self.max_attempts:
                    break
                wait = self.delay(attempt)
                logger.warning(
                    "%s failed (attempt %d/%d), retrying in %.2fs: %s",
                    label,
                    attempt,
                    self.max_attempts,
                    wait,
                    e,
                )
                await self.sleep(wait)

        logger.error("%s failed after %d attempts: %s", label, self.max_attempts, last_error)
        assert last_error is not None
        raise last_error
