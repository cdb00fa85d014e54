"""Retry policy for transient storage conflicts."""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

from moneyrank.config import Settings


@dataclass
class RetryConfig:
    """Configuration for retry behavior.

    Attributes:
        max_retries: Retries after the first attempt (total tries = max_retries + 1)
        base_delay: Base delay between retries in seconds
        max_delay: Maximum delay between retries in seconds
        exponential_base: Base for exponential backoff
        jitter: Whether to add random jitter to delay
        retryable_exceptions: Exception types that should trigger retry
    """

    max_retries: int = 4
    base_delay: float = 0.05
    max_delay: float = 1.0
    exponential_base: float = 2.0
    jitter: bool = True
    retryable_exceptions: tuple[type[BaseException], ...] = field(
        default_factory=lambda: (
            IntegrityError,
            OperationalError,
            asyncio.TimeoutError,
        )
    )

    @classmethod
    def from_settings(cls, settings: Settings) -> RetryConfig:
        return cls(
            max_retries=settings.submission_max_retries,
            base_delay=settings.submission_retry_base_delay,
            max_delay=settings.submission_retry_max_delay,
        )

    def calculate_delay(self, attempt: int) -> float:
        """Delay before retry number `attempt` (0-indexed)."""
        delay = min(self.base_delay * (self.exponential_base ** attempt), self.max_delay)
        if self.jitter:
            delay = delay * (0.5 + random.random())  # noqa: S311
        return delay

    def is_retryable(self, exc: BaseException) -> bool:
        if isinstance(exc, self.retryable_exceptions):
            return True
        if isinstance(exc, DBAPIError):
            return _sqlstate(exc) in _TRANSIENT_SQLSTATES
        return False


# serialization_failure, deadlock_detected, lock_not_available
_TRANSIENT_SQLSTATES = frozenset({"40001", "40P01", "55P03"})


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
