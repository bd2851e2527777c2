"""
Retry/backoff policy shared by the completion and embedding clients.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Optional


@dataclass(frozen=True)
class BackoffPolicy:
    """Exponential backoff: initial_delay, initial_delay * multiplier, ..."""

    initial_delay: float = 2.0
    multiplier: float = 2.0
    max_attempts: int = 3
    max_delay: Optional[float] = 60.0

    def delays(self) -> Iterator[float]:
        """Yield the sleep before each retry (max_attempts - 1 values)."""
        delay = self.initial_delay
        for _ in range(max(0, self.max_attempts - 1)):
            if self.max_delay is not None:
                delay = min(delay, self.max_delay)
            yield delay
            delay *= self.multiplier


NO_RETRY = BackoffPolicy(initial_delay=0.0, max_attempts=1)


def is_rate_limit_error(exc: BaseException) -> bool:
    """True if the provider signalled rate limiting (HTTP 429 / concurrency cap)."""
    status = getattr(exc, "status_code", None)
    if status == 429:
        return True
    error_str = str(exc).lower()
    return "429" in error_str or "rate limit" in error_str or "concurrency" in error_str
