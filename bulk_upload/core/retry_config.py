"""Retry configuration for backend submissions.

Immutable configuration for retry, backoff and per-call timeout behavior.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple


class ErrorCategory(str, Enum):
    """Error categories for classification and retry decisions.

    - CONCURRENCY: Backend lock/concurrency codes on the retry allowlist (e.g. ME/006)
    - TRANSIENT: Temporary errors (timeouts, connection errors, 502/503/504)
    - RATE_LIMIT: Rate limiting errors (429)
    - PERMANENT: Permanent errors (other 4xx, malformed responses)
    - UNKNOWN: Unknown errors (default to no retry)
    """

    CONCURRENCY = "concurrency"
    TRANSIENT = "transient"
    RATE_LIMIT = "rate_limit"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class RetryConfig:
    """Configuration for retry behavior.

    Only categories listed in ``retry_on`` are retried. Timeouts are TRANSIENT
    and therefore not retried by default: a posting that timed out may still
    have been booked by the backend.
    """

    max_retries: int = 5
    initial_delay: float = 5.0  # seconds
    backoff_factor: float = 2.0  # exponential backoff multiplier
    max_delay: float = 60.0  # cap at 60 seconds
    jitter: Tuple[float, float] = (0.85, 1.15)
    call_timeout: Optional[float] = 60.0  # seconds per backend call, None disables
    retryable_codes: Tuple[str, ...] = ("ME/006",)
    retry_on: List[ErrorCategory] = field(
        default_factory=lambda: [ErrorCategory.CONCURRENCY]
    )

    def backoff_delay(self, retry_count: int, jitter_factor: float = 1.0) -> float:
        """Delay before retry number ``retry_count + 1``.

        delay = min(initial_delay * backoff_factor ** retry_count, max_delay) * jitter_factor
        """
        base = min(self.initial_delay * (self.backoff_factor**retry_count), self.max_delay)
        return base * jitter_factor
