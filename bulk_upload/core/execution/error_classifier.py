"""Error classifier for backend submissions.

Classifies normalized errors into categories for retry decisions.
"""

from typing import Sequence

from bulk_upload.core.errors import (
    ResponseParseError,
    SubmissionError,
    SubmissionTimeout,
)
from bulk_upload.core.retry_config import ErrorCategory, RetryConfig


class ErrorClassifier:
    """Classifies submission errors into categories.

    Static methods for stateless classification.
    """

    @staticmethod
    def categorize(
        error: SubmissionError, retryable_codes: Sequence[str] = ("ME/006",)
    ) -> ErrorCategory:
        """Categorize an error.

        The retry allowlist is checked first, against the top-level code and
        every detail code (SAP often reports the lock in a detail only).

        Args:
            error: Normalized SubmissionError
            retryable_codes: Backend codes that mean "locked, try again later"

        Returns:
            ErrorCategory enum value
        """
        codes = [error.code, *error.detail_codes]
        if any(code in retryable_codes for code in codes):
            return ErrorCategory.CONCURRENCY

        # A success payload we could not read must never be re-posted
        if isinstance(error, ResponseParseError):
            return ErrorCategory.PERMANENT

        if isinstance(error, SubmissionTimeout) or error.code in ("TIMEOUT", "CONNECTION_ERROR"):
            return ErrorCategory.TRANSIENT

        status = error.status_code
        if status == 429:
            return ErrorCategory.RATE_LIMIT
        if status in (502, 503, 504):
            return ErrorCategory.TRANSIENT
        if status is not None and 400 <= status < 500:
            return ErrorCategory.PERMANENT

        message = error.message.lower()
        if "timeout" in message or "timed out" in message:
            return ErrorCategory.TRANSIENT

        return ErrorCategory.UNKNOWN

    @staticmethod
    def is_retryable(error: SubmissionError, config: RetryConfig) -> bool:
        """Check whether an error's category is on the config's retry list."""
        return ErrorClassifier.categorize(error, config.retryable_codes) in config.retry_on
