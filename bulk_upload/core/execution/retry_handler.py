"""Retry handler for backend submissions.

Wraps one backend call with a per-call timeout, exponential backoff with
jitter for retryable error categories, and cancellation-aware waits.
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from bulk_upload.core.cancellation import CancellationToken
from bulk_upload.core.errors import SubmissionError
from bulk_upload.core.execution.error_classifier import ErrorClassifier
from bulk_upload.core.execution.error_normalizer import extract_submission_error
from bulk_upload.core.logging import logger
from bulk_upload.core.retry_config import ErrorCategory, RetryConfig


@dataclass
class RetryOutcome:
    """Final outcome of a call after all retries."""

    success: bool
    value: Any = None
    error: Optional[SubmissionError] = None
    category: Optional[ErrorCategory] = None
    retry_count: int = 0
    cancelled: bool = False


class RetryHandler:
    """Executes a backend call with retry on allowlisted error categories.

    Delay before retry n (0-based): min(initial_delay * backoff_factor ** n, max_delay),
    multiplied by a random jitter factor drawn from ``config.jitter``.
    """

    def __init__(self, config: Optional[RetryConfig] = None, rng: Optional[random.Random] = None):
        """Initialize RetryHandler.

        Args:
            config: RetryConfig with retry behavior settings
            rng: Random source for jitter (seed it in tests)
        """
        self.config = config or RetryConfig()
        self._rng = rng or random.Random()

    def next_delay(self, retry_count: int) -> float:
        low, high = self.config.jitter
        return self.config.backoff_delay(retry_count, self._rng.uniform(low, high))

    async def _call(self, operation: Callable[[], Awaitable[Any]]) -> Any:
        if self.config.call_timeout:
            return await asyncio.wait_for(operation(), timeout=self.config.call_timeout)
        return await operation()

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[Any]],
        token: Optional[CancellationToken] = None,
        operation_name: str = "submit_group",
    ) -> RetryOutcome:
        """Run ``operation`` until it succeeds, fails permanently, or retries run out.

        Never raises for backend failures: every error is normalized and
        returned in the outcome.

        Args:
            operation: Zero-argument coroutine factory (called once per attempt)
            token: Cancellation token; a cancelled token aborts the backoff wait
            operation_name: Name used in log events

        Returns:
            RetryOutcome with value on success, or the last normalized error
        """
        retry_count = 0

        while True:
            try:
                value = await self._call(operation)
                return RetryOutcome(success=True, value=value, retry_count=retry_count)
            except Exception as e:
                error = extract_submission_error(e)

            category = ErrorClassifier.categorize(error, self.config.retryable_codes)

            # Don't retry categories outside the allowlist
            if category not in self.config.retry_on or retry_count >= self.config.max_retries:
                return RetryOutcome(
                    success=False, error=error, category=category, retry_count=retry_count
                )

            delay = self.next_delay(retry_count)
            logger.info(
                "submission_retry_scheduled",
                operation=operation_name,
                attempt=retry_count + 1,
                max_retries=self.config.max_retries,
                delay_seconds=round(delay, 2),
                error_code=error.code,
                category=category.value,
            )

            if token is not None:
                if await token.wait(delay):
                    logger.info(
                        "submission_retry_aborted",
                        operation=operation_name,
                        retries_attempted=retry_count,
                        error_code=error.code,
                    )
                    return RetryOutcome(
                        success=False,
                        error=error,
                        category=category,
                        retry_count=retry_count,
                        cancelled=True,
                    )
            else:
                await asyncio.sleep(delay)

            retry_count += 1
