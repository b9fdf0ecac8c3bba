"""Sequence batch submitter.

Groups entries by sequence id and posts each group to the backend, yielding
lifecycle events as it goes. Per-group failures are folded into the result
and never stop the run.
"""

import copy
import time
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Dict, Optional, Sequence

from bulk_upload.core.batch.backend import SubmissionBackend
from bulk_upload.core.batch.events import (
    GroupCompleted,
    GroupProgress,
    GroupStarted,
    RunFinished,
    SubmissionEvent,
)
from bulk_upload.core.batch.grouping import group_by_sequence
from bulk_upload.core.batch.models import (
    ErrorRecord,
    GroupOutcome,
    GroupResponse,
    SequenceGroup,
    SubmissionResult,
    SuccessRecord,
    extract_document_number,
)
from bulk_upload.core.batch.strategies import GroupStrategy, SequentialGroupStrategy
from bulk_upload.core.cancellation import CancellationToken
from bulk_upload.core.errors import (
    BatchValidationError,
    ResponseParseError,
    SubmissionError,
)
from bulk_upload.core.execution.retry_handler import RetryHandler
from bulk_upload.core.logging import logger
from bulk_upload.core.retry_config import RetryConfig


@dataclass
class SubmissionCallbacks:
    """Callback table for callers that prefer callbacks over the event stream."""

    batch_start: Optional[Callable[[int, int], Any]] = None
    batch_progress: Optional[Callable[[int, int, int, int], Any]] = None
    success: Optional[Callable[[SubmissionResult], Any]] = None
    error: Optional[Callable[[SubmissionError, SubmissionResult], Any]] = None


class SequenceBatchSubmitter:
    """Submits entries to a backend one sequence group at a time.

    Owns grouping, retry and accumulation of per-entry outcomes. Progress is
    reported only through the yielded events; the submitter never touches
    the caller's display state.
    """

    def __init__(
        self,
        backend: SubmissionBackend,
        retry_config: Optional[RetryConfig] = None,
        strategy: Optional[GroupStrategy] = None,
        sequence_field: Optional[str] = None,
        retry_handler: Optional[RetryHandler] = None,
    ):
        """Initialize submitter.

        Args:
            backend: Backend that posts one group
            retry_config: Retry behavior (ignored if retry_handler is given)
            strategy: Group scheduling strategy (default sequential)
            sequence_field: Explicit entry field holding the sequence id
            retry_handler: Preconfigured RetryHandler (tests inject seeded jitter)
        """
        if backend is None:
            raise BatchValidationError("Submission backend is required")

        self.backend = backend
        self.retry_handler = retry_handler or RetryHandler(retry_config)
        self.strategy = strategy or SequentialGroupStrategy()
        self.sequence_field = sequence_field
        self._token: Optional[CancellationToken] = None
        self._is_processing = False

    @property
    def is_processing(self) -> bool:
        return self._is_processing

    def cancel(self) -> bool:
        """Signal cancellation to the active run.

        Returns:
            True if a running submission was signalled
        """
        if not self._is_processing or self._token is None:
            return False
        return self._token.cancel()

    async def process(
        self,
        entries: Sequence[Dict[str, Any]],
        token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[SubmissionEvent]:
        """Submit all entries and yield lifecycle events.

        Yields GroupStarted before each group, GroupCompleted and GroupProgress
        after it, and exactly one RunFinished at the end.

        Args:
            entries: Entries to submit (copied, never mutated)
            token: Cancellation token (a fresh one is created if omitted)

        Raises:
            BatchValidationError: If entries are empty or a run is already active
        """
        if not entries:
            raise BatchValidationError("Valid entries array is required")
        if self._is_processing:
            raise BatchValidationError("Another batch process is already running")

        self._token = token or CancellationToken()
        self._is_processing = True
        start_time = time.time()

        try:
            snapshot = [copy.deepcopy(dict(entry)) for entry in entries]
            groups = group_by_sequence(snapshot, self.sequence_field)
            total_groups = len(groups)
            result = SubmissionResult(total_records=len(snapshot), total_groups=total_groups)

            logger.info(
                "submission_started",
                total_entries=len(snapshot),
                total_groups=total_groups,
                strategy=self.strategy.name,
            )

            processed_items = 0
            async for item in self.strategy.execute(groups, self._submit_group, self._token):
                if isinstance(item, GroupStarted):
                    yield item
                    continue

                outcome: GroupOutcome = item
                result.success_records.extend(outcome.success_records)
                result.error_records.extend(outcome.error_records)
                result.completed_groups += 1
                if not outcome.succeeded:
                    result.failed_groups.append(outcome.group.sequence_id)
                processed_items += outcome.group.size

                yield GroupCompleted(
                    group_index=outcome.group.index,
                    total_groups=total_groups,
                    sequence_id=outcome.group.sequence_id,
                    success_records=list(outcome.success_records),
                    error_records=list(outcome.error_records),
                    error=outcome.error,
                    retries=outcome.retries,
                )
                yield GroupProgress(
                    group_index=outcome.group.index,
                    total_groups=total_groups,
                    processed_items=processed_items,
                    total_items=result.total_records,
                )

            result.cancelled = self._token.cancelled and result.completed_groups < total_groups

            logger.info(
                "submission_finished",
                success_count=result.success_count,
                failure_count=result.failure_count,
                not_attempted=result.not_attempted_count,
                failed_groups=len(result.failed_groups),
                cancelled=result.cancelled,
                processing_time=round(time.time() - start_time, 2),
            )

            yield RunFinished(result=result, error=self._aggregate_error(result))
        finally:
            self._is_processing = False

    async def submit(
        self,
        entries: Sequence[Dict[str, Any]],
        callbacks: SubmissionCallbacks,
        token: Optional[CancellationToken] = None,
    ) -> SubmissionResult:
        """Callback-table form of ``process``.

        Exactly one of ``callbacks.success`` / ``callbacks.error`` fires.
        Exceptions raised by callbacks are logged and do not stop the run.
        """
        finished: Optional[RunFinished] = None

        async for event in self.process(entries, token):
            if isinstance(event, GroupStarted):
                self._invoke("batch_start", callbacks.batch_start, event.group_index, event.total_groups)
            elif isinstance(event, GroupProgress):
                self._invoke(
                    "batch_progress",
                    callbacks.batch_progress,
                    event.group_index,
                    event.total_groups,
                    event.processed_items,
                    event.total_items,
                )
            elif isinstance(event, RunFinished):
                finished = event

        if finished.error is not None:
            self._invoke("error", callbacks.error, finished.error, finished.result)
        else:
            self._invoke("success", callbacks.success, finished.result)
        return finished.result

    @staticmethod
    def _invoke(name: str, callback: Optional[Callable[..., Any]], *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.error("submission_callback_failed", callback=name, error=str(e), exc_info=True)

    async def _submit_group(self, group: SequenceGroup, token: CancellationToken) -> GroupOutcome:
        """Post one group through the retry handler and build per-entry records."""
        logger.info(
            "group_submission_started",
            group_index=group.index,
            sequence_id=group.sequence_id,
            entry_count=group.size,
        )

        outcome = await self.retry_handler.execute_with_retry(
            lambda: self.backend.submit_group(group),
            token=token,
            operation_name=f"sequence:{group.sequence_id}",
        )

        if outcome.success:
            try:
                return self._success_outcome(group, outcome.value, outcome.retry_count)
            except Exception as e:
                error = ResponseParseError(
                    f"Could not read backend response: {e}", raw=repr(outcome.value)[:200]
                )
                return self._error_outcome(group, error, outcome.retry_count)

        return self._error_outcome(group, outcome.error, outcome.retry_count)

    def _success_outcome(self, group: SequenceGroup, response: Any, retries: int) -> GroupOutcome:
        if response is None:
            response = GroupResponse()
        elif isinstance(response, dict):
            response = GroupResponse(items=[response])
        elif not isinstance(response, GroupResponse):
            raise TypeError(f"Backend returned unsupported response type {type(response).__name__}")

        records = []
        for position, item in enumerate(group.entries):
            payload = dict(response.item_for(position))
            records.append(
                SuccessRecord(
                    sequence_id=group.sequence_id,
                    entry_index=item.entry_index,
                    original_entry=item.entry,
                    response=payload,
                    message=response.message
                    or f"Document created successfully in sequence {group.sequence_id}",
                    document_number=extract_document_number(payload),
                )
            )

        logger.info(
            "group_submission_succeeded",
            group_index=group.index,
            sequence_id=group.sequence_id,
            entry_count=group.size,
            retries=retries,
        )
        return GroupOutcome(group=group, success_records=records, retries=retries)

    def _error_outcome(self, group: SequenceGroup, error: SubmissionError, retries: int) -> GroupOutcome:
        logger.warning(
            "group_submission_failed",
            group_index=group.index,
            sequence_id=group.sequence_id,
            entry_count=group.size,
            error_code=error.code,
            error=error.message,
            error_kind=error.kind,
            retries=retries,
        )
        records = [
            ErrorRecord.from_error(
                sequence_id=group.sequence_id,
                entry_index=item.entry_index,
                original_entry=item.entry,
                error=error,
                retries_attempted=retries,
            )
            for item in group.entries
        ]
        return GroupOutcome(group=group, error_records=records, error=error, retries=retries)

    @staticmethod
    def _aggregate_error(result: SubmissionResult) -> Optional[SubmissionError]:
        if not result.failed_groups:
            return None

        failed = len(result.failed_groups)
        first_message = result.error_records[0].error_message if result.error_records else ""
        if failed == result.completed_groups and result.success_count == 0:
            code = "BATCH_FAILED"
        else:
            code = "PARTIAL_FAILURE"
        return SubmissionError(
            code=code,
            message=f"{failed} of {result.total_groups} sequence groups failed: {first_message}",
        )
