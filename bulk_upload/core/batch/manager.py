"""Batch processing manager.

Owns one run from the caller's point of view: resets state, consumes the
submitter's event stream, keeps the live progress display and the running
ResponseData aggregate, and produces the single RunResult the caller awaits.
"""

import copy
import math
import secrets
import time
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import structlog

from bulk_upload.core.batch.display import ProgressDisplay, ProgressSink
from bulk_upload.core.batch.events import GroupCompleted, GroupProgress, GroupStarted, RunFinished
from bulk_upload.core.batch.grouping import resolve_sequence_key
from bulk_upload.core.batch.models import (
    ErrorRecord,
    ProcessingState,
    ResponseData,
    RunResult,
    RunStatus,
    SuccessRecord,
)
from bulk_upload.core.batch.progress import ProgressTracker
from bulk_upload.core.batch.submitter import SequenceBatchSubmitter
from bulk_upload.core.cancellation import CancellationToken
from bulk_upload.core.errors import BatchValidationError, SubmissionError
from bulk_upload.core.execution.error_normalizer import extract_submission_error
from bulk_upload.core.logging import logger


@dataclass
class RunOptions:
    """Per-run options."""

    batch_size: int = 10  # entries per display batch before group counts are known
    show_progress: bool = True  # publish snapshots to sinks


def generate_run_id() -> str:
    return f"run_{int(time.time() * 1000)}_{secrets.token_urlsafe(8)}"


class BatchProcessingManager:
    """Orchestrates one submission run at a time.

    State machine per run:
        idle -> initializing -> running -> completed | completed_with_errors | cancelled
    (or failed, when the event stream itself breaks). The manager is the only
    writer of the display snapshot and of ResponseData.
    """

    def __init__(
        self,
        submitter: Optional[SequenceBatchSubmitter],
        sinks: Optional[List[ProgressSink]] = None,
        clock: Callable[[], float] = time.monotonic,
        run_id: Optional[str] = None,
    ):
        """Initialize manager.

        Args:
            submitter: Submitter that talks to the backend
            sinks: Progress sinks receiving every published snapshot
            clock: Monotonic clock (injectable for tests)
            run_id: Identifier used in logs and results
        """
        self._submitter = submitter
        self._sinks = list(sinks or [])
        self._clock = clock
        self._tracker = ProgressTracker(clock)
        self.run_id = run_id or generate_run_id()

        self._options = RunOptions()
        self._state = ProcessingState()
        self._response = ResponseData()
        self._display: Optional[ProgressDisplay] = None
        self._status = RunStatus.IDLE
        self._token: Optional[CancellationToken] = None
        self._result: Optional[RunResult] = None
        self._started_at: Optional[float] = None

    # Read-only views

    @property
    def status(self) -> RunStatus:
        return self._status

    @property
    def display(self) -> Optional[ProgressDisplay]:
        return self._display

    @property
    def result(self) -> Optional[RunResult]:
        return self._result

    def get_processing_state(self) -> ProcessingState:
        return replace(self._state)

    def get_response_data(self) -> ResponseData:
        """Copy of the running aggregate, with counts taken from the tracker."""
        progress = self._tracker.get_progress()
        return ResponseData(
            total_records=progress.total,
            success_count=progress.success_count,
            failure_count=progress.failure_count,
            success_records=list(self._response.success_records),
            error_records=list(self._response.error_records),
            initial_entries=copy.deepcopy(self._response.initial_entries),
        )

    # Run lifecycle

    async def process_records_in_batch(
        self,
        entries: Sequence[Dict[str, Any]],
        options: Optional[Union[RunOptions, Dict[str, Any]]] = None,
    ) -> RunResult:
        """Submit entries and wait for the terminal result.

        Backend failures never raise out of this method; they end up in the
        returned RunResult.

        Args:
            entries: Entries to submit
            options: RunOptions or dict with ``batch_size`` / ``show_progress``

        Returns:
            RunResult describing the terminal state

        Raises:
            BatchValidationError: Empty entries, no submitter, or a run already active
        """
        if not entries:
            raise BatchValidationError("No entries to process")
        if self._submitter is None:
            raise BatchValidationError("Submission service not initialized")
        if self._state.is_processing or self._submitter.is_processing:
            raise BatchValidationError("Another batch process is already running")

        self._options = self._resolve_options(options)
        total = len(entries)

        self._status = RunStatus.INITIALIZING
        self._state = ProcessingState(
            is_processing=True,
            is_canceled=False,
            current_batch_index=0,
            total_batches=max(1, math.ceil(total / self._options.batch_size)),
        )
        self._tracker.start(total)
        self._response = ResponseData(
            total_records=total,
            initial_entries=[copy.deepcopy(dict(entry)) for entry in entries],
        )
        self._result = None
        self._token = CancellationToken()
        self._started_at = self._clock()
        self._display = None

        with structlog.contextvars.bound_contextvars(run_id=self.run_id):
            logger.info(
                "batch_run_started",
                total_entries=total,
                batch_size=self._options.batch_size,
                show_progress=self._options.show_progress,
            )
            self._init_display(total)
            self._status = RunStatus.RUNNING

            finished: Optional[RunFinished] = None
            try:
                async for event in self._submitter.process(entries, self._token):
                    if isinstance(event, GroupStarted):
                        self._on_batch_start(event)
                    elif isinstance(event, GroupProgress):
                        self._on_batch_progress(event)
                    elif isinstance(event, GroupCompleted):
                        self._handle_batch_result(event.success_records, event.error_records)
                    elif isinstance(event, RunFinished):
                        finished = event
            except BatchValidationError:
                self._state.is_processing = False
                self._status = RunStatus.IDLE
                raise
            except Exception as e:
                logger.error("batch_run_stream_failed", error=str(e), exc_info=True)
                return self._on_stream_failure(extract_submission_error(e))

            if finished is None:
                return self._on_stream_failure(
                    SubmissionError(
                        code="STREAM_ENDED",
                        message="Submission ended without a final result",
                    )
                )
            return self._on_run_finished(finished)

    # Legacy method names
    async def start_batch_processing(self, entries, options=None) -> RunResult:
        return await self.process_records_in_batch(entries, options)

    async def run(self, entries, options=None) -> RunResult:
        return await self.process_records_in_batch(entries, options)

    def cancel_processing(self) -> bool:
        """Request cooperative cancellation of the active run.

        Only latches the flag and signals the submitter; the terminal state is
        computed when the submitter's final event arrives.

        Returns:
            True if the request was accepted
        """
        if not self._state.is_processing or self._state.is_canceled:
            return False

        self._state.is_canceled = True
        if self._token is not None:
            self._token.cancel()

        logger.info("batch_run_cancel_requested", run_id=self.run_id)
        self._update_display(status="Cancelling processing...")
        return True

    def cancel(self) -> bool:
        return self.cancel_processing()

    def reset(self) -> bool:
        """Return to idle after a terminal state. Ignored while a run is active."""
        if self._state.is_processing:
            return False
        self._status = RunStatus.IDLE
        self._display = None
        return True

    # Event handlers

    def _on_batch_start(self, event: GroupStarted) -> None:
        logger.info(
            "sequence_group_started",
            group_index=event.group_index,
            total_groups=event.total_groups,
            sequence_id=event.sequence_id,
        )
        self._state.current_batch_index = event.group_index
        self._state.total_batches = event.total_groups
        self._update_display(
            status=self._group_status(f"Processing sequence group {event.group_index} of {event.total_groups}...")
        )

    def _on_batch_progress(self, event: GroupProgress) -> None:
        self._state.current_batch_index = event.group_index
        self._state.total_batches = event.total_groups
        self._update_display(
            status=self._group_status(
                f"Processing sequence group {event.group_index} of {event.total_groups} - "
                f"{event.processed_items} of {event.total_items} items processed..."
            )
        )

    def _group_status(self, status: str) -> Optional[str]:
        # Keep "Cancelling processing..." visible until the run ends
        return None if self._state.is_canceled else status

    def _handle_batch_result(
        self, success_records: Sequence[SuccessRecord], error_records: Sequence[ErrorRecord]
    ) -> None:
        """Fold one batch of outcomes into the aggregate and the tracker."""
        if success_records:
            self._response.success_records.extend(success_records)
            self._response.success_count += len(success_records)
            self._tracker.update(len(success_records), True, success_records)

        if error_records:
            self._response.error_records.extend(error_records)
            self._response.failure_count += len(error_records)
            self._tracker.update(len(error_records), False, error_records)

        self._update_display()

    def _on_run_finished(self, event: RunFinished) -> RunResult:
        if event.cancelled:
            status = RunStatus.CANCELLED
            self._state.is_canceled = True
        elif event.error is not None:
            status = RunStatus.COMPLETED_WITH_ERRORS
        else:
            status = RunStatus.COMPLETED

        self._status = status
        self._state.is_processing = False
        self._finalize_progress(status == RunStatus.COMPLETED, event.error)

        error_message = None
        if status == RunStatus.COMPLETED_WITH_ERRORS:
            error_message = event.error.message
        elif status == RunStatus.CANCELLED:
            error_message = "Processing was canceled."
        return self._build_result(status, error_message)

    def _on_stream_failure(self, error: SubmissionError) -> RunResult:
        """Close a run whose event stream broke.

        Entries that never got an outcome are reported as errors rebuilt from
        the stored initial entries.
        """
        accounted = self._response.accounted_indexes()
        sequence_field = getattr(self._submitter, "sequence_field", None)
        synthesized = [
            ErrorRecord(
                sequence_id=resolve_sequence_key(entry, index, sequence_field),
                entry_index=index,
                original_entry=entry,
                error_message=f"Submission failed: {error.message}",
                error_code=error.code,
                error_details=error.raw,
                validation_errors=list(error.details),
                error_kind="run_failure",
            )
            for index, entry in enumerate(self._response.initial_entries)
            if index not in accounted
        ]
        self._handle_batch_result([], synthesized)

        self._status = RunStatus.FAILED
        self._state.is_processing = False
        self._finalize_progress(False, error)
        return self._build_result(RunStatus.FAILED, error.message)

    def _build_result(self, status: RunStatus, error_message: Optional[str]) -> RunResult:
        elapsed = self._clock() - self._started_at if self._started_at is not None else 0.0
        self._result = RunResult.create(
            status=status,
            response=self._response,
            error_message=error_message,
            processing_time=elapsed,
            run_id=self.run_id,
        )
        logger.info(
            "batch_run_completed",
            status=status.value,
            success_count=self._result.success_count,
            error_count=self._result.error_count,
            total_count=self._result.total_count,
            processing_time=self._result.processing_time_seconds,
        )
        return self._result

    # Display

    def _init_display(self, total_entries: int) -> None:
        self._publish(
            ProgressDisplay(
                status="Initializing batch processing...",
                total_entries=total_entries,
                total_batches=self._state.total_batches,
                run_status=self._status,
            )
        )

    def _update_display(self, status: Optional[str] = None) -> None:
        # Late events must not overwrite a terminal snapshot
        if self._display is None or self._display.is_completed:
            return

        progress = self._tracker.get_progress()
        elapsed_minutes = progress.elapsed_time / 60
        speed = round(progress.processed / elapsed_minutes) if elapsed_minutes > 0 else 0

        self._publish(
            replace(
                self._display,
                status=status or self._display.status,
                total_entries=progress.total,
                processed_entries=progress.processed,
                success_count=progress.success_count,
                failure_count=progress.failure_count,
                percentage=progress.percentage,
                time_remaining=progress.time_remaining,
                current_batch=self._state.current_batch_index,
                total_batches=self._state.total_batches,
                processing_speed=f"{speed} entries/min",
                run_status=self._status,
            )
        )

    def _finalize_progress(self, success: bool, error: Optional[SubmissionError] = None) -> bool:
        """Publish the terminal snapshot once.

        Returns:
            False if a terminal snapshot was already published (no change made)
        """
        if self._display is not None and self._display.is_completed:
            return False

        progress = self._tracker.get_progress()
        cancelled = self._status == RunStatus.CANCELLED

        if success:
            final_status = "Processing completed successfully"
        elif cancelled:
            final_status = "Processing canceled by user"
        elif self._status == RunStatus.FAILED and error is not None:
            final_status = f"Processing failed: {error.message}"
        elif error is not None:
            final_status = f"Processing completed with errors: {error.message}"
        else:
            final_status = "Processing completed with errors"

        if cancelled:
            error_text = "Processing was canceled."
        else:
            error_text = error.message if error is not None else ""

        base = self._display or ProgressDisplay(status=final_status, total_entries=progress.total)
        self._publish(
            replace(
                base,
                status=final_status,
                error=error_text,
                time_remaining="Completed",
                processing_time=f"{progress.elapsed_time:.2f}s",
                is_completed=True,
                is_error=not success,
                total_entries=progress.total,
                processed_entries=progress.processed,
                success_count=progress.success_count,
                failure_count=progress.failure_count,
                percentage=progress.percentage,
                current_batch=self._state.current_batch_index,
                total_batches=self._state.total_batches,
                run_status=self._status,
            )
        )
        return True

    def _publish(self, snapshot: ProgressDisplay) -> None:
        self._display = snapshot
        if not self._options.show_progress:
            return
        for sink in self._sinks:
            try:
                sink.publish(snapshot)
            except Exception as e:
                logger.error("progress_sink_failed", sink=type(sink).__name__, error=str(e))

    @staticmethod
    def _resolve_options(options: Optional[Union[RunOptions, Dict[str, Any]]]) -> RunOptions:
        if options is None:
            return RunOptions()
        if isinstance(options, RunOptions):
            resolved = replace(options)
        else:
            resolved = RunOptions(
                batch_size=options.get("batch_size", 10),
                show_progress=options.get("show_progress", True),
            )
        if resolved.batch_size < 1:
            raise BatchValidationError("batch_size must be at least 1")
        return resolved
