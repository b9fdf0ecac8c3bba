"""Sequence-grouped batch submission.

Components:
- BatchProcessingManager: Run orchestrator (state, progress display, result)
- SequenceBatchSubmitter: Groups entries and posts them group by group
- ProgressTracker: Counters, percentage and time-remaining estimate
- GroupStrategy: Strategy interface (sequential or windowed)
- RunResult: Type-safe result model
"""

from bulk_upload.core.batch.backend import SubmissionBackend
from bulk_upload.core.batch.display import (
    LoggingProgressSink,
    ProgressBroadcaster,
    ProgressDisplay,
    ProgressSink,
)
from bulk_upload.core.batch.manager import BatchProcessingManager, RunOptions
from bulk_upload.core.batch.models import (
    ErrorRecord,
    GroupResponse,
    ResponseData,
    RunResult,
    RunStatus,
    SubmissionResult,
    SuccessRecord,
)
from bulk_upload.core.batch.progress import ProgressTracker
from bulk_upload.core.batch.registry import RunHandle, RunRegistry
from bulk_upload.core.batch.strategies import (
    GroupStrategy,
    SequentialGroupStrategy,
    WindowedGroupStrategy,
)
from bulk_upload.core.batch.submitter import SequenceBatchSubmitter, SubmissionCallbacks
from bulk_upload.core.cancellation import CancellationToken
from bulk_upload.core.errors import (
    BatchValidationError,
    ErrorDetail,
    ResponseParseError,
    SubmissionError,
    SubmissionTimeout,
)

__all__ = [
    "BatchProcessingManager",
    "BatchValidationError",
    "CancellationToken",
    "ErrorDetail",
    "ErrorRecord",
    "GroupResponse",
    "GroupStrategy",
    "LoggingProgressSink",
    "ProgressBroadcaster",
    "ProgressDisplay",
    "ProgressSink",
    "ProgressTracker",
    "ResponseData",
    "ResponseParseError",
    "RunHandle",
    "RunOptions",
    "RunRegistry",
    "RunResult",
    "RunStatus",
    "SequenceBatchSubmitter",
    "SequentialGroupStrategy",
    "SubmissionBackend",
    "SubmissionCallbacks",
    "SubmissionError",
    "SubmissionResult",
    "SubmissionTimeout",
    "SuccessRecord",
    "WindowedGroupStrategy",
]
