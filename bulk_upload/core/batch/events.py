"""Events emitted by the submitter while it works through a run.

The submitter yields these in order; the manager consumes them in one loop.
"""

from dataclasses import dataclass
from typing import Any, ClassVar, Dict, List, Optional, Union

from bulk_upload.core.errors import SubmissionError
from bulk_upload.core.batch.models import ErrorRecord, SubmissionResult, SuccessRecord


@dataclass(frozen=True)
class GroupStarted:
    """A sequence group is about to be submitted."""

    type: ClassVar[str] = "group_start"

    group_index: int
    total_groups: int
    sequence_id: str
    entry_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "group_index": self.group_index,
            "total_groups": self.total_groups,
            "sequence_id": self.sequence_id,
            "entry_count": self.entry_count,
        }


@dataclass(frozen=True)
class GroupCompleted:
    """A sequence group finished, successfully or not."""

    type: ClassVar[str] = "group_completed"

    group_index: int
    total_groups: int
    sequence_id: str
    success_records: List[SuccessRecord]
    error_records: List[ErrorRecord]
    error: Optional[SubmissionError] = None
    retries: int = 0

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "group_index": self.group_index,
            "total_groups": self.total_groups,
            "sequence_id": self.sequence_id,
            "succeeded": self.succeeded,
            "success_count": len(self.success_records),
            "error_count": len(self.error_records),
            "error": self.error.to_dict() if self.error else None,
            "retries": self.retries,
        }


@dataclass(frozen=True)
class GroupProgress:
    """Cumulative item progress after a group completed."""

    type: ClassVar[str] = "group_progress"

    group_index: int
    total_groups: int
    processed_items: int
    total_items: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "group_index": self.group_index,
            "total_groups": self.total_groups,
            "processed_items": self.processed_items,
            "total_items": self.total_items,
        }


@dataclass(frozen=True)
class RunFinished:
    """Terminal event, emitted exactly once per run.

    ``error`` is set when at least one group failed; ``result`` always holds
    every success and error record accumulated so far.
    """

    type: ClassVar[str] = "done"

    result: SubmissionResult
    error: Optional[SubmissionError] = None

    @property
    def cancelled(self) -> bool:
        return self.result.cancelled

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "cancelled": self.cancelled,
            "error": self.error.to_dict() if self.error else None,
            "result": self.result.to_dict(),
        }


SubmissionEvent = Union[GroupStarted, GroupCompleted, GroupProgress, RunFinished]
