"""Batch submission models.

Type-safe models for sequence groups, per-entry outcomes, running aggregates
and the final run result.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from bulk_upload.core.errors import ErrorDetail, SubmissionError

# Checked in this order when an entry has no explicit sequence field configured
SEQUENCE_FIELDS = ("Sequence", "OriginalSequence", "SequenceNumber")

# Keys carrying the number of the document the backend created
DOCUMENT_NUMBER_FIELDS = (
    "AssetNumber",
    "FixedAsset",
    "MasterFixedAsset",
    "AccountingDocument",
    "PurchaseOrder",
    "MaterialDocument",
    "ServiceEntrySheet",
    "WBSElement",
    "WBSElementExternalID",
)


def _timestamp() -> str:
    return datetime.now().isoformat() + "Z"


class RunStatus(str, Enum):
    """Lifecycle of one run."""

    IDLE = "idle"
    INITIALIZING = "initializing"
    RUNNING = "running"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (
            RunStatus.COMPLETED,
            RunStatus.COMPLETED_WITH_ERRORS,
            RunStatus.CANCELLED,
            RunStatus.FAILED,
        )


@dataclass(frozen=True)
class IndexedEntry:
    """An entry together with its position in the original request."""

    entry_index: int
    entry: Dict[str, Any]


@dataclass(frozen=True)
class SequenceGroup:
    """Entries sharing one sequence id, submitted as one backend unit."""

    index: int  # 1-based, user facing "batch N of M"
    sequence_id: str
    entries: Tuple[IndexedEntry, ...]

    @property
    def size(self) -> int:
        return len(self.entries)

    @property
    def raw_entries(self) -> List[Dict[str, Any]]:
        return [item.entry for item in self.entries]


@dataclass
class GroupResponse:
    """What a backend returns for a successfully posted group.

    ``items`` holds the confirmation payloads. When there are fewer items than
    entries (one document for many lines), the last item is reused.
    """

    items: List[Dict[str, Any]] = field(default_factory=list)
    message: Optional[str] = None

    def item_for(self, position: int) -> Dict[str, Any]:
        if not self.items:
            return {}
        if position < len(self.items):
            return self.items[position]
        return self.items[-1]


def extract_document_number(payload: Dict[str, Any]) -> Optional[str]:
    for key in DOCUMENT_NUMBER_FIELDS:
        value = payload.get(key)
        if value not in (None, ""):
            return str(value)
    return None


@dataclass
class SuccessRecord:
    """One entry confirmed by the backend."""

    sequence_id: str
    entry_index: int
    original_entry: Dict[str, Any]
    response: Dict[str, Any] = field(default_factory=dict)
    message: str = ""
    document_number: Optional[str] = None
    processed_at: str = field(default_factory=_timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequence": self.sequence_id,
            "entry_index": self.entry_index,
            "status": "Success",
            "message": self.message,
            "document_number": self.document_number,
            "response": self.response,
            "original_entry": self.original_entry,
            "processed_at": self.processed_at,
        }

    def to_result(self) -> Dict[str, Any]:
        return {
            "success": True,
            "sequence": self.sequence_id,
            "data": self.response,
            "message": self.message,
            "document_number": self.document_number,
            "original_entry": self.original_entry,
        }


@dataclass
class ErrorRecord:
    """One entry the backend rejected (or that never got a structured answer)."""

    sequence_id: str
    entry_index: int
    original_entry: Dict[str, Any]
    error_message: str
    error_code: str = ""
    error_details: Any = None
    validation_errors: List[ErrorDetail] = field(default_factory=list)
    error_kind: str = "backend"
    retries_attempted: int = 0

    @classmethod
    def from_error(
        cls,
        sequence_id: str,
        entry_index: int,
        original_entry: Dict[str, Any],
        error: SubmissionError,
        retries_attempted: int = 0,
    ) -> "ErrorRecord":
        return cls(
            sequence_id=sequence_id,
            entry_index=entry_index,
            original_entry=original_entry,
            error_message=error.message,
            error_code=error.code,
            error_details=error.raw,
            validation_errors=list(error.details),
            error_kind=error.kind,
            retries_attempted=retries_attempted,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequence": self.sequence_id,
            "entry_index": self.entry_index,
            "status": "Error",
            "error_message": self.error_message,
            "error_code": self.error_code,
            "error_details": self.error_details,
            "validation_errors": [d.to_dict() for d in self.validation_errors],
            "error_kind": self.error_kind,
            "retries_attempted": self.retries_attempted,
            "original_entry": self.original_entry,
        }

    def to_result(self) -> Dict[str, Any]:
        return {
            "success": False,
            "sequence": self.sequence_id,
            "error": self.error_message,
            "error_code": self.error_code,
            "details": self.error_details,
            "validation_errors": [d.to_dict() for d in self.validation_errors],
            "original_entry": self.original_entry,
        }


@dataclass
class GroupOutcome:
    """Result of submitting one sequence group."""

    group: SequenceGroup
    success_records: List[SuccessRecord] = field(default_factory=list)
    error_records: List[ErrorRecord] = field(default_factory=list)
    error: Optional[SubmissionError] = None
    retries: int = 0

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class SubmissionResult:
    """Everything the submitter accumulated over one run."""

    total_records: int
    total_groups: int
    completed_groups: int = 0
    success_records: List[SuccessRecord] = field(default_factory=list)
    error_records: List[ErrorRecord] = field(default_factory=list)
    failed_groups: List[str] = field(default_factory=list)
    cancelled: bool = False

    @property
    def success_count(self) -> int:
        return len(self.success_records)

    @property
    def failure_count(self) -> int:
        return len(self.error_records)

    @property
    def not_attempted_count(self) -> int:
        return self.total_records - self.success_count - self.failure_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cancelled": self.cancelled,
            "total_records": self.total_records,
            "total_groups": self.total_groups,
            "completed_groups": self.completed_groups,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "not_attempted_count": self.not_attempted_count,
            "failed_groups": list(self.failed_groups),
            "success_records": [r.to_dict() for r in self.success_records],
            "error_records": [r.to_dict() for r in self.error_records],
        }


@dataclass
class ProcessingState:
    """Flags of the run in progress. ``is_canceled`` only ever goes False -> True."""

    is_processing: bool = False
    is_canceled: bool = False
    current_batch_index: int = 0
    total_batches: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_processing": self.is_processing,
            "is_canceled": self.is_canceled,
            "current_batch_index": self.current_batch_index,
            "total_batches": self.total_batches,
        }


@dataclass
class ResponseData:
    """Running aggregate of one run, appended to by the manager only."""

    total_records: int = 0
    success_count: int = 0
    failure_count: int = 0
    success_records: List[SuccessRecord] = field(default_factory=list)
    error_records: List[ErrorRecord] = field(default_factory=list)
    initial_entries: List[Dict[str, Any]] = field(default_factory=list)

    def accounted_indexes(self) -> set:
        return {r.entry_index for r in self.success_records} | {
            r.entry_index for r in self.error_records
        }


@dataclass
class RunResult:
    """Structured value returned to the caller of a run."""

    status: RunStatus
    success_count: int
    error_count: int
    total_count: int
    results: List[Dict[str, Any]]
    error_message: Optional[str] = None
    processing_time_seconds: float = 0.0
    run_id: Optional[str] = None
    timestamp: str = field(default_factory=_timestamp)

    @property
    def success(self) -> bool:
        return self.status == RunStatus.COMPLETED

    @property
    def error(self) -> bool:
        return self.status in (RunStatus.COMPLETED_WITH_ERRORS, RunStatus.FAILED)

    @property
    def cancelled(self) -> bool:
        return self.status == RunStatus.CANCELLED

    @property
    def not_attempted_count(self) -> int:
        return self.total_count - self.success_count - self.error_count

    @classmethod
    def create(
        cls,
        status: RunStatus,
        response: ResponseData,
        error_message: Optional[str] = None,
        processing_time: float = 0.0,
        run_id: Optional[str] = None,
    ) -> "RunResult":
        """Build a RunResult from the aggregate; success items first, then errors."""
        results = [r.to_result() for r in response.success_records] + [
            r.to_result() for r in response.error_records
        ]
        return cls(
            status=status,
            success_count=len(response.success_records),
            error_count=len(response.error_records),
            total_count=response.total_records,
            results=results,
            error_message=error_message,
            processing_time_seconds=round(processing_time, 2),
            run_id=run_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "run_id": self.run_id,
            "status": self.status.value,
            "success_count": self.success_count,
            "error_count": self.error_count,
            "total_count": self.total_count,
            "not_attempted_count": self.not_attempted_count,
            "processing_time_seconds": self.processing_time_seconds,
            "results": self.results,
            "timestamp": self.timestamp,
        }
        if self.success:
            data["success"] = True
        elif self.cancelled:
            data["cancelled"] = True
        else:
            data["error"] = True
            data["error_message"] = self.error_message
        return data
