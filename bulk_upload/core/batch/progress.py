"""Progress tracking for a submission run.

Pure bookkeeping: counters, records and elapsed-time based estimates.
"""

import math
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

CALCULATING = "Calculating..."


@dataclass(frozen=True)
class ProgressSnapshot:
    """Point-in-time view of a run's progress."""

    total: int
    processed: int
    success_count: int
    failure_count: int
    percentage: int
    elapsed_time: float
    time_remaining: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "processed": self.processed,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "percentage": self.percentage,
            "elapsed_time": round(self.elapsed_time, 2),
            "time_remaining": self.time_remaining,
        }


def format_duration(seconds: int) -> str:
    """Format seconds as ``1h 2m 3s``, ``2m 3s`` or ``3s``."""
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


class ProgressTracker:
    """Tracks counts and timing for one in-flight run.

    ``processed`` always equals ``success_count + failure_count``. Safe to read
    before ``start()`` is called.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._start_time: Optional[float] = None
        self._total = 0
        self._processed = 0
        self._success_count = 0
        self._failure_count = 0
        self._success_records: List[Any] = []
        self._error_records: List[Any] = []
        self._sequence_map: Dict[str, Dict[str, Any]] = {}

    def start(self, total: int) -> None:
        """Reset all counters and start the clock.

        Args:
            total: Number of entries the run will process
        """
        self._start_time = self._clock()
        self._total = max(int(total), 0)
        self._processed = 0
        self._success_count = 0
        self._failure_count = 0
        self._success_records = []
        self._error_records = []
        self._sequence_map = {}

    def update(self, count: int, is_success: bool, records: Optional[Sequence[Any]] = None) -> None:
        """Record ``count`` processed entries.

        Args:
            count: Number of entries processed in this step
            is_success: Whether they succeeded
            records: Records to keep for later lookup (need a ``sequence_id``)
        """
        if count <= 0 and not records:
            return
        # processed never exceeds total
        count = min(max(int(count), 0), self._total - self._processed)

        self._processed += count
        if is_success:
            self._success_count += count
        else:
            self._failure_count += count

        status = "success" if is_success else "error"
        target = self._success_records if is_success else self._error_records
        for record in records or []:
            target.append(record)
            sequence_id = getattr(record, "sequence_id", None)
            if sequence_id is not None:
                self._sequence_map[str(sequence_id)] = {"record": record, "status": status}

    def get_progress(self) -> ProgressSnapshot:
        """Compute the current snapshot."""
        elapsed = 0.0 if self._start_time is None else max(self._clock() - self._start_time, 0.0)

        if self._total > 0:
            percentage = min(100, max(0, round(self._processed / self._total * 100)))
        else:
            percentage = 0

        return ProgressSnapshot(
            total=self._total,
            processed=self._processed,
            success_count=self._success_count,
            failure_count=self._failure_count,
            percentage=percentage,
            elapsed_time=elapsed,
            time_remaining=self._estimate_remaining(elapsed),
        )

    def _estimate_remaining(self, elapsed: float) -> str:
        if self._start_time is None or self._processed <= 0 or elapsed <= 1e-6:
            return CALCULATING

        remaining_items = self._total - self._processed
        if remaining_items <= 0:
            return "0s"

        rate = self._processed / elapsed
        return format_duration(math.ceil(remaining_items / rate))

    @property
    def success_records(self) -> List[Any]:
        return list(self._success_records)

    @property
    def error_records(self) -> List[Any]:
        return list(self._error_records)

    def get_record_by_sequence(self, sequence_id: str) -> Optional[Dict[str, Any]]:
        """Look up the last record stored for a sequence.

        Returns:
            Dict with ``record`` and ``status`` ("success" or "error"), or None
        """
        if not sequence_id:
            return None
        return self._sequence_map.get(str(sequence_id))

    def get_all_sequences(self) -> List[str]:
        """All sequence ids seen so far, in first-seen order."""
        return list(self._sequence_map.keys())
