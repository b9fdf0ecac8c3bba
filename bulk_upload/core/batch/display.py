"""Progress display snapshots and sinks.

The manager publishes immutable ProgressDisplay snapshots; sinks render or
forward them and never write back.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Any, AsyncIterator, Dict, List, Optional

from bulk_upload.core.batch.models import RunStatus
from bulk_upload.core.batch.progress import CALCULATING
from bulk_upload.core.logging import logger


@dataclass(frozen=True)
class ProgressDisplay:
    """What a progress display shows for one run."""

    status: str
    total_entries: int
    processed_entries: int = 0
    success_count: int = 0
    failure_count: int = 0
    percentage: int = 0
    time_remaining: str = CALCULATING
    current_batch: int = 0
    total_batches: int = 0
    is_completed: bool = False
    is_error: bool = False
    processing_speed: str = "0 entries/min"
    error: str = ""
    processing_time: Optional[str] = None
    run_status: RunStatus = RunStatus.INITIALIZING

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["run_status"] = self.run_status.value
        return data


class ProgressSink(ABC):
    """Receives every snapshot the manager publishes."""

    @abstractmethod
    def publish(self, snapshot: ProgressDisplay) -> None:
        """Render or forward a snapshot. Must not block."""
        pass


class LoggingProgressSink(ProgressSink):
    """Writes each snapshot as a structured log event."""

    def __init__(self, run_id: Optional[str] = None):
        self.run_id = run_id

    def publish(self, snapshot: ProgressDisplay) -> None:
        logger.info(
            "progress_snapshot",
            run_id=self.run_id,
            status=snapshot.status,
            processed=snapshot.processed_entries,
            total=snapshot.total_entries,
            percentage=snapshot.percentage,
            current_batch=snapshot.current_batch,
            total_batches=snapshot.total_batches,
            is_completed=snapshot.is_completed,
        )


class ProgressBroadcaster(ProgressSink):
    """Fans snapshots out to async subscribers (e.g. an SSE stream).

    A new subscriber first receives the latest snapshot, then every later one
    until a completed snapshot arrives.
    """

    def __init__(self):
        self.latest: Optional[ProgressDisplay] = None
        self._queues: List["asyncio.Queue[ProgressDisplay]"] = []

    def publish(self, snapshot: ProgressDisplay) -> None:
        self.latest = snapshot
        for queue in list(self._queues):
            queue.put_nowait(snapshot)

    async def subscribe(self) -> AsyncIterator[ProgressDisplay]:
        queue: "asyncio.Queue[ProgressDisplay]" = asyncio.Queue()
        if self.latest is not None:
            queue.put_nowait(self.latest)
        self._queues.append(queue)

        try:
            while True:
                snapshot = await queue.get()
                yield snapshot
                if snapshot.is_completed:
                    return
        finally:
            self._queues.remove(queue)
