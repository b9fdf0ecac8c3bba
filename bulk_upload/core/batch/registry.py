"""In-memory registry of submission runs.

Keeps each run's manager, progress broadcaster and background task so the
API can report status, stream progress and cancel by run id.
"""

import asyncio
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from bulk_upload.core.batch.display import ProgressBroadcaster
from bulk_upload.core.batch.manager import BatchProcessingManager
from bulk_upload.core.batch.models import RunStatus
from bulk_upload.core.logging import logger

DEFAULT_MAX_RUNS = 100


@dataclass
class RunHandle:
    """One registered run."""

    run_id: str
    manager: BatchProcessingManager
    broadcaster: ProgressBroadcaster
    total_entries: int
    show_progress: bool = True
    webhook_url: Optional[str] = None
    task: Optional["asyncio.Task[Any]"] = None
    created_at: str = field(default_factory=lambda: datetime.now().isoformat() + "Z")

    @property
    def status(self) -> RunStatus:
        # Accepted but the background task has not picked it up yet
        if self.manager.status == RunStatus.IDLE and self.manager.result is None:
            return RunStatus.INITIALIZING
        return self.manager.status

    @property
    def is_finished(self) -> bool:
        return self.manager.status.is_terminal and not self.manager.get_processing_state().is_processing

    def to_dict(self) -> Dict[str, Any]:
        display = self.manager.display
        result = self.manager.result
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "total_entries": self.total_entries,
            "created_at": self.created_at,
            "processing_state": self.manager.get_processing_state().to_dict(),
            "progress": display.to_dict() if display else None,
            "result": result.to_dict() if result else None,
        }


class RunRegistry:
    """Bounded run store. Oldest finished runs are evicted first."""

    def __init__(self, max_runs: int = DEFAULT_MAX_RUNS):
        self.max_runs = max_runs
        self._runs: "OrderedDict[str, RunHandle]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._runs)

    def __contains__(self, run_id: str) -> bool:
        return run_id in self._runs

    def add(self, handle: RunHandle) -> RunHandle:
        self._runs[handle.run_id] = handle
        self._evict()
        return handle

    def get(self, run_id: str) -> Optional[RunHandle]:
        return self._runs.get(run_id)

    def active_count(self) -> int:
        return sum(1 for handle in self._runs.values() if not handle.is_finished)

    def _evict(self) -> None:
        if len(self._runs) <= self.max_runs:
            return
        for run_id in [rid for rid, handle in self._runs.items() if handle.is_finished]:
            if len(self._runs) <= self.max_runs:
                break
            del self._runs[run_id]
            logger.debug("run_evicted", run_id=run_id)
