"""Windowed group submission strategy.

Keeps up to ``window_size`` groups in flight with asyncio tasks. Only for
backends known to tolerate concurrent postings. Start events and outcomes
are still yielded in group order.
"""

import asyncio
from collections import deque
from typing import AsyncIterator, Deque, Sequence, Tuple

from bulk_upload.core.batch.events import GroupStarted
from bulk_upload.core.batch.models import GroupOutcome, SequenceGroup
from bulk_upload.core.batch.strategies.base import GroupStrategy, StrategyItem, SubmitGroup
from bulk_upload.core.cancellation import CancellationToken
from bulk_upload.core.logging import logger

MAX_WINDOW_SIZE = 3


class WindowedGroupStrategy(GroupStrategy):
    """Bounded-concurrency group strategy.

    A new group is posted only when a window slot is free and the run is not
    cancelled. GroupStarted for group i+1 is yielded after group i's outcome,
    so consumers see the same event order as with the sequential strategy.
    """

    name = "windowed"

    def __init__(self, window_size: int = 2):
        """Initialize strategy.

        Args:
            window_size: Maximum groups in flight (1..3)

        Raises:
            ValueError: If window_size is outside 1..3
        """
        if not 1 <= window_size <= MAX_WINDOW_SIZE:
            raise ValueError(f"window_size must be between 1 and {MAX_WINDOW_SIZE}, got {window_size}")
        self.window_size = window_size

    async def execute(
        self,
        groups: Sequence[SequenceGroup],
        submit_group: SubmitGroup,
        token: CancellationToken,
    ) -> AsyncIterator[StrategyItem]:
        total = len(groups)
        pending: Deque[Tuple[SequenceGroup, "asyncio.Task[GroupOutcome]"]] = deque()
        next_position = 0

        try:
            while next_position < total or pending:
                while (
                    next_position < total
                    and len(pending) < self.window_size
                    and not token.cancelled
                ):
                    group = groups[next_position]
                    next_position += 1
                    pending.append((group, asyncio.create_task(submit_group(group, token))))

                if not pending:
                    logger.info(
                        "group_submission_cancelled",
                        strategy=self.name,
                        remaining_groups=total - next_position,
                    )
                    return

                group, task = pending[0]
                yield GroupStarted(
                    group_index=group.index,
                    total_groups=total,
                    sequence_id=group.sequence_id,
                    entry_count=group.size,
                )
                outcome = await task
                pending.popleft()
                yield outcome
        finally:
            # Submitted groups are never aborted; let them settle
            if pending:
                await asyncio.gather(*(task for _, task in pending), return_exceptions=True)
