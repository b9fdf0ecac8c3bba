"""Sequential group submission strategy.

Submits sequence groups one by one. Used unless a window is requested.
"""

from typing import AsyncIterator, Sequence

from bulk_upload.core.batch.events import GroupStarted
from bulk_upload.core.batch.models import SequenceGroup
from bulk_upload.core.batch.strategies.base import GroupStrategy, StrategyItem, SubmitGroup
from bulk_upload.core.cancellation import CancellationToken
from bulk_upload.core.logging import logger


class SequentialGroupStrategy(GroupStrategy):
    """Sequential group strategy.

    Waits for each group to finish before the next one starts, with an
    optional cancellable pause in between.
    """

    name = "sequential"

    def __init__(self, inter_group_delay: float = 0.0):
        """Initialize strategy.

        Args:
            inter_group_delay: Seconds to pause between two groups
        """
        self.inter_group_delay = inter_group_delay

    async def execute(
        self,
        groups: Sequence[SequenceGroup],
        submit_group: SubmitGroup,
        token: CancellationToken,
    ) -> AsyncIterator[StrategyItem]:
        total = len(groups)

        for position, group in enumerate(groups):
            if position > 0 and self.inter_group_delay > 0:
                await token.wait(self.inter_group_delay)

            if token.cancelled:
                logger.info(
                    "group_submission_cancelled",
                    strategy=self.name,
                    next_group=group.index,
                    remaining_groups=total - position,
                )
                return

            yield GroupStarted(
                group_index=group.index,
                total_groups=total,
                sequence_id=group.sequence_id,
                entry_count=group.size,
            )
            yield await submit_group(group, token)
