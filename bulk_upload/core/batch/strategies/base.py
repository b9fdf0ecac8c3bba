"""Base group submission strategy.

Defines how sequence groups are scheduled against the backend. Strategies
yield a GroupStarted event before each group and the GroupOutcome after it,
always in group order.
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator, Awaitable, Callable, Sequence, Union

from bulk_upload.core.batch.events import GroupStarted
from bulk_upload.core.batch.models import GroupOutcome, SequenceGroup
from bulk_upload.core.cancellation import CancellationToken

SubmitGroup = Callable[[SequenceGroup, CancellationToken], Awaitable[GroupOutcome]]

StrategyItem = Union[GroupStarted, GroupOutcome]


class GroupStrategy(ABC):
    """Abstract base class for group scheduling strategies.

    - SequentialGroupStrategy: one group at a time (default)
    - WindowedGroupStrategy: a small window of groups in flight, opt-in

    Every strategy checks the cancellation token before starting a group and
    never interrupts a group that has already been submitted.
    """

    name = "base"

    @abstractmethod
    def execute(
        self,
        groups: Sequence[SequenceGroup],
        submit_group: SubmitGroup,
        token: CancellationToken,
    ) -> AsyncIterator[StrategyItem]:
        """Schedule groups and yield their start events and outcomes.

        Args:
            groups: Sequence groups in submission order
            submit_group: Coroutine function posting one group
            token: Cancellation token checked before each group

        Returns:
            Async iterator of GroupStarted / GroupOutcome items
        """
        pass
