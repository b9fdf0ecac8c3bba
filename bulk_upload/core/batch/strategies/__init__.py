"""Group submission strategies.

Strategy pattern implementation for scheduling sequence groups.
"""

from bulk_upload.core.batch.strategies.base import GroupStrategy
from bulk_upload.core.batch.strategies.sequential_strategy import SequentialGroupStrategy
from bulk_upload.core.batch.strategies.windowed_strategy import WindowedGroupStrategy

__all__ = [
    "GroupStrategy",
    "SequentialGroupStrategy",
    "WindowedGroupStrategy",
]
