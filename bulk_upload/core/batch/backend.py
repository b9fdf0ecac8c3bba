"""Submission backend interface.

Anything that can post one sequence group to a remote system: the OData
client in production, fakes in tests.
"""

from abc import ABC, abstractmethod

from bulk_upload.core.batch.models import GroupResponse, SequenceGroup


class SubmissionBackend(ABC):
    """Abstract base class for group submission backends.

    Implementations either return a GroupResponse or raise. Raised errors are
    normalized by the submitter, so any exception type is acceptable, but
    backends should prefer SubmissionError / httpx errors which carry codes.
    """

    @abstractmethod
    async def submit_group(self, group: SequenceGroup) -> GroupResponse:
        """Post one sequence group.

        Args:
            group: Sequence group to submit (entries are copies of the caller's input)

        Returns:
            GroupResponse with per-item confirmation payloads
        """
        pass

    async def aclose(self) -> None:
        """Release network resources. Default: nothing to release."""
        return None
