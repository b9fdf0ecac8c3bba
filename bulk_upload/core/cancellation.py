"""Cooperative cancellation for submission runs."""

import asyncio


class CancellationToken:
    """One-way cancellation latch checked at safe boundaries.

    The submitter checks it before each group and while waiting between
    retries or groups. In-flight backend calls are never interrupted.
    """

    def __init__(self):
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> bool:
        """Latch the token. Returns False if it was already cancelled."""
        if self._event.is_set():
            return False
        self._event.set()
        return True

    async def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds, waking early on cancellation.

        Returns:
            True if the token was cancelled before or during the wait
        """
        if self._event.is_set():
            return True
        if timeout <= 0:
            return False
        try:
            await asyncio.wait_for(self._event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True
