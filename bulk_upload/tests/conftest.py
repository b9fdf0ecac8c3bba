"""Shared fixtures and fakes for bulk upload tests."""

import asyncio
import random
from typing import Any, Dict, List, Optional

import httpx
import pytest

from bulk_upload.core.batch.backend import SubmissionBackend
from bulk_upload.core.batch.models import GroupResponse, SequenceGroup
from bulk_upload.core.execution.retry_handler import RetryHandler
from bulk_upload.core.retry_config import RetryConfig

SERVICE_URL = "https://sap.example.com/sap/opu/odata/sap/API_FIXEDASSET_SRV"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeBackend(SubmissionBackend):
    """Scripted backend.

    ``script`` maps a sequence id to the steps returned (or raised) by
    successive calls for that group. Unscripted calls succeed with a
    generated asset number.
    """

    def __init__(self, script: Optional[Dict[str, List[Any]]] = None):
        self.script = {key: list(steps) for key, steps in (script or {}).items()}
        self.calls: List[SequenceGroup] = []
        self.closed = False

    @property
    def called_sequences(self) -> List[str]:
        return [group.sequence_id for group in self.calls]

    async def submit_group(self, group: SequenceGroup) -> GroupResponse:
        self.calls.append(group)
        steps = self.script.get(group.sequence_id)
        step = steps.pop(0) if steps else None

        if step is None:
            return GroupResponse(items=[{"AssetNumber": f"5000{len(self.calls)}"}])
        if isinstance(step, BaseException):
            raise step
        if callable(step):
            return await step(group)
        return step

    async def aclose(self) -> None:
        self.closed = True


class GateBackend(FakeBackend):
    """Backend whose calls block until ``release()``; ``entered`` fires on each call."""

    def __init__(self, script: Optional[Dict[str, List[Any]]] = None):
        super().__init__(script)
        self.entered = asyncio.Event()
        self._gate = asyncio.Event()

    def release(self) -> None:
        self._gate.set()

    async def submit_group(self, group: SequenceGroup) -> GroupResponse:
        self.entered.set()
        await self._gate.wait()
        return await super().submit_group(group)


def odata_error(code: str, message: str, status_code: int = 400, details: Optional[list] = None) -> httpx.HTTPStatusError:
    """Build the httpx error an OData service produces for a rejected posting."""
    body: Dict[str, Any] = {
        "error": {
            "code": code,
            "message": {"lang": "en", "value": message},
        }
    }
    if details:
        body["error"]["innererror"] = {"errordetails": details}

    request = httpx.Request("POST", f"{SERVICE_URL}/A_FixedAsset")
    response = httpx.Response(status_code, json=body, request=request)
    return httpx.HTTPStatusError(f"HTTP {status_code}", request=request, response=response)


def make_entries(*sequences: Any, **fields: Any) -> List[Dict[str, Any]]:
    """One entry per sequence value, numbered by position."""
    return [
        {"Sequence": sequence, "Description": f"Line {index}", **fields}
        for index, sequence in enumerate(sequences)
    ]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(now=100.0)


@pytest.fixture
def fast_retry() -> RetryConfig:
    return RetryConfig(
        max_retries=3,
        initial_delay=0.01,
        max_delay=0.05,
        call_timeout=1.0,
    )


@pytest.fixture
def retry_handler(fast_retry: RetryConfig) -> RetryHandler:
    return RetryHandler(fast_retry, rng=random.Random(42))
