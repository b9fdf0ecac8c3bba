"""SSE (Server-Sent Events) utilities."""

import json
from typing import Any, AsyncIterator, Dict

from bulk_upload.core.batch.registry import RunHandle

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
    "Connection": "keep-alive",
}


def create_sse_event(event_type: str, data: Dict[str, Any]) -> str:
    """Create SSE-formatted event with type merged into data.

    Args:
        event_type: Event type (e.g., "progress", "result", "error")
        data: Event data dictionary

    Returns:
        SSE-formatted string: "data: {json}\\n\\n"
    """
    event_data_with_type = {"type": event_type, **data}
    return f"data: {json.dumps(event_data_with_type)}\n\n"


async def run_event_stream(handle: RunHandle) -> AsyncIterator[str]:
    """Progress snapshots of one run as SSE, closed by a "result" event."""
    async for snapshot in handle.broadcaster.subscribe():
        yield create_sse_event("progress", snapshot.to_dict())

    result = handle.manager.result
    if result is not None:
        yield create_sse_event("result", result.to_dict())
