"""API utilities."""

from bulk_upload.api.utils.sse import SSE_HEADERS, create_sse_event, run_event_stream

__all__ = ["SSE_HEADERS", "create_sse_event", "run_event_stream"]
