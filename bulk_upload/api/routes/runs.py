"""Run routes - sequence-grouped submission with progress streaming."""

import asyncio
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, StreamingResponse

from bulk_upload.api.dependencies import get_backend, get_retry_config, get_run_registry
from bulk_upload.api.models import RunCreateRequest
from bulk_upload.api.utils import SSE_HEADERS, run_event_stream
from bulk_upload.config import config
from bulk_upload.core.batch import (
    BatchProcessingManager,
    BatchValidationError,
    LoggingProgressSink,
    ProgressBroadcaster,
    RunHandle,
    RunOptions,
    RunRegistry,
    SequenceBatchSubmitter,
    SequentialGroupStrategy,
    SubmissionBackend,
    WindowedGroupStrategy,
)
from bulk_upload.core.batch.manager import generate_run_id
from bulk_upload.core.logging import logger
from bulk_upload.core.retry_config import RetryConfig
from bulk_upload.utils.webhooks import notify_run_completed

router = APIRouter(tags=["Runs"])


def _not_found(run_id: str) -> JSONResponse:
    return JSONResponse(
        status_code=404, content={"success": False, "error": f"Run '{run_id}' not found"}
    )


async def _execute_run(handle: RunHandle, entries: list, options: RunOptions) -> None:
    """Background task: run to completion, then notify the webhook."""
    try:
        result = await handle.manager.process_records_in_batch(entries, options)
    except BatchValidationError as e:
        logger.error("run_rejected", run_id=handle.run_id, error=str(e))
        return

    if handle.webhook_url:
        await notify_run_completed(handle.webhook_url, result)


@router.post("/runs")
async def create_run(
    request_data: RunCreateRequest,
    backend: Optional[SubmissionBackend] = Depends(get_backend),
    registry: RunRegistry = Depends(get_run_registry),
    retry_config: RetryConfig = Depends(get_retry_config),
):
    """Start a submission run in the background.

    - **entries**: Entries to submit; entries sharing a sequence id become one document
    - **batch_size**: Entries per display batch (default 10)
    - **show_progress**: Publish progress snapshots (required for /events)
    - **max_concurrent_groups**: 1 (default) submits groups strictly one after another
    - **sequence_field**: Entry field holding the sequence id
    - **webhook_url**: Optional webhook URL for completion notification
    """
    if not request_data.entries:
        return JSONResponse(status_code=400, content={"success": False, "error": "No entries to process"})
    if backend is None:
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Submission service not initialized"},
        )

    if request_data.max_concurrent_groups > 1:
        strategy = WindowedGroupStrategy(window_size=request_data.max_concurrent_groups)
    else:
        strategy = SequentialGroupStrategy(inter_group_delay=config.inter_group_delay_seconds())

    run_id = generate_run_id()
    broadcaster = ProgressBroadcaster()
    submitter = SequenceBatchSubmitter(
        backend,
        retry_config=retry_config,
        strategy=strategy,
        sequence_field=request_data.sequence_field,
    )
    manager = BatchProcessingManager(
        submitter,
        sinks=[broadcaster, LoggingProgressSink(run_id)],
        run_id=run_id,
    )

    handle = registry.add(
        RunHandle(
            run_id=run_id,
            manager=manager,
            broadcaster=broadcaster,
            total_entries=len(request_data.entries),
            show_progress=request_data.show_progress,
            webhook_url=request_data.webhook_url,
        )
    )
    options = RunOptions(
        batch_size=request_data.batch_size, show_progress=request_data.show_progress
    )
    handle.task = asyncio.create_task(_execute_run(handle, request_data.entries, options))

    logger.info(
        "run_accepted",
        run_id=run_id,
        total_entries=len(request_data.entries),
        strategy=strategy.name,
    )

    return JSONResponse(
        status_code=202,
        content={
            "success": True,
            "run_id": run_id,
            "status": handle.status.value,
            "total_entries": handle.total_entries,
            "metadata": {"timestamp": datetime.now().isoformat() + "Z"},
        },
    )


@router.get("/runs/{run_id}")
async def get_run(run_id: str, registry: RunRegistry = Depends(get_run_registry)):
    """Status, latest progress snapshot and (once finished) the run result.

    - **run_id**: Run ID returned from POST /runs
    """
    handle = registry.get(run_id)
    if handle is None:
        return _not_found(run_id)

    return JSONResponse(content={"success": True, **handle.to_dict()})


@router.get("/runs/{run_id}/events")
async def stream_run_events(run_id: str, registry: RunRegistry = Depends(get_run_registry)):
    """Stream progress snapshots as Server-Sent Events until the run finishes.

    - **run_id**: Run ID returned from POST /runs
    """
    handle = registry.get(run_id)
    if handle is None:
        return _not_found(run_id)
    if not handle.show_progress:
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Progress was disabled for this run"},
        )

    return StreamingResponse(
        run_event_stream(handle),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.post("/runs/{run_id}/cancel")
async def cancel_run(run_id: str, registry: RunRegistry = Depends(get_run_registry)):
    """Request cooperative cancellation; groups already submitted stay submitted.

    - **run_id**: Run ID returned from POST /runs
    """
    handle = registry.get(run_id)
    if handle is None:
        return _not_found(run_id)

    cancelled = handle.manager.cancel_processing()
    return JSONResponse(
        content={
            "success": True,
            "run_id": run_id,
            "cancelled": cancelled,
            "status": handle.status.value,
        }
    )
