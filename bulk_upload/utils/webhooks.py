"""Webhook utilities.

Sends completion notifications for submission runs.
"""

import asyncio
from typing import Any, Dict

import requests

from bulk_upload.core.batch.models import RunResult
from bulk_upload.core.logging import logger

WEBHOOK_TIMEOUT_SECONDS = 10


def build_run_summary(result: RunResult) -> Dict[str, Any]:
    """Compact completion payload (per-entry results stay behind GET /runs/{id})."""
    payload: Dict[str, Any] = {
        "run_id": result.run_id,
        "status": result.status.value,
        "summary": {
            "total": result.total_count,
            "successful": result.success_count,
            "failed": result.error_count,
            "not_attempted": result.not_attempted_count,
        },
        "processing_time_seconds": result.processing_time_seconds,
        "completed_at": result.timestamp,
    }
    if result.error_message:
        payload["error_message"] = result.error_message
    return payload


async def notify_run_completed(webhook_url: str, result: RunResult) -> bool:
    """POST the run summary to ``webhook_url`` off the event loop.

    Delivery failures are logged against the run and reported as False;
    they never change the run's outcome.
    """
    log = logger.bind(run_id=result.run_id, run_status=result.status.value)
    try:
        response = await asyncio.to_thread(
            requests.post,
            webhook_url,
            json=build_run_summary(result),
            headers={"Content-Type": "application/json"},
            timeout=WEBHOOK_TIMEOUT_SECONDS,
        )
        response.raise_for_status()
    except requests.RequestException as e:
        log.warning("run_webhook_failed", error=str(e))
        return False

    log.info("run_webhook_delivered", status_code=response.status_code)
    return True
