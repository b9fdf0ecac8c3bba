"""System routes."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends

from bulk_upload.api.dependencies import get_backend, get_run_registry
from bulk_upload.core.batch import RunRegistry, SubmissionBackend
from bulk_upload.infrastructure.health import get_health_status

router = APIRouter(tags=["System"])


@router.get("/health")
async def health_check(
    backend: Optional[SubmissionBackend] = Depends(get_backend),
    registry: RunRegistry = Depends(get_run_registry),
):
    """Health check with backend testing. Returns service status, version, active runs, and dependency health."""
    status = await get_health_status(backend, active_runs=registry.active_count())
    status["timestamp"] = datetime.now().isoformat() + "Z"
    return status
