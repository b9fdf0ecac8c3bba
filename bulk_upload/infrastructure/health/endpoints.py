"""Health check endpoint handler.

Provides /health payload with dependency testing.
"""

from typing import Any, Dict, Optional

from bulk_upload.core.batch.backend import SubmissionBackend
from bulk_upload.infrastructure.health.checks import check_odata_connection


async def get_health_status(
    backend: Optional[SubmissionBackend],
    active_runs: int = 0,
    service_name: str = "bulk-upload",
) -> Dict[str, Any]:
    """Get comprehensive health status.

    Args:
        backend: Configured submission backend (None if unconfigured)
        active_runs: Number of runs still processing
        service_name: Service name for response

    Returns:
        Dict with overall status and dependency health
    """
    backend_health = await check_odata_connection(backend)

    overall_status = "healthy" if backend_health.get("status") in ("healthy", "custom") else "degraded"

    return {
        "status": overall_status,
        "service": service_name,
        "version": "1.0.0",
        "active_runs": active_runs,
        "dependencies": {"backend": backend_health},
    }
