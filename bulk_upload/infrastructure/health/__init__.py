"""Health monitoring module.

Provides health check payloads and dependency testing.
"""

from bulk_upload.infrastructure.health.checks import check_odata_connection
from bulk_upload.infrastructure.health.endpoints import get_health_status

__all__ = [
    "check_odata_connection",
    "get_health_status",
]
