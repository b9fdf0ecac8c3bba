"""Infrastructure modules.

Production-grade infrastructure components:
- OData: httpx submission backend with CSRF handling and deep inserts
- Health: Dependency health checks
"""

# OData
from bulk_upload.infrastructure.odata import (
    ODataSubmissionBackend,
    build_deep_insert_payload,
    parse_sap_message,
    strip_sequence_fields,
)

# Health
from bulk_upload.infrastructure.health import get_health_status, check_odata_connection

__all__ = [
    # OData
    "ODataSubmissionBackend",
    "build_deep_insert_payload",
    "parse_sap_message",
    "strip_sequence_fields",
    # Health
    "check_odata_connection",
    "get_health_status",
]
