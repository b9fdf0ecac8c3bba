"""OData backend module.

Provides the httpx-based submission backend and deep insert payload builder.
"""

from bulk_upload.infrastructure.odata.client import ODataSubmissionBackend, parse_sap_message
from bulk_upload.infrastructure.odata.payload import build_deep_insert_payload, strip_sequence_fields

__all__ = [
    "ODataSubmissionBackend",
    "build_deep_insert_payload",
    "parse_sap_message",
    "strip_sequence_fields",
]
