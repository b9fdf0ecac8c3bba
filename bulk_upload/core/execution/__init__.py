"""Execution module.

Provides error normalization, classification and retry for backend calls.
"""

from bulk_upload.core.execution.error_classifier import ErrorClassifier
from bulk_upload.core.execution.error_normalizer import (
    error_from_response,
    extract_submission_error,
    parse_odata_error_payload,
)
from bulk_upload.core.execution.retry_handler import RetryHandler, RetryOutcome

__all__ = [
    "ErrorClassifier",
    "RetryHandler",
    "RetryOutcome",
    "error_from_response",
    "extract_submission_error",
    "parse_odata_error_payload",
]
