"""Error normalization for backend submissions.

Backend failures arrive in many shapes: httpx exceptions with an OData JSON
body, multipart $batch bodies, timeouts, plain dicts, strings. They are all
turned into one SubmissionError here, before any retry or aggregation logic
looks at them.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional

import httpx

from bulk_upload.core.errors import (
    ErrorDetail,
    SubmissionError,
    SubmissionTimeout,
)

RAW_SNIPPET_LENGTH = 200


def _message_text(message: Any) -> str:
    # OData v2 wraps the text as {"lang": "en", "value": "..."}
    if isinstance(message, dict):
        return str(message.get("value") or "")
    if message is None:
        return ""
    return str(message)


def _parse_details(raw_details: Any) -> List[ErrorDetail]:
    if not isinstance(raw_details, list):
        return []

    details = []
    for item in raw_details:
        if isinstance(item, str):
            details.append(ErrorDetail(message=item))
        elif isinstance(item, dict):
            details.append(
                ErrorDetail(
                    code=str(item.get("code") or ""),
                    message=_message_text(item.get("message")) or json.dumps(item),
                    target=str(item.get("propertyref") or item.get("target") or ""),
                    severity=str(item.get("severity") or "error"),
                )
            )
    return details


def parse_odata_error_payload(
    payload: Dict[str, Any], status_code: Optional[int] = None
) -> Optional[SubmissionError]:
    """Read a standard OData error document (``{"error": {...}}``).

    Args:
        payload: Decoded JSON body
        status_code: HTTP status, if known

    Returns:
        SubmissionError, or None if the payload has no ``error`` object
    """
    main = payload.get("error") if isinstance(payload, dict) else None
    if not isinstance(main, dict):
        return None

    innererror = main.get("innererror") or {}
    raw_details = innererror.get("errordetails") if isinstance(innererror, dict) else None
    if not raw_details:
        raw_details = main.get("details") or []

    return SubmissionError(
        code=str(main.get("code") or "UNKNOWN_ODATA_ERROR"),
        message=_message_text(main.get("message")) or "No OData error message provided.",
        details=_parse_details(raw_details),
        status_code=status_code,
    )


def _extract_batch_error_json(body: str) -> Optional[str]:
    # $batch responses embed the error document inside a multipart body
    start = body.find('{"error":')
    if start < 0:
        return None
    end = body.find("\r\n--", start)
    return body[start:end] if end > start else body[start:]


def error_from_response(response: httpx.Response) -> SubmissionError:
    """Build a SubmissionError from a failed HTTP response."""
    status_code = response.status_code
    body = response.text or ""

    if not body.strip():
        return SubmissionError(
            code=f"HTTP_{status_code}",
            message=f"Backend returned HTTP {status_code} with an empty body.",
            status_code=status_code,
        )

    try:
        if "application/http" in body and '{"error":' in body:
            payload = json.loads(_extract_batch_error_json(body) or "")
        else:
            payload = json.loads(body)
    except ValueError:
        snippet = body[:RAW_SNIPPET_LENGTH]
        return SubmissionError(
            code=f"HTTP_{status_code}",
            message="Failed to parse error response from server.",
            details=[ErrorDetail(message=f"Raw response snippet: {snippet}...")],
            status_code=status_code,
            raw=snippet,
        )

    parsed = parse_odata_error_payload(payload, status_code)
    if parsed is not None:
        return parsed

    return SubmissionError(
        code=f"HTTP_{status_code}",
        message="Received response, but could not find standard OData error structure.",
        details=[ErrorDetail(message=f"Response data: {json.dumps(payload)[:RAW_SNIPPET_LENGTH]}")],
        status_code=status_code,
    )


def extract_submission_error(error: Any) -> SubmissionError:
    """Normalize any failure into a SubmissionError.

    Args:
        error: Exception, dict payload, string or anything else

    Returns:
        SubmissionError (the same object if it already is one)
    """
    if isinstance(error, SubmissionError):
        return error

    if isinstance(error, (asyncio.TimeoutError, httpx.TimeoutException)):
        return SubmissionTimeout(
            code="TIMEOUT",
            message=str(error) or "Backend call timed out",
        )

    if isinstance(error, httpx.HTTPStatusError):
        return error_from_response(error.response)

    if isinstance(error, httpx.TransportError):
        return SubmissionError(
            code="CONNECTION_ERROR",
            message=str(error) or f"Connection to backend failed ({type(error).__name__})",
        )

    if isinstance(error, dict):
        parsed = parse_odata_error_payload(error)
        if parsed is not None:
            return parsed
        return SubmissionError(
            code=str(error.get("code") or "GENERIC_ERROR"),
            message=_message_text(error.get("message")) or "An unknown error occurred.",
            details=_parse_details(error.get("details")),
        )

    if isinstance(error, str):
        return SubmissionError(code="STRING_ERROR", message=error)

    if isinstance(error, BaseException):
        code = getattr(error, "code", None) or type(error).__name__
        return SubmissionError(
            code=str(code),
            message=str(error) or type(error).__name__,
            details=_parse_details(getattr(error, "details", None)),
        )

    return SubmissionError(
        code="UNKNOWN_ERROR",
        message="An unknown error occurred during the operation.",
    )
