"""Exceptions for batch submission.

Every backend failure is normalized into a SubmissionError before it reaches
the submitter or the manager, so callers only ever see one error shape.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional


class BatchValidationError(ValueError):
    """Pre-flight failure: raised before any submission begins."""


@dataclass
class ErrorDetail:
    """One line-item message from a backend error response."""

    code: str = ""
    message: str = ""
    target: str = ""
    severity: str = "error"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "target": self.target,
            "severity": self.severity,
        }


class SubmissionError(Exception):
    """Normalized backend error.

    Attributes:
        code: Backend or synthetic error code (e.g. "ME/006", "TIMEOUT")
        message: Human readable message
        details: Line-item details from the backend
        status_code: HTTP status code if the error came from an HTTP response
        raw: Raw response snippet kept for diagnosis
    """

    kind = "backend"

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[List[ErrorDetail]] = None,
        status_code: Optional[int] = None,
        raw: Optional[str] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = list(details or [])
        self.status_code = status_code
        self.raw = raw

    @property
    def detail_codes(self) -> List[str]:
        return [d.code for d in self.details if d.code]

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "kind": self.kind,
            "details": [d.to_dict() for d in self.details],
        }
        if self.status_code is not None:
            data["status_code"] = self.status_code
        if self.raw:
            data["raw"] = self.raw
        return data

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class SubmissionTimeout(SubmissionError):
    """The backend did not answer within the per-call timeout."""

    kind = "timeout"


class ResponseParseError(SubmissionError):
    """The backend reported success but the payload could not be read.

    Kept apart from real backend failures: the document may have been posted.
    """

    kind = "response_parse"

    def __init__(self, message: str, raw: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(
            code="RESPONSE_PARSE_ERROR", message=message, status_code=status_code, raw=raw
        )

