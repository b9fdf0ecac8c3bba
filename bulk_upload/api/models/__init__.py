"""API models."""

from bulk_upload.api.models.requests import RunCreateRequest

__all__ = ["RunCreateRequest"]
