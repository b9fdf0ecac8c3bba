"""FastAPI dependencies.

Dependency injection functions for route handlers.
"""

from typing import Optional

from fastapi import Request

from bulk_upload.config import config
from bulk_upload.core.batch.backend import SubmissionBackend
from bulk_upload.core.batch.registry import RunRegistry
from bulk_upload.core.retry_config import RetryConfig


def get_backend(request: Request) -> Optional[SubmissionBackend]:
    """Get submission backend from app state.

    Note:
        Returns None when no backend is configured.
        Set via: create_app(backend=...) or ODATA_* environment variables.
    """
    return getattr(request.app.state, "backend", None)


def get_run_registry(request: Request) -> RunRegistry:
    """Get run registry from app state."""
    return request.app.state.run_registry


def get_retry_config(request: Request) -> RetryConfig:
    """Get retry configuration from app state, falling back to environment."""
    return getattr(request.app.state, "retry_config", None) or config.retry_config()
