"""FastAPI application factory for the bulk upload API."""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from bulk_upload.api.middleware import request_id_middleware
from bulk_upload.api.routes import runs, system
from bulk_upload.config import config
from bulk_upload.core.batch import RunRegistry, SubmissionBackend
from bulk_upload.core.logging import logger
from bulk_upload.core.retry_config import RetryConfig
from bulk_upload.infrastructure.odata import ODataSubmissionBackend


def _default_backend() -> Optional[SubmissionBackend]:
    if not config.is_configured():
        logger.warning("backend_unconfigured", missing=config.get_missing_config())
        return None
    return ODataSubmissionBackend.from_config()


def create_app(
    backend: Optional[SubmissionBackend] = None,
    retry_config: Optional[RetryConfig] = None,
    registry: Optional[RunRegistry] = None,
) -> FastAPI:
    """Create and configure FastAPI app. Factory pattern for testability.

    Args:
        backend: Submission backend (default: OData backend from environment)
        retry_config: Retry behavior (default: from environment)
        registry: Run registry (default: fresh in-memory registry)
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if app.state.backend is not None:
            await app.state.backend.aclose()

    app = FastAPI(
        title="bulk-upload",
        description=(
            "Bulk document submission API. Entries sharing a sequence id are posted "
            "as one document; groups are submitted in order with retry on lock "
            "conflicts, cooperative cancellation and live progress."
        ),
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Add middleware
    app.middleware("http")(request_id_middleware)

    # Register routes
    app.include_router(system.router)
    app.include_router(runs.router)

    # Store shared state for route access
    app.state.backend = backend if backend is not None else _default_backend()
    app.state.retry_config = retry_config
    app.state.run_registry = registry or RunRegistry()

    return app
