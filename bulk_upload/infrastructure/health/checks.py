"""Health check functions.

Tests connectivity to the submission backend.
"""

import asyncio
from typing import Any, Dict, Optional

from bulk_upload.config import config
from bulk_upload.core.batch.backend import SubmissionBackend
from bulk_upload.infrastructure.odata import ODataSubmissionBackend


async def check_odata_connection(backend: Optional[SubmissionBackend]) -> Dict[str, Any]:
    """Test OData connectivity by fetching a fresh CSRF token.

    Returns:
        Dict with status ("healthy", "unconfigured", "custom", "timeout", "unavailable")
        and optional error message
    """
    if backend is None:
        missing = config.get_missing_config()
        return {"status": "unconfigured", "error": f"Missing: {', '.join(missing)}"}

    if not isinstance(backend, ODataSubmissionBackend):
        return {"status": "custom", "backend": type(backend).__name__}

    try:
        await asyncio.wait_for(backend.fetch_csrf_token(force=True), timeout=2.0)
        return {"status": "healthy", "service_url": backend.service_url}

    except asyncio.TimeoutError:
        return {"status": "timeout", "error": "Request timed out after 2s"}

    except Exception as e:
        return {"status": "unavailable", "error": str(e)[:100]}
