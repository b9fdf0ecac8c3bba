"""Main entry point for the bulk upload API.

Initializes FastAPI app with the configured backend and makes it runnable standalone.

Usage:
    Development: uvicorn bulk_upload.main:app --reload --port 8000
    Production: uvicorn bulk_upload.main:app --host 0.0.0.0 --port 8000
"""

from bulk_upload.api.app import create_app

# Runs live in process memory, so serve with a single worker
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "bulk_upload.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info",
    )
