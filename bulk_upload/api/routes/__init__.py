"""Routes for the bulk upload API."""

from bulk_upload.api.routes import runs, system

__all__ = ["runs", "system"]
