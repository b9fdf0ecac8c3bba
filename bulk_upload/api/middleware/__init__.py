"""Middleware for the bulk upload API."""

from bulk_upload.api.middleware.request_id import request_id_middleware

__all__ = ["request_id_middleware"]
