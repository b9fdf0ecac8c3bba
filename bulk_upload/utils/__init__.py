"""Utility modules.

Reusable helper functions for webhooks.
"""

from bulk_upload.utils.webhooks import build_run_summary, notify_run_completed

__all__ = [
    "build_run_summary",
    "notify_run_completed",
]
