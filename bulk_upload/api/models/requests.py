"""Request models for the bulk upload API."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from bulk_upload.core.batch.strategies.windowed_strategy import MAX_WINDOW_SIZE


class RunCreateRequest(BaseModel):
    """Request for POST /runs - submit entries grouped by sequence."""

    entries: List[Dict[str, Any]] = Field(
        ..., description="Entries to submit (max 10,000)", max_length=10000
    )
    batch_size: int = Field(10, ge=1, le=1000, description="Entries per display batch")
    show_progress: bool = Field(True, description="Publish progress snapshots")
    max_concurrent_groups: int = Field(
        1,
        ge=1,
        le=MAX_WINDOW_SIZE,
        description="Sequence groups in flight at once (1 = strictly serialized)",
    )
    sequence_field: Optional[str] = Field(None, description="Entry field holding the sequence id")
    webhook_url: Optional[str] = Field(None, description="Webhook URL for completion")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "entries": [
                        {"Sequence": "1", "CompanyCode": "1000", "AssetClass": "3000"},
                        {"Sequence": "1", "CompanyCode": "1000", "AssetClass": "3100"},
                        {"Sequence": "2", "CompanyCode": "2000", "AssetClass": "3000"},
                    ],
                    "batch_size": 10,
                }
            ]
        }
    }

    @field_validator("webhook_url")
    @classmethod
    def validate_webhook_url(cls, v: Optional[str]) -> Optional[str]:
        """Ensure webhook URL has an http(s) scheme."""
        if v is None:
            return v
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("webhook_url must start with http:// or https://")
        return v
