"""Configuration management for the bulk upload service.

Centralizes all environment variable access for better testability and maintainability.
"""

import os
from typing import Optional, Tuple

from bulk_upload.core.retry_config import RetryConfig


def _float_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be a number, got '{value}'")


class Config:
    """Application configuration loaded from environment variables."""

    # OData backend
    @staticmethod
    def odata_service_url() -> Optional[str]:
        """Get OData service root URL (e.g. .../sap/opu/odata/sap/API_FIXEDASSET_SRV)."""
        return os.environ.get("ODATA_SERVICE_URL")

    @staticmethod
    def odata_entity_set() -> Optional[str]:
        """Get entity set that receives one deep insert per sequence group."""
        return os.environ.get("ODATA_ENTITY_SET")

    @staticmethod
    def odata_items_property() -> str:
        """Get navigation property holding the line items of a deep insert."""
        return os.environ.get("ODATA_ITEMS_PROPERTY", "to_Item")

    @staticmethod
    def odata_header_fields() -> Tuple[str, ...]:
        """Get fields taken from the first line as deep insert header (comma separated)."""
        raw = os.environ.get("ODATA_HEADER_FIELDS", "")
        return tuple(name.strip() for name in raw.split(",") if name.strip())

    @staticmethod
    def odata_username() -> Optional[str]:
        """Get basic auth user for the OData service."""
        return os.environ.get("ODATA_USERNAME")

    @staticmethod
    def odata_password() -> Optional[str]:
        """Get basic auth password for the OData service."""
        return os.environ.get("ODATA_PASSWORD")

    # Submission behavior
    @staticmethod
    def submit_timeout_seconds() -> float:
        """Get per-call timeout for one group submission."""
        return _float_env("SUBMIT_TIMEOUT_SECONDS", 60.0)

    @staticmethod
    def inter_group_delay_seconds() -> float:
        """Get pause between two sequence groups."""
        return _float_env("INTER_GROUP_DELAY_SECONDS", 0.0)

    @staticmethod
    def retryable_error_codes() -> Tuple[str, ...]:
        """Get backend error codes treated as concurrency errors (comma separated)."""
        raw = os.environ.get("RETRYABLE_ERROR_CODES", "ME/006")
        return tuple(code.strip() for code in raw.split(",") if code.strip())

    @staticmethod
    def retry_config() -> RetryConfig:
        """Build RetryConfig from environment."""
        return RetryConfig(
            max_retries=int(_float_env("RETRY_MAX_ATTEMPTS", 5)),
            initial_delay=_float_env("RETRY_INITIAL_DELAY_SECONDS", 5.0),
            max_delay=_float_env("RETRY_MAX_DELAY_SECONDS", 60.0),
            call_timeout=Config.submit_timeout_seconds(),
            retryable_codes=Config.retryable_error_codes(),
        )

    @staticmethod
    def log_level() -> str:
        """Get log level name."""
        return os.environ.get("LOG_LEVEL", "INFO")

    # Helper methods
    @staticmethod
    def is_configured() -> bool:
        """Check if all required backend configuration is present."""
        return all([
            Config.odata_service_url(),
            Config.odata_entity_set(),
        ])

    @staticmethod
    def get_missing_config() -> list[str]:
        """Get list of missing required configuration keys."""
        missing = []
        if not Config.odata_service_url():
            missing.append("ODATA_SERVICE_URL")
        if not Config.odata_entity_set():
            missing.append("ODATA_ENTITY_SET")
        return missing


# Singleton instance for easy access
config = Config()
