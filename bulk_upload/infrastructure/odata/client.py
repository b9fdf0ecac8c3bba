"""OData submission backend.

Posts one deep insert per sequence group over httpx, handling the SAP
CSRF token handshake and both OData v2 (``{"d": ...}``) and v4 payloads.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional, Sequence

import httpx

from bulk_upload.config import config
from bulk_upload.core.batch.backend import SubmissionBackend
from bulk_upload.core.batch.models import GroupResponse, SequenceGroup
from bulk_upload.core.errors import ResponseParseError, SubmissionError
from bulk_upload.core.logging import logger
from bulk_upload.infrastructure.odata.payload import build_deep_insert_payload

CSRF_HEADER = "x-csrf-token"
RAW_SNIPPET_LENGTH = 200


def _scalar_fields(record: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: value
        for key, value in record.items()
        if key != "__metadata"
        and not key.startswith("@odata.")
        and not isinstance(value, (dict, list))
    }


def parse_sap_message(header: Optional[str]) -> Optional[str]:
    """Read the message text of a ``sap-message`` response header."""
    if not header:
        return None
    try:
        data = json.loads(header)
    except ValueError:
        return header
    if isinstance(data, dict):
        message = data.get("message")
        if isinstance(message, dict):
            message = message.get("value")
        return str(message) if message else None
    return header


class ODataSubmissionBackend(SubmissionBackend):
    """SubmissionBackend for an OData service accepting deep inserts."""

    def __init__(
        self,
        service_url: str,
        entity_set: str,
        items_property: Optional[str] = "to_Item",
        header_fields: Optional[Sequence[str]] = None,
        sequence_field: Optional[str] = None,
        auth: Optional[httpx.Auth] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 60.0,
    ):
        """Initialize backend.

        Args:
            service_url: Service root, e.g. https://host/sap/opu/odata/sap/API_FIXEDASSET_SRV
            entity_set: Entity set receiving the POST
            items_property: Navigation property holding the lines
            header_fields: Keys taken from the first line as document header
            sequence_field: Explicit sequence key (stripped from payloads)
            auth: httpx auth (ignored when ``client`` is given)
            client: Preconfigured AsyncClient (tests pass a MockTransport client)
            timeout: Transport timeout when the client is created here
        """
        if not service_url or not entity_set:
            raise ValueError("service_url and entity_set are required")

        self.service_url = service_url.rstrip("/")
        self.entity_set = entity_set.strip("/")
        self.items_property = items_property
        self.header_fields = list(header_fields or [])
        self.sequence_field = sequence_field

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            auth=auth,
            timeout=timeout,
            headers={"Accept": "application/json"},
        )
        self._csrf_token: Optional[str] = None
        self._csrf_lock = asyncio.Lock()

    @classmethod
    def from_config(cls, sequence_field: Optional[str] = None) -> "ODataSubmissionBackend":
        """Create a backend from environment configuration.

        Raises:
            RuntimeError: If required configuration is missing
        """
        if not config.is_configured():
            raise RuntimeError(
                "OData backend not configured. Set "
                + " and ".join(config.get_missing_config())
                + " environment variables."
            )

        auth = None
        if config.odata_username():
            auth = httpx.BasicAuth(config.odata_username(), config.odata_password() or "")

        return cls(
            service_url=config.odata_service_url(),
            entity_set=config.odata_entity_set(),
            items_property=config.odata_items_property(),
            header_fields=config.odata_header_fields(),
            sequence_field=sequence_field,
            auth=auth,
            timeout=config.submit_timeout_seconds(),
        )

    @property
    def entity_url(self) -> str:
        return f"{self.service_url}/{self.entity_set}"

    async def fetch_csrf_token(self, force: bool = False) -> str:
        """Fetch (or return the cached) CSRF token.

        Raises:
            httpx.HTTPStatusError: If the token request fails
            SubmissionError: If the service answered without a token
        """
        async with self._csrf_lock:
            if self._csrf_token and not force:
                return self._csrf_token

            response = await self._client.get(
                f"{self.service_url}/", headers={CSRF_HEADER: "Fetch"}
            )
            response.raise_for_status()

            token = response.headers.get(CSRF_HEADER)
            if not token:
                raise SubmissionError(
                    code="CSRF_TOKEN_MISSING",
                    message="Could not retrieve CSRF token",
                    status_code=response.status_code,
                )

            self._csrf_token = token
            logger.debug("csrf_token_fetched", service_url=self.service_url)
            return token

    async def submit_group(self, group: SequenceGroup) -> GroupResponse:
        payload = build_deep_insert_payload(
            group.raw_entries,
            items_property=self.items_property,
            header_fields=self.header_fields,
            sequence_field=self.sequence_field,
        )

        response = await self._post(payload)
        if response.status_code == 403 and response.headers.get(CSRF_HEADER, "").lower() == "required":
            logger.info("csrf_token_expired", sequence_id=group.sequence_id)
            await self.fetch_csrf_token(force=True)
            response = await self._post(payload)

        response.raise_for_status()
        return self.parse_success_response(response)

    async def _post(self, payload: Dict[str, Any]) -> httpx.Response:
        token = await self.fetch_csrf_token()
        return await self._client.post(
            self.entity_url,
            json=payload,
            headers={CSRF_HEADER: token, "Content-Type": "application/json"},
        )

    def parse_success_response(self, response: httpx.Response) -> GroupResponse:
        """Read confirmation payloads from a 2xx response.

        Raises:
            ResponseParseError: If the body is not a readable OData payload
        """
        message = parse_sap_message(response.headers.get("sap-message"))

        if not response.content.strip():
            return GroupResponse(message=message)

        try:
            body = response.json()
        except ValueError:
            raise ResponseParseError(
                "Backend reported success but returned a non-JSON body",
                raw=response.text[:RAW_SNIPPET_LENGTH],
                status_code=response.status_code,
            )

        if not isinstance(body, dict):
            raise ResponseParseError(
                "Backend reported success but returned an unexpected payload",
                raw=response.text[:RAW_SNIPPET_LENGTH],
                status_code=response.status_code,
            )

        # v2 wraps the entity in "d"
        record = body.get("d", body)
        if not isinstance(record, dict):
            raise ResponseParseError(
                "Backend reported success but returned an unexpected payload",
                raw=response.text[:RAW_SNIPPET_LENGTH],
                status_code=response.status_code,
            )

        return GroupResponse(items=self._confirmation_items(record), message=message)

    def _confirmation_items(self, record: Dict[str, Any]) -> List[Dict[str, Any]]:
        header = _scalar_fields(record)
        lines = record.get(self.items_property) if self.items_property else None

        # v2 collections come as {"results": [...]}
        if isinstance(lines, dict):
            lines = lines.get("results")
        if not isinstance(lines, list) or not lines:
            return [header]

        return [{**header, **_scalar_fields(line)} for line in lines if isinstance(line, dict)] or [header]

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
