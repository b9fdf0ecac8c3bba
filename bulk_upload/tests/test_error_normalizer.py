"""Unit tests for error normalization."""

import asyncio

import httpx

from bulk_upload.core.errors import ErrorDetail, SubmissionError, SubmissionTimeout
from bulk_upload.core.execution.error_normalizer import (
    error_from_response,
    extract_submission_error,
    parse_odata_error_payload,
)

URL = "https://sap.example.com/sap/opu/odata/sap/API_SRV/A_Entity"


def _response(status_code: int, **kwargs) -> httpx.Response:
    return httpx.Response(status_code, request=httpx.Request("POST", URL), **kwargs)


class TestODataPayloads:
    """Test OData error documents."""

    def test_v2_error_with_errordetails(self):
        """Test v2 message object and innererror details."""
        payload = {
            "error": {
                "code": "AA/345",
                "message": {"lang": "en", "value": "Asset class 9999 does not exist"},
                "innererror": {
                    "errordetails": [
                        {"code": "AA/345", "message": "Asset class 9999 does not exist", "propertyref": "AssetClass", "severity": "error"},
                        {"code": "/IWBEP/CX_MGW_BUSI_EXCEPTION", "message": "Business error"},
                    ]
                },
            }
        }

        error = parse_odata_error_payload(payload, 400)

        assert error.code == "AA/345"
        assert error.message == "Asset class 9999 does not exist"
        assert error.status_code == 400
        assert error.details[0] == ErrorDetail(
            code="AA/345", message="Asset class 9999 does not exist", target="AssetClass", severity="error"
        )
        assert error.detail_codes == ["AA/345", "/IWBEP/CX_MGW_BUSI_EXCEPTION"]

    def test_v4_error_with_details(self):
        """Test v4 plain message and details list."""
        payload = {
            "error": {
                "code": "ME/006",
                "message": "User BATCH is already processing document 4500000012",
                "details": [{"code": "ME/006", "message": "Locked", "target": "PurchaseOrder"}],
            }
        }

        error = parse_odata_error_payload(payload)

        assert error.code == "ME/006"
        assert error.details[0].target == "PurchaseOrder"

    def test_payload_without_error_object(self):
        """Test non-OData payload returns None."""
        assert parse_odata_error_payload({"message": "nope"}) is None

    def test_missing_code_and_message(self):
        """Test defaults for an empty error object."""
        error = parse_odata_error_payload({"error": {}})

        assert error.code == "UNKNOWN_ODATA_ERROR"
        assert error.message == "No OData error message provided."


class TestErrorFromResponse:
    """Test HTTP response bodies."""

    def test_json_body(self):
        """Test OData JSON body is parsed."""
        response = _response(400, json={"error": {"code": "F5/702", "message": {"value": "Balance not zero"}}})

        error = error_from_response(response)

        assert error.code == "F5/702"
        assert error.message == "Balance not zero"
        assert error.status_code == 400

    def test_batch_multipart_body(self):
        """Test error JSON embedded in a $batch response."""
        body = (
            "--batch_1\r\n"
            "Content-Type: application/http\r\n"
            "Content-Transfer-Encoding: binary\r\n\r\n"
            "HTTP/1.1 400 Bad Request\r\n"
            "Content-Type: application/json\r\n\r\n"
            '{"error":{"code":"ME/006","message":{"value":"Document locked"}}}'
            "\r\n--batch_1--\r\n"
        )

        error = error_from_response(_response(400, text=body))

        assert error.code == "ME/006"
        assert error.message == "Document locked"

    def test_empty_body(self):
        """Test empty body gets an HTTP_<status> code."""
        error = error_from_response(_response(503, text=""))

        assert error.code == "HTTP_503"
        assert error.status_code == 503

    def test_unparseable_body_keeps_snippet(self):
        """Test HTML error pages keep a 200 character raw snippet."""
        html = "<html>" + "x" * 500 + "</html>"

        error = error_from_response(_response(502, text=html))

        assert error.code == "HTTP_502"
        assert error.message == "Failed to parse error response from server."
        assert error.raw == html[:200]
        assert len(error.details) == 1

    def test_json_without_odata_structure(self):
        """Test JSON body without an error object."""
        error = error_from_response(_response(500, json={"fault": "boom"}))

        assert error.code == "HTTP_500"
        assert "could not find standard OData error structure" in error.message


class TestExtractSubmissionError:
    """Test normalization of arbitrary failures."""

    def test_submission_error_passes_through(self):
        """Test an already normalized error is returned as is."""
        original = SubmissionError(code="X", message="y")
        assert extract_submission_error(original) is original

    def test_timeouts(self):
        """Test asyncio and httpx timeouts become SubmissionTimeout."""
        for exc in (asyncio.TimeoutError(), httpx.ReadTimeout("read timed out")):
            error = extract_submission_error(exc)
            assert isinstance(error, SubmissionTimeout)
            assert error.code == "TIMEOUT"
            assert error.kind == "timeout"

    def test_http_status_error(self):
        """Test httpx status errors are read from the response body."""
        response = _response(409, json={"error": {"code": "ME/006", "message": "Locked"}})
        exc = httpx.HTTPStatusError("conflict", request=response.request, response=response)

        error = extract_submission_error(exc)

        assert error.code == "ME/006"
        assert error.status_code == 409

    def test_connection_error(self):
        """Test transport errors become CONNECTION_ERROR."""
        error = extract_submission_error(httpx.ConnectError("connection refused"))

        assert error.code == "CONNECTION_ERROR"
        assert "connection refused" in error.message

    def test_dict_payloads(self):
        """Test plain dicts with and without an error object."""
        assert extract_submission_error({"error": {"code": "E1", "message": "m"}}).code == "E1"

        error = extract_submission_error({"code": "E2", "message": "plain", "details": ["d1"]})
        assert error.code == "E2"
        assert error.message == "plain"
        assert error.details[0].message == "d1"

    def test_string(self):
        """Test strings become STRING_ERROR."""
        error = extract_submission_error("something broke")

        assert error.code == "STRING_ERROR"
        assert error.message == "something broke"

    def test_exception_with_code_attribute(self):
        """Test exception code attribute is kept."""

        class LockError(Exception):
            code = "ME/006"

        assert extract_submission_error(LockError("locked")).code == "ME/006"
        assert extract_submission_error(KeyError("x")).code == "KeyError"

    def test_unknown_value(self):
        """Test anything else becomes UNKNOWN_ERROR."""
        assert extract_submission_error(42).code == "UNKNOWN_ERROR"
        assert extract_submission_error(None).code == "UNKNOWN_ERROR"
