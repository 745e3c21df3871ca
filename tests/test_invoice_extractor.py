"""
Tests for processing/invoice_extractor.py

Covers: no-API-key skip, unsupported documents, media type resolution,
content block building, mocked API calls, retry on transient errors and
failure reasons for bad model output.
"""

import base64
import json
from unittest.mock import patch

import anthropic
import httpx
import pytest

from config.matching_config import MAX_API_ATTEMPTS, MODEL_ID
from processing.invoice_extractor import (
    ExtractionResult,
    _build_content,
    extract_invoice,
    guess_media_type,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class _FakeStatusError(Exception):
    """Stands in for an anthropic.APIStatusError with a status code."""

    def __init__(self, status_code: int):
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


def _model_response(**overrides) -> str:
    payload = {
        "invoiceNumber": "0004-00123456",
        "invoiceDate": "15/03/2024",
        "supplierName": "Frutas SA",
        "cuit": "30-11111111-1",
        "totalAmount": 130.0,
        "ivaPerception": None,
        "grossIncomePerception": None,
        "otherTaxes": None,
        "items": [
            {"quantity": 2, "description": "Delicius Apples", "unitPrice": 25, "total": 50},
            {"quantity": 4, "description": "Fresh Banana", "unitPrice": 20, "total": 80},
        ],
    }
    payload.update(overrides)
    return "```json\n" + json.dumps(payload) + "\n```"


def _api_return(text: str):
    return (text, 0.01, 1000, 200)


_REAL_CLIENT = anthropic.Anthropic


def _transport_client(handler):
    """Client factory whose HTTP requests are answered by *handler*."""
    def _factory(*args, **kwargs):
        http_client = httpx.Client(transport=httpx.MockTransport(handler))
        return _REAL_CLIENT(*args, http_client=http_client, **kwargs)
    return _factory


def _message_body(text: str) -> dict:
    return {
        "id": "msg_test",
        "type": "message",
        "role": "assistant",
        "model": MODEL_ID,
        "content": [{"type": "text", "text": text}],
        "stop_reason": "end_turn",
        "stop_sequence": None,
        "usage": {"input_tokens": 1000, "output_tokens": 200},
    }


# ═══════════════════════════════════════════════════════════════════════════
# Requests that never reach the API
# ═══════════════════════════════════════════════════════════════════════════

class TestNoApiCall:
    @patch("processing.invoice_extractor._call_claude_api")
    def test_no_api_key(self, mock_api):
        result = extract_invoice(b"data", "factura.jpg", "image/jpeg", api_key=None)
        assert isinstance(result, ExtractionResult)
        assert result.success is False
        assert result.reason == "No API key configured on the server"
        mock_api.assert_not_called()

    @patch("processing.invoice_extractor._call_claude_api")
    def test_unsupported_file_type(self, mock_api):
        result = extract_invoice(b"data", "factura.docx", None, api_key="sk-test")
        assert result.success is False
        assert result.reason.startswith("Unsupported file type")
        mock_api.assert_not_called()


class TestGuessMediaType:
    @pytest.mark.parametrize("filename, declared, expected", [
        ("a.jpg", "image/jpeg", "image/jpeg"),
        ("a.jpg", "image/jpg", "image/jpeg"),
        ("a.JPG", None, "image/jpeg"),
        ("a.png", "", "image/png"),
        ("a.pdf", "application/octet-stream", "application/pdf"),
        ("a.txt", "text/plain; charset=utf-8", "text/plain"),
        ("a.docx", None, None),
        ("noext", "application/zip", None),
    ])
    def test_resolution(self, filename, declared, expected):
        assert guess_media_type(filename, declared) == expected


class TestBuildContent:
    def test_image_block(self):
        blocks = _build_content(b"\x89PNG", "image/png")
        assert blocks[0]["type"] == "image"
        assert blocks[0]["source"]["media_type"] == "image/png"
        assert base64.standard_b64decode(blocks[0]["source"]["data"]) == b"\x89PNG"
        assert blocks[1]["type"] == "text"

    def test_pdf_is_document_block(self):
        blocks = _build_content(b"%PDF-1.4", "application/pdf")
        assert blocks[0]["type"] == "document"
        assert blocks[0]["source"]["type"] == "base64"

    def test_text_block(self):
        blocks = _build_content("Factura Nº 1".encode("utf-8"), "text/plain")
        assert blocks[0] == {"type": "text", "text": "Factura Nº 1"}
        assert len(blocks) == 2


# ═══════════════════════════════════════════════════════════════════════════
# Mocked API calls
# ═══════════════════════════════════════════════════════════════════════════

class TestSuccessfulExtraction:
    @patch("processing.invoice_extractor._call_claude_api")
    def test_normalized_payload(self, mock_api):
        mock_api.return_value = _api_return(_model_response())
        result = extract_invoice(b"img", "factura.jpg", "image/jpeg", api_key="sk-test")

        assert result.success is True
        assert result.reason == ""
        assert result.attempts == 1
        assert result.data["invoice_number"] == "0004-00123456"
        assert result.data["invoice_date"] == "2024-03-15"
        assert result.data["items"][0] == {
            "quantity": 2,
            "description": "Delicius Apples",
            "unit_price": 25,
            "total": 50,
        }

    @patch("processing.invoice_extractor._call_claude_api")
    def test_cost_and_tokens_recorded(self, mock_api):
        mock_api.return_value = _api_return(_model_response())
        result = extract_invoice(b"img", "factura.jpg", "image/jpeg", api_key="sk-test")
        assert result.api_cost_estimate == pytest.approx(0.01)
        assert result.input_tokens == 1000
        assert result.output_tokens == 200

    @patch("processing.invoice_extractor._call_claude_api")
    def test_message_carries_document_and_prompt(self, mock_api):
        mock_api.return_value = _api_return(_model_response())
        extract_invoice(b"%PDF", "factura.pdf", None, api_key="sk-test")

        messages, api_key = mock_api.call_args[0]
        assert api_key == "sk-test"
        assert messages[0]["role"] == "user"
        assert messages[0]["content"][0]["type"] == "document"


class TestRetry:
    @patch("processing.invoice_extractor.time.sleep")
    @patch("processing.invoice_extractor._call_claude_api")
    def test_retries_overloaded_then_succeeds(self, mock_api, mock_sleep):
        mock_api.side_effect = [
            _FakeStatusError(529),
            _FakeStatusError(429),
            _api_return(_model_response()),
        ]
        result = extract_invoice(b"img", "factura.jpg", "image/jpeg", api_key="sk-test")

        assert result.success is True
        assert result.attempts == 3
        assert mock_sleep.call_count == 2

    @patch("processing.invoice_extractor.time.sleep")
    @patch("processing.invoice_extractor._call_claude_api")
    def test_gives_up_after_max_attempts(self, mock_api, mock_sleep):
        mock_api.side_effect = _FakeStatusError(503)
        result = extract_invoice(b"img", "factura.jpg", "image/jpeg", api_key="sk-test")

        assert result.success is False
        assert result.attempts == 3
        assert mock_api.call_count == 3
        assert result.reason.startswith("Could not process the document")

    @patch("processing.invoice_extractor.time.sleep")
    @patch("processing.invoice_extractor._call_claude_api")
    def test_non_transient_error_not_retried(self, mock_api, mock_sleep):
        mock_api.side_effect = _FakeStatusError(401)
        result = extract_invoice(b"img", "factura.jpg", "image/jpeg", api_key="sk-test")

        assert result.success is False
        assert result.attempts == 1
        assert "HTTP 401" in result.reason
        mock_sleep.assert_not_called()


class TestBadModelOutput:
    @patch("processing.invoice_extractor._call_claude_api")
    def test_not_json(self, mock_api):
        mock_api.return_value = _api_return("I could not read this invoice, sorry.")
        result = extract_invoice(b"img", "factura.jpg", "image/jpeg", api_key="sk-test")
        assert result.success is False
        assert result.reason == "The model returned a response that is not valid JSON"

    @patch("processing.invoice_extractor._call_claude_api")
    def test_missing_invoice_number(self, mock_api):
        mock_api.return_value = _api_return(_model_response(invoiceNumber=""))
        result = extract_invoice(b"img", "factura.jpg", "image/jpeg", api_key="sk-test")
        assert result.success is False
        assert result.reason.startswith("The model returned an invalid or incomplete structure")
        assert "Missing invoice number" in result.reason

    @patch("processing.invoice_extractor._call_claude_api")
    def test_items_not_a_list(self, mock_api):
        mock_api.return_value = _api_return(_model_response(items="none"))
        result = extract_invoice(b"img", "factura.jpg", "image/jpeg", api_key="sk-test")
        assert result.success is False
        assert "Field 'items' must be a list" in result.reason

    @patch("processing.invoice_extractor._call_claude_api")
    def test_cost_kept_on_bad_output(self, mock_api):
        mock_api.return_value = _api_return("nonsense")
        result = extract_invoice(b"img", "factura.jpg", "image/jpeg", api_key="sk-test")
        assert result.api_cost_estimate == pytest.approx(0.01)


# ═══════════════════════════════════════════════════════════════════════════
# HTTP requests sent through the SDK
# ═══════════════════════════════════════════════════════════════════════════

class TestHttpRequests:
    @patch("processing.invoice_extractor.time.sleep")
    def test_overloaded_api_gets_one_request_per_attempt(self, mock_sleep):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(
                529,
                json={"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}},
            )

        with patch(
            "processing.invoice_extractor.anthropic.Anthropic",
            side_effect=_transport_client(handler),
        ) as mock_client:
            result = extract_invoice(b"hello", "factura.txt", "text/plain", api_key="sk-test")

        assert result.success is False
        assert result.attempts == MAX_API_ATTEMPTS
        assert len(requests) == MAX_API_ATTEMPTS
        assert mock_sleep.call_count == MAX_API_ATTEMPTS - 1
        assert mock_client.call_args.kwargs["max_retries"] == 0

    def test_request_uses_configured_model(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json=_message_body(_model_response()))

        with patch(
            "processing.invoice_extractor.anthropic.Anthropic",
            side_effect=_transport_client(handler),
        ):
            result = extract_invoice(b"hello", "factura.txt", "text/plain", api_key="sk-test")

        assert result.success is True
        assert len(bodies) == 1
        assert bodies[0]["model"] == MODEL_ID == "claude-sonnet-4-5"
        assert result.input_tokens == 1000
        assert result.output_tokens == 200
