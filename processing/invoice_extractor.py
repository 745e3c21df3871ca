"""
Invoice extractor — reads header fields and line items from an invoice
document using Claude.

One API call per document.  Images are sent as image blocks, PDFs as
document blocks and plain text as a text block, each followed by the
extraction prompt.  The JSON answer is repaired, normalized and validated
by processing/response_parser.py.

Overload and rate-limit errors are retried (MAX_API_ATTEMPTS attempts,
RETRY_DELAY_SECONDS apart); any other API error fails the document at once.
Failures never raise: they come back as ExtractionResult(success=False)
with a reason, so a batch can carry on with the next file.

Public API:
    extract_invoice(content, filename, media_type, api_key) → ExtractionResult
    guess_media_type(filename, declared_type) → str | None
"""

import base64
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import anthropic

from config.matching_config import (
    INPUT_COST_PER_MTOK,
    MAX_API_ATTEMPTS,
    MAX_OUTPUT_TOKENS,
    MODEL_ID,
    OUTPUT_COST_PER_MTOK,
    RETRY_DELAY_SECONDS,
    RETRYABLE_STATUS_CODES,
)
from config.schema import (
    EXTENSION_MEDIA_TYPES,
    IMAGE_MEDIA_TYPES,
    PDF_MEDIA_TYPE,
    TEXT_MEDIA_TYPE,
)
from processing.response_parser import (
    normalize_invoice_data,
    parse_model_json,
    validate_invoice_payload,
)

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Constants
# ═══════════════════════════════════════════════════════════════════════════

_PROMPT = """You are reading a supplier invoice or delivery note (Argentina).

Extract the following and return it strictly as a single JSON object, with
no text before or after it:

{
  "invoiceNumber": "invoice / voucher number, e.g. 0004-00123456",
  "invoiceDate": "invoice date as YYYY-MM-DD",
  "supplierName": "name or legal name (razón social) of the issuer",
  "cuit": "C.U.I.T. of the issuer, e.g. 30-12345678-9",
  "totalAmount": number, the final invoice total,
  "ivaPerception": number or null, IVA perception if present,
  "grossIncomePerception": number or null, Ingresos Brutos perception if present,
  "otherTaxes": number or null, other taxes if present,
  "items": [
    {
      "quantity": number,
      "description": "product or service description exactly as printed",
      "unitPrice": number,
      "total": number, line total (quantity * unit price)
    }
  ]
}

List EVERY line item on the document.  Copy descriptions as printed, do not
correct or translate them.  If an optional field such as a perception is
not on the document, its value must be null.  Numbers must be plain JSON
numbers (no thousands separators, "." as decimal point)."""


# ═══════════════════════════════════════════════════════════════════════════
# Data class
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class ExtractionResult:
    """Output of extract_invoice() for one document."""

    filename: str = ""
    success: bool = False
    data: dict[str, Any] = field(default_factory=dict)
    reason: str = ""
    attempts: int = 0
    api_cost_estimate: float = 0.0
    input_tokens: int = 0
    output_tokens: int = 0


# ═══════════════════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════════════════

def extract_invoice(
    content: bytes,
    filename: str,
    media_type: str | None,
    api_key: str | None,
) -> ExtractionResult:
    """
    Extract structured invoice data from one document.

    Args:
        content: Raw file bytes.
        filename: Original file name (used for logging and media type
                  fallback).
        media_type: Declared MIME type, or None to guess from the filename.
        api_key: Anthropic API key.  Without one nothing is sent.

    Returns:
        ExtractionResult; on success ``data`` holds the normalized payload
        (see processing/response_parser.py).
    """
    result = ExtractionResult(filename=filename)

    if not api_key:
        result.reason = "No API key configured on the server"
        logger.error(f"Cannot extract '{filename}': {result.reason}")
        return result

    resolved_type = guess_media_type(filename, media_type)
    if resolved_type is None:
        result.reason = f"Unsupported file type '{media_type or Path(filename).suffix}'"
        logger.error(f"Cannot extract '{filename}': {result.reason}")
        return result

    messages = [{"role": "user", "content": _build_content(content, resolved_type)}]

    # ------------------------------------------------------------------
    # API call with retry on transient errors
    # ------------------------------------------------------------------
    response_text: str | None = None
    for attempt in range(1, MAX_API_ATTEMPTS + 1):
        result.attempts = attempt
        try:
            response_text, cost, input_tokens, output_tokens = _call_claude_api(
                messages, api_key
            )
        except Exception as exc:
            if _is_transient_error(exc) and attempt < MAX_API_ATTEMPTS:
                logger.warning(
                    f"Attempt {attempt} for '{filename}' failed ({exc}); "
                    f"retrying in {RETRY_DELAY_SECONDS}s..."
                )
                time.sleep(RETRY_DELAY_SECONDS)
                continue
            result.reason = f"Could not process the document: {exc}"
            logger.error(f"Extraction API call failed for '{filename}': {exc}")
            return result

        result.api_cost_estimate += cost
        result.input_tokens += input_tokens
        result.output_tokens += output_tokens
        break

    # ------------------------------------------------------------------
    # Parse, normalize, validate
    # ------------------------------------------------------------------
    raw = parse_model_json(response_text or "")
    if raw is None:
        result.reason = "The model returned a response that is not valid JSON"
        logger.error(f"Extraction failed for '{filename}': {result.reason}")
        return result

    normalized = normalize_invoice_data(raw)
    problems = validate_invoice_payload(normalized)
    if problems:
        result.reason = (
            "The model returned an invalid or incomplete structure: "
            + "; ".join(problems)
        )
        logger.error(f"Extraction failed for '{filename}': {result.reason}")
        return result

    result.success = True
    result.data = normalized
    logger.info(
        f"Extracted '{filename}': invoice {normalized['invoice_number']}, "
        f"{len(normalized['items'])} items"
    )
    return result


def guess_media_type(filename: str, declared_type: str | None = None) -> str | None:
    """
    Resolve the media type to send, or None if the document is unsupported.

    A declared type is trusted when supported; otherwise the file
    extension decides.
    """
    if declared_type:
        declared = declared_type.split(";")[0].strip().lower()
        if declared == "image/jpg":
            declared = "image/jpeg"
        if declared in IMAGE_MEDIA_TYPES or declared in (PDF_MEDIA_TYPE, TEXT_MEDIA_TYPE):
            return declared
    return EXTENSION_MEDIA_TYPES.get(Path(filename).suffix.lower())


# ═══════════════════════════════════════════════════════════════════════════
# Internal helpers
# ═══════════════════════════════════════════════════════════════════════════

def _build_content(content: bytes, media_type: str) -> list[dict]:
    """Message content blocks: the document followed by the prompt."""
    if media_type == TEXT_MEDIA_TYPE:
        document_block = {
            "type": "text",
            "text": content.decode("utf-8", errors="replace"),
        }
    else:
        encoded = base64.standard_b64encode(content).decode("ascii")
        document_block = {
            "type": "document" if media_type == PDF_MEDIA_TYPE else "image",
            "source": {
                "type": "base64",
                "media_type": media_type,
                "data": encoded,
            },
        }
    return [document_block, {"type": "text", "text": _PROMPT}]


def _call_claude_api(
    messages: list[dict],
    api_key: str,
) -> tuple[str, float, int, int]:
    """
    Call the Claude Messages API.

    Returns:
        (response_text, estimated_cost_usd, input_tokens, output_tokens)

    Raises:
        anthropic.APIError: On API errors (network, auth, rate limit, etc.).
    """
    # Retries are handled by extract_invoice; the SDK must not add its own
    client = anthropic.Anthropic(api_key=api_key, max_retries=0)

    message = client.messages.create(
        model=MODEL_ID,
        max_tokens=MAX_OUTPUT_TOKENS,
        messages=messages,
    )

    response_text = "".join(
        block.text for block in message.content if getattr(block, "type", "") == "text"
    )

    input_tokens = message.usage.input_tokens
    output_tokens = message.usage.output_tokens
    estimated_cost = (
        input_tokens * INPUT_COST_PER_MTOK / 1_000_000
        + output_tokens * OUTPUT_COST_PER_MTOK / 1_000_000
    )

    logger.info(
        f"Claude API call: {input_tokens} input tokens, "
        f"{output_tokens} output tokens, est. cost ${estimated_cost:.4f}"
    )

    return response_text, estimated_cost, input_tokens, output_tokens


def _is_transient_error(exc: Exception) -> bool:
    """True for connection errors and overload / rate-limit statuses."""
    if isinstance(exc, anthropic.APIConnectionError):
        return True
    status_code = getattr(exc, "status_code", None)
    return status_code in RETRYABLE_STATUS_CODES
