"""
Model response parsing — turns the extractor's raw text into a normalized
invoice payload.

The model is asked for strict JSON but occasionally wraps it in markdown
fences, uses single quotes, leaves keys unquoted, adds trailing commas or
answers with Spanish field names.  This module repairs and normalizes all
of that so downstream code sees one shape:

    {
        "invoice_number", "invoice_date" (YYYY-MM-DD), "supplier_name",
        "cuit", "total_amount", "iva_perception", "gross_income_perception",
        "other_taxes",
        "items": [{"quantity", "description", "unit_price", "total"}, ...]
    }

Fields that are not found are None (``items`` is None if absent).

Public API:
    parse_model_json(response_text) → dict | None
    normalize_invoice_data(raw) → dict
    validate_invoice_payload(data) → list[str]
"""

import json
import logging
import re
from typing import Any

from config.field_aliases import (
    INVOICE_FIELD_ALIASES,
    ITEM_FIELD_ALIASES,
    ITEMS_ALIASES,
)

logger = logging.getLogger(__name__)

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*\n?(.*?)```", re.DOTALL)
_BARE_KEY_PATTERN = re.compile(r"([{,]\s*)(\w+)(\s*:)")
_TRAILING_COMMA_PATTERN = re.compile(r",\s*([}\]])")
_SLASH_DATE_PATTERN = re.compile(r"^\s*(\d{1,2})/(\d{1,2})/(\d{4})\s*$")


# ═══════════════════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════════════════

def strip_code_fences(response_text: str) -> str:
    """Return the content of the first ```json fence, or the stripped text."""
    fenced_match = _FENCE_PATTERN.search(response_text)
    if fenced_match:
        return fenced_match.group(1).strip()
    return response_text.strip()


def repair_json(json_text: str) -> str:
    """
    Fix the JSON mistakes models commonly make.

      - Bare object keys get double quotes: ``{key: 1}`` → ``{"key": 1}``
      - Single quotes become double quotes.
      - Trailing commas before ``}`` or ``]`` are dropped.

    This is a text heuristic; a single quote inside a string value (e.g.
    an apostrophe in a product name) is also rewritten.
    """
    repaired = _BARE_KEY_PATTERN.sub(r'\1"\2"\3', json_text)
    repaired = repaired.replace("'", '"')
    repaired = _TRAILING_COMMA_PATTERN.sub(r"\1", repaired)
    return repaired


def parse_model_json(response_text: str) -> dict | None:
    """
    Parse the JSON object in a model response.

    Strips markdown fences, cuts the text down to the outermost ``{...}``
    and parses it.  If that fails the text is run through repair_json()
    and parsed once more.

    Args:
        response_text: Raw text from the model.

    Returns:
        The parsed object, or None if no valid JSON object could be found.
    """
    if not response_text:
        return None

    json_text = strip_code_fences(response_text)

    start_idx = json_text.find("{")
    end_idx = json_text.rfind("}")
    if start_idx == -1 or end_idx == -1:
        logger.error("No JSON object found in model response")
        return None
    json_text = json_text[start_idx : end_idx + 1]

    try:
        parsed = json.loads(json_text)
    except json.JSONDecodeError:
        logger.warning("Model response is not valid JSON — attempting repair")
        try:
            parsed = json.loads(repair_json(json_text))
        except json.JSONDecodeError as exc:
            logger.error(f"Failed to parse model JSON response: {exc}")
            return None

    if not isinstance(parsed, dict):
        logger.error("Model response is not a JSON object")
        return None

    return parsed


def normalize_invoice_data(raw: dict[str, Any]) -> dict[str, Any]:
    """
    Map a raw model payload onto the normalized invoice shape.

    Key lookup is case-insensitive against the aliases in
    config/field_aliases.py.  ``DD/MM/YYYY`` dates are rewritten as
    ``YYYY-MM-DD``; other date strings are kept as they are.

    Args:
        raw: Parsed model output.

    Returns:
        Dict with every normalized invoice key (missing ones are None).
    """
    normalized: dict[str, Any] = {
        field_name: _find_value(raw, aliases)
        for field_name, aliases in INVOICE_FIELD_ALIASES.items()
    }

    if isinstance(normalized["invoice_date"], str):
        normalized["invoice_date"] = _format_date(normalized["invoice_date"])

    items = _find_value(raw, ITEMS_ALIASES)
    if isinstance(items, list):
        normalized["items"] = [
            {
                field_name: _find_value(item if isinstance(item, dict) else {}, aliases)
                for field_name, aliases in ITEM_FIELD_ALIASES.items()
            }
            for item in items
        ]
    else:
        normalized["items"] = None

    return normalized


def validate_invoice_payload(data: dict[str, Any]) -> list[str]:
    """
    Return a list of structural problems; an empty list means usable.

    An invoice needs a number and a list of items (which may be empty).
    """
    errors: list[str] = []
    invoice_number = data.get("invoice_number")
    if invoice_number is None or str(invoice_number).strip() == "":
        errors.append("Missing invoice number")
    if not isinstance(data.get("items"), list):
        errors.append("Field 'items' must be a list")
    return errors


# ═══════════════════════════════════════════════════════════════════════════
# Internal helpers
# ═══════════════════════════════════════════════════════════════════════════

def _find_value(obj: dict[str, Any], aliases: list[str]) -> Any:
    """First value in *obj* whose key matches an alias (case-insensitive)."""
    lower_aliases = {alias.lower() for alias in aliases}
    for key, value in obj.items():
        if str(key).lower() in lower_aliases:
            return value
    return None


def _format_date(value: str) -> str:
    """``DD/MM/YYYY`` → ``YYYY-MM-DD``; anything else is returned unchanged."""
    match = _SLASH_DATE_PATTERN.match(value)
    if not match:
        return value
    day, month, year = match.groups()
    return f"{year}-{month.zfill(2)}-{day.zfill(2)}"
