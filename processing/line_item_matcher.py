"""
Line-item matcher — links an extracted invoice to its supplier and each OCR
line item to a catalog product.

Supplier identification:
  1. CUIT match after stripping separators ("30-12345678-9" == "30123456789").
  2. Fallback: fuzzy supplier-name match (rapidfuzz token_sort_ratio,
     threshold SUPPLIER_NAME_THRESHOLD), for invoices whose CUIT was misread.

Product matching uses utils.fuzzy_match.find_best_match on the OCR
description against the supplier's product names.  Items without an
accepted match keep their OCR values with an empty product code and
product name "N/A" so the reviewer sees them as unmatched.

Public API:
    normalize_cuit(cuit) → str
    identify_supplier(catalog, cuit, supplier_name) → str | None
    match_line_item(raw_item, products, index) → LineItem
    build_invoice(ocr_data, catalog, source_filename) → InvoiceData
"""

import logging
import re
import uuid
from typing import Any

from rapidfuzz import fuzz

from config.matching_config import SUPPLIER_NAME_THRESHOLD
from config.schema import UNMATCHED_PRODUCT_NAME
from processing.invoice_models import Catalog, InvoiceData, LineItem, Product
from utils.fuzzy_match import find_best_match

logger = logging.getLogger(__name__)

_NON_DIGIT_PATTERN = re.compile(r"\D")


# ═══════════════════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════════════════

def normalize_cuit(cuit: str | None) -> str:
    """Keep only the digits of a CUIT."""
    if not cuit:
        return ""
    return _NON_DIGIT_PATTERN.sub("", str(cuit))


def identify_supplier(
    catalog: Catalog,
    cuit: str | None,
    supplier_name: str | None = None,
    name_threshold: int = SUPPLIER_NAME_THRESHOLD,
) -> str | None:
    """
    Find the catalog key (CUIT as written in the catalog) for an invoice.

    Args:
        catalog: The loaded master catalog.
        cuit: Supplier CUIT read from the invoice.
        supplier_name: Supplier name read from the invoice, used only when
                       no CUIT matches.
        name_threshold: Minimum token_sort_ratio (0-100) for a name match.

    Returns:
        The matching catalog key, or None.
    """
    normalized = normalize_cuit(cuit)
    if normalized:
        for catalog_cuit in catalog:
            if normalize_cuit(catalog_cuit) == normalized:
                return catalog_cuit

    if not supplier_name or not supplier_name.strip():
        return None

    name_lower = supplier_name.strip().lower()
    best_cuit: str | None = None
    best_score: float = 0.0

    for catalog_cuit, supplier in catalog.items():
        score = fuzz.token_sort_ratio(name_lower, supplier.supplier_name.lower())
        if score > best_score:
            best_score = score
            best_cuit = catalog_cuit

    if best_cuit is not None and best_score >= name_threshold:
        logger.info(
            f"Supplier matched by name: '{supplier_name}' → "
            f"'{catalog[best_cuit].supplier_name}' (similarity: {best_score:.0f}%)"
        )
        return best_cuit

    logger.debug(
        f"No supplier for CUIT '{cuit}' / name '{supplier_name}' "
        f"(best name score {best_score:.0f}%, threshold {name_threshold}%)"
    )
    return None


def match_line_item(
    raw_item: dict[str, Any],
    products: list[Product] | None,
    index: int = 0,
) -> LineItem:
    """
    Build a LineItem from a normalized OCR item and match it to a product.

    Args:
        raw_item: Dict with quantity, description, unit_price, total.
        products: The supplier's products, or None if the supplier is
                  unknown (the item is then left unmatched).
        index: Position of the item on the invoice (part of its id).

    Returns:
        The LineItem, matched when a product clears the threshold.
    """
    description = str(raw_item.get("description") or "")
    quantity = _to_float(raw_item.get("quantity"))
    unit_price = _to_float(raw_item.get("unit_price"))

    item = LineItem(
        id=f"item-{uuid.uuid4().hex[:8]}-{index}",
        ocr_description=description,
        ocr_quantity=quantity,
        ocr_unit_price=unit_price,
        product_code="",
        product_name=UNMATCHED_PRODUCT_NAME,
        quantity=quantity,
        unit_price=unit_price,
        total=_to_float(raw_item.get("total")),
        match_score=0.0,
    )

    if products:
        match = find_best_match(description, products, lambda p: p.product_name)
        if match is not None:
            item.product_code = match.best_match.product_code
            item.product_name = match.best_match.product_name
            item.match_score = match.score

    return item


def build_invoice(
    ocr_data: dict[str, Any],
    catalog: Catalog,
    source_filename: str = "",
) -> InvoiceData:
    """
    Turn a normalized extraction payload into a matched InvoiceData.

    Args:
        ocr_data: Output of response_parser.normalize_invoice_data().
        catalog: The loaded master catalog.
        source_filename: Name of the uploaded document.

    Returns:
        InvoiceData with the identified supplier and matched items.
    """
    cuit = str(ocr_data.get("cuit") or "")
    supplier_name = ocr_data.get("supplier_name")
    identified_cuit = identify_supplier(catalog, cuit, supplier_name)

    products = catalog[identified_cuit].products if identified_cuit else None
    items = [
        match_line_item(raw_item, products, index)
        for index, raw_item in enumerate(ocr_data.get("items") or [])
    ]

    matched_count = sum(1 for item in items if item.is_matched)
    logger.info(
        f"Invoice {ocr_data.get('invoice_number')}: supplier "
        f"{identified_cuit or 'not identified'}, "
        f"{matched_count}/{len(items)} items matched"
    )

    return InvoiceData(
        invoice_number=str(ocr_data.get("invoice_number") or ""),
        invoice_date=str(ocr_data.get("invoice_date") or ""),
        cuit=cuit,
        total_amount=_to_optional_float(ocr_data.get("total_amount")),
        iva_perception=_to_optional_float(ocr_data.get("iva_perception")),
        gross_income_perception=_to_optional_float(
            ocr_data.get("gross_income_perception")
        ),
        other_taxes=_to_optional_float(ocr_data.get("other_taxes")),
        supplier_name=supplier_name,
        identified_supplier_cuit=identified_cuit,
        use_preloaded_catalog=False,
        items=items,
        source_filename=source_filename,
    )


# ═══════════════════════════════════════════════════════════════════════════
# Internal helpers
# ═══════════════════════════════════════════════════════════════════════════

def _to_optional_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning(f"Could not convert '{value}' to a number")
        return None


def _to_float(value: Any) -> float:
    converted = _to_optional_float(value)
    return 0.0 if converted is None else converted
