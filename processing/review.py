"""
Review operations — the edits a reviewer makes to an invoice before export.

Every function returns a new InvoiceData (or the same one when the edit
does not apply) and never mutates its input, so the UI can keep the
previous version around and swap in the result.

Public API:
    change_supplier(invoice, catalog, cuit) → InvoiceData
    set_preloaded_catalog(invoice, catalog, enabled) → InvoiceData
    update_item_field(invoice, item_id, field_name, value) → InvoiceData
    select_product(invoice, catalog, item_id, product_name) → InvoiceData
    add_manual_item(invoice) → InvoiceData
    remove_item(invoice, item_id) → InvoiceData
    filter_suppliers(catalog, term) → list[tuple[str, str]]
"""

import logging
import uuid
from dataclasses import replace
from typing import Any

from config.schema import UNMATCHED_PRODUCT_NAME
from processing.invoice_models import Catalog, InvoiceData, LineItem
from utils.fuzzy_match import find_best_match

logger = logging.getLogger(__name__)

MANUAL_ITEM_DESCRIPTION = "Manual entry"

_EDITABLE_FIELDS: set[str] = {
    "product_code",
    "product_name",
    "quantity",
    "unit_price",
    "total",
}
_PRICE_FIELDS: set[str] = {"quantity", "unit_price"}


def change_supplier(invoice: InvoiceData, catalog: Catalog, cuit: str) -> InvoiceData:
    """
    Assign a different supplier and re-match every item against its
    products.  Items without an accepted match become unmatched.
    The preloaded-catalog view is switched off.
    """
    supplier = catalog.get(cuit)
    if supplier is None:
        logger.warning(f"Supplier '{cuit}' not in catalog — invoice unchanged")
        return invoice

    rematched: list[LineItem] = []
    for item in invoice.items:
        match = find_best_match(
            item.ocr_description, supplier.products, lambda p: p.product_name
        )
        if match is not None:
            rematched.append(replace(
                item,
                product_code=match.best_match.product_code,
                product_name=match.best_match.product_name,
                match_score=match.score,
            ))
        else:
            rematched.append(replace(
                item,
                product_code="",
                product_name=UNMATCHED_PRODUCT_NAME,
                match_score=0.0,
            ))

    logger.info(
        f"Invoice {invoice.invoice_number}: supplier changed to {cuit}, "
        f"{sum(1 for i in rematched if i.is_matched)}/{len(rematched)} items re-matched"
    )
    return replace(
        invoice,
        identified_supplier_cuit=cuit,
        items=rematched,
        use_preloaded_catalog=False,
    )


def set_preloaded_catalog(
    invoice: InvoiceData,
    catalog: Catalog,
    enabled: bool,
) -> InvoiceData:
    """
    Toggle the preloaded-catalog view.

    Enabling replaces the items with one zero-quantity line per product of
    the identified supplier and keeps the current items as a backup;
    disabling restores that backup.
    """
    if enabled:
        supplier = catalog.get(invoice.identified_supplier_cuit or "")
        if supplier is None:
            logger.warning(
                f"Invoice {invoice.invoice_number}: no identified supplier — "
                "cannot preload catalog"
            )
            return invoice
        preloaded = [
            LineItem(
                id=f"item-preloaded-{uuid.uuid4().hex[:8]}-{index}",
                product_code=product.product_code,
                product_name=product.product_name,
            )
            for index, product in enumerate(supplier.products)
        ]
        backup = invoice.original_items if invoice.use_preloaded_catalog else invoice.items
        return replace(
            invoice,
            use_preloaded_catalog=True,
            items=preloaded,
            original_items=backup,
        )

    restored = invoice.original_items if invoice.original_items is not None else invoice.items
    return replace(
        invoice,
        use_preloaded_catalog=False,
        items=restored,
        original_items=None,
    )


def update_item_field(
    invoice: InvoiceData,
    item_id: str,
    field_name: str,
    value: Any,
) -> InvoiceData:
    """
    Set one editable field of one item.

    Changing quantity or unit price recomputes the line total, rounded to
    2 decimals.

    Raises:
        ValueError: If *field_name* is not editable or a numeric value
                    cannot be converted.
    """
    if field_name not in _EDITABLE_FIELDS:
        raise ValueError(f"Field '{field_name}' cannot be edited")

    new_items: list[LineItem] = []
    for item in invoice.items:
        if item.id != item_id:
            new_items.append(item)
            continue
        if field_name in _PRICE_FIELDS or field_name == "total":
            numeric = float(value or 0)
            updated = replace(item, **{field_name: numeric})
            if field_name in _PRICE_FIELDS:
                updated = replace(
                    updated, total=round(updated.quantity * updated.unit_price, 2)
                )
        else:
            updated = replace(item, **{field_name: "" if value is None else str(value)})
        new_items.append(updated)

    return replace(invoice, items=new_items)


def select_product(
    invoice: InvoiceData,
    catalog: Catalog,
    item_id: str,
    product_name: str,
) -> InvoiceData:
    """Assign a catalog product (by name) to an item; unknown names are ignored."""
    supplier = catalog.get(invoice.identified_supplier_cuit or "")
    if supplier is None:
        return invoice

    selected = next(
        (p for p in supplier.products if p.product_name == product_name), None
    )
    if selected is None:
        return invoice

    return replace(invoice, items=[
        replace(item, product_code=selected.product_code, product_name=selected.product_name)
        if item.id == item_id else item
        for item in invoice.items
    ])


def add_manual_item(invoice: InvoiceData) -> InvoiceData:
    """Append an empty, reviewer-entered line (quantity 1)."""
    new_item = LineItem(
        id=f"item-manual-{uuid.uuid4().hex[:8]}",
        ocr_description=MANUAL_ITEM_DESCRIPTION,
        product_code="",
        product_name="",
        quantity=1.0,
    )
    return replace(invoice, items=[*invoice.items, new_item])


def remove_item(invoice: InvoiceData, item_id: str) -> InvoiceData:
    return replace(invoice, items=[i for i in invoice.items if i.id != item_id])


def filter_suppliers(catalog: Catalog, term: str) -> list[tuple[str, str]]:
    """
    (cuit, supplier_name) pairs whose name or CUIT contains *term*,
    case-insensitively.  An empty term returns every supplier.
    """
    needle = (term or "").lower()
    return [
        (cuit, supplier.supplier_name)
        for cuit, supplier in catalog.items()
        if needle in supplier.supplier_name.lower() or needle in cuit.lower()
    ]
