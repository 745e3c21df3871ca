"""
CSV exporter — turns reviewed invoices into the import file for the
accounting system.

One row per exportable line item (a product code is set and the quantity
is positive), with columns EXPORT_COLUMNS.  The CSV is UTF-8 with a BOM so
spreadsheet tools detect the encoding.

Public API:
    build_export_rows(invoices, registration_date) → list[dict]
    export_to_csv(invoices, registration_date) → bytes | None
"""

import logging
from datetime import date

import pandas as pd

from config.schema import EXPORT_COLUMNS
from processing.invoice_models import InvoiceData

logger = logging.getLogger(__name__)


def build_export_rows(
    invoices: list[InvoiceData],
    registration_date: str | None = None,
) -> list[dict]:
    """
    Flatten invoices into export rows.

    Args:
        invoices: Reviewed invoices, in batch order.
        registration_date: Value for Fecha_Registro (YYYY-MM-DD); defaults
                           to today.

    Returns:
        List of dicts keyed by EXPORT_COLUMNS.
    """
    if registration_date is None:
        registration_date = date.today().isoformat()

    rows: list[dict] = []
    for invoice in invoices:
        for item in invoice.items:
            if not item.product_code or item.quantity <= 0:
                continue
            rows.append({
                "Numero_Factura": invoice.invoice_number,
                "Fecha_Factura": invoice.invoice_date,
                "Fecha_Registro": registration_date,
                "Cod_Producto": item.product_code,
                "Cantidad_Final": _plain_number(item.quantity),
                "Precio_Final": _plain_number(item.unit_price),
                "Importe_Final": _plain_number(item.total),
            })
    return rows


def export_to_csv(
    invoices: list[InvoiceData],
    registration_date: str | None = None,
) -> bytes | None:
    """
    Render the export CSV.

    Returns:
        The CSV as UTF-8 bytes with a BOM, or None when no item qualifies.
    """
    rows = build_export_rows(invoices, registration_date)
    if not rows:
        logger.warning("No exportable items (need a product code and quantity > 0)")
        return None

    # object dtype keeps 2 and 1.5 in one column without widening 2 to 2.0
    dataframe = pd.DataFrame(rows, columns=EXPORT_COLUMNS, dtype=object)
    csv_text = dataframe.to_csv(index=False, lineterminator="\n")
    logger.info(f"Exported {len(rows)} rows from {len(invoices)} invoices")
    return csv_text.encode("utf-8-sig")


def _plain_number(value: float) -> int | float:
    """2.0 → 2 so whole quantities are written without a decimal part."""
    if float(value).is_integer():
        return int(value)
    return value
