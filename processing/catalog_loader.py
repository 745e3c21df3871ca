"""
Master catalog reader.

Reads the per-supplier product catalog CSV and groups its rows into a
Catalog keyed by supplier CUIT.  Every row carries its supplier's columns:

    CUIT,RAZON_SOCIAL,CODIGO_PROVEEDOR,CODIGO_PRODUCTO,NOMBRE_PRODUCTO

The first row seen for a CUIT fixes the supplier code and name; every row
adds one product, in file order.  Rows with a blank CUIT are skipped.

Problems are reported in CatalogLoadResult.errors rather than raised, so
the UI can show them next to the uploader.

Public API:
    load_catalog(source) → CatalogLoadResult
    catalog_to_records(catalog) → list[dict]
    catalog_from_records(records) → Catalog
"""

import io
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO

import pandas as pd

from config.schema import (
    CATALOG_CUIT_COLUMN,
    CATALOG_PRODUCT_CODE_COLUMN,
    CATALOG_PRODUCT_NAME_COLUMN,
    CATALOG_REQUIRED_COLUMNS,
    CATALOG_SUPPLIER_CODE_COLUMN,
    CATALOG_SUPPLIER_NAME_COLUMN,
)
from processing.invoice_models import Catalog, Product, SupplierCatalog

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Data class
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class CatalogLoadResult:
    """Result of reading one catalog file."""

    catalog: Catalog = field(default_factory=dict)
    total_rows_read: int = 0
    product_count: int = 0
    skipped_rows: list[dict] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors and bool(self.catalog)


# ═══════════════════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════════════════

def load_catalog(source: Path | str | bytes | BinaryIO) -> CatalogLoadResult:
    """
    Read a master catalog CSV.

    Args:
        source: Path to the CSV, its raw bytes, or a binary file object
                (e.g. a Streamlit UploadedFile).

    Returns:
        CatalogLoadResult with the grouped catalog, skipped rows and any
        errors.  ``result.catalog`` is empty whenever ``errors`` is not.
    """
    result = CatalogLoadResult()

    # ------------------------------------------------------------------
    # 1. Read the CSV (all values as text)
    # ------------------------------------------------------------------
    try:
        dataframe = _read_csv(source)
    except Exception as exc:
        error_message = f"Cannot read catalog file: {exc}"
        logger.error(error_message)
        result.errors.append(error_message)
        return result

    dataframe.columns = [str(col).strip() for col in dataframe.columns]

    if dataframe.empty:
        error_message = "The catalog CSV is empty or only has a header row."
        logger.error(error_message)
        result.errors.append(error_message)
        return result

    # ------------------------------------------------------------------
    # 2. Check the header
    # ------------------------------------------------------------------
    missing = [col for col in CATALOG_REQUIRED_COLUMNS if col not in dataframe.columns]
    if missing:
        error_message = (
            "The catalog header is missing required columns "
            f"({', '.join(missing)}). Expected: {', '.join(CATALOG_REQUIRED_COLUMNS)}"
        )
        logger.error(error_message)
        result.errors.append(error_message)
        return result

    # ------------------------------------------------------------------
    # 3. Group rows by supplier
    # ------------------------------------------------------------------
    catalog: Catalog = {}
    for row_idx, row in dataframe.iterrows():
        result.total_rows_read += 1
        cuit = _cell(row, CATALOG_CUIT_COLUMN)
        if not cuit:
            # +2: 1-based and the header row
            result.skipped_rows.append({"row": int(row_idx) + 2, "reason": "blank CUIT"})
            continue

        supplier = catalog.get(cuit)
        if supplier is None:
            supplier = SupplierCatalog(
                cuit=cuit,
                supplier_code=_cell(row, CATALOG_SUPPLIER_CODE_COLUMN),
                supplier_name=_cell(row, CATALOG_SUPPLIER_NAME_COLUMN),
            )
            catalog[cuit] = supplier

        supplier.products.append(Product(
            product_code=_cell(row, CATALOG_PRODUCT_CODE_COLUMN),
            product_name=_cell(row, CATALOG_PRODUCT_NAME_COLUMN),
        ))
        result.product_count += 1

    if not catalog:
        error_message = (
            "No valid rows found in the catalog. "
            "Check the CUIT column and the data format."
        )
        logger.error(error_message)
        result.errors.append(error_message)
        return result

    if result.skipped_rows:
        logger.warning(f"Skipped {len(result.skipped_rows)} catalog rows with a blank CUIT")

    result.catalog = catalog
    logger.info(
        f"Loaded catalog: {len(catalog)} suppliers, {result.product_count} products"
    )
    return result


def catalog_to_records(catalog: Catalog) -> list[dict]:
    """Serialize a catalog to JSON-compatible records (one per supplier)."""
    return [
        {
            "cuit": supplier.cuit,
            "supplier_code": supplier.supplier_code,
            "supplier_name": supplier.supplier_name,
            "products": [
                {"product_code": p.product_code, "product_name": p.product_name}
                for p in supplier.products
            ],
        }
        for supplier in catalog.values()
    ]


def catalog_from_records(records: list[dict]) -> Catalog:
    """Inverse of catalog_to_records(); preserves supplier and product order."""
    catalog: Catalog = {}
    for record in records:
        catalog[record["cuit"]] = SupplierCatalog(
            cuit=record["cuit"],
            supplier_code=record.get("supplier_code", ""),
            supplier_name=record.get("supplier_name", ""),
            products=[
                Product(product_code=p["product_code"], product_name=p["product_name"])
                for p in record.get("products", [])
            ],
        )
    return catalog


# ═══════════════════════════════════════════════════════════════════════════
# Internal helpers
# ═══════════════════════════════════════════════════════════════════════════

def _read_csv(source: Path | str | bytes | BinaryIO) -> pd.DataFrame:
    """Read *source* as an all-text DataFrame, tolerating a UTF-8 BOM."""
    if isinstance(source, bytes):
        source = io.BytesIO(source)
    return pd.read_csv(
        source,
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=True,
        encoding="utf-8-sig",
    )


def _cell(row: pd.Series, column: str) -> str:
    value = row.get(column, "")
    # Short rows leave NaN in trailing columns even with keep_default_na=False
    if value is None or pd.isna(value):
        return ""
    return str(value).strip()
