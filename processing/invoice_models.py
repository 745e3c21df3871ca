"""
Data classes shared by the catalog loader, matcher, review operations and
exporters.

A Catalog maps a supplier CUIT (exactly as written in the catalog file) to
that supplier's SupplierCatalog.  Product order inside a SupplierCatalog is
the file order and is significant: it is the tie-break order for matching.
"""

from dataclasses import dataclass, field

from config.schema import UNMATCHED_PRODUCT_NAME


@dataclass(frozen=True)
class Product:
    """A single catalog entry."""

    product_code: str
    product_name: str


@dataclass
class SupplierCatalog:
    """All catalog products of one supplier."""

    cuit: str
    supplier_code: str
    supplier_name: str
    products: list[Product] = field(default_factory=list)


Catalog = dict[str, SupplierCatalog]


@dataclass
class LineItem:
    """One invoice line: OCR values (read-only) plus reviewed final values."""

    id: str
    ocr_description: str = ""
    ocr_quantity: float = 0.0
    ocr_unit_price: float = 0.0

    product_code: str = ""
    product_name: str = UNMATCHED_PRODUCT_NAME
    quantity: float = 0.0
    unit_price: float = 0.0
    total: float = 0.0
    match_score: float = 0.0

    @property
    def is_matched(self) -> bool:
        return bool(self.product_code)


@dataclass
class InvoiceData:
    """One extracted invoice, after supplier identification and matching."""

    invoice_number: str = ""
    invoice_date: str = ""            # YYYY-MM-DD
    cuit: str = ""                    # supplier CUIT as read by the model
    total_amount: float | None = None
    iva_perception: float | None = None
    gross_income_perception: float | None = None
    other_taxes: float | None = None
    supplier_name: str | None = None
    identified_supplier_cuit: str | None = None
    use_preloaded_catalog: bool = False
    items: list[LineItem] = field(default_factory=list)
    original_items: list[LineItem] | None = None
    source_filename: str = ""
