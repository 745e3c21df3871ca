"""
Schema definitions for the catalog input file and the export outputs.

Defines required catalog columns, export column order, and the document
types accepted by the extractor.
"""

# ---------------------------------------------------------------------------
# Master catalog CSV
# ---------------------------------------------------------------------------
CATALOG_CUIT_COLUMN: str = "CUIT"
CATALOG_SUPPLIER_NAME_COLUMN: str = "RAZON_SOCIAL"
CATALOG_SUPPLIER_CODE_COLUMN: str = "CODIGO_PROVEEDOR"
CATALOG_PRODUCT_CODE_COLUMN: str = "CODIGO_PRODUCTO"
CATALOG_PRODUCT_NAME_COLUMN: str = "NOMBRE_PRODUCTO"

# Required header columns, in the order shown to the user.
CATALOG_REQUIRED_COLUMNS: list[str] = [
    CATALOG_CUIT_COLUMN,
    CATALOG_SUPPLIER_NAME_COLUMN,
    CATALOG_SUPPLIER_CODE_COLUMN,
    CATALOG_PRODUCT_CODE_COLUMN,
    CATALOG_PRODUCT_NAME_COLUMN,
]

# ---------------------------------------------------------------------------
# Export (CSV + "Export" sheet of the Excel workbook)
# ---------------------------------------------------------------------------
EXPORT_COLUMNS: list[str] = [
    "Numero_Factura",
    "Fecha_Factura",
    "Fecha_Registro",
    "Cod_Producto",
    "Cantidad_Final",
    "Precio_Final",
    "Importe_Final",
]

# "Review" sheet: one row per line item, matched or not.
REVIEW_COLUMNS: list[str] = [
    "Invoice Number",
    "Supplier CUIT",
    "OCR Description",
    "OCR Quantity",
    "OCR Unit Price",
    "Product Code",
    "Product Name",
    "Quantity",
    "Unit Price",
    "Total",
    "Match Score",
]

# Product name shown for a line item with no accepted catalog match.
UNMATCHED_PRODUCT_NAME: str = "N/A"

# ---------------------------------------------------------------------------
# Invoice documents
# ---------------------------------------------------------------------------
IMAGE_MEDIA_TYPES: set[str] = {
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
}
PDF_MEDIA_TYPE: str = "application/pdf"
TEXT_MEDIA_TYPE: str = "text/plain"

# File extension → media type, used when the upload carries no MIME type.
EXTENSION_MEDIA_TYPES: dict[str, str] = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".pdf": PDF_MEDIA_TYPE,
    ".txt": TEXT_MEDIA_TYPE,
}
