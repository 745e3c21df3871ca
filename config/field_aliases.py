"""
Field name aliases for model output.

Maps every field of the normalized invoice payload to the key names the
model has been seen to return (English camelCase and Spanish snake_case).
Lookup is case-insensitive; the first alias present in the raw payload wins.

Used by processing/response_parser.py.
"""

# ---------------------------------------------------------------------------
# Invoice header fields: normalized key → accepted raw keys
# ---------------------------------------------------------------------------
INVOICE_FIELD_ALIASES: dict[str, list[str]] = {
    "invoice_number": ["invoiceNumber", "numero_factura", "numero_comprobante"],
    "invoice_date": ["invoiceDate", "fecha_factura"],
    "supplier_name": ["supplierName", "emisor_nombre", "nombre_emisor"],
    "cuit": ["cuit", "emisor_cuit", "cuit_emisor"],
    "total_amount": ["totalAmount", "importe_total"],
    "iva_perception": ["ivaPerception", "percepcion_iva", "percepciones_iva"],
    "gross_income_perception": [
        "grossIncomePerception",
        "percepcion_ingresos_brutos",
    ],
    "other_taxes": ["otherTaxes", "otros_impuestos"],
}

ITEMS_ALIASES: list[str] = ["items"]

# ---------------------------------------------------------------------------
# Line item fields: normalized key → accepted raw keys
# ---------------------------------------------------------------------------
ITEM_FIELD_ALIASES: dict[str, list[str]] = {
    "quantity": ["quantity", "cantidad"],
    "description": ["description", "descripcion"],
    "unit_price": ["unitPrice", "precio_unitario"],
    "total": ["total", "importe_total", "importe_total_item", "importe_total_linea"],
}
