"""
Pytest configuration and shared fixtures.
"""

import pytest

from processing.invoice_models import InvoiceData, LineItem, Product, SupplierCatalog


CATALOG_CSV = (
    "CUIT,RAZON_SOCIAL,CODIGO_PROVEEDOR,CODIGO_PRODUCTO,NOMBRE_PRODUCTO\n"
    "30-11111111-1,Frutas SA,PRV01,P001,Delicious Apples\n"
    "30-11111111-1,Frutas SA,PRV01,P002,Fresh Bananas\n"
    "30-11111111-1,Frutas SA,PRV01,P003,Organic Carrots\n"
    "30-22222222-2,Lacteos del Sur SRL,PRV02,L001,Whole Milk 1L\n"
    "30-22222222-2,Lacteos del Sur SRL,PRV02,L002,Greek Yogurt 200g\n"
)


@pytest.fixture
def catalog_csv_bytes() -> bytes:
    """A small valid catalog CSV (two suppliers, five products)."""
    return CATALOG_CSV.encode("utf-8")


@pytest.fixture
def sample_catalog() -> dict[str, SupplierCatalog]:
    """The catalog described by CATALOG_CSV, built directly."""
    return {
        "30-11111111-1": SupplierCatalog(
            cuit="30-11111111-1",
            supplier_code="PRV01",
            supplier_name="Frutas SA",
            products=[
                Product("P001", "Delicious Apples"),
                Product("P002", "Fresh Bananas"),
                Product("P003", "Organic Carrots"),
            ],
        ),
        "30-22222222-2": SupplierCatalog(
            cuit="30-22222222-2",
            supplier_code="PRV02",
            supplier_name="Lacteos del Sur SRL",
            products=[
                Product("L001", "Whole Milk 1L"),
                Product("L002", "Greek Yogurt 200g"),
            ],
        ),
    }


@pytest.fixture
def ocr_payload() -> dict:
    """Normalized extraction payload for a Frutas SA invoice."""
    return {
        "invoice_number": "0004-00123456",
        "invoice_date": "2024-03-15",
        "supplier_name": "Frutas SA",
        "cuit": "30111111111",
        "total_amount": 130.0,
        "iva_perception": None,
        "gross_income_perception": None,
        "other_taxes": None,
        "items": [
            {"quantity": 2, "description": "Delicius Apples", "unit_price": 25, "total": 50},
            {"quantity": 4, "description": "Fresh Banana", "unit_price": 20, "total": 80},
            {"quantity": 1, "description": "Random String", "unit_price": 5, "total": 5},
        ],
    }


@pytest.fixture
def reviewed_invoice() -> InvoiceData:
    """An invoice after matching: two matched items, one unmatched."""
    return InvoiceData(
        invoice_number="0004-00123456",
        invoice_date="2024-03-15",
        cuit="30-11111111-1",
        total_amount=135.0,
        supplier_name="Frutas SA",
        identified_supplier_cuit="30-11111111-1",
        items=[
            LineItem(
                id="item-1",
                ocr_description="Delicius Apples",
                ocr_quantity=2,
                ocr_unit_price=25,
                product_code="P001",
                product_name="Delicious Apples",
                quantity=2,
                unit_price=25,
                total=50,
                match_score=0.9375,
            ),
            LineItem(
                id="item-2",
                ocr_description="Fresh Banana",
                ocr_quantity=4,
                ocr_unit_price=20,
                product_code="P002",
                product_name="Fresh Bananas",
                quantity=4,
                unit_price=20,
                total=80,
                match_score=0.923,
            ),
            LineItem(
                id="item-3",
                ocr_description="Whole Milk",
                ocr_quantity=1,
                ocr_unit_price=5,
                quantity=1,
                unit_price=5,
                total=5,
            ),
        ],
        source_filename="factura_001.jpg",
    )
