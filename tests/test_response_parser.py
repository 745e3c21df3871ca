"""
Tests for processing/response_parser.py

Covers: markdown fence stripping, JSON repair, parse failures, alias
normalization (English and Spanish keys), date reformatting and payload
validation.
"""

import pytest

from processing.response_parser import (
    normalize_invoice_data,
    parse_model_json,
    repair_json,
    strip_code_fences,
    validate_invoice_payload,
)


# ═══════════════════════════════════════════════════════════════════════════
# Parsing
# ═══════════════════════════════════════════════════════════════════════════

class TestStripCodeFences:
    def test_json_fence(self):
        text = 'Here you go:\n```json\n{"a": 1}\n```\nDone.'
        assert strip_code_fences(text) == '{"a": 1}'

    def test_plain_fence(self):
        assert strip_code_fences('```\n{"a": 1}\n```') == '{"a": 1}'

    def test_no_fence(self):
        assert strip_code_fences('  {"a": 1}  ') == '{"a": 1}'


class TestRepairJson:
    def test_quotes_bare_keys(self):
        assert repair_json('{a: 1, b: 2}') == '{"a": 1, "b": 2}'

    def test_single_quotes(self):
        assert repair_json("{'a': 'x'}") == '{"a": "x"}'

    def test_trailing_commas(self):
        assert repair_json('{"a": [1, 2,], }') == '{"a": [1, 2]}'


class TestParseModelJson:
    def test_valid_json(self):
        assert parse_model_json('{"invoiceNumber": "0001", "items": []}') == {
            "invoiceNumber": "0001",
            "items": [],
        }

    def test_fenced_json(self):
        text = '```json\n{"invoiceNumber": "0001"}\n```'
        assert parse_model_json(text) == {"invoiceNumber": "0001"}

    def test_surrounding_text(self):
        text = 'The invoice data is {"invoiceNumber": "0001"} as requested.'
        assert parse_model_json(text) == {"invoiceNumber": "0001"}

    def test_repairs_malformed_json(self):
        text = "{invoiceNumber: '0001', items: [],}"
        assert parse_model_json(text) == {"invoiceNumber": "0001", "items": []}

    @pytest.mark.parametrize("text", [
        "",
        "not json at all",
        "[1, 2, 3]",
        "{ broken",
        "{this is : not [ json}",
    ])
    def test_unparseable_returns_none(self, text):
        assert parse_model_json(text) is None


# ═══════════════════════════════════════════════════════════════════════════
# Normalization
# ═══════════════════════════════════════════════════════════════════════════

class TestNormalizeInvoiceData:
    def test_camel_case_keys(self):
        raw = {
            "invoiceNumber": "0004-00123456",
            "invoiceDate": "2024-03-15",
            "supplierName": "Frutas SA",
            "cuit": "30-11111111-1",
            "totalAmount": 130.0,
            "ivaPerception": 1.5,
            "items": [
                {"quantity": 2, "description": "Apples", "unitPrice": 25, "total": 50},
            ],
        }
        normalized = normalize_invoice_data(raw)
        assert normalized["invoice_number"] == "0004-00123456"
        assert normalized["supplier_name"] == "Frutas SA"
        assert normalized["total_amount"] == 130.0
        assert normalized["iva_perception"] == 1.5
        assert normalized["gross_income_perception"] is None
        assert normalized["other_taxes"] is None
        assert normalized["items"] == [
            {"quantity": 2, "description": "Apples", "unit_price": 25, "total": 50},
        ]

    def test_spanish_keys_and_case_insensitive(self):
        raw = {
            "NUMERO_FACTURA": "A-1",
            "fecha_factura": "5/3/2024",
            "CUIT": "30-1",
            "items": [
                {
                    "Cantidad": 3,
                    "descripcion": "Yerba",
                    "precio_unitario": 2.5,
                    "importe_total_item": 7.5,
                },
            ],
        }
        normalized = normalize_invoice_data(raw)
        assert normalized["invoice_number"] == "A-1"
        assert normalized["invoice_date"] == "2024-03-05"
        assert normalized["cuit"] == "30-1"
        assert normalized["items"][0] == {
            "quantity": 3,
            "description": "Yerba",
            "unit_price": 2.5,
            "total": 7.5,
        }

    def test_iso_date_unchanged(self):
        assert normalize_invoice_data({"invoiceDate": "2024-12-01"})["invoice_date"] == "2024-12-01"

    def test_unrecognized_date_unchanged(self):
        assert normalize_invoice_data({"invoiceDate": "March 5"})["invoice_date"] == "March 5"

    def test_missing_items_is_none(self):
        assert normalize_invoice_data({"invoiceNumber": "1"})["items"] is None

    def test_non_dict_item_yields_empty_fields(self):
        normalized = normalize_invoice_data({"items": ["garbage"]})
        assert normalized["items"] == [
            {"quantity": None, "description": None, "unit_price": None, "total": None},
        ]


# ═══════════════════════════════════════════════════════════════════════════
# Validation
# ═══════════════════════════════════════════════════════════════════════════

class TestValidateInvoicePayload:
    def test_valid(self):
        assert validate_invoice_payload({"invoice_number": "1", "items": []}) == []

    def test_missing_number_and_items(self):
        errors = validate_invoice_payload({"invoice_number": "  ", "items": None})
        assert errors == ["Missing invoice number", "Field 'items' must be a list"]

    def test_items_not_a_list(self):
        errors = validate_invoice_payload({"invoice_number": "1", "items": "none"})
        assert errors == ["Field 'items' must be a list"]
