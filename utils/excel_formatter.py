"""
Excel formatter — writes the reviewed batch as a formatted workbook.

Sheet 1: "Export" — the same rows as the CSV export, with number formats.
Sheet 2: "Review" — every line item with its OCR text, matched product and
         match score.  Unmatched items are highlighted in yellow.
Sheet 3: "Failed Files" — documents that could not be processed and why.

Public API:
    format_and_save(invoices, failed_files, output_path,
                    registration_date) → Path
"""

import logging
from pathlib import Path

import openpyxl
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from config.schema import EXPORT_COLUMNS, REVIEW_COLUMNS
from processing.invoice_models import InvoiceData
from utils.csv_exporter import build_export_rows

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Constants
# ═══════════════════════════════════════════════════════════════════════════

_YELLOW_FILL = PatternFill(start_color="FFFF00", end_color="FFFF00", fill_type="solid")
_HEADER_FILL = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
_HEADER_FONT = Font(color="FFFFFF", bold=True, size=11)
_NORMAL_FONT = Font(size=10)

_MAX_COL_WIDTH = 50
_MIN_COL_WIDTH = 8

_NUMBER_FORMATS: dict[str, str] = {
    "Cantidad_Final": "#,##0.##",
    "Precio_Final": "#,##0.00",
    "Importe_Final": "#,##0.00",
    "OCR Quantity": "#,##0.##",
    "OCR Unit Price": "#,##0.00",
    "Quantity": "#,##0.##",
    "Unit Price": "#,##0.00",
    "Total": "#,##0.00",
    "Match Score": "0.00",
}


# ═══════════════════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════════════════

def format_and_save(
    invoices: list[InvoiceData],
    failed_files: list[tuple[str, str]],
    output_path: Path,
    registration_date: str | None = None,
) -> Path:
    """
    Write a formatted Excel workbook with three sheets.

    Args:
        invoices: Reviewed invoices.
        failed_files: (filename, reason) pairs from the batch.
        output_path: Where the .xlsx file should be saved.
        registration_date: Fecha_Registro for the Export sheet (default today).

    Returns:
        The output_path (same as input, for convenience).
    """
    workbook = openpyxl.Workbook()

    export_sheet = workbook.active
    export_sheet.title = "Export"
    export_rows = build_export_rows(invoices, registration_date)
    _write_table(
        export_sheet,
        EXPORT_COLUMNS,
        [[row[col] for col in EXPORT_COLUMNS] for row in export_rows],
    )

    review_sheet = workbook.create_sheet("Review")
    _write_review_sheet(review_sheet, invoices)

    failed_sheet = workbook.create_sheet("Failed Files")
    _write_table(failed_sheet, ["Filename", "Reason"], [list(f) for f in failed_files])

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(str(output_path))
    workbook.close()

    logger.info(f"Excel file saved to '{output_path}'")
    return output_path


# ═══════════════════════════════════════════════════════════════════════════
# Sheets
# ═══════════════════════════════════════════════════════════════════════════

def _write_review_sheet(
    worksheet: openpyxl.worksheet.worksheet.Worksheet,
    invoices: list[InvoiceData],
) -> None:
    """One row per line item; unmatched rows get a yellow fill."""
    rows: list[list] = []
    unmatched_rows: set[int] = set()

    for invoice in invoices:
        for item in invoice.items:
            if not item.is_matched:
                unmatched_rows.add(len(rows) + 2)  # 1-based, header is row 1
            rows.append([
                invoice.invoice_number,
                invoice.identified_supplier_cuit or invoice.cuit,
                item.ocr_description,
                item.ocr_quantity,
                item.ocr_unit_price,
                item.product_code,
                item.product_name,
                item.quantity,
                item.unit_price,
                item.total,
                round(item.match_score, 4),
            ])

    _write_table(worksheet, REVIEW_COLUMNS, rows)

    for excel_row in unmatched_rows:
        for col_idx in range(1, len(REVIEW_COLUMNS) + 1):
            worksheet.cell(row=excel_row, column=col_idx).fill = _YELLOW_FILL


def _write_table(
    worksheet: openpyxl.worksheet.worksheet.Worksheet,
    headers: list[str],
    rows: list[list],
) -> None:
    """Header row, data rows, number formats, auto-filter, frozen header."""
    for col_idx, header in enumerate(headers, start=1):
        cell = worksheet.cell(row=1, column=col_idx, value=header)
        cell.fill = _HEADER_FILL
        cell.font = _HEADER_FONT
        cell.alignment = Alignment(horizontal="center")

    for row_offset, values in enumerate(rows):
        excel_row = row_offset + 2
        for col_idx, value in enumerate(values, start=1):
            cell = worksheet.cell(row=excel_row, column=col_idx, value=value)
            cell.font = _NORMAL_FONT
            fmt = _NUMBER_FORMATS.get(headers[col_idx - 1])
            if fmt is not None:
                cell.number_format = fmt

    if rows:
        last_col_letter = get_column_letter(len(headers))
        worksheet.auto_filter.ref = f"A1:{last_col_letter}{len(rows) + 1}"

    worksheet.freeze_panes = "A2"
    _auto_fit_column_widths(worksheet)


# ═══════════════════════════════════════════════════════════════════════════
# Formatting helpers
# ═══════════════════════════════════════════════════════════════════════════

def _auto_fit_column_widths(
    worksheet: openpyxl.worksheet.worksheet.Worksheet,
) -> None:
    """Set each column's width to its longest value, clamped."""
    for column_cells in worksheet.columns:
        max_length = _MIN_COL_WIDTH
        col_letter = get_column_letter(column_cells[0].column)

        for cell in column_cells:
            if cell.value is not None:
                max_length = max(max_length, len(str(cell.value)))

        worksheet.column_dimensions[col_letter].width = min(max_length + 2, _MAX_COL_WIDTH)
