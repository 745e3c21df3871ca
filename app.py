"""
Streamlit entry point — Invoice Matcher UI.

Wires together the processing pipeline with a 4-step user flow:
  1. Upload the master product catalog (CSV)
  2. Upload invoice documents (images, PDFs or text)
  3. Review each invoice: supplier, matched products, quantities, prices
  4. Export the reviewed batch (CSV for import, Excel for audit)

The flow is driven by AppState.  Contains NO business logic — only calls
processing modules and displays results.
"""

import logging
import tempfile
from dataclasses import replace
from datetime import datetime
from enum import Enum
from pathlib import Path

import pandas as pd
import streamlit as st

from config.schema import CATALOG_REQUIRED_COLUMNS, UNMATCHED_PRODUCT_NAME
from processing.batch_processor import InvoiceFile, process_files
from processing.catalog_loader import catalog_from_records, catalog_to_records, load_catalog
from processing.invoice_models import Catalog, InvoiceData
from processing.review import (
    add_manual_item,
    change_supplier,
    filter_suppliers,
    remove_item,
    select_product,
    set_preloaded_catalog,
    update_item_field,
)
from utils.csv_exporter import export_to_csv
from utils.excel_formatter import format_and_save

logger = logging.getLogger(__name__)


class AppState(str, Enum):
    AWAITING_MASTER_DATA = "AWAITING_MASTER_DATA"
    IDLE = "IDLE"
    PROCESSING = "PROCESSING"
    REVIEWING = "REVIEWING"
    EXPORTED = "EXPORTED"
    ERROR = "ERROR"


# ═══════════════════════════════════════════════════════════════════════════
# Page configuration
# ═══════════════════════════════════════════════════════════════════════════

st.set_page_config(
    page_title="Invoice Matcher",
    page_icon="🧾",
    layout="wide",
    initial_sidebar_state="expanded",
)


# ═══════════════════════════════════════════════════════════════════════════
# Session state initialisation
# ═══════════════════════════════════════════════════════════════════════════

def _init_session_state() -> None:
    """Ensure all required session state keys exist with sensible defaults."""
    defaults: dict = {
        "app_state": AppState.AWAITING_MASTER_DATA,
        "catalog_records": None,
        "batch_data": [],
        "processed_files": [],
        "failed_files": [],
        "current_index": 0,
        "error": None,
        "catalog_notice": None,
        "uploader_generation": 0,
    }
    for key, value in defaults.items():
        if key not in st.session_state:
            st.session_state[key] = value


def _reset_batch() -> None:
    st.session_state["batch_data"] = []
    st.session_state["processed_files"] = []
    st.session_state["failed_files"] = []
    st.session_state["current_index"] = 0
    st.session_state["error"] = None
    st.session_state["uploader_generation"] += 1
    st.session_state["app_state"] = AppState.IDLE


def _full_reset() -> None:
    _reset_batch()
    st.session_state["catalog_records"] = None
    st.session_state["catalog_notice"] = None
    st.session_state["app_state"] = AppState.AWAITING_MASTER_DATA


def _current_catalog() -> Catalog:
    records = st.session_state["catalog_records"]
    return catalog_from_records(records) if records else {}


def _store_invoice(invoice: InvoiceData) -> None:
    st.session_state["batch_data"][st.session_state["current_index"]] = invoice


_init_session_state()


# ═══════════════════════════════════════════════════════════════════════════
# Sidebar — Settings
# ═══════════════════════════════════════════════════════════════════════════

st.sidebar.title("⚙️ Settings")

# API key from Streamlit secrets (not from a UI input field)
api_key = st.secrets.get("ANTHROPIC_API_KEY", None)
if api_key == "your-key-here":
    api_key = None

if not api_key:
    st.sidebar.warning(
        "No API key configured. Invoices cannot be read until "
        "ANTHROPIC_API_KEY is set in .streamlit/secrets.toml."
    )

catalog = _current_catalog()
if catalog:
    product_total = sum(len(s.products) for s in catalog.values())
    st.sidebar.success(f"Catalog: {len(catalog)} suppliers, {product_total} products")

st.sidebar.divider()
if st.sidebar.button("New batch", use_container_width=True,
                     disabled=st.session_state["app_state"] == AppState.AWAITING_MASTER_DATA):
    _reset_batch()
    st.rerun()
if st.sidebar.button("Full reset (unload catalog)", use_container_width=True):
    _full_reset()
    st.rerun()


# ═══════════════════════════════════════════════════════════════════════════
# Main area — Title
# ═══════════════════════════════════════════════════════════════════════════

st.title("🧾 Invoice Matcher")
st.caption(
    "Read supplier invoices, match each line to the product catalog, "
    "review and export."
)

app_state = st.session_state["app_state"]


# ═══════════════════════════════════════════════════════════════════════════
# Section 1: Master catalog upload
# ═══════════════════════════════════════════════════════════════════════════

if app_state == AppState.AWAITING_MASTER_DATA:
    st.header("📚 Step 1: Upload Master Product Catalog")
    st.caption(f"Required CSV columns: {', '.join(CATALOG_REQUIRED_COLUMNS)}")

    catalog_file = st.file_uploader(
        "Catalog CSV",
        type=["csv"],
        accept_multiple_files=False,
        key=f"catalog_uploader_{st.session_state['uploader_generation']}",
        help="One row per product, with its supplier's CUIT, name and code.",
    )

    if catalog_file is not None:
        load_result = load_catalog(catalog_file.getvalue())
        if load_result.errors:
            for error in load_result.errors:
                st.error(error)
        else:
            st.session_state["catalog_records"] = catalog_to_records(load_result.catalog)
            st.session_state["app_state"] = AppState.IDLE
            # Shown once in step 2, after the rerun
            st.session_state["catalog_notice"] = (
                f"{len(load_result.skipped_rows)} catalog rows without CUIT were skipped."
                if load_result.skipped_rows else None
            )
            st.rerun()


# ═══════════════════════════════════════════════════════════════════════════
# Section 2: Invoice upload + processing
# ═══════════════════════════════════════════════════════════════════════════

if app_state in (AppState.IDLE, AppState.ERROR):
    st.header("📁 Step 2: Upload Invoices")

    if st.session_state["catalog_notice"]:
        st.warning(st.session_state["catalog_notice"])
        st.session_state["catalog_notice"] = None

    if app_state == AppState.ERROR and st.session_state["error"]:
        st.error(st.session_state["error"])
        for name, reason in st.session_state["failed_files"]:
            st.text(f"{name}: {reason}")

    invoice_files = st.file_uploader(
        "Invoice documents",
        type=["jpg", "jpeg", "png", "gif", "webp", "pdf", "txt"],
        accept_multiple_files=True,
        key=f"invoice_uploader_{st.session_state['uploader_generation']}",
        help="Drag and drop one or more invoices (photos, scans or PDFs).",
    )

    if invoice_files and st.button(
        f"Process {len(invoice_files)} document(s) ▶",
        type="primary",
        use_container_width=True,
    ):
        st.session_state["app_state"] = AppState.PROCESSING
        st.session_state["error"] = None

        files = [
            InvoiceFile(filename=f.name, content=f.getvalue(), media_type=f.type)
            for f in invoice_files
        ]
        progress_bar = st.progress(0, text=f"Processing {len(files)} documents...")

        def _on_progress(done: int, total: int, filename: str) -> None:
            progress_bar.progress(done / total, text=f"Processed {filename} ({done}/{total})")

        try:
            batch_result = process_files(
                files, catalog, api_key, progress_callback=_on_progress
            )
        except Exception as exc:
            logger.error(f"Batch processing failed: {exc}", exc_info=True)
            st.session_state["error"] = f"Processing failed: {exc}"
            st.session_state["app_state"] = AppState.ERROR
            st.rerun()

        st.session_state["batch_data"] = batch_result.invoices
        st.session_state["processed_files"] = batch_result.processed_files
        st.session_state["failed_files"] = batch_result.failed_files
        st.session_state["current_index"] = 0

        if batch_result.invoices:
            st.session_state["app_state"] = AppState.REVIEWING
        else:
            st.session_state["error"] = f"All {len(files)} documents failed to process."
            st.session_state["app_state"] = AppState.ERROR
        st.rerun()


# ═══════════════════════════════════════════════════════════════════════════
# Section 3: Review
# ═══════════════════════════════════════════════════════════════════════════

if app_state in (AppState.REVIEWING, AppState.EXPORTED):
    batch: list[InvoiceData] = st.session_state["batch_data"]
    failed_files = st.session_state["failed_files"]
    current_index = st.session_state["current_index"]
    invoice = batch[current_index]

    st.header("🔎 Step 3: Review")

    if failed_files:
        with st.expander(f"⚠️ Failed documents ({len(failed_files)})"):
            for name, reason in failed_files:
                st.text(f"{name}: {reason}")

    # ── Navigation ───────────────────────────────────────────────
    nav_prev, nav_label, nav_next = st.columns([1, 3, 1])
    if nav_prev.button("◀ Previous", disabled=current_index == 0, use_container_width=True):
        st.session_state["current_index"] -= 1
        st.rerun()
    nav_label.markdown(
        f"**Invoice {current_index + 1} of {len(batch)}** — {invoice.source_filename}"
    )
    if nav_next.button("Next ▶", disabled=current_index >= len(batch) - 1,
                       use_container_width=True):
        st.session_state["current_index"] += 1
        st.rerun()

    # ── Header fields ────────────────────────────────────────────
    hdr_cols = st.columns(3)
    new_number = hdr_cols[0].text_input(
        "Invoice number", value=invoice.invoice_number, key=f"inv_{current_index}_number"
    )
    new_date = hdr_cols[1].text_input(
        "Invoice date (YYYY-MM-DD)", value=invoice.invoice_date, key=f"inv_{current_index}_date"
    )
    hdr_cols[2].metric(
        "Invoice total",
        "—" if invoice.total_amount is None else f"{invoice.total_amount:,.2f}",
    )
    if new_number != invoice.invoice_number or new_date != invoice.invoice_date:
        _store_invoice(replace(invoice, invoice_number=new_number, invoice_date=new_date))

    # ── Supplier ─────────────────────────────────────────────────
    st.subheader("Supplier")
    identified = catalog.get(invoice.identified_supplier_cuit or "")
    if identified is not None:
        sup_info, sup_change = st.columns([4, 1])
        sup_info.info(f"**{identified.supplier_name}** — CUIT {identified.cuit}")
        if sup_change.button("Change", use_container_width=True):
            _store_invoice(replace(invoice, identified_supplier_cuit=None))
            st.rerun()
    else:
        st.warning(
            f"Supplier not identified (invoice CUIT: {invoice.cuit or '—'}, "
            f"name: {invoice.supplier_name or '—'})."
        )
        search_term = st.text_input(
            "Search by name or CUIT",
            value=invoice.supplier_name or "",
            key=f"inv_{current_index}_supplier_search",
        )
        options = filter_suppliers(catalog, search_term)
        labels = {cuit: f"{name} - {cuit}" for cuit, name in options}
        selected_cuit = st.selectbox(
            "Supplier",
            options=[""] + list(labels),
            format_func=lambda c: labels.get(c, "Select a supplier..."),
            key=f"inv_{current_index}_supplier_select",
        )
        if selected_cuit:
            _store_invoice(change_supplier(invoice, catalog, selected_cuit))
            st.rerun()

    # ── Preloaded catalog toggle ─────────────────────────────────
    if identified is not None:
        use_preloaded = st.checkbox(
            "Use the supplier's full catalog instead of the invoice lines",
            value=invoice.use_preloaded_catalog,
            key=f"inv_{current_index}_preloaded",
        )
        if use_preloaded != invoice.use_preloaded_catalog:
            _store_invoice(set_preloaded_catalog(invoice, catalog, use_preloaded))
            st.rerun()

    # ── Line items ───────────────────────────────────────────────
    st.subheader("Line items")
    product_names = [p.product_name for p in identified.products] if identified else []

    items_df = pd.DataFrame([
        {
            "id": item.id,
            "OCR Description": item.ocr_description,
            "Product": item.product_name,
            "Code": item.product_code,
            "Quantity": item.quantity,
            "Unit Price": item.unit_price,
            "Total": item.total,
            "Match Score": round(item.match_score, 2),
        }
        for item in invoice.items
    ])

    if items_df.empty:
        st.caption("No line items.")
    else:
        edited_df = st.data_editor(
            items_df,
            key=f"inv_{current_index}_items_{invoice.use_preloaded_catalog}",
            hide_index=True,
            use_container_width=True,
            disabled=["id", "OCR Description", "Code", "Total", "Match Score"],
            column_config={
                "id": None,
                "Product": st.column_config.SelectboxColumn(
                    "Product",
                    options=[UNMATCHED_PRODUCT_NAME] + product_names,
                    disabled=identified is None,
                ),
                "Quantity": st.column_config.NumberColumn("Quantity", min_value=0.0),
                "Unit Price": st.column_config.NumberColumn("Unit Price", format="%.2f"),
                "Total": st.column_config.NumberColumn("Total", format="%.2f"),
                "Match Score": st.column_config.ProgressColumn(
                    "Match Score", min_value=0.0, max_value=1.0, format="%.2f"
                ),
            },
        )

        updated = invoice
        for original_row, edited_row in zip(
            items_df.to_dict("records"), edited_df.to_dict("records")
        ):
            item_id = original_row["id"]
            if edited_row["Product"] != original_row["Product"]:
                updated = select_product(updated, catalog, item_id, edited_row["Product"])
            for column, field_name in (("Quantity", "quantity"), ("Unit Price", "unit_price")):
                if edited_row[column] != original_row[column]:
                    updated = update_item_field(updated, item_id, field_name, edited_row[column])
        if updated is not invoice:
            _store_invoice(updated)
            st.rerun()

    item_cols = st.columns([1, 2, 1])
    if item_cols[0].button("+ Add manual item", disabled=identified is None,
                           use_container_width=True):
        _store_invoice(add_manual_item(invoice))
        st.rerun()
    if invoice.items:
        item_labels = {
            item.id: f"{idx + 1}. {item.ocr_description or item.product_name}"
            for idx, item in enumerate(invoice.items)
        }
        to_remove = item_cols[1].selectbox(
            "Item to remove",
            options=list(item_labels),
            format_func=item_labels.get,
            key=f"inv_{current_index}_remove_select",
            label_visibility="collapsed",
        )
        if item_cols[2].button("🗑 Remove item", use_container_width=True):
            _store_invoice(remove_item(invoice, to_remove))
            st.rerun()


# ═══════════════════════════════════════════════════════════════════════════
# Section 4: Export
# ═══════════════════════════════════════════════════════════════════════════

if app_state in (AppState.REVIEWING, AppState.EXPORTED):
    st.divider()
    st.header("💾 Step 4: Export")

    batch = st.session_state["batch_data"]
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")

    csv_bytes = export_to_csv(batch)
    if csv_bytes is None:
        st.warning("No exportable items yet: every exported line needs a product and a quantity.")
    else:
        if st.download_button(
            label="📥 Export all to CSV",
            data=csv_bytes,
            file_name=f"invoices_export_{timestamp}.csv",
            mime="text/csv",
            type="primary",
            use_container_width=True,
        ):
            st.session_state["app_state"] = AppState.EXPORTED

    with st.spinner("Generating Excel file..."):
        with tempfile.TemporaryDirectory() as download_temp_dir:
            output_path = Path(download_temp_dir) / "invoices_review.xlsx"
            format_and_save(batch, st.session_state["failed_files"], output_path)
            excel_bytes = output_path.read_bytes()

    st.download_button(
        label="📥 Download review workbook (Excel)",
        data=excel_bytes,
        file_name=f"invoices_review_{timestamp}.xlsx",
        mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        use_container_width=True,
    )

    if st.session_state["app_state"] == AppState.EXPORTED:
        st.success("✅ Export complete.")
