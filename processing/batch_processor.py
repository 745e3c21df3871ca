"""
Batch processor — runs extraction and matching over a set of uploaded
invoice documents.

Files are handled in chunks of CHUNK_SIZE so the progress callback can
report "chunk n of m" and API load stays bounded.  Each file is
independent: a failure (extraction or mapping) is recorded with its reason
and the batch moves on.

Public API:
    process_files(files, catalog, api_key, ...) → BatchResult
"""

import logging
from dataclasses import dataclass, field
from typing import Callable

from config.matching_config import CHUNK_SIZE
from processing.invoice_extractor import extract_invoice
from processing.invoice_models import Catalog, InvoiceData
from processing.line_item_matcher import build_invoice

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Data classes
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class InvoiceFile:
    """One uploaded document."""

    filename: str
    content: bytes
    media_type: str | None = None


@dataclass
class BatchResult:
    """Output of process_files()."""

    invoices: list[InvoiceData] = field(default_factory=list)
    processed_files: list[str] = field(default_factory=list)
    failed_files: list[tuple[str, str]] = field(default_factory=list)
    """(filename, reason) for every file that could not be processed."""
    api_cost_estimate: float = 0.0

    @property
    def all_failed(self) -> bool:
        return bool(self.failed_files) and not self.invoices


# ═══════════════════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════════════════

def process_files(
    files: list[InvoiceFile],
    catalog: Catalog | None,
    api_key: str | None,
    chunk_size: int = CHUNK_SIZE,
    progress_callback: Callable[[int, int, str], None] | None = None,
) -> BatchResult:
    """
    Extract and match every file.

    Args:
        files: Uploaded documents, in display order.
        catalog: Loaded master catalog.  Without one every file fails.
        api_key: Anthropic API key passed to the extractor.
        chunk_size: Files per chunk.
        progress_callback: Called as (files_done, total_files, filename)
                           after each file.

    Returns:
        BatchResult; ``invoices`` and ``processed_files`` are aligned.
    """
    result = BatchResult()

    if not catalog:
        reason = "The master catalog is not loaded"
        logger.error(reason)
        result.failed_files = [(f.filename, reason) for f in files]
        return result

    chunks = _create_chunks(files, max(1, chunk_size))
    done = 0

    for chunk_idx, chunk in enumerate(chunks):
        logger.info(f"Processing chunk {chunk_idx + 1} of {len(chunks)} ({len(chunk)} files)")

        for invoice_file in chunk:
            invoice, reason, cost = _process_one(invoice_file, catalog, api_key)
            result.api_cost_estimate += cost
            if invoice is not None:
                result.invoices.append(invoice)
                result.processed_files.append(invoice_file.filename)
            else:
                result.failed_files.append((invoice_file.filename, reason))

            done += 1
            if progress_callback is not None:
                progress_callback(done, len(files), invoice_file.filename)

    logger.info(
        f"Batch complete: {len(result.invoices)} processed, "
        f"{len(result.failed_files)} failed, est. cost ${result.api_cost_estimate:.4f}"
    )
    return result


# ═══════════════════════════════════════════════════════════════════════════
# Internal helpers
# ═══════════════════════════════════════════════════════════════════════════

def _process_one(
    invoice_file: InvoiceFile,
    catalog: Catalog,
    api_key: str | None,
) -> tuple[InvoiceData | None, str, float]:
    """Extract and map one file → (invoice or None, failure reason, cost)."""
    extraction = extract_invoice(
        invoice_file.content,
        invoice_file.filename,
        invoice_file.media_type,
        api_key,
    )
    if not extraction.success:
        return None, extraction.reason, extraction.api_cost_estimate

    try:
        invoice = build_invoice(extraction.data, catalog, invoice_file.filename)
    except Exception as exc:
        logger.error(f"Mapping failed for '{invoice_file.filename}': {exc}", exc_info=True)
        return None, str(exc) or "Error mapping extracted data", extraction.api_cost_estimate

    return invoice, "", extraction.api_cost_estimate


def _create_chunks(
    files: list[InvoiceFile],
    max_per_chunk: int,
) -> list[list[InvoiceFile]]:
    """Split *files* into chunks of at most *max_per_chunk* each."""
    return [
        files[start : start + max_per_chunk]
        for start in range(0, len(files), max_per_chunk)
    ]
