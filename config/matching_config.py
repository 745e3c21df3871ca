"""
Matching and extraction policy constants.

The acceptance threshold and edit costs encode a precision/recall trade-off
for catalog matching and are kept separate from the algorithm in
utils/fuzzy_match.py.  Values here are the defaults; every public function
that uses them also accepts an override.
"""

# ---------------------------------------------------------------------------
# Product matching (utils/fuzzy_match.py)
# ---------------------------------------------------------------------------
# A candidate is accepted only if its similarity is strictly greater than
# this value.  Rejecting "best of a bad lot" matters more than recall here:
# a silent wrong product code ends up in the inventory export.
MATCH_THRESHOLD: float = 0.5

# Unit costs → classic Levenshtein distance.
INSERTION_COST: int = 1
DELETION_COST: int = 1
SUBSTITUTION_COST: int = 1

# ---------------------------------------------------------------------------
# Supplier identification (processing/line_item_matcher.py)
# ---------------------------------------------------------------------------
# rapidfuzz token_sort_ratio (0-100) needed to accept a supplier by name
# when the invoice CUIT does not match any catalog entry.
SUPPLIER_NAME_THRESHOLD: int = 85

# ---------------------------------------------------------------------------
# Invoice extraction (processing/invoice_extractor.py)
# ---------------------------------------------------------------------------
MODEL_ID: str = "claude-sonnet-4-5"
MAX_OUTPUT_TOKENS: int = 4096

# Attempts per file (first call included) when the API is overloaded.
MAX_API_ATTEMPTS: int = 3
RETRY_DELAY_SECONDS: float = 2.0

# HTTP statuses treated as transient (rate limit, server error, overload).
RETRYABLE_STATUS_CODES: set[int] = {429, 500, 502, 503, 529}

# Sonnet pricing, USD per million tokens.
INPUT_COST_PER_MTOK: float = 3.0
OUTPUT_COST_PER_MTOK: float = 15.0

# ---------------------------------------------------------------------------
# Batch processing (processing/batch_processor.py)
# ---------------------------------------------------------------------------
CHUNK_SIZE: int = 5
