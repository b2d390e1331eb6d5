"""
validation.py — CSV input validation for the Money Muling Detection Engine.

Validates uploaded CSV data against the required schema before any graph
construction or detection logic runs.  Problems are reported per row as
``{"row": n, "message": ...}`` where ``n`` is the 1-based line of the CSV
file (the header is line 1, row 0 means a file-level problem).
"""

from __future__ import annotations

import csv
import io
import numpy as np
import pandas as pd
from typing import Any, Dict, List, Optional, Sequence, Tuple

# ── Required schema ──────────────────────────────────────────────────────────
REQUIRED_COLUMNS = {
    "transaction_id": "string",
    "sender_id": "string",
    "receiver_id": "string",
    "amount": "float",
    "timestamp": "datetime",
}

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
# Tolerates a 1-digit hour and any whitespace between date and time
TIMESTAMP_PATTERN = r"^\d{4}-\d{2}-\d{2}\s+\d{1,2}:\d{2}:\d{2}$"

MAX_ERRORS: int = 50
MAX_CSV_SIZE_BYTES: int = 50 * 1024 * 1024

ValidationResult = Tuple[bool, List[Dict[str, Any]], pd.DataFrame]


# ── Public API ───────────────────────────────────────────────────────────────

def read_csv_text(raw_text: str) -> ValidationResult:
    """Parse raw CSV text and validate it.

    Returns the same triple as ``validate_csv``.
    """
    size = len(raw_text.encode("utf-8"))
    if size > MAX_CSV_SIZE_BYTES:
        return False, [_error(0, (
            f"CSV file too large ({size / 1024 / 1024:.1f} MB). "
            f"Maximum allowed: {MAX_CSV_SIZE_BYTES // (1024 * 1024)} MB."
        ))], pd.DataFrame()

    text = raw_text.strip()
    try:
        rows = [r for r in csv.reader(io.StringIO(text), skipinitialspace=True) if not _is_blank(r)]
    except csv.Error as exc:
        return False, [_error(0, f"Malformed CSV: {exc}")], pd.DataFrame()
    if not rows:
        return False, [_error(0, "CSV must contain a header row and at least one data row.")], pd.DataFrame()

    width = len(rows[0])
    field_counts = [len(r) for r in rows[1:]]

    options = {}
    if any(count > width for count in field_counts):
        # Extra trailing fields are ignored; only the header's columns are kept
        options = {"engine": "python", "on_bad_lines": lambda fields: fields[:width]}

    try:
        df = pd.read_csv(
            io.StringIO(text),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            skipinitialspace=True,
            index_col=False,
            **options,
        )
    except pd.errors.EmptyDataError:
        return False, [_error(0, "CSV must contain a header row and at least one data row.")], pd.DataFrame()
    except pd.errors.ParserError as exc:
        return False, [_error(0, f"Malformed CSV: {exc}")], pd.DataFrame()

    if len(field_counts) != len(df):
        return False, [_error(0, "Malformed CSV: inconsistent row structure.")], pd.DataFrame()

    df.columns = [str(c).strip().lower() for c in df.columns]
    return validate_csv(df, field_counts=field_counts)


def validate_csv(
    df: pd.DataFrame,
    field_counts: Optional[Sequence[int]] = None,
) -> ValidationResult:
    """Validate and clean a transaction DataFrame.

    Parameters
    ----------
    df : pd.DataFrame
        Raw DataFrame read from the user-uploaded CSV.
    field_counts : sequence of int, optional
        Number of fields each data row had in the file, aligned with *df*.
        Rows with fewer than the required columns are rejected before any
        field check.  Omit for frames that were not parsed from text.

    Returns
    -------
    is_valid : bool
        ``True`` if the data passes all checks.
    errors : list[dict]
        Row-indexed errors (empty when valid), at most ``MAX_ERRORS``.
    cleaned_df : pd.DataFrame
        Cleaned / type-cast copy sorted by timestamp (empty on failure).
    """
    errors: List[Dict[str, Any]] = []

    # 1. Check required columns ------------------------------------------------
    for col in REQUIRED_COLUMNS:
        if col not in df.columns:
            errors.append(_error(0, f"Missing required column: {col}"))
    if errors:
        return False, errors, pd.DataFrame()

    if len(df) == 0:
        errors.append(_error(0, "CSV must contain a header row and at least one data row."))
        return False, errors, pd.DataFrame()

    # Work on a copy so downstream mutations don't affect the original
    cleaned = df[list(REQUIRED_COLUMNS)].copy().reset_index(drop=True)

    # 2. Strip whitespace from string columns ----------------------------------
    for col in ("transaction_id", "sender_id", "receiver_id"):
        cleaned[col] = cleaned[col].fillna("").astype(str).str.strip()

    # 3. Cast amount to float --------------------------------------------------
    raw_amount = cleaned["amount"].fillna("").astype(str).str.strip()
    amount = pd.to_numeric(raw_amount, errors="coerce")
    bad_amount = amount.isna() | (amount < 0) | ~np.isfinite(amount.fillna(0.0))

    # 4. Normalise and parse timestamp -----------------------------------------
    raw_ts = cleaned["timestamp"].fillna("").astype(str).str.strip()
    ts_matches = raw_ts.str.match(TIMESTAMP_PATTERN)
    normalized = raw_ts.where(~ts_matches, raw_ts.map(normalize_timestamp))
    parsed = pd.to_datetime(normalized.where(ts_matches), format=TIMESTAMP_FORMAT, errors="coerce")

    # 5. First failing check per row, in file order ----------------------------
    n_required = len(REQUIRED_COLUMNS)
    if field_counts is None:
        counts = np.full(len(cleaned), n_required, dtype=int)
    else:
        counts = np.asarray(field_counts, dtype=int)
    short_row = pd.Series(counts < n_required, index=cleaned.index)

    checks = [
        (short_row, lambda i: f"Row has {counts[i]} columns, expected at least {n_required}."),
        (cleaned["sender_id"] == "", lambda i: "sender_id is null or empty."),
        (cleaned["receiver_id"] == "", lambda i: "receiver_id is null or empty."),
        (bad_amount, lambda i: f'Invalid amount: "{raw_amount.iat[i]}".'),
        (~ts_matches, lambda i: (
            f'Invalid timestamp format: "{raw_ts.iat[i]}". '
            "Expected YYYY-MM-DD HH:MM:SS (or H:MM:SS)."
        )),
        (parsed.isna(), lambda i: f'Unparseable timestamp: "{raw_ts.iat[i]}".'),
    ]

    failed = np.zeros(len(cleaned), dtype=bool)
    for mask, _ in checks:
        failed |= mask.to_numpy(dtype=bool)

    for i in np.flatnonzero(failed):
        for mask, message in checks:
            if mask.iat[i]:
                errors.append(_error(int(i) + 2, message(i)))
                break
        if len(errors) >= MAX_ERRORS:
            break

    if errors:
        return False, errors, pd.DataFrame()

    cleaned["amount"] = amount.astype(float)
    cleaned["timestamp"] = parsed

    # Sort by timestamp for deterministic downstream processing
    cleaned = cleaned.sort_values("timestamp", kind="stable").reset_index(drop=True)
    return True, errors, cleaned


def normalize_timestamp(raw: str) -> str:
    """Pad a 1-digit hour: ``"2025-01-01 3:01:00"`` → ``"2025-01-01 03:01:00"``."""
    parts = raw.split()
    if len(parts) != 2:
        return raw
    date_part, time_part = parts
    pieces = time_part.split(":")
    if len(pieces) != 3:
        return raw
    hour, minute, second = pieces
    return f"{date_part} {hour.zfill(2)}:{minute}:{second}"


def quick_stats(df: pd.DataFrame) -> dict:
    """Return a small summary dict for display in the CLI header.

    Parameters
    ----------
    df : pd.DataFrame
        The *cleaned* DataFrame (post-validation).

    Returns
    -------
    dict
        Keys: total_transactions, unique_senders, unique_receivers,
              unique_accounts, min_amount, max_amount, date_range.
    """
    all_accounts = set(df["sender_id"].unique()) | set(df["receiver_id"].unique())
    return {
        "total_transactions": len(df),
        "unique_senders": df["sender_id"].nunique(),
        "unique_receivers": df["receiver_id"].nunique(),
        "unique_accounts": len(all_accounts),
        "min_amount": float(df["amount"].min()),
        "max_amount": float(df["amount"].max()),
        "date_range": (
            str(df["timestamp"].min()),
            str(df["timestamp"].max()),
        ),
    }


def _error(row: int, message: str) -> Dict[str, Any]:
    return {"row": row, "message": message}


def _is_blank(fields: List[str]) -> bool:
    return not fields or (len(fields) == 1 and fields[0].strip() == "")
