"""
json_export.py — Generate the downloadable JSON output in the exact
required format, and check it before it leaves the engine.

Output Schema
-------------
{
  "suspicious_accounts": [ ... ],
  "fraud_rings": [ ... ],
  "summary": { ... }
}
"""

from __future__ import annotations

import json
import math
from typing import Any, Dict, List

from detection.scoring import PATTERN_LABELS

PATTERN_TYPES = frozenset({"cycle", "smurfing", "layering"})


class ReportValidationError(ValueError):
    """The assembled report breaks the output contract (an internal defect)."""


def generate_report(
    scores: List[Dict[str, Any]],
    cycle_results: Dict[str, Any],
    smurfing_results: Dict[str, Any],
    layering_results: Dict[str, Any],
    total_accounts: int,
    processing_time: float,
) -> Dict[str, Any]:
    """Build the final JSON-serialisable report dictionary.

    Parameters
    ----------
    scores : list[dict]
        Per-account scores from ``scoring.compute_suspicion_scores``,
        already sorted descending by ``suspicion_score``.
    cycle_results, smurfing_results, layering_results : dict
        Raw outputs from each detector module.
    total_accounts : int
        Total unique accounts analysed.
    processing_time : float
        Wall-clock seconds for the full pipeline.

    Returns
    -------
    dict
        The complete report matching the required JSON schema.

    Raises
    ------
    ReportValidationError
        If the assembled report violates the contract.
    """
    # ── 1. Suspicious accounts ────────────────────────────────────────────
    suspicious_accounts: List[Dict[str, Any]] = []
    for entry in scores:
        suspicious_accounts.append(
            {
                "account_id": entry["account_id"],
                "suspicion_score": round(float(entry["suspicion_score"]), 1),
                "detected_patterns": list(entry["detected_patterns"]),
                "ring_id": entry["ring_id"] or "",
            }
        )

    # ── 2. Fraud rings (merge all ring types) ─────────────────────────────
    all_rings: List[Dict[str, Any]] = []
    for results in (cycle_results, smurfing_results, layering_results):
        for ring in results.get("rings", []):
            all_rings.append(
                {
                    "ring_id": ring["ring_id"],
                    "member_accounts": list(ring["member_accounts"]),
                    "pattern_type": ring["pattern_type"],
                    "risk_score": round(float(ring["risk_score"]), 1),
                }
            )

    # Sort rings by risk_score descending (stable: detector order on ties)
    all_rings.sort(key=lambda r: -r["risk_score"])

    # ── 3. Summary ────────────────────────────────────────────────────────
    summary = {
        "total_accounts_analyzed": int(total_accounts),
        "suspicious_accounts_flagged": len(suspicious_accounts),
        "fraud_rings_detected": len(all_rings),
        "processing_time_seconds": round(float(processing_time), 2),
    }

    report = {
        "suspicious_accounts": suspicious_accounts,
        "fraud_rings": all_rings,
        "summary": summary,
    }
    validate_report(report)
    return report


def validate_report(report: Dict[str, Any]) -> None:
    """Raise ``ReportValidationError`` on the first contract violation."""
    accounts = report.get("suspicious_accounts")
    rings = report.get("fraud_rings")
    summary = report.get("summary")

    if not isinstance(accounts, list):
        raise ReportValidationError("suspicious_accounts must be a list")
    if not isinstance(rings, list):
        raise ReportValidationError("fraud_rings must be a list")
    if not isinstance(summary, dict):
        raise ReportValidationError("summary must be an object")

    previous = None
    for entry in accounts:
        account_id = entry.get("account_id")
        if not isinstance(account_id, str) or account_id == "":
            raise ReportValidationError(f"Invalid account_id: {account_id!r}")
        _check_score(entry.get("suspicion_score"), f"suspicion_score for {account_id}")
        if previous is not None and entry["suspicion_score"] > previous:
            raise ReportValidationError(
                "suspicious_accounts must be sorted descending by suspicion_score"
            )
        previous = entry["suspicion_score"]

        patterns = entry.get("detected_patterns")
        if not isinstance(patterns, list):
            raise ReportValidationError(f"detected_patterns must be a list for {account_id}")
        for label in patterns:
            if label not in PATTERN_LABELS:
                raise ReportValidationError(f"Unknown pattern label {label!r} for {account_id}")
        if not isinstance(entry.get("ring_id"), str):
            raise ReportValidationError(f"ring_id must be a string for {account_id}")

    seen_ids = set()
    for ring in rings:
        ring_id = ring.get("ring_id")
        if not isinstance(ring_id, str) or ring_id == "":
            raise ReportValidationError(f"Invalid ring_id: {ring_id!r}")
        if ring_id in seen_ids:
            raise ReportValidationError(f"Duplicate ring_id: {ring_id}")
        seen_ids.add(ring_id)

        members = ring.get("member_accounts")
        if not isinstance(members, list) or not members:
            raise ReportValidationError(f"member_accounts must be a non-empty list for {ring_id}")
        if ring.get("pattern_type") not in PATTERN_TYPES:
            raise ReportValidationError(f"Unknown pattern_type for {ring_id}")
        _check_score(ring.get("risk_score"), f"risk_score for {ring_id}")

    for key in ("total_accounts_analyzed", "suspicious_accounts_flagged", "fraud_rings_detected"):
        value = summary.get(key)
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise ReportValidationError(f"Invalid {key}: {value!r}")
    elapsed = summary.get("processing_time_seconds")
    if not isinstance(elapsed, (int, float)) or not math.isfinite(elapsed):
        raise ReportValidationError(f"Invalid processing_time_seconds: {elapsed!r}")


def report_to_json_string(report: Dict[str, Any], indent: int = 2) -> str:
    """Serialise the report dict to a pretty-printed JSON string."""
    return json.dumps(report, indent=indent, allow_nan=False)


def build_ring_summary_table(report: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Build rows for the Fraud Ring Summary Table (CLI display).

    Columns: Ring ID, Pattern Type, Member Count, Risk Score,
             Member Account IDs
    """
    rows: List[Dict[str, Any]] = []
    for ring in report.get("fraud_rings", []):
        rows.append(
            {
                "Ring ID": ring["ring_id"],
                "Pattern Type": ring["pattern_type"],
                "Member Count": len(ring["member_accounts"]),
                "Risk Score": ring["risk_score"],
                "Member Account IDs": ", ".join(ring["member_accounts"]),
            }
        )
    return rows


def _check_score(value: Any, what: str) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ReportValidationError(f"Invalid {what}: {value!r}")
    if not math.isfinite(value) or not 0.0 <= value <= 100.0:
        raise ReportValidationError(f"Invalid {what}: {value!r}")
    if round(value, 1) != value:
        raise ReportValidationError(f"{what} must have one decimal place")
