"""
scoring.py — Suspicion Scoring engine (the "Brain").

Merges the three detectors' rings into one 0–100 suspicion score per
account and applies false-positive control.

Scoring Weights
---------------
Factor                     | Points | Reason
1. Cycle length 3          |   40   | Tight loops are the strongest muling signal
   Cycle length 4–5        |   30   |
   + temporal proximity    |   10   | Whole loop completed within 72 h
   + amount similarity     |   10   | Same money travelling around
2. Smurfing fan-in         |   35   | Collection concentrator
   Smurfing fan-out        |   35   | Distribution concentrator
   + high velocity         |   15   | Inflow leaves again within the window
3. Layered shell chain     |   25   | Relay through disposable accounts
   + depth > 3 hops        |   10   |

Within each family only the account's best ring counts; the three family
scores are summed.

False-positive control
----------------------
Merchant-like −30, payroll-like −30, stable-recurring −15 (stackable).
High-volume merchant override −40: > 200 transactions, no cycle
membership and uniform amounts (CV < 0.3).  Cycle members are never
discounted by the override.
"""

from __future__ import annotations

import networkx as nx
from loguru import logger
from typing import Any, Dict, List, Optional, Set

from detection.common import clamp_score, coefficient_of_variation
from detection.false_positive import build_false_positive_profile


# ── Weight configuration ─────────────────────────────────────────────────────
WEIGHT_CYCLE_SHORT: float = 40.0
WEIGHT_CYCLE_LONG: float = 30.0
WEIGHT_CYCLE_EVIDENCE: float = 10.0
WEIGHT_FAN: float = 35.0
WEIGHT_VELOCITY: float = 15.0
WEIGHT_LAYERING: float = 25.0
WEIGHT_LAYERING_DEPTH: float = 10.0
LAYERING_DEPTH_HOPS: int = 3
HIGH_VELOCITY_RATIO: float = 0.70

# False-positive control
MERCHANT_DEDUCTION: float = 30.0
PAYROLL_DEDUCTION: float = 30.0
RECURRING_DEDUCTION: float = 15.0
HIGH_VOLUME_DEDUCTION: float = 40.0
HIGH_VOLUME_ACTIVITY: int = 200
HIGH_VOLUME_AMOUNT_CV: float = 0.3

PATTERN_LABELS = frozenset({
    "cycle_length_3",
    "cycle_length_4",
    "cycle_length_5",
    "fan_in",
    "fan_out",
    "high_velocity",
    "layered_shell",
})

FAMILIES = ("cycle", "smurfing", "layering")


# ── Public API ───────────────────────────────────────────────────────────────

def compute_suspicion_scores(
    G: nx.DiGraph,
    cycle_results: Dict[str, Any],
    smurfing_results: Dict[str, Any],
    layering_results: Dict[str, Any],
) -> List[Dict[str, Any]]:
    """Score every account that belongs to at least one detected ring.

    Parameters
    ----------
    G : nx.DiGraph
        Transaction graph (for false-positive profiling).
    cycle_results, smurfing_results, layering_results : dict
        Outputs of ``detect_cycles``, ``detect_smurfing``, ``detect_layering``.

    Returns
    -------
    list[dict]
        One dict per account with a final score > 0, sorted by
        ``suspicion_score`` descending then ``account_id`` ascending.
        Keys: account_id, suspicion_score, detected_patterns, ring_id,
        breakdown.
    """
    contexts: Dict[str, Dict[str, Any]] = {}

    for ring in cycle_results.get("rings", []):
        _record(contexts, ring, "cycle", cycle_contribution(ring), cycle_labels(ring))

    for ring in smurfing_results.get("rings", []):
        _record(contexts, ring, "smurfing", smurfing_contribution(ring), smurfing_labels(ring))

    for ring in layering_results.get("rings", []):
        _record(contexts, ring, "layering", layering_contribution(ring), ["layered_shell"])

    cycle_accounts: Set[str] = set(cycle_results.get("cycle_accounts", set()))
    for ring in cycle_results.get("rings", []):
        cycle_accounts.update(ring["member_accounts"])

    scores: List[Dict[str, Any]] = []

    for account_id, ctx in contexts.items():
        breakdown: Dict[str, float] = {}
        raw_score = 0.0

        for family in FAMILIES:
            best = ctx["best"].get(family)
            if best is not None:
                raw_score += best
                breakdown[family] = best

        ndata = G.nodes[account_id] if account_id in G else None
        if ndata is not None:
            deductions = false_positive_deductions(ndata, account_id in cycle_accounts)
            for reason, points in deductions.items():
                raw_score -= points
                breakdown[reason] = -points

        if raw_score <= 0:
            continue

        scores.append(
            {
                "account_id": account_id,
                "suspicion_score": clamp_score(raw_score),
                "detected_patterns": sorted(ctx["patterns"]),
                "ring_id": ctx["ring_id"],
                "breakdown": breakdown,
            }
        )

    scores.sort(key=lambda s: (-s["suspicion_score"], s["account_id"]))
    logger.debug(f"Scored {len(scores)} suspicious accounts out of {len(contexts)} ring members")
    return scores


def cycle_contribution(ring: Dict[str, Any]) -> float:
    score = 0.0
    if ring["cycle_length"] == 3:
        score += WEIGHT_CYCLE_SHORT
    elif 4 <= ring["cycle_length"] <= 5:
        score += WEIGHT_CYCLE_LONG
    if ring.get("temporal_proximity"):
        score += WEIGHT_CYCLE_EVIDENCE
    if ring.get("amount_similarity"):
        score += WEIGHT_CYCLE_EVIDENCE
    return score


def smurfing_contribution(ring: Dict[str, Any]) -> float:
    score = 0.0
    if ring["direction"] in ("fan_in", "both"):
        score += WEIGHT_FAN
    if ring["direction"] in ("fan_out", "both"):
        score += WEIGHT_FAN
    if _is_high_velocity(ring):
        score += WEIGHT_VELOCITY
    return score


def layering_contribution(ring: Dict[str, Any]) -> float:
    score = WEIGHT_LAYERING
    if ring["hop_count"] > LAYERING_DEPTH_HOPS:
        score += WEIGHT_LAYERING_DEPTH
    return score


def cycle_labels(ring: Dict[str, Any]) -> List[str]:
    return [f"cycle_length_{ring['cycle_length']}"]


def smurfing_labels(ring: Dict[str, Any]) -> List[str]:
    labels: List[str] = []
    if ring["direction"] in ("fan_in", "both"):
        labels.append("fan_in")
    if ring["direction"] in ("fan_out", "both"):
        labels.append("fan_out")
    if _is_high_velocity(ring):
        labels.append("high_velocity")
    return labels


def false_positive_deductions(ndata: Dict[str, Any], in_cycle: bool) -> Dict[str, float]:
    """Named point deductions for one account (empty when none apply)."""
    deductions: Dict[str, float] = {}
    profile = build_false_positive_profile(ndata)

    if profile["is_merchant_like"]:
        deductions["merchant_like"] = MERCHANT_DEDUCTION
    if profile["is_payroll_like"]:
        deductions["payroll_like"] = PAYROLL_DEDUCTION
    if profile["is_stable_recurring"]:
        deductions["stable_recurring"] = RECURRING_DEDUCTION

    if not in_cycle and _is_high_volume_merchant(ndata):
        deductions["high_volume_merchant"] = HIGH_VOLUME_DEDUCTION

    return deductions


# ── Internal helpers ─────────────────────────────────────────────────────────

def _record(
    contexts: Dict[str, Dict[str, Any]],
    ring: Dict[str, Any],
    family: str,
    contribution: float,
    labels: List[str],
) -> None:
    for account_id in ring["member_accounts"]:
        ctx = contexts.get(account_id)
        if ctx is None:
            ctx = {"best": {}, "patterns": set(), "ring_id": ring["ring_id"]}
            contexts[account_id] = ctx
        current: Optional[float] = ctx["best"].get(family)
        if current is None or contribution > current:
            ctx["best"][family] = contribution
        ctx["patterns"].update(labels)


def _is_high_velocity(ring: Dict[str, Any]) -> bool:
    if "high_velocity" in ring:
        return bool(ring["high_velocity"])
    return ring.get("velocity", 0.0) >= HIGH_VELOCITY_RATIO


def _is_high_volume_merchant(ndata: Dict[str, Any]) -> bool:
    activity = ndata["in_tx_count"] + ndata["out_tx_count"]
    if activity <= HIGH_VOLUME_ACTIVITY:
        return False
    amounts = [tx.amount for tx in ndata["in_transactions"]]
    amounts += [tx.amount for tx in ndata["out_transactions"]]
    cv = coefficient_of_variation(amounts)
    return cv is not None and cv < HIGH_VOLUME_AMOUNT_CV
