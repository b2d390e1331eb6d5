"""
false_positive.py — Behavioral profile used to suppress false positives.

Legitimate businesses trip the same structural signals as mules: a shop
collects from many customers (fan-in), an employer pays many staff
(fan-out), and regular bill payers transact with the same counterparties
over and over.  The profile recognises these three shapes from a single
account's own transaction history; no graph-wide data is needed.

Classification
--------------
- merchant-like      : receive-heavy, high volume, uniform incoming amounts
- payroll-like       : consistent (and often periodic) payments per receiver
- stable-recurring   : most counterparties are seen three or more times
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping
from collections import Counter, defaultdict

from detection.common import coefficient_of_variation


# ── Configurable thresholds ──────────────────────────────────────────────────

# Merchant
MERCHANT_MIN_IN_DEGREE: int = 20
MERCHANT_MIN_ACTIVITY: int = 200        # total transactions, exclusive
MERCHANT_MIN_INCOMING: int = 10
MERCHANT_AMOUNT_CV: float = 0.4
MERCHANT_IN_OUT_RATIO: float = 3.0

# Payroll
PAYROLL_MIN_OUT_DEGREE: int = 5
PAYROLL_MIN_OUTGOING: int = 5
PAYROLL_AMOUNT_CV: float = 0.10
PAYROLL_CONSISTENT_SHARE: float = 0.70
PAYROLL_RELAXED_SHARE: float = 0.50
PAYROLL_PERIODIC_SHARE: float = 0.50
PAYROLL_GAP_CV: float = 0.3

# Stable recurring
RECURRING_MIN_TX: int = 6
RECURRING_MIN_REPEATS: int = 3
RECURRING_SHARE: float = 0.60


# ── Public API ───────────────────────────────────────────────────────────────

def build_false_positive_profile(node_data: Mapping[str, Any]) -> Dict[str, bool]:
    """Profile one account from its graph node attributes.

    Parameters
    ----------
    node_data : mapping
        ``G.nodes[account_id]`` as produced by
        ``graph_builder.build_transaction_graph``.

    Returns
    -------
    dict with keys ``is_merchant_like``, ``is_payroll_like``,
    ``is_stable_recurring`` (independent booleans).
    """
    return {
        "is_merchant_like": is_merchant_like(node_data),
        "is_payroll_like": is_payroll_like(node_data),
        "is_stable_recurring": is_stable_recurring(node_data),
    }


def is_merchant_like(node_data: Mapping[str, Any]) -> bool:
    """High-volume, receive-heavy account with uniform incoming amounts."""
    in_degree = node_data["in_tx_count"]
    out_degree = node_data["out_tx_count"]

    if in_degree + out_degree <= MERCHANT_MIN_ACTIVITY and in_degree < MERCHANT_MIN_IN_DEGREE:
        return False

    in_amounts = [tx.amount for tx in node_data["in_transactions"]]
    if len(in_amounts) < MERCHANT_MIN_INCOMING:
        return False

    cv = coefficient_of_variation(in_amounts)
    if cv is None:
        return False

    return cv < MERCHANT_AMOUNT_CV and in_degree > out_degree * MERCHANT_IN_OUT_RATIO


def is_payroll_like(node_data: Mapping[str, Any]) -> bool:
    """Sender paying many receivers consistent, regularly scheduled amounts."""
    if node_data["out_tx_count"] < PAYROLL_MIN_OUT_DEGREE:
        return False

    out_txs = node_data["out_transactions"]
    if len(out_txs) < PAYROLL_MIN_OUTGOING:
        return False

    amounts_by_receiver: Dict[str, List[float]] = defaultdict(list)
    times_by_receiver: Dict[str, List[int]] = defaultdict(list)
    for tx in out_txs:
        amounts_by_receiver[tx.receiver_id].append(tx.amount)
        times_by_receiver[tx.receiver_id].append(tx.timestamp_ms)

    n_receivers = len(amounts_by_receiver)
    consistent = 0
    periodic = 0

    for receiver, amounts in amounts_by_receiver.items():
        if len(amounts) < 2:
            continue

        cv = coefficient_of_variation(amounts)
        if cv is not None and cv < PAYROLL_AMOUNT_CV:
            consistent += 1

        # out_transactions is time-sorted, so per-receiver times are too
        times = times_by_receiver[receiver]
        gaps = [b - a for a, b in zip(times, times[1:])]
        gap_cv = coefficient_of_variation(gaps)
        if gap_cv is not None and gap_cv < PAYROLL_GAP_CV:
            periodic += 1

    if consistent >= n_receivers * PAYROLL_CONSISTENT_SHARE:
        return True
    return (
        consistent >= n_receivers * PAYROLL_RELAXED_SHARE
        and periodic >= n_receivers * PAYROLL_PERIODIC_SHARE
    )


def is_stable_recurring(node_data: Mapping[str, Any]) -> bool:
    """Most counterparties are transacted with repeatedly."""
    in_txs = node_data["in_transactions"]
    out_txs = node_data["out_transactions"]
    if len(in_txs) + len(out_txs) < RECURRING_MIN_TX:
        return False

    counterparties: Counter = Counter()
    for tx in in_txs:
        counterparties[tx.sender_id] += 1
    for tx in out_txs:
        counterparties[tx.receiver_id] += 1

    recurring = sum(1 for count in counterparties.values() if count >= RECURRING_MIN_REPEATS)
    return recurring >= len(counterparties) * RECURRING_SHARE
