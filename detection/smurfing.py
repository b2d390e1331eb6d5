"""
smurfing.py — Smurfing / aggregation-hub detection.

"Smurfing" involves breaking a large sum into many small transactions
routed through many different accounts to evade reporting thresholds.

Detection targets
-----------------
Fan-In  (Collection)   : ≥ 10 distinct senders → 1 hub within 72 hours.
Fan-Out (Distribution) : 1 hub → ≥ 10 distinct receivers within 72 hours.

Additional signal:
- Velocity: share of the window's inflow that leaves again in the same
  window (capped at 1.0).
- Redistribution: the collected funds are pushed out within a further
  72 hours (or the distributed funds arrived in the preceding 72 hours).

Merchant-like and payroll-like hubs are dropped outright.
"""

from __future__ import annotations

import networkx as nx
import numpy as np
from loguru import logger
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Set, Tuple

from detection.common import HOUR_MS, SEVENTY_TWO_HOURS_MS, clamp_score, format_ring_id
from detection.false_positive import build_false_positive_profile


# ── Configurable thresholds ──────────────────────────────────────────────────

FAN_THRESHOLD: int = 10                 # distinct counterparties in a window
WINDOW_MS: int = SEVENTY_TWO_HOURS_MS
REDISTRIBUTION_THRESHOLD: float = 0.70  # also the high-velocity cutoff
MAX_PATTERNS: int = 500

FAN_RISK: float = 35.0
VELOCITY_RISK: float = 15.0
REDISTRIBUTION_RISK: float = 10.0


class TimeWindow(NamedTuple):
    start_ms: int
    end_ms: int


# ── Public API ───────────────────────────────────────────────────────────────

def detect_smurfing(
    G: nx.DiGraph,
    ring_offset: int = 0,
    fan_threshold: int = FAN_THRESHOLD,
    window_ms: int = WINDOW_MS,
    redistribution_threshold: float = REDISTRIBUTION_THRESHOLD,
    max_patterns: int = MAX_PATTERNS,
) -> Dict[str, Any]:
    """Identify fan-in and fan-out smurfing hubs.

    Parameters
    ----------
    G : nx.DiGraph
        Transaction graph with sorted per-node transaction logs.
    ring_offset : int
        Number of rings already issued in this run.
    fan_threshold : int
        Minimum distinct counterparties within one window.
    window_ms : int
        Window length in milliseconds.
    redistribution_threshold : float
        Outflow / inflow ratio for the velocity and redistribution signals.
    max_patterns : int
        Stop after this many hubs.

    Returns
    -------
    dict with keys:
        rings : list[dict] — one descriptor per hub
        smurfing_accounts : set[str] — hubs and their counterparties
        suppressed_hubs : list[str] — hubs dropped as merchant/payroll
        next_ring_index : int
        truncated : bool
    """
    rings: List[Dict[str, Any]] = []
    smurfing_accounts: Set[str] = set()
    suppressed: List[str] = []
    ring_index = ring_offset
    truncated = False

    for account_id, ndata in G.nodes(data=True):
        if len(rings) >= max_patterns:
            truncated = True
            break

        hub = _analyze_hub(ndata, fan_threshold, window_ms, redistribution_threshold)
        if hub is None:
            continue

        profile = build_false_positive_profile(ndata)
        if profile["is_merchant_like"] or profile["is_payroll_like"]:
            logger.debug(f"Smurfing hub {account_id} suppressed by false-positive profile {profile}")
            suppressed.append(account_id)
            continue

        ring_index += 1
        ring = _build_smurfing_ring(account_id, hub, format_ring_id(ring_index))
        rings.append(ring)
        smurfing_accounts.update(ring["member_accounts"])

    if truncated:
        logger.warning(f"Smurfing detection stopped at the {max_patterns}-pattern ceiling")
    logger.debug(f"Smurfing detection found {len(rings)} hubs, suppressed {len(suppressed)}")

    return {
        "rings": rings,
        "smurfing_accounts": smurfing_accounts,
        "suppressed_hubs": suppressed,
        "next_ring_index": ring_index,
        "truncated": truncated,
    }


def build_time_windows(transactions: List[Any], window_ms: int = WINDOW_MS) -> List[TimeWindow]:
    """One window per transaction start, deduplicated by starting hour."""
    windows: List[TimeWindow] = []
    seen_hours: Set[int] = set()

    for tx in sorted(transactions, key=lambda t: t.timestamp_ms):
        hour_bucket = tx.timestamp_ms // HOUR_MS
        if hour_bucket in seen_hours:
            continue
        seen_hours.add(hour_bucket)
        windows.append(TimeWindow(tx.timestamp_ms, tx.timestamp_ms + window_ms))

    return windows


def compute_velocity(in_amount: float, out_amount: float) -> float:
    if in_amount <= 0:
        return 0.0
    return min(out_amount / in_amount, 1.0)


# ── Internal helpers ─────────────────────────────────────────────────────────

class _TimeIndex:
    """Time-sorted transaction log with inclusive [start, end] range queries.

    Timestamps and an amount prefix-sum are materialised once as numpy
    arrays so each window query is two ``searchsorted`` calls.
    """

    def __init__(self, transactions: List[Any]):
        self.transactions = transactions
        self.times = np.asarray([tx.timestamp_ms for tx in transactions], dtype=np.int64)
        amounts = np.asarray([tx.amount for tx in transactions], dtype=float)
        self.prefix = np.concatenate(([0.0], np.cumsum(amounts, dtype=float)))

    def _bounds(self, start_ms: int, end_ms: int) -> Tuple[int, int]:
        lo = int(np.searchsorted(self.times, start_ms, side="left"))
        hi = int(np.searchsorted(self.times, end_ms, side="right"))
        return lo, hi

    def between(self, start_ms: int, end_ms: int) -> List[Any]:
        lo, hi = self._bounds(start_ms, end_ms)
        return self.transactions[lo:hi]

    def amount_between(self, start_ms: int, end_ms: int) -> float:
        lo, hi = self._bounds(start_ms, end_ms)
        if hi <= lo:
            return 0.0
        return float(self.prefix[hi] - self.prefix[lo])


def _analyze_hub(
    ndata: Mapping[str, Any],
    fan_threshold: int,
    window_ms: int,
    redistribution_threshold: float,
) -> Optional[Dict[str, Any]]:
    """Scan one account's windows; return hub evidence or None."""
    in_txs = ndata["in_transactions"]
    out_txs = ndata["out_transactions"]
    if not in_txs and not out_txs:
        return None

    incoming = _TimeIndex(in_txs)
    outgoing = _TimeIndex(out_txs)

    best_fan_in = 0
    best_fan_out = 0
    best_velocity = 0.0
    fan_in_window: Optional[TimeWindow] = None
    fan_out_window: Optional[TimeWindow] = None
    fan_in_senders: Set[str] = set()
    fan_out_receivers: Set[str] = set()

    for window in build_time_windows(in_txs + out_txs, window_ms):
        window_in = incoming.between(window.start_ms, window.end_ms)
        window_out = outgoing.between(window.start_ms, window.end_ms)

        senders = {tx.sender_id for tx in window_in}
        receivers = {tx.receiver_id for tx in window_out}

        if len(senders) > best_fan_in:
            best_fan_in = len(senders)
            fan_in_window = window
            fan_in_senders = senders

        if len(receivers) > best_fan_out:
            best_fan_out = len(receivers)
            fan_out_window = window
            fan_out_receivers = receivers

        velocity = compute_velocity(
            incoming.amount_between(window.start_ms, window.end_ms),
            outgoing.amount_between(window.start_ms, window.end_ms),
        )
        if velocity > best_velocity:
            best_velocity = velocity

    is_fan_in = best_fan_in >= fan_threshold
    is_fan_out = best_fan_out >= fan_threshold
    if not is_fan_in and not is_fan_out:
        return None

    redistribution = False
    if is_fan_in and fan_in_window is not None:
        in_amount = incoming.amount_between(fan_in_window.start_ms, fan_in_window.end_ms)
        out_amount = outgoing.amount_between(
            fan_in_window.start_ms, fan_in_window.end_ms + window_ms
        )
        if in_amount > 0 and out_amount / in_amount >= redistribution_threshold:
            redistribution = True

    if is_fan_out and not redistribution and fan_out_window is not None:
        in_amount = incoming.amount_between(
            fan_out_window.start_ms - window_ms, fan_out_window.end_ms
        )
        out_amount = outgoing.amount_between(fan_out_window.start_ms, fan_out_window.end_ms)
        if in_amount > 0 and out_amount / in_amount >= redistribution_threshold:
            redistribution = True

    return {
        "is_fan_in": is_fan_in,
        "is_fan_out": is_fan_out,
        "fan_in_count": best_fan_in,
        "fan_out_count": best_fan_out,
        "fan_in_senders": fan_in_senders if is_fan_in else set(),
        "fan_out_receivers": fan_out_receivers if is_fan_out else set(),
        "velocity": best_velocity,
        "high_velocity": best_velocity >= redistribution_threshold,
        "redistribution": redistribution,
    }


def _build_smurfing_ring(account_id: str, hub: Dict[str, Any], ring_id: str) -> Dict[str, Any]:
    if hub["is_fan_in"] and hub["is_fan_out"]:
        direction = "both"
    elif hub["is_fan_in"]:
        direction = "fan_in"
    else:
        direction = "fan_out"

    counterparties = (hub["fan_in_senders"] | hub["fan_out_receivers"]) - {account_id}

    risk = 0.0
    if hub["is_fan_in"]:
        risk += FAN_RISK
    if hub["is_fan_out"]:
        risk += FAN_RISK
    if hub["high_velocity"]:
        risk += VELOCITY_RISK
    if hub["redistribution"]:
        risk += REDISTRIBUTION_RISK

    return {
        "ring_id": ring_id,
        "member_accounts": [account_id] + sorted(counterparties),
        "pattern_type": "smurfing",
        "risk_score": clamp_score(risk),
        "hub_account": account_id,
        "direction": direction,
        "velocity": round(hub["velocity"], 3),
        "high_velocity": hub["high_velocity"],
        "fan_in_count": hub["fan_in_count"],
        "fan_out_count": hub["fan_out_count"],
        "redistribution": hub["redistribution"],
    }
