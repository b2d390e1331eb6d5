"""
cycles.py — Circular Fund Routing detection.

Detects directed cycles of length 3–5 in the transaction graph, which is
the most classic "Money Muling" signature: A → B → C → A.

Every distinct cycle is reported.  Two pieces of evidence are attached to
each one and used later for scoring, never for admission:

- temporal proximity : all transfers on the loop happen within 72 hours
- amount similarity  : no hop's average amount strays > 50 % from the mean
"""

from __future__ import annotations

import networkx as nx
from loguru import logger
from typing import Any, Dict, List, Set, Tuple
from collections import defaultdict

from detection.common import SEVENTY_TWO_HOURS_MS, clamp_score, format_ring_id
from utils.graph_builder import edge_transactions


# ── Configurable thresholds ──────────────────────────────────────────────────

MIN_CYCLE_LENGTH: int = 3
MAX_CYCLE_LENGTH: int = 5
MAX_CYCLES: int = 5000                  # hard ceiling against dense graphs
AMOUNT_DEVIATION_LIMIT: float = 0.5     # per-hop deviation from the mean

BASE_RISK_SHORT: float = 40.0           # length 3
BASE_RISK_LONG: float = 30.0            # length 4–5
EVIDENCE_BONUS: float = 10.0


# ── Public API ───────────────────────────────────────────────────────────────

def detect_cycles(
    G: nx.DiGraph,
    ring_offset: int = 0,
    min_length: int = MIN_CYCLE_LENGTH,
    max_length: int = MAX_CYCLE_LENGTH,
    max_cycles: int = MAX_CYCLES,
) -> Dict[str, Any]:
    """Find all distinct simple directed cycles of *min_length*..*max_length*.

    Parameters
    ----------
    G : nx.DiGraph
        Transaction graph built by ``graph_builder.build_transaction_graph``.
    ring_offset : int
        Number of rings already issued in this run; ring ids continue from it.
    min_length, max_length : int
        Inclusive bounds on cycle length.
    max_cycles : int
        Stop once this many cycles have been found.

    Returns
    -------
    dict with keys:
        rings : list[dict]
            One descriptor per cycle (see ``_build_cycle_ring``).
        cycle_accounts : set[str]
            All accounts that participate in at least one cycle.
        account_cycle_count : dict[str, int]
            Number of distinct cycles each account belongs to.
        next_ring_index : int
            Ring counter value after this detector.
        truncated : bool
            True when the ``max_cycles`` ceiling was hit.
    """
    raw_cycles, truncated = _find_bounded_cycles(G, min_length, max_length, max_cycles)

    rings: List[Dict[str, Any]] = []
    cycle_accounts: Set[str] = set()
    account_cycle_count: Dict[str, int] = defaultdict(int)

    ring_index = ring_offset
    for cycle in raw_cycles:
        ring_index += 1
        rings.append(_build_cycle_ring(G, cycle, format_ring_id(ring_index)))
        for node in cycle:
            cycle_accounts.add(node)
            account_cycle_count[node] += 1

    if truncated:
        logger.warning(f"Cycle search stopped at the {max_cycles}-cycle ceiling")
    logger.debug(f"Cycle detection found {len(rings)} cycles over {len(cycle_accounts)} accounts")

    return {
        "rings": rings,
        "cycle_accounts": cycle_accounts,
        "account_cycle_count": dict(account_cycle_count),
        "next_ring_index": ring_index,
        "truncated": truncated,
    }


def canonicalize_cycle(cycle: List[str]) -> List[str]:
    """Rotate *cycle* so it starts at its lexicographically smallest member."""
    if not cycle:
        return []
    start = min(range(len(cycle)), key=lambda i: cycle[i])
    return cycle[start:] + cycle[:start]


def cycle_key(cycle: List[str]) -> str:
    """Dedup key shared by every rotation of the same cycle."""
    return "|".join(canonicalize_cycle(cycle))


def cycle_risk_score(
    cycle_length: int,
    temporal_proximity: bool,
    amount_similarity: bool,
) -> float:
    score = 0.0
    if cycle_length == 3:
        score += BASE_RISK_SHORT
    elif 4 <= cycle_length <= 5:
        score += BASE_RISK_LONG
    if temporal_proximity:
        score += EVIDENCE_BONUS
    if amount_similarity:
        score += EVIDENCE_BONUS
    return clamp_score(score)


def has_temporal_proximity(G: nx.DiGraph, cycle: List[str]) -> bool:
    """True if every transaction on the cycle falls within one 72 h span."""
    min_time = None
    max_time = None

    for from_node, to_node in _cycle_edges(cycle):
        txs = edge_transactions(G, from_node, to_node)
        if not txs:
            return False
        for tx in txs:
            if min_time is None or tx.timestamp_ms < min_time:
                min_time = tx.timestamp_ms
            if max_time is None or tx.timestamp_ms > max_time:
                max_time = tx.timestamp_ms

    if min_time is None:
        return False
    return (max_time - min_time) <= SEVENTY_TWO_HOURS_MS


def has_amount_similarity(G: nx.DiGraph, cycle: List[str]) -> bool:
    """True if each hop's average amount is within 50 % of the cycle mean."""
    hop_averages: List[float] = []

    for from_node, to_node in _cycle_edges(cycle):
        txs = edge_transactions(G, from_node, to_node)
        if not txs:
            return False
        hop_averages.append(sum(tx.amount for tx in txs) / len(txs))

    if not hop_averages:
        return False

    mean = sum(hop_averages) / len(hop_averages)
    if mean == 0:
        return False

    return all(abs(avg - mean) / mean <= AMOUNT_DEVIATION_LIMIT for avg in hop_averages)


# ── Internal helpers ─────────────────────────────────────────────────────────

def _find_bounded_cycles(
    G: nx.DiGraph,
    min_len: int,
    max_len: int,
    max_cycles: int,
) -> Tuple[List[List[str]], bool]:
    """Return (cycles in canonical rotation, truncated flag).

    Iterative DFS: each stack frame carries its own path and visited set,
    so branches never share state and depth is bounded by *max_len*.
    """
    found: List[List[str]] = []
    seen_keys: Set[str] = set()

    for start in G.nodes():
        if G.out_degree(start) == 0:
            continue

        stack: List[Tuple[str, List[str], Set[str]]] = []
        for neighbor in G.successors(start):
            if neighbor == start:
                continue  # self-loop can never close a qualifying cycle
            stack.append((neighbor, [start, neighbor], {start, neighbor}))

        while stack:
            node, path, visited = stack.pop()

            if len(path) >= min_len and G.has_edge(node, start):
                canonical = canonicalize_cycle(path)
                key = "|".join(canonical)
                if key not in seen_keys:
                    seen_keys.add(key)
                    found.append(canonical)
                    # Checked per cycle, not per finished seed, so a single
                    # dense seed can never push the count past the ceiling.
                    if len(found) >= max_cycles:
                        return found, True

            if len(path) < max_len:
                for neighbor in G.successors(node):
                    # start is always in visited, so it is never re-entered
                    if neighbor not in visited:
                        stack.append((neighbor, path + [neighbor], visited | {neighbor}))

    return found, False


def _build_cycle_ring(G: nx.DiGraph, cycle: List[str], ring_id: str) -> Dict[str, Any]:
    temporal = has_temporal_proximity(G, cycle)
    similar = has_amount_similarity(G, cycle)
    return {
        "ring_id": ring_id,
        "member_accounts": list(cycle),
        "pattern_type": "cycle",
        "risk_score": cycle_risk_score(len(cycle), temporal, similar),
        "cycle_length": len(cycle),
        "temporal_proximity": temporal,
        "amount_similarity": similar,
        "canonical_key": "|".join(cycle),
    }


def _cycle_edges(cycle: List[str]):
    for i in range(len(cycle)):
        yield cycle[i], cycle[(i + 1) % len(cycle)]
