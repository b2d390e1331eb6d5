"""
layering.py — Layered shell-account chain detection.

Pattern: SOURCE → S1 → S2 → ... → SINK

Why Suspicious?
Launderers move funds through disposable intermediary accounts that exist
only to relay one payment.  Such "shell" accounts show almost no activity
of their own (two or three transactions in total).

Detection:
1. Classify shells by total transaction count.
2. From every non-shell account that pays a shell, walk forward (bounded
   stack DFS, ≤ 8 hops) and evaluate every path of ≥ 3 hops whose
   intermediates are at least 70 % shells.
3. Report a path only if its timing is continuous or its amounts are
   preserved along the chain.
"""

from __future__ import annotations

import networkx as nx
from loguru import logger
from typing import Any, Dict, List, Set, Tuple

from detection.common import SEVENTY_TWO_HOURS_MS, clamp_score, format_ring_id
from utils.graph_builder import edge_transactions


# ── Configurable thresholds ──────────────────────────────────────────────────
SHELL_MIN_TX: int = 2                   # total transactions for a shell
SHELL_MAX_TX: int = 3
MIN_HOPS: int = 3
MAX_HOPS: int = 8
MIN_SHELL_FRACTION: float = 0.70        # of intermediate nodes
HOP_GAP_MS: int = SEVENTY_TWO_HOURS_MS  # allowed regression between hops
MAX_CHAIN_SPAN_MS: int = 2 * SEVENTY_TWO_HOURS_MS
AMOUNT_SPREAD_LIMIT: float = 0.5
MAX_PATTERNS: int = 500

BASE_RISK: float = 25.0
DEPTH_RISK: float = 10.0
SHELL_RISK: float = 15.0
EVIDENCE_RISK: float = 10.0


def detect_layering(
    G: nx.DiGraph,
    ring_offset: int = 0,
    min_hops: int = MIN_HOPS,
    max_hops: int = MAX_HOPS,
    min_shell_fraction: float = MIN_SHELL_FRACTION,
    max_patterns: int = MAX_PATTERNS,
) -> Dict[str, Any]:
    """Detect multi-hop chains routed through shell accounts.

    Parameters
    ----------
    G : nx.DiGraph
        Transaction graph.
    ring_offset : int
        Rings already issued by earlier detectors (cycles + smurfing).
    min_hops, max_hops : int
        Bounds on chain length in edges.
    min_shell_fraction : float
        Minimum share of intermediate nodes that must be shells.
    max_patterns : int
        Stop after this many chains.

    Returns
    -------
    dict with keys:
        rings : list[dict]
            Each has: chain, hop_count, shell_count, temporal_continuity,
            amount_preservation, risk_score.
        shell_accounts : set[str]
            Every account classified as a potential shell.
        layering_accounts : set[str]
            All accounts participating in reported chains.
        next_ring_index : int
        truncated : bool
    """
    rings: List[Dict[str, Any]] = []
    layering_accounts: Set[str] = set()
    ring_index = ring_offset
    truncated = False

    shells = identify_shell_accounts(G)
    if not shells:
        return {
            "rings": rings,
            "shell_accounts": shells,
            "layering_accounts": layering_accounts,
            "next_ring_index": ring_index,
            "truncated": truncated,
        }

    seen_chains: Set[Tuple[str, ...]] = set()

    for start in _seed_accounts(G, shells):
        for chain, shell_count in _walk_chains(G, start, shells, min_hops, max_hops, min_shell_fraction):
            key = tuple(chain)
            if key in seen_chains:
                continue
            seen_chains.add(key)

            temporal = has_temporal_continuity(G, chain)
            preserved = has_amount_preservation(G, chain)
            if not (temporal or preserved):
                continue

            ring_index += 1
            rings.append(
                _build_layering_ring(chain, shell_count, temporal, preserved, format_ring_id(ring_index))
            )
            layering_accounts.update(chain)

            if len(rings) >= max_patterns:
                truncated = True
                break

        if truncated:
            break

    if truncated:
        logger.warning(f"Layering detection stopped at the {max_patterns}-pattern ceiling")
    logger.debug(f"Layering detection found {len(rings)} chains ({len(shells)} potential shells)")

    return {
        "rings": rings,
        "shell_accounts": shells,
        "layering_accounts": layering_accounts,
        "next_ring_index": ring_index,
        "truncated": truncated,
    }


def is_shell_account(ndata: Dict[str, Any]) -> bool:
    total = ndata["in_tx_count"] + ndata["out_tx_count"]
    return SHELL_MIN_TX <= total <= SHELL_MAX_TX


def identify_shell_accounts(G: nx.DiGraph) -> Set[str]:
    return {node for node, ndata in G.nodes(data=True) if is_shell_account(ndata)}


def has_temporal_continuity(G: nx.DiGraph, chain: List[str]) -> bool:
    """Hops never step back > 72 h and the whole chain spans ≤ 144 h."""
    prev_max = None
    first_min = None
    last_max = None

    for from_node, to_node in zip(chain, chain[1:]):
        txs = edge_transactions(G, from_node, to_node)
        if not txs:
            return False
        edge_min = min(tx.timestamp_ms for tx in txs)
        edge_max = max(tx.timestamp_ms for tx in txs)

        if prev_max is not None and edge_min < prev_max - HOP_GAP_MS:
            return False
        if first_min is None:
            first_min = edge_min
        prev_max = edge_max
        last_max = edge_max

    if first_min is None:
        return False
    return (last_max - first_min) <= MAX_CHAIN_SPAN_MS


def has_amount_preservation(G: nx.DiGraph, chain: List[str]) -> bool:
    """Edge totals along the chain stay within 50 % of the largest one."""
    edge_totals: List[float] = []
    for from_node, to_node in zip(chain, chain[1:]):
        txs = edge_transactions(G, from_node, to_node)
        if not txs:
            return False
        edge_totals.append(sum(tx.amount for tx in txs))

    if len(edge_totals) < 2:
        return False

    largest = max(edge_totals)
    if largest == 0:
        return False
    return (largest - min(edge_totals)) / largest <= AMOUNT_SPREAD_LIMIT


# ── Internal helpers ─────────────────────────────────────────────────────────

def _seed_accounts(G: nx.DiGraph, shells: Set[str]) -> List[str]:
    """Non-shell accounts with at least one payment into a shell."""
    seeds: List[str] = []
    for node in G.nodes():
        if node in shells:
            continue
        if any(succ in shells for succ in G.successors(node)):
            seeds.append(node)
    return seeds


def _walk_chains(
    G: nx.DiGraph,
    start: str,
    shells: Set[str],
    min_hops: int,
    max_hops: int,
    min_shell_fraction: float,
):
    """Yield (path, intermediate shell count) for every qualifying path.

    Each stack frame holds (node, path, shells among path[1:], visited).
    """
    stack: List[Tuple[str, List[str], int, Set[str]]] = []
    for neighbor in G.successors(start):
        if neighbor == start:
            continue
        stack.append((neighbor, [start, neighbor], int(neighbor in shells), {start, neighbor}))

    while stack:
        node, path, shell_count, visited = stack.pop()
        hops = len(path) - 1

        if hops >= min_hops:
            intermediates = len(path) - 2
            inner_shells = shell_count - int(node in shells)
            if inner_shells >= intermediates * min_shell_fraction:
                yield path, inner_shells

        if hops >= max_hops:
            continue
        # Extending makes `node` an intermediate; prune when the fraction can
        # no longer be reached even if every remaining hop lands on a shell.
        spare = max_hops - hops - 1
        reachable = (shell_count + spare) / (len(path) - 1 + spare)
        if reachable < min_shell_fraction:
            continue

        for neighbor in G.successors(node):
            if neighbor not in visited:
                stack.append((
                    neighbor,
                    path + [neighbor],
                    shell_count + int(neighbor in shells),
                    visited | {neighbor},
                ))


def _build_layering_ring(
    chain: List[str],
    shell_count: int,
    temporal: bool,
    preserved: bool,
    ring_id: str,
) -> Dict[str, Any]:
    hop_count = len(chain) - 1

    risk = BASE_RISK
    if hop_count > MIN_HOPS:
        risk += DEPTH_RISK
    if shell_count >= 2:
        risk += SHELL_RISK
    if temporal:
        risk += EVIDENCE_RISK
    if preserved:
        risk += EVIDENCE_RISK

    return {
        "ring_id": ring_id,
        "member_accounts": list(chain),
        "pattern_type": "layering",
        "risk_score": clamp_score(risk),
        "chain": list(chain),
        "hop_count": hop_count,
        "shell_count": shell_count,
        "temporal_continuity": temporal,
        "amount_preservation": preserved,
    }
