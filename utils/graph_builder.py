"""
graph_builder.py — Construct the directed transaction graph consumed by
every detector.

Each node is an account (sender or receiver) carrying its per-account
aggregates.  Each edge is one (sender, receiver) bucket holding the full
list of transactions between that ordered pair, so temporal and amount
analysis can still look at individual transfers.
"""

from __future__ import annotations

import networkx as nx
import numpy as np
import pandas as pd
from typing import Iterable, List, NamedTuple, Union


class Transaction(NamedTuple):
    """A single validated transfer.  Never mutated after ingest."""

    transaction_id: str
    sender_id: str
    receiver_id: str
    amount: float
    timestamp_ms: int


# ── Public API ───────────────────────────────────────────────────────────────

def build_transaction_graph(
    transactions: Union[pd.DataFrame, Iterable[Transaction]],
) -> nx.DiGraph:
    """Build the account graph in one fold pass plus one finalization pass.

    Parallel transactions between the same ordered pair collapse onto one
    edge, but the edge keeps every transaction.  Self-transfers become
    self-loop edges.

    Node attributes
    ----------------
    - in_tx_count : int — number of incoming transactions
    - out_tx_count : int — number of outgoing transactions
    - total_received : float — sum of incoming amounts
    - total_sent : float — sum of outgoing amounts
    - in_transactions : list[Transaction] — sorted by timestamp
    - out_transactions : list[Transaction] — sorted by timestamp

    Edge attributes
    ---------------
    - transactions : list[Transaction] — every transfer on this edge
    - total_amount : float
    - tx_count : int
    """
    if isinstance(transactions, pd.DataFrame):
        transactions = frame_to_transactions(transactions)

    G = nx.DiGraph()

    for tx in transactions:
        _ensure_node(G, tx.sender_id)
        _ensure_node(G, tx.receiver_id)

        sender = G.nodes[tx.sender_id]
        sender["out_tx_count"] += 1
        sender["total_sent"] += tx.amount
        sender["out_transactions"].append(tx)

        receiver = G.nodes[tx.receiver_id]
        receiver["in_tx_count"] += 1
        receiver["total_received"] += tx.amount
        receiver["in_transactions"].append(tx)

        if G.has_edge(tx.sender_id, tx.receiver_id):
            edata = G[tx.sender_id][tx.receiver_id]
            edata["transactions"].append(tx)
            edata["total_amount"] += tx.amount
            edata["tx_count"] += 1
        else:
            G.add_edge(
                tx.sender_id,
                tx.receiver_id,
                transactions=[tx],
                total_amount=tx.amount,
                tx_count=1,
            )

    # Sort per-node logs once so detectors can run window queries
    for _, ndata in G.nodes(data=True):
        ndata["in_transactions"].sort(key=_by_time)
        ndata["out_transactions"].sort(key=_by_time)

    return G


def frame_to_transactions(df: pd.DataFrame) -> List[Transaction]:
    """Convert a cleaned transaction DataFrame into ``Transaction`` records."""
    records: List[Transaction] = []
    for row in df.itertuples(index=False):
        records.append(
            Transaction(
                transaction_id=str(row.transaction_id),
                sender_id=str(row.sender_id),
                receiver_id=str(row.receiver_id),
                amount=float(row.amount),
                timestamp_ms=to_millis(row.timestamp),
            )
        )
    return records


def to_millis(value) -> int:
    """Resolve a timestamp (Timestamp, datetime, string or epoch ms) to UTC ms."""
    if isinstance(value, (int, np.integer)):
        return int(value)
    return int(pd.Timestamp(value).value // 1_000_000)


def edge_transactions(G: nx.DiGraph, sender: str, receiver: str) -> List[Transaction]:
    """Transactions on the (sender, receiver) edge, or an empty list."""
    if not G.has_edge(sender, receiver):
        return []
    return G[sender][receiver]["transactions"]


# ── Internal helpers ─────────────────────────────────────────────────────────

def _ensure_node(G: nx.DiGraph, account_id: str) -> None:
    if account_id in G:
        return
    G.add_node(
        account_id,
        in_tx_count=0,
        out_tx_count=0,
        total_received=0.0,
        total_sent=0.0,
        in_transactions=[],
        out_transactions=[],
    )


def _by_time(tx: Transaction) -> int:
    return tx.timestamp_ms
