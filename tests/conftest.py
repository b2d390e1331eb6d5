"""
Pytest configuration for the detection test suite.

Fixtures build small synthetic graphs from (sender, receiver, amount, hour)
tuples so each test states its scenario inline.
"""

import pytest

from utils.graph_builder import Transaction, build_transaction_graph

# Hour-aligned base instant (2023-11-14 22:00:00 UTC)
T0 = 1_699_999_200_000
HOUR = 3_600_000


def make_transactions(edges):
    """(sender, receiver, amount, hours_after_T0) tuples → Transaction list."""
    return [
        Transaction(f"TX{i:05d}", sender, receiver, float(amount), T0 + int(hours * HOUR))
        for i, (sender, receiver, amount, hours) in enumerate(edges)
    ]


@pytest.fixture
def make_graph():
    def _make(edges):
        return build_transaction_graph(make_transactions(edges))
    return _make


@pytest.fixture
def three_cycle_edges():
    """A → B → C → A, $1000 per hop, one hour apart."""
    return [
        ("A", "B", 1000, 0),
        ("B", "C", 1000, 1),
        ("C", "A", 1000, 2),
    ]


@pytest.fixture
def fan_in_edges():
    """12 distinct senders each pay $100 to HUB within 10 hours."""
    return [(f"S{i:02d}", "HUB", 100, i * 0.8) for i in range(12)]


@pytest.fixture
def shell_chain_edges():
    """A → S1 → S2 → B with single-use relays, all within one hour."""
    return [
        ("A", "S1", 5000, 0),
        ("S1", "S2", 4900, 0.5),
        ("S2", "B", 4800, 1),
    ]


@pytest.fixture
def merchant_edges():
    """250 near-identical payments from 50 repeat customers, one payout."""
    edges = []
    for i in range(250):
        edges.append((f"CUST_{i % 50:02d}", "MERCHANT", 100 + (i % 5) * 0.5, i / 6))
    edges.append(("MERCHANT", "BANK", 100, 50))
    return edges
