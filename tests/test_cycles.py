import pytest

from conftest import make_transactions
from detection.cycles import (
    canonicalize_cycle,
    cycle_key,
    cycle_risk_score,
    detect_cycles,
)
from utils.graph_builder import build_transaction_graph


@pytest.mark.parametrize("rotation", [["A", "B", "C"], ["B", "C", "A"], ["C", "A", "B"]])
def test_every_rotation_shares_one_key(rotation):
    assert canonicalize_cycle(rotation) == ["A", "B", "C"]
    assert cycle_key(rotation) == "A|B|C"


def test_reversed_cycle_is_a_different_cycle():
    assert cycle_key(["A", "C", "B"]) != cycle_key(["A", "B", "C"])


def test_three_cycle_scores_sixty(make_graph, three_cycle_edges):
    result = detect_cycles(make_graph(three_cycle_edges))

    assert len(result["rings"]) == 1
    ring = result["rings"][0]
    assert ring["ring_id"] == "RING_001"
    assert ring["member_accounts"] == ["A", "B", "C"]
    assert ring["pattern_type"] == "cycle"
    assert ring["cycle_length"] == 3
    assert ring["temporal_proximity"] is True
    assert ring["amount_similarity"] is True
    assert ring["risk_score"] == 60.0
    assert result["cycle_accounts"] == {"A", "B", "C"}
    assert result["account_cycle_count"] == {"A": 1, "B": 1, "C": 1}
    assert result["next_ring_index"] == 1
    assert result["truncated"] is False


def test_four_and_five_cycles_use_long_base(make_graph):
    four = [("P", "Q", 100, 0), ("Q", "R", 100, 1), ("R", "S", 100, 2), ("S", "P", 100, 3)]
    five = [("V", "W", 100, 0), ("W", "X", 100, 1), ("X", "Y", 100, 2),
            ("Y", "Z", 100, 3), ("Z", "V", 100, 4)]
    result = detect_cycles(make_graph(four + five))

    lengths = sorted(r["cycle_length"] for r in result["rings"])
    assert lengths == [4, 5]
    assert all(r["risk_score"] == 50.0 for r in result["rings"])


def test_two_and_six_cycles_are_ignored(make_graph):
    pair = [("A", "B", 100, 0), ("B", "A", 100, 1)]
    hexagon = [(f"N{i}", f"N{(i + 1) % 6}", 100, i) for i in range(6)]
    result = detect_cycles(make_graph(pair + hexagon))

    assert result["rings"] == []
    assert result["next_ring_index"] == 0


def test_slow_cycle_loses_temporal_bonus(make_graph):
    result = detect_cycles(make_graph([
        ("A", "B", 1000, 0),
        ("B", "C", 1000, 1),
        ("C", "A", 1000, 100),
    ]))
    ring = result["rings"][0]
    assert ring["temporal_proximity"] is False
    assert ring["amount_similarity"] is True
    assert ring["risk_score"] == 50.0


def test_uneven_amounts_lose_similarity_bonus(make_graph):
    result = detect_cycles(make_graph([
        ("A", "B", 1000, 0),
        ("B", "C", 1000, 1),
        ("C", "A", 5000, 2),
    ]))
    ring = result["rings"][0]
    assert ring["amount_similarity"] is False
    assert ring["risk_score"] == 50.0


def test_hop_average_used_for_parallel_transfers(make_graph):
    result = detect_cycles(make_graph([
        ("A", "B", 1000, 0),
        ("A", "B", 3000, 0.5),
        ("B", "C", 2000, 1),
        ("C", "A", 2000, 2),
    ]))
    assert result["rings"][0]["amount_similarity"] is True


def test_self_loop_does_not_create_cycles(make_graph, three_cycle_edges):
    result = detect_cycles(make_graph(three_cycle_edges + [("A", "A", 50, 3)]))

    assert len(result["rings"]) == 1
    assert result["rings"][0]["member_accounts"] == ["A", "B", "C"]


def test_cycle_set_independent_of_insertion_order():
    edges = [
        ("A", "B", 100, 0), ("B", "C", 100, 1), ("C", "A", 100, 2),
        ("B", "D", 100, 3), ("D", "C", 100, 4), ("C", "E", 100, 5),
        ("E", "A", 100, 6), ("D", "A", 100, 7),
    ]
    forward = detect_cycles(build_transaction_graph(make_transactions(edges)))
    backward = detect_cycles(build_transaction_graph(list(reversed(make_transactions(edges)))))

    forward_keys = {r["canonical_key"] for r in forward["rings"]}
    backward_keys = {r["canonical_key"] for r in backward["rings"]}
    assert forward_keys == backward_keys
    assert "A|B|C" in forward_keys
    assert "A|B|D" in forward_keys
    assert len(forward_keys) == len(forward["rings"])


def test_each_cycle_reported_once(make_graph, three_cycle_edges):
    # Second round over the same loop must not duplicate the ring
    second_round = [(s, r, a, h + 5) for s, r, a, h in three_cycle_edges]
    result = detect_cycles(make_graph(three_cycle_edges + second_round))
    assert len(result["rings"]) == 1


def test_ceiling_stops_search(make_graph):
    edges = []
    for k in range(4):
        a, b, c = f"A{k}", f"B{k}", f"C{k}"
        edges += [(a, b, 100, 0), (b, c, 100, 1), (c, a, 100, 2)]
    result = detect_cycles(make_graph(edges), max_cycles=2)

    assert len(result["rings"]) == 2
    assert result["truncated"] is True


def test_ring_ids_continue_from_offset(make_graph, three_cycle_edges):
    result = detect_cycles(make_graph(three_cycle_edges), ring_offset=4)
    assert result["rings"][0]["ring_id"] == "RING_005"
    assert result["next_ring_index"] == 5


@pytest.mark.parametrize("length,temporal,similar,expected", [
    (3, False, False, 40.0),
    (3, True, True, 60.0),
    (4, True, False, 40.0),
    (5, False, True, 40.0),
])
def test_cycle_risk_score(length, temporal, similar, expected):
    assert cycle_risk_score(length, temporal, similar) == expected


def test_ceiling_holds_inside_a_single_seed(make_graph):
    # Every loop passes through X, so X's own search finds all four
    edges = []
    for k in range(4):
        edges += [("X", f"A{k}", 100, 0), (f"A{k}", f"B{k}", 100, 1), (f"B{k}", "X", 100, 2)]
    result = detect_cycles(make_graph(edges), max_cycles=2)

    assert len(result["rings"]) == 2
    assert all("X" in ring["member_accounts"] for ring in result["rings"])
    assert result["truncated"] is True
