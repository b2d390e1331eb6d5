import networkx as nx

from detection.scoring import (
    compute_suspicion_scores,
    false_positive_deductions,
    smurfing_contribution,
)


def cycle_ring(ring_id, members, temporal=True, similar=True):
    return {
        "ring_id": ring_id,
        "member_accounts": members,
        "pattern_type": "cycle",
        "cycle_length": len(members),
        "temporal_proximity": temporal,
        "amount_similarity": similar,
    }


def smurf_ring(ring_id, members, direction, high_velocity=False):
    return {
        "ring_id": ring_id,
        "member_accounts": members,
        "pattern_type": "smurfing",
        "direction": direction,
        "velocity": 0.9 if high_velocity else 0.0,
        "high_velocity": high_velocity,
    }


def layer_ring(ring_id, members):
    return {
        "ring_id": ring_id,
        "member_accounts": members,
        "pattern_type": "layering",
        "hop_count": len(members) - 1,
    }


def results(*rings):
    return {"rings": list(rings)}


def test_best_ring_per_family_and_sum_across_families():
    cycles = results(
        cycle_ring("RING_001", ["X", "P", "Q"]),
        cycle_ring("RING_002", ["X", "P", "Q", "R"], temporal=False, similar=False),
    )
    smurfs = results(smurf_ring("RING_003", ["H", "X"], "fan_in"))
    scores = compute_suspicion_scores(nx.DiGraph(), cycles, smurfs, results())

    by_id = {s["account_id"]: s for s in scores}
    assert by_id["X"]["suspicion_score"] == 95.0
    assert by_id["X"]["breakdown"] == {"cycle": 60.0, "smurfing": 35.0}
    assert by_id["R"]["suspicion_score"] == 30.0
    assert by_id["X"]["ring_id"] == "RING_001"
    assert by_id["X"]["detected_patterns"] == ["cycle_length_3", "cycle_length_4", "fan_in"]


def test_score_clamped_at_hundred():
    cycles = results(cycle_ring("RING_001", ["X", "P", "Q"]))
    smurfs = results(smurf_ring("RING_002", ["X", "Y"], "both", high_velocity=True))
    layers = results(layer_ring("RING_003", ["X", "S1", "S2", "S3", "B"]))
    scores = compute_suspicion_scores(nx.DiGraph(), cycles, smurfs, layers)

    x = next(s for s in scores if s["account_id"] == "X")
    assert x["suspicion_score"] == 100.0
    assert x["detected_patterns"] == [
        "cycle_length_3", "fan_in", "fan_out", "high_velocity", "layered_shell",
    ]


def test_sorted_by_score_then_account_id():
    cycles = results(cycle_ring("RING_001", ["C", "A", "B"]))
    layers = results(layer_ring("RING_002", ["Z", "Y", "W", "V"]))
    scores = compute_suspicion_scores(nx.DiGraph(), cycles, results(), layers)

    assert [s["account_id"] for s in scores] == ["A", "B", "C", "V", "W", "Y", "Z"]
    assert [s["suspicion_score"] for s in scores] == [60.0] * 3 + [25.0] * 4


def test_nothing_detected_nothing_scored():
    assert compute_suspicion_scores(nx.DiGraph(), results(), results(), results()) == []


def test_high_velocity_flag_wins_over_rounded_velocity():
    ring = smurf_ring("RING_001", ["H"], "fan_out")
    ring["velocity"] = 0.7
    ring["high_velocity"] = False
    assert smurfing_contribution(ring) == 35.0


def test_stable_recurring_deduction(make_graph):
    G = make_graph([("A", "B", 50, i) for i in range(3)] + [("B", "A", 50, 10 + i) for i in range(3)])
    cycles = results(cycle_ring("RING_001", ["A", "C", "D"]))
    scores = compute_suspicion_scores(G, cycles, results(), results())

    a = next(s for s in scores if s["account_id"] == "A")
    assert a["suspicion_score"] == 45.0
    assert a["breakdown"]["stable_recurring"] == -15.0


def test_merchant_surfacing_elsewhere_is_overridden(make_graph, merchant_edges):
    edges = merchant_edges + [
        ("MERCHANT", "S1", 100, 51),
        ("S1", "S2", 100, 52),
        ("S2", "OUT", 100, 53),
    ]
    G = make_graph(edges)
    deductions = false_positive_deductions(G.nodes["MERCHANT"], in_cycle=False)
    assert deductions == {
        "merchant_like": 30.0,
        "stable_recurring": 15.0,
        "high_volume_merchant": 40.0,
    }

    layers = results(layer_ring("RING_001", ["MERCHANT", "S1", "S2", "OUT"]))
    scores = compute_suspicion_scores(G, results(), results(), layers)
    assert "MERCHANT" not in {s["account_id"] for s in scores}
    assert {s["account_id"] for s in scores} == {"S1", "S2", "OUT"}


def test_cycle_members_keep_high_volume_discount_off(make_graph, merchant_edges):
    G = make_graph(merchant_edges)
    deductions = false_positive_deductions(G.nodes["MERCHANT"], in_cycle=True)
    assert "high_volume_merchant" not in deductions
