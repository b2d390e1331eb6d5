from detection.layering import detect_layering, identify_shell_accounts, is_shell_account


def test_shell_chain_detected(make_graph, shell_chain_edges):
    G = make_graph(shell_chain_edges)
    result = detect_layering(G)

    assert result["shell_accounts"] == {"S1", "S2"}
    assert len(result["rings"]) == 1
    ring = result["rings"][0]
    assert ring["pattern_type"] == "layering"
    assert ring["chain"] == ["A", "S1", "S2", "B"]
    assert ring["member_accounts"] == ["A", "S1", "S2", "B"]
    assert ring["hop_count"] == 3
    assert ring["shell_count"] == 2
    assert ring["temporal_continuity"] is True
    assert ring["amount_preservation"] is True
    assert ring["risk_score"] == 60.0
    assert result["layering_accounts"] == {"A", "S1", "S2", "B"}


def test_busy_intermediates_are_not_shells(make_graph):
    edges = [("A", "X", 5000, 0), ("X", "Y", 4900, 1), ("Y", "B", 4800, 2)]
    edges += [(f"PX{i}", "X", 10, 3 + i) for i in range(4)]
    edges += [(f"PY{i}", "Y", 10, 3 + i) for i in range(4)]
    result = detect_layering(make_graph(edges))

    assert result["rings"] == []


def test_one_busy_intermediate_breaks_the_shell_share(make_graph):
    edges = [
        ("A", "S1", 5000, 0),
        ("S1", "N", 4900, 1),
        ("N", "S2", 4800, 2),
        ("S2", "B", 4700, 3),
    ]
    edges += [(f"P{i}", "N", 10, 4 + i) for i in range(3)]
    result = detect_layering(make_graph(edges))

    assert result["rings"] == []


def test_chain_without_timing_or_amount_evidence_is_dropped(make_graph):
    result = detect_layering(make_graph([
        ("A", "S1", 5000, 0),
        ("S1", "S2", 100, 200),
        ("S2", "B", 5000, 400),
    ]))
    assert result["rings"] == []


def test_backwards_timing_keeps_amount_evidence(make_graph):
    result = detect_layering(make_graph([
        ("A", "S1", 5000, 200),
        ("S1", "S2", 4000, 100),
        ("S2", "B", 3000, 150),
    ]))

    ring = result["rings"][0]
    assert ring["temporal_continuity"] is False
    assert ring["amount_preservation"] is True
    assert ring["risk_score"] == 50.0


def test_longer_chain_reports_every_qualifying_prefix(make_graph):
    result = detect_layering(make_graph([
        ("A", "S1", 1000, 0),
        ("S1", "S2", 1000, 1),
        ("S2", "S3", 1000, 2),
        ("S3", "B", 1000, 3),
    ]))

    by_hops = {ring["hop_count"]: ring for ring in result["rings"]}
    assert sorted(by_hops) == [3, 4]
    assert by_hops[3]["chain"] == ["A", "S1", "S2", "S3"]
    assert by_hops[3]["risk_score"] == 60.0
    assert by_hops[4]["chain"] == ["A", "S1", "S2", "S3", "B"]
    assert by_hops[4]["shell_count"] == 3
    assert by_hops[4]["risk_score"] == 70.0


def test_walk_stops_at_eight_hops(make_graph):
    nodes = ["A"] + [f"S{i}" for i in range(1, 10)] + ["B"]
    edges = [(nodes[i], nodes[i + 1], 1000, i) for i in range(len(nodes) - 1)]
    result = detect_layering(make_graph(edges))

    hops = sorted(ring["hop_count"] for ring in result["rings"])
    assert hops == [3, 4, 5, 6, 7, 8]


def test_ring_ids_continue_from_offset(make_graph, shell_chain_edges):
    result = detect_layering(make_graph(shell_chain_edges), ring_offset=5)
    assert result["rings"][0]["ring_id"] == "RING_006"
    assert result["next_ring_index"] == 6


def test_pattern_ceiling(make_graph):
    edges = [(f"S{i}", f"S{i + 1}", 1000, i) for i in range(6)]
    edges = [("A", "S0", 1000, -1)] + edges
    result = detect_layering(make_graph(edges), max_patterns=2)

    assert len(result["rings"]) == 2
    assert result["truncated"] is True


def test_graph_without_shells(make_graph, fan_in_edges):
    G = make_graph(fan_in_edges)
    assert identify_shell_accounts(G) == set()
    result = detect_layering(G)
    assert result["rings"] == []
    assert result["next_ring_index"] == 0


def test_shell_bounds():
    assert is_shell_account({"in_tx_count": 1, "out_tx_count": 1})
    assert is_shell_account({"in_tx_count": 2, "out_tx_count": 1})
    assert not is_shell_account({"in_tx_count": 1, "out_tx_count": 0})
    assert not is_shell_account({"in_tx_count": 2, "out_tx_count": 2})
