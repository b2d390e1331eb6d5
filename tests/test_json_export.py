import copy
import json

import pytest

from utils.json_export import (
    ReportValidationError,
    build_ring_summary_table,
    generate_report,
    report_to_json_string,
    validate_report,
)


def sample_inputs():
    scores = [
        {"account_id": "A", "suspicion_score": 60.0, "detected_patterns": ["cycle_length_3"],
         "ring_id": "RING_001", "breakdown": {"cycle": 60.0}},
        {"account_id": "H", "suspicion_score": 35.0, "detected_patterns": ["fan_in"],
         "ring_id": "RING_002", "breakdown": {"smurfing": 35.0}},
    ]
    cycle_results = {"rings": [
        {"ring_id": "RING_001", "member_accounts": ["A", "B", "C"], "pattern_type": "cycle",
         "risk_score": 60.0, "cycle_length": 3},
    ]}
    smurfing_results = {"rings": [
        {"ring_id": "RING_002", "member_accounts": ["H", "S1"], "pattern_type": "smurfing",
         "risk_score": 35.0, "direction": "fan_in"},
    ]}
    layering_results = {"rings": [
        {"ring_id": "RING_003", "member_accounts": ["P", "S", "T", "Q"], "pattern_type": "layering",
         "risk_score": 60.0, "hop_count": 3},
    ]}
    return scores, cycle_results, smurfing_results, layering_results


def build_report(processing_time=1.23456):
    scores, cycles, smurfs, layers = sample_inputs()
    return generate_report(scores, cycles, smurfs, layers, total_accounts=9,
                           processing_time=processing_time)


def test_report_shape_and_field_order():
    report = build_report()

    assert list(report) == ["suspicious_accounts", "fraud_rings", "summary"]
    assert list(report["suspicious_accounts"][0]) == [
        "account_id", "suspicion_score", "detected_patterns", "ring_id",
    ]
    assert list(report["fraud_rings"][0]) == [
        "ring_id", "member_accounts", "pattern_type", "risk_score",
    ]
    assert report["summary"] == {
        "total_accounts_analyzed": 9,
        "suspicious_accounts_flagged": 2,
        "fraud_rings_detected": 3,
        "processing_time_seconds": 1.23,
    }


def test_rings_sorted_by_risk_with_stable_ties():
    report = build_report()
    assert [r["ring_id"] for r in report["fraud_rings"]] == ["RING_001", "RING_003", "RING_002"]


def test_detector_only_fields_stay_internal():
    report = build_report()
    assert "breakdown" not in report["suspicious_accounts"][0]
    assert "cycle_length" not in report["fraud_rings"][0]


def test_json_round_trip_is_plain():
    report = build_report()
    assert json.loads(report_to_json_string(report)) == report


def test_ring_summary_table():
    rows = build_ring_summary_table(build_report())
    assert rows[0]["Ring ID"] == "RING_001"
    assert rows[0]["Member Count"] == 3
    assert rows[0]["Member Account IDs"] == "A, B, C"


def test_empty_report_is_valid():
    report = generate_report([], {"rings": []}, {"rings": []}, {"rings": []}, 0, 0.001)
    assert report["suspicious_accounts"] == []
    assert report["fraud_rings"] == []
    assert report["summary"]["processing_time_seconds"] == 0.0


def _broken(mutate):
    report = copy.deepcopy(build_report())
    mutate(report)
    return report


@pytest.mark.parametrize("mutate", [
    lambda r: r["suspicious_accounts"].reverse(),
    lambda r: r["suspicious_accounts"][0].update(suspicion_score=101.0),
    lambda r: r["suspicious_accounts"][0].update(suspicion_score=float("nan")),
    lambda r: r["suspicious_accounts"][0].update(suspicion_score=60.05),
    lambda r: r["suspicious_accounts"][0].update(detected_patterns=["structuring"]),
    lambda r: r["suspicious_accounts"][0].update(account_id=""),
    lambda r: r["fraud_rings"][1].update(ring_id="RING_001"),
    lambda r: r["fraud_rings"][0].update(member_accounts=[]),
    lambda r: r["fraud_rings"][0].update(pattern_type="fan_in"),
    lambda r: r["summary"].update(fraud_rings_detected=-1),
    lambda r: r["summary"].update(processing_time_seconds=float("inf")),
])
def test_contract_violations_raise(mutate):
    with pytest.raises(ReportValidationError):
        validate_report(_broken(mutate))


def test_validation_error_is_a_value_error():
    assert issubclass(ReportValidationError, ValueError)
