import os
import sys

import pytest

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from woapp.readiness import (
    GateVerdict,
    InvalidInput,
    QCStatus,
    aggregate_gates,
    build_gate_state,
    first_piece_display_status,
    normalize_qc_status,
    resolve_gate_status,
)
from woapp.readiness.statuses import status_label


RAW_STATUSES = [
    None,
    "",
    "   ",
    "passed",
    "PASS",
    " Passed ",
    "fail",
    "FAILED",
    "pending",
    "blocked",
    "waive",
    "Waived",
    "hold",
    "not started",
    "NOT_STARTED",
    "approved",
    "in review",
    "passed!",
]


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("pass", QCStatus.PASSED),
        ("Passed", QCStatus.PASSED),
        ("  FAIL ", QCStatus.FAILED),
        ("failed", QCStatus.FAILED),
        ("waive", QCStatus.WAIVED),
        ("WAIVED", QCStatus.WAIVED),
        ("hold", QCStatus.HOLD),
        ("blocked", QCStatus.BLOCKED),
        ("not started", QCStatus.NOT_STARTED),
        ("not_started", QCStatus.NOT_STARTED),
        ("pending", QCStatus.PENDING),
    ],
)
def test_normalize_known_synonyms(raw, expected):
    assert normalize_qc_status(raw) is expected


@pytest.mark.parametrize("raw", [None, "", "   ", "approved", "in review", "passed!", "n/a"])
def test_normalize_unknown_defaults_to_pending(raw):
    assert normalize_qc_status(raw) is QCStatus.PENDING


@pytest.mark.parametrize("raw", RAW_STATUSES)
def test_normalize_is_idempotent(raw):
    once = normalize_qc_status(raw)
    assert normalize_qc_status(once) is once
    assert normalize_qc_status(once.value) is once


def test_normalize_rejects_non_string_input():
    with pytest.raises(InvalidInput):
        normalize_qc_status(42)
    with pytest.raises(TypeError):
        normalize_qc_status(["passed"])


def test_status_labels_are_human_readable():
    assert status_label("not started") == "Not Started"
    assert status_label(None) == "Pending"


@pytest.mark.parametrize("raw", RAW_STATUSES)
def test_resolve_without_prerequisite_is_passthrough(raw):
    assert resolve_gate_status(raw, False) is normalize_qc_status(raw)


def test_resolve_blocks_only_pending_states():
    assert resolve_gate_status("pending", True) is QCStatus.BLOCKED
    assert resolve_gate_status(None, True) is QCStatus.BLOCKED
    assert resolve_gate_status("not started", True) is QCStatus.BLOCKED


@pytest.mark.parametrize("raw", ["passed", "failed", "waived", "hold"])
def test_resolve_never_overrides_terminal_outcomes(raw):
    assert resolve_gate_status(raw, True) is normalize_qc_status(raw)


def test_first_piece_is_gated_by_material():
    assert first_piece_display_status("pending", None) is QCStatus.BLOCKED
    assert first_piece_display_status("pending", "passed") is QCStatus.PENDING
    assert first_piece_display_status("pending", "waived") is QCStatus.PENDING
    assert first_piece_display_status("failed", "pending") is QCStatus.FAILED


@pytest.mark.parametrize(
    "material, first_piece, expected",
    [
        ("failed", "passed", GateVerdict.FAILED),
        ("passed", "failed", GateVerdict.FAILED),
        ("pending", "failed", GateVerdict.FAILED),
        ("passed", "passed", GateVerdict.COMPLETE),
        ("waived", "passed", GateVerdict.COMPLETE),
        ("pending", "pending", GateVerdict.BLOCKED),
        ("not started", "passed", GateVerdict.BLOCKED),
        ("passed", "pending", GateVerdict.PENDING),
        ("hold", "pending", GateVerdict.PENDING),
        ("passed", "hold", GateVerdict.PENDING),
    ],
)
def test_aggregate_precedence(material, first_piece, expected):
    assert aggregate_gates(material, first_piece) is expected


def test_gate_state_applies_display_resolution_before_aggregation():
    state = build_gate_state(None, "passed")

    assert state.material is QCStatus.PENDING
    assert state.first_piece_raw is QCStatus.PASSED
    assert state.overall is GateVerdict.BLOCKED
    assert not state.is_complete


def test_gate_state_only_complete_when_material_complete():
    for material in RAW_STATUSES:
        for first_piece in RAW_STATUSES:
            state = build_gate_state(material, first_piece)
            if state.first_piece is QCStatus.PASSED:
                assert state.first_piece_raw is QCStatus.PASSED
            if state.is_complete:
                assert state.material in {QCStatus.PASSED, QCStatus.WAIVED}
                assert state.first_piece in {QCStatus.PASSED, QCStatus.WAIVED}


def test_gate_state_to_dict_uses_plain_values():
    payload = build_gate_state("pass", "waive").to_dict()

    assert payload == {
        "material_qc_status": "passed",
        "first_piece_qc_status": "waived",
        "first_piece_qc_raw_status": "waived",
        "overall": "complete",
        "is_complete": True,
    }
