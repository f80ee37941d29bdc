import os
import sys
from datetime import date, datetime

import pytest

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from woapp.readiness import NCRTransitionError
from woapp.readiness.ncr import (
    NCRRecord,
    NCRStatus,
    close_ncr,
    missing_close_requirements,
    next_ncr_status,
    parse_ncr_status,
    repeat_root_causes,
)


COMPLETE_FIELDS = {
    "disposition": "Rework",
    "root_cause": "Worn fixture",
    "corrective_action": "Replaced fixture",
    "preventive_action": "Added fixture to PM schedule",
    "effectiveness_check": "No repeat in 30 days",
    "effectiveness_verified": True,
}


def test_parse_status_defaults_to_open():
    assert parse_ncr_status(None) is NCRStatus.OPEN
    assert parse_ncr_status("action in progress") is NCRStatus.ACTION_IN_PROGRESS
    assert parse_ncr_status("bogus") is NCRStatus.OPEN


def test_partial_actions_move_to_in_progress():
    assert (
        next_ncr_status("OPEN", {"disposition": "Scrap"})
        is NCRStatus.ACTION_IN_PROGRESS
    )


def test_all_actions_move_to_effectiveness_pending():
    fields = dict(COMPLETE_FIELDS, effectiveness_check="", effectiveness_verified=False)

    assert next_ncr_status("ACTION_IN_PROGRESS", fields) is NCRStatus.EFFECTIVENESS_PENDING


def test_blank_fields_leave_status_unchanged():
    assert next_ncr_status("OPEN", {"disposition": "   "}) is NCRStatus.OPEN


def test_closed_ncr_stays_closed():
    assert next_ncr_status("CLOSED", {}) is NCRStatus.CLOSED


def test_missing_requirements_in_fixed_order():
    assert missing_close_requirements({"root_cause": "Operator error"}) == [
        "Disposition",
        "Corrective Action",
        "Preventive Action",
        "Effectiveness Check",
        "Effectiveness Verification",
    ]
    assert missing_close_requirements(COMPLETE_FIELDS) == []


def test_close_requires_quality_role():
    with pytest.raises(NCRTransitionError):
        close_ncr("EFFECTIVENESS_PENDING", COMPLETE_FIELDS, is_quality_user=False)


def test_close_reports_missing_requirements():
    with pytest.raises(NCRTransitionError) as excinfo:
        close_ncr("OPEN", {"disposition": "Scrap"}, is_quality_user=True)

    assert "Root Cause" in excinfo.value.missing
    assert excinfo.value.message.startswith("Cannot close NCR.")


def test_close_succeeds_when_complete():
    assert (
        close_ncr("EFFECTIVENESS_PENDING", COMPLETE_FIELDS, is_quality_user=True)
        is NCRStatus.CLOSED
    )


def test_close_rejects_already_closed():
    with pytest.raises(NCRTransitionError):
        close_ncr("CLOSED", COMPLETE_FIELDS, is_quality_user=True)


def test_repeat_root_causes_within_window():
    today = date(2024, 6, 30)
    ncrs = [
        NCRRecord(1, "Worn fixture", datetime(2024, 6, 1)),
        NCRRecord(2, "worn fixture ", datetime(2024, 6, 15)),
        NCRRecord(3, "Worn fixture", date(2024, 6, 20)),
        NCRRecord(4, None, datetime(2024, 5, 1)),
        NCRRecord(5, "", datetime(2024, 5, 2)),
        NCRRecord(6, "Wrong drawing rev", datetime(2024, 6, 3)),
        NCRRecord(7, "Wrong drawing rev", datetime(2023, 1, 1)),
        NCRRecord(8, "Worn fixture", None),
    ]

    repeats, rate = repeat_root_causes(ncrs, window_days=90, today=today)

    assert [(item.root_cause, item.count) for item in repeats] == [
        ("Worn fixture", 3),
        ("Unspecified", 2),
    ]
    # (3 - 1) + (2 - 1) repeats over 6 NCRs in the window
    assert rate == pytest.approx(50.0)


def test_repeat_window_is_configurable():
    today = date(2024, 6, 30)
    ncrs = [
        NCRRecord(1, "Burr", datetime(2024, 6, 25)),
        NCRRecord(2, "Burr", datetime(2024, 5, 1)),
    ]

    short_repeats, short_rate = repeat_root_causes(ncrs, window_days=30, today=today)
    long_repeats, _ = repeat_root_causes(ncrs, window_days=90, today=today)

    assert short_repeats == []
    assert short_rate == 0
    assert long_repeats[0].count == 2


def test_repeat_window_must_be_positive():
    with pytest.raises(ValueError):
        repeat_root_causes([], window_days=0)
