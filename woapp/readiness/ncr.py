"""Non-conformance report workflow rules and repeat root-cause analysis."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Iterable, Mapping

from .errors import NCRTransitionError


class NCRStatus(str, Enum):
    OPEN = "OPEN"
    ACTION_IN_PROGRESS = "ACTION_IN_PROGRESS"
    EFFECTIVENESS_PENDING = "EFFECTIVENESS_PENDING"
    CLOSED = "CLOSED"

    def __str__(self) -> str:
        return self.value


NCR_STATUS_LABELS = {
    NCRStatus.OPEN: "Open",
    NCRStatus.ACTION_IN_PROGRESS: "Action in Progress",
    NCRStatus.EFFECTIVENESS_PENDING: "Effectiveness Pending",
    NCRStatus.CLOSED: "Closed",
}

ACTION_FIELDS = ("disposition", "root_cause", "corrective_action", "preventive_action")

CLOSE_REQUIREMENTS = (
    ("disposition", "Disposition"),
    ("root_cause", "Root Cause"),
    ("corrective_action", "Corrective Action"),
    ("preventive_action", "Preventive Action"),
    ("effectiveness_check", "Effectiveness Check"),
    ("effectiveness_verified", "Effectiveness Verification"),
)

UNSPECIFIED_ROOT_CAUSE = "Unspecified"


def parse_ncr_status(value: str | NCRStatus | None) -> NCRStatus:
    if isinstance(value, NCRStatus):
        return value
    text = (value or "").strip().upper().replace(" ", "_")
    try:
        return NCRStatus(text)
    except ValueError:
        return NCRStatus.OPEN


def _filled(fields: Mapping[str, object], name: str) -> bool:
    value = fields.get(name)
    if isinstance(value, str):
        return bool(value.strip())
    return bool(value)


def next_ncr_status(
    current: str | NCRStatus | None, fields: Mapping[str, object]
) -> NCRStatus:
    """Status an NCR moves to after its fields are saved.

    Saving never closes an NCR; that goes through :func:`close_ncr`.
    """

    status = parse_ncr_status(current)
    if status is NCRStatus.CLOSED:
        return status

    if all(_filled(fields, name) for name in ACTION_FIELDS):
        if not (
            _filled(fields, "effectiveness_check")
            and _filled(fields, "effectiveness_verified")
        ):
            return NCRStatus.EFFECTIVENESS_PENDING
        return status
    if any(_filled(fields, name) for name in ACTION_FIELDS):
        return NCRStatus.ACTION_IN_PROGRESS
    return status


def missing_close_requirements(fields: Mapping[str, object]) -> list[str]:
    return [label for name, label in CLOSE_REQUIREMENTS if not _filled(fields, name)]


def close_ncr(
    current: str | NCRStatus | None,
    fields: Mapping[str, object],
    *,
    is_quality_user: bool,
) -> NCRStatus:
    if parse_ncr_status(current) is NCRStatus.CLOSED:
        raise NCRTransitionError("NCR is already closed.")
    if not is_quality_user:
        raise NCRTransitionError("Only Quality users can close NCRs.")

    missing = missing_close_requirements(fields)
    if missing:
        raise NCRTransitionError(
            "Cannot close NCR. Missing: " + ", ".join(missing), missing=missing
        )
    return NCRStatus.CLOSED


@dataclass(frozen=True)
class NCRRecord:
    id: int | None
    root_cause: str | None
    raised_at: datetime | date | None
    status: str | None = None


@dataclass(frozen=True)
class RepeatRootCause:
    root_cause: str
    count: int


def _as_date(value: datetime | date | None) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    return value


def repeat_root_causes(
    ncrs: Iterable[NCRRecord],
    *,
    window_days: int,
    today: date | None = None,
) -> tuple[list[RepeatRootCause], float]:
    """Root causes that recur within the trailing window, and the repeat rate.

    Root causes are compared after trimming and case folding; the first
    spelling seen is the one reported. NCRs without a date are ignored.
    """

    if window_days <= 0:
        raise ValueError("window_days must be positive.")

    current_day = today or date.today()
    cutoff = current_day - timedelta(days=window_days)

    counts: Counter[str] = Counter()
    display: dict[str, str] = {}
    considered = 0
    for ncr in ncrs:
        raised = _as_date(ncr.raised_at)
        if raised is None or raised < cutoff or raised > current_day:
            continue
        considered += 1
        cause = (ncr.root_cause or "").strip() or UNSPECIFIED_ROOT_CAUSE
        key = cause.casefold()
        display.setdefault(key, cause)
        counts[key] += 1

    repeats = [
        RepeatRootCause(root_cause=display[key], count=count)
        for key, count in counts.items()
        if count > 1
    ]
    repeats.sort(key=lambda item: (-item.count, item.root_cause))

    repeated_total = sum(item.count - 1 for item in repeats)
    rate = (repeated_total / considered) * 100 if considered else 0.0
    return repeats, rate
