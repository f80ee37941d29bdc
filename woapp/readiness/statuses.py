"""Normalization of free-form QC status strings.

Status values reach us from several tables and from manual entry, so the same
outcome is spelled many ways ("Pass", " passed ", "WAIVE"). Everything past
this module works with :class:`QCStatus` only.
"""

from __future__ import annotations

from enum import Enum

from .errors import InvalidInput


class QCStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    PENDING = "pending"
    BLOCKED = "blocked"
    WAIVED = "waived"
    HOLD = "hold"
    NOT_STARTED = "not_started"

    def __str__(self) -> str:
        return self.value


_SYNONYMS: dict[str, QCStatus] = {
    "pass": QCStatus.PASSED,
    "passed": QCStatus.PASSED,
    "fail": QCStatus.FAILED,
    "failed": QCStatus.FAILED,
    "pending": QCStatus.PENDING,
    "blocked": QCStatus.BLOCKED,
    "waive": QCStatus.WAIVED,
    "waived": QCStatus.WAIVED,
    "hold": QCStatus.HOLD,
    "not_started": QCStatus.NOT_STARTED,
    "not started": QCStatus.NOT_STARTED,
}

COMPLETE_STATUSES = frozenset({QCStatus.PASSED, QCStatus.WAIVED})
PENDING_STATUSES = frozenset({QCStatus.PENDING, QCStatus.NOT_STARTED})

STATUS_LABELS = {
    QCStatus.PASSED: "Passed",
    QCStatus.FAILED: "Failed",
    QCStatus.PENDING: "Pending",
    QCStatus.BLOCKED: "Blocked",
    QCStatus.WAIVED: "Waived",
    QCStatus.HOLD: "On Hold",
    QCStatus.NOT_STARTED: "Not Started",
}


def normalize_qc_status(value: str | QCStatus | None) -> QCStatus:
    """Map any raw status to a member of :class:`QCStatus`.

    Unknown, blank and missing values resolve to ``pending``. Only a value
    that is not a string (or ``None``) at all raises :class:`InvalidInput`.
    """

    if isinstance(value, QCStatus):
        return value
    if value is None:
        return QCStatus.PENDING
    if not isinstance(value, str):
        raise InvalidInput(
            f"QC status must be a string or None, got {type(value).__name__}."
        )

    return _SYNONYMS.get(value.strip().lower(), QCStatus.PENDING)


def is_gate_complete(status: str | QCStatus | None) -> bool:
    return normalize_qc_status(status) in COMPLETE_STATUSES


def is_gate_failed(status: str | QCStatus | None) -> bool:
    return normalize_qc_status(status) is QCStatus.FAILED


def is_gate_pending(status: str | QCStatus | None) -> bool:
    """True while the gate is waiting for someone to act on it."""

    return normalize_qc_status(status) in PENDING_STATUSES


def status_label(status: str | QCStatus | None) -> str:
    return STATUS_LABELS[normalize_qc_status(status)]
