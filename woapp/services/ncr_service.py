from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Iterable, Mapping

from flask import current_app

from woapp.extensions import db
from woapp.models import NCR, AuditLog
from woapp.readiness import NCRTransitionError
from woapp.readiness.ncr import (
    NCR_STATUS_LABELS,
    NCRStatus,
    close_ncr,
    missing_close_requirements,
    next_ncr_status,
    parse_ncr_status,
    repeat_root_causes,
)

logger = logging.getLogger(__name__)

QUALITY_ROLE = "quality"
AUDIT_ACTION_NCR_CLOSED = "NCR_CLOSED"

_TEXT_FIELDS = (
    "title",
    "description",
    "disposition",
    "root_cause",
    "corrective_action",
    "preventive_action",
    "effectiveness_check",
)


def _coerce_bool(value: object) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def describe(ncr: NCR) -> dict[str, object]:
    data = ncr.to_dict()
    status = parse_ncr_status(ncr.status)
    data["status_label"] = NCR_STATUS_LABELS[status]
    data["missing_close_requirements"] = missing_close_requirements(
        ncr.workflow_fields()
    )
    return data


def save_fields(ncr: NCR, fields: Mapping[str, object]) -> NCR:
    """Apply edited fields and advance the status the way the workflow allows."""

    if parse_ncr_status(ncr.status) is NCRStatus.CLOSED:
        raise NCRTransitionError("Closed NCRs cannot be edited.")

    for name in _TEXT_FIELDS:
        if name in fields:
            value = fields[name]
            if value is not None:
                value = str(value).strip() or None
            setattr(ncr, name, value)
    if "effectiveness_verified" in fields:
        ncr.effectiveness_verified = _coerce_bool(fields["effectiveness_verified"])

    previous = ncr.status
    ncr.status = next_ncr_status(previous, ncr.workflow_fields()).value
    db.session.commit()

    if ncr.status != previous:
        logger.info("NCR %s moved from %s to %s", ncr.ncr_number, previous, ncr.status)
    return ncr


def close(ncr: NCR, actor: str | None, roles: Iterable[str] = ()) -> NCR:
    is_quality_user = QUALITY_ROLE in {role.strip().lower() for role in roles}
    try:
        new_status = close_ncr(
            ncr.status, ncr.workflow_fields(), is_quality_user=is_quality_user
        )
    except NCRTransitionError as exc:
        logger.warning("Refused to close NCR %s: %s", ncr.ncr_number, exc.message)
        raise

    ncr.status = new_status.value
    ncr.closed_at = datetime.utcnow()
    ncr.closed_by = actor
    db.session.add(
        AuditLog(
            action=AUDIT_ACTION_NCR_CLOSED,
            entity_type="ncr",
            entity_id=ncr.id,
            actor=actor,
            details={"ncr_number": ncr.ncr_number},
        )
    )
    db.session.commit()
    logger.info("NCR %s closed by %s", ncr.ncr_number, actor or "unknown")
    return ncr


def repeat_root_cause_report(
    today: date | None = None, window_days: int | None = None
) -> dict[str, object]:
    window = window_days or int(current_app.config.get("NCR_REPEAT_WINDOW_DAYS", 90))
    current_day = today or date.today()
    cutoff = datetime.combine(current_day - timedelta(days=window), datetime.min.time())

    ncrs = NCR.query.filter(NCR.raised_at >= cutoff).order_by(NCR.raised_at).all()
    repeats, rate = repeat_root_causes(
        (ncr.to_record() for ncr in ncrs), window_days=window, today=current_day
    )
    return {
        "window_days": window,
        "repeat_root_causes": [
            {"root_cause": item.root_cause, "count": item.count} for item in repeats
        ],
        "repeat_ncr_rate": round(rate, 2),
    }
