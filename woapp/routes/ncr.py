from __future__ import annotations

from datetime import date

from flask import Blueprint, current_app, jsonify, request

from woapp.extensions import db
from woapp.models import NCR
from woapp.readiness import NCRTransitionError
from woapp.services import ncr_service


bp = Blueprint("ncr", __name__, url_prefix="/ncrs")


def _transition_error(exc: NCRTransitionError):
    return jsonify({"error": exc.message, "missing": exc.missing}), 400


@bp.get("/<int:ncr_id>")
def ncr_detail(ncr_id: int):
    ncr = db.get_or_404(NCR, ncr_id, description="NCR not found.")
    return jsonify(ncr_service.describe(ncr))


@bp.post("/<int:ncr_id>")
def update_ncr(ncr_id: int):
    ncr = db.get_or_404(NCR, ncr_id, description="NCR not found.")
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({"error": "Request body must be a JSON object."}), 400
    try:
        ncr_service.save_fields(ncr, data)
    except NCRTransitionError as exc:
        return _transition_error(exc)
    return jsonify(ncr_service.describe(ncr))


@bp.post("/<int:ncr_id>/close")
def close_ncr(ncr_id: int):
    ncr = db.get_or_404(NCR, ncr_id, description="NCR not found.")
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({"error": "Request body must be a JSON object."}), 400

    actor = data.get("actor")
    if actor is not None and not isinstance(actor, str):
        return jsonify({"error": "actor must be a string."}), 400

    roles = data.get("roles") or []
    if isinstance(roles, str):
        roles = [part for part in roles.split(",") if part.strip()]
    elif not isinstance(roles, list) or not all(isinstance(role, str) for role in roles):
        return jsonify({"error": "roles must be a list of role names."}), 400

    try:
        ncr_service.close(ncr, (actor or "").strip() or None, roles)
    except NCRTransitionError as exc:
        return _transition_error(exc)
    return jsonify(ncr_service.describe(ncr))


@bp.get("/analytics/repeat-root-causes")
def repeat_root_causes():
    window_days = request.args.get("window_days", type=int)
    if window_days is not None and window_days <= 0:
        return jsonify({"error": "window_days must be a positive number of days."}), 400

    today = None
    raw_today = request.args.get("today")
    if raw_today:
        try:
            today = date.fromisoformat(raw_today)
        except ValueError:
            current_app.logger.info("Ignoring invalid analytics date %r", raw_today)
            return jsonify({"error": "today must be an ISO date (YYYY-MM-DD)."}), 400

    return jsonify(
        ncr_service.repeat_root_cause_report(today=today, window_days=window_days)
    )
