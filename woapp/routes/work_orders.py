from __future__ import annotations

from flask import Blueprint, abort, current_app, jsonify, request

from woapp.extensions import db
from woapp.models import WorkOrder
from woapp.readiness import WriteRejected
from woapp.services import work_order_status


bp = Blueprint("work_orders", __name__, url_prefix="/work-orders")


def _snapshot_or_404(work_order_id: int):
    snapshot = work_order_status.load_snapshot(work_order_id)
    if snapshot is None:
        abort(404, description="Work order not found.")
    return snapshot


def _parse_ids(raw: str | None) -> list[int]:
    ids = []
    for part in (raw or "").split(","):
        part = part.strip()
        if part.isdigit():
            ids.append(int(part))
    return ids


@bp.get("/<int:work_order_id>/completion-status")
def completion_status(work_order_id: int):
    snapshot = _snapshot_or_404(work_order_id)
    payload = work_order_status.completion_of(snapshot).to_dict()
    payload["work_order_id"] = work_order_id
    payload["version"] = snapshot.version
    return jsonify(payload)


@bp.get("/<int:work_order_id>/quantities")
def quantities(work_order_id: int):
    snapshot = _snapshot_or_404(work_order_id)
    return jsonify(work_order_status.quantities_of(snapshot))


@bp.get("/<int:work_order_id>/qc-gates")
def qc_gates(work_order_id: int):
    snapshot = _snapshot_or_404(work_order_id)
    payload = work_order_status.gate_state_of(snapshot).to_dict()
    payload["work_order_id"] = work_order_id
    return jsonify(payload)


@bp.post("/<int:work_order_id>/mark-complete")
def mark_complete(work_order_id: int):
    db.get_or_404(WorkOrder, work_order_id, description="Work order not found.")

    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({"error": "Request body must be a JSON object."}), 400
    if data.get("confirm") is not True:
        return (
            jsonify({"error": "Confirm the completion before marking the work order complete."}),
            400,
        )

    actor = data.get("actor")
    expected_version = data.get("expected_version")
    if actor is not None and not isinstance(actor, str):
        return jsonify({"error": "actor must be a string."}), 400
    if expected_version is not None and not isinstance(expected_version, str):
        return jsonify({"error": "expected_version must be a string."}), 400

    actor = (actor or "").strip() or None
    try:
        status = work_order_status.mark_complete(
            work_order_id, actor, expected_version=expected_version
        )
    except WriteRejected as exc:
        fresh = work_order_status.completion_for(work_order_id)
        current_app.logger.warning(
            "Mark complete rejected for work order %s: %s", work_order_id, exc.message
        )
        return (
            jsonify(
                {
                    "error": exc.message,
                    "blockers": exc.blockers,
                    "completion_status": fresh.to_dict() if fresh else None,
                }
            ),
            409,
        )

    payload = status.to_dict()
    payload["work_order_id"] = work_order_id
    payload["status"] = "completed"
    return jsonify(payload)


@bp.get("/stage-view")
def stage_view():
    ids = _parse_ids(request.args.get("ids"))
    return jsonify({"work_orders": work_order_status.stage_view(ids or None)})
