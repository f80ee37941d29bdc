from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from flask import current_app
from sqlalchemy import and_, or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from woapp.extensions import db
from woapp.models import (
    AuditLog,
    Carton,
    Dispatch,
    ExternalMove,
    FinishedGoodsInventory,
    ProductionBatch,
    WorkOrder,
    WorkOrderStatus,
)
from woapp.readiness import (
    CompletionStatus,
    GateState,
    WriteRejected,
    aggregate_stage_quantities,
    build_gate_state,
    evaluate_completion,
    quantity_breakdown,
    stage_breakdown,
)
from woapp.readiness.quantities import (
    external_move_status,
    external_summary,
    stage_breakdown_by_work_order,
)
from woapp.readiness.records import (
    BatchRecord,
    CartonRecord,
    DispatchRecord,
    ExternalMoveRecord,
    InventoryRecord,
    WorkOrderRecord,
)

logger = logging.getLogger(__name__)

AUDIT_ACTION_COMPLETED = "WO_COMPLETED"


@dataclass(frozen=True)
class WorkOrderSnapshot:
    """Everything the readiness rules need for one work order, read together."""

    work_order: WorkOrderRecord
    version: str | None
    batches: tuple[BatchRecord, ...]
    cartons: tuple[CartonRecord, ...]
    dispatches: tuple[DispatchRecord, ...]
    external_moves: tuple[ExternalMoveRecord, ...]
    inventory: tuple[InventoryRecord, ...]

    @property
    def work_order_id(self) -> int | None:
        return self.work_order.id


def _snapshot_from(work_order: WorkOrder) -> WorkOrderSnapshot:
    batches = (
        ProductionBatch.query.filter_by(work_order_id=work_order.id)
        .order_by(ProductionBatch.batch_number, ProductionBatch.id)
        .all()
    )
    cartons = Carton.query.filter_by(work_order_id=work_order.id).order_by(Carton.id).all()
    dispatches = (
        Dispatch.query.filter_by(work_order_id=work_order.id).order_by(Dispatch.id).all()
    )
    moves = (
        ExternalMove.query.filter_by(work_order_id=work_order.id)
        .order_by(ExternalMove.id)
        .all()
    )

    inventory_filter = FinishedGoodsInventory.work_order_id == work_order.id
    if work_order.item_code:
        inventory_filter = or_(
            inventory_filter,
            and_(
                FinishedGoodsInventory.work_order_id.is_(None),
                FinishedGoodsInventory.item_code == work_order.item_code,
            ),
        )
    inventory = (
        FinishedGoodsInventory.query.filter(inventory_filter)
        .order_by(FinishedGoodsInventory.id)
        .all()
    )

    return WorkOrderSnapshot(
        work_order=work_order.to_record(),
        version=work_order.version,
        batches=tuple(batch.to_record() for batch in batches),
        cartons=tuple(carton.to_record() for carton in cartons),
        dispatches=tuple(dispatch.to_record() for dispatch in dispatches),
        external_moves=tuple(move.to_record() for move in moves),
        inventory=tuple(record.to_record() for record in inventory),
    )


def load_snapshot(work_order_id: int) -> WorkOrderSnapshot | None:
    work_order = db.session.get(WorkOrder, work_order_id)
    if work_order is None:
        return None
    return _snapshot_from(work_order)


def gate_state_of(snapshot: WorkOrderSnapshot) -> GateState:
    return build_gate_state(
        snapshot.work_order.material_qc_status,
        snapshot.work_order.first_piece_qc_status,
    )


def completion_of(snapshot: WorkOrderSnapshot) -> CompletionStatus:
    return evaluate_completion(
        snapshot.batches,
        snapshot.cartons,
        gate_state_of(snapshot),
        snapshot.work_order.ordered_qty,
    )


def _overdue_reference_day(today: date | None = None) -> date:
    grace_days = int(current_app.config.get("EXTERNAL_OVERDUE_GRACE_DAYS", 0) or 0)
    return (today or date.today()) - timedelta(days=grace_days)


def quantities_of(
    snapshot: WorkOrderSnapshot, today: date | None = None
) -> dict[str, object]:
    ordered = snapshot.work_order.ordered_qty
    totals = aggregate_stage_quantities(
        snapshot.work_order_id,
        snapshot.batches,
        snapshot.cartons,
        snapshot.external_moves,
        snapshot.inventory,
        item_code=snapshot.work_order.item_code,
    )
    reference_day = _overdue_reference_day(today)
    return {
        "work_order_id": snapshot.work_order_id,
        "ordered_qty": ordered,
        "totals": totals.as_dict(),
        "at_external": totals.at_external,
        "percentages": totals.percentages(ordered),
        "ratios": totals.ratios(ordered),
        "overflow": totals.overflow(ordered),
        "breakdown": quantity_breakdown(
            ordered, snapshot.batches, snapshot.cartons, snapshot.dispatches
        ).to_dict(),
        "stages": stage_breakdown(snapshot.batches).to_dict(),
        "external": external_summary(snapshot.external_moves, reference_day),
        "external_moves": [
            {
                "id": move.id,
                "process": move.process,
                "quantity_sent": move.quantity_sent,
                "quantity_returned": move.quantity_returned,
                "balance": move.balance,
                "status": external_move_status(move, reference_day),
            }
            for move in snapshot.external_moves
        ],
    }


def completion_for(work_order_id: int) -> CompletionStatus | None:
    snapshot = load_snapshot(work_order_id)
    if snapshot is None:
        return None
    return completion_of(snapshot)


def quantities_for(work_order_id: int, today: date | None = None) -> dict[str, object] | None:
    snapshot = load_snapshot(work_order_id)
    if snapshot is None:
        return None
    return quantities_of(snapshot, today)


def gate_state_for(work_order_id: int) -> GateState | None:
    snapshot = load_snapshot(work_order_id)
    if snapshot is None:
        return None
    return gate_state_of(snapshot)


def stage_view(work_order_ids: list[int] | None = None) -> list[dict[str, object]]:
    """Stage breakdown for every active work order (or the ids given)."""

    query = WorkOrder.query
    if work_order_ids:
        query = query.filter(WorkOrder.id.in_(work_order_ids))
    else:
        query = query.filter(WorkOrder.status.in_(sorted(WorkOrderStatus.ACTIVE_STATES)))
    work_orders = query.order_by(WorkOrder.wo_number).all()
    if not work_orders:
        return []

    batches = (
        ProductionBatch.query.filter(
            ProductionBatch.work_order_id.in_([wo.id for wo in work_orders])
        )
        .order_by(ProductionBatch.work_order_id, ProductionBatch.batch_number)
        .all()
    )
    by_work_order = stage_breakdown_by_work_order(batch.to_record() for batch in batches)

    rows = []
    for work_order in work_orders:
        breakdown = by_work_order.get(work_order.id)
        row = {
            "work_order_id": work_order.id,
            "wo_number": work_order.wo_number,
            "status": work_order.status,
        }
        row.update(breakdown.to_dict() if breakdown else stage_breakdown(()).to_dict())
        rows.append(row)
    return rows


def _audit_details(status: CompletionStatus) -> dict[str, object]:
    return {
        "total_produced": status.total_produced,
        "total_final_qc_approved": status.total_final_qc_approved,
        "total_packed": status.total_packed,
        "total_dispatched": status.total_dispatched,
        "ordered_qty": status.ordered_qty,
    }


def mark_complete(
    work_order_id: int,
    actor: str | None,
    expected_version: str | None = None,
) -> CompletionStatus:
    """Mark a work order complete after re-checking it against fresh data.

    Raises :class:`WriteRejected` when the order is missing, already complete,
    changed since ``expected_version`` was read, still blocked, changed by a
    concurrent write after the check, or when the write itself fails. The
    write is attempted once.
    """

    work_order = db.session.get(WorkOrder, work_order_id)
    if work_order is None:
        raise WriteRejected("Work order not found.", work_order_id=work_order_id)

    if work_order.status == WorkOrderStatus.COMPLETED:
        logger.warning("Work order %s is already completed", work_order.wo_number)
        raise WriteRejected(
            "Work order is already completed.", work_order_id=work_order_id
        )

    if expected_version is not None and expected_version != work_order.version:
        logger.warning(
            "Work order %s changed since it was read (expected %s, found %s)",
            work_order.wo_number,
            expected_version,
            work_order.version,
        )
        raise WriteRejected(
            "Work order was updated by someone else. Reload and try again.",
            work_order_id=work_order_id,
        )

    status = completion_of(_snapshot_from(work_order))
    if not status.can_mark_complete:
        logger.warning(
            "Rejected completion of work order %s: %s",
            work_order.wo_number,
            "; ".join(status.completion_blockers),
        )
        raise WriteRejected(
            "Work order cannot be completed yet.",
            work_order_id=work_order_id,
            blockers=status.completion_blockers,
        )

    wo_number = work_order.wo_number
    now = datetime.utcnow()
    try:
        # Conditional on the row still being open at the version we evaluated.
        result = db.session.execute(
            update(WorkOrder)
            .where(
                WorkOrder.id == work_order.id,
                WorkOrder.version_id == work_order.version_id,
                WorkOrder.status != WorkOrderStatus.COMPLETED,
            )
            .values(
                status=WorkOrderStatus.COMPLETED,
                production_complete=True,
                completed_at=now,
                updated_at=now,
                version_id=WorkOrder.version_id + 1,
            )
            .execution_options(synchronize_session=False)
        )
        db.session.expire(work_order)
        if result.rowcount != 1:
            raise StaleDataError(
                f"work_order {work_order_id} changed before it could be completed"
            )
        db.session.add(
            AuditLog(
                action=AUDIT_ACTION_COMPLETED,
                entity_type="work_order",
                entity_id=work_order_id,
                actor=actor,
                details=_audit_details(status),
            )
        )
        db.session.commit()
    except StaleDataError as exc:
        db.session.rollback()
        logger.warning(
            "Work order %s was changed by a concurrent write; not completed", wo_number
        )
        raise WriteRejected(
            "Work order was updated by someone else. Reload and try again.",
            work_order_id=work_order_id,
        ) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Failed to mark work order %s complete", work_order_id)
        raise WriteRejected(
            "Unable to save the work order. No changes were made.",
            work_order_id=work_order_id,
        ) from exc

    logger.info("Work order %s marked complete by %s", wo_number, actor or "unknown")
    return status
