"""Stage quantity aggregation for a single work order.

Every stage total is an independent sum over its own collection. Nothing here
is cumulative, so ``packed`` may exceed ``qc_approved`` and ``produced`` may
exceed the ordered quantity; display code clamps percentages, the raw ratios
stay available for overflow indicators.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Mapping

from .records import (
    STAGE_DISPATCHED,
    STAGE_EXTERNAL,
    STAGE_PACKING,
    STAGE_PRODUCTION,
    STAGE_QC,
    BATCH_STATUS_COMPLETED,
    BatchRecord,
    CartonRecord,
    DispatchRecord,
    ExternalMoveRecord,
    InventoryRecord,
    Number,
    qty,
)


STAGE_KEYS = ("produced", "qc_approved", "packed", "dispatched", "in_inventory")

MOVE_STATUS_SENT = "sent"
MOVE_STATUS_PARTIAL = "partial"
MOVE_STATUS_OVERDUE = "overdue"
MOVE_STATUS_COMPLETED = "completed"


def total(values: Iterable[Number | None]) -> Number:
    return sum((qty(value) for value in values), 0)


def stage_percentage(quantity: Number | None, ordered_qty: Number | None) -> float:
    """Percentage of the ordered quantity, clamped to [0, 100] for progress bars."""

    return min(100.0, stage_ratio(quantity, ordered_qty))


def stage_ratio(quantity: Number | None, ordered_qty: Number | None) -> float:
    """Unclamped percentage of the ordered quantity."""

    ordered = qty(ordered_qty)
    if ordered <= 0:
        return 0.0
    return float(qty(quantity)) * 100.0 / float(ordered)


@dataclass(frozen=True)
class StageTotals:
    work_order_id: int | None
    produced: Number = 0
    qc_approved: Number = 0
    packed: Number = 0
    dispatched: Number = 0
    in_inventory: Number = 0
    at_external: Number = 0

    def as_dict(self) -> dict[str, Number]:
        return {key: getattr(self, key) for key in STAGE_KEYS}

    def percentages(self, ordered_qty: Number | None) -> dict[str, float]:
        return {
            key: round(stage_percentage(value, ordered_qty), 2)
            for key, value in self.as_dict().items()
        }

    def ratios(self, ordered_qty: Number | None) -> dict[str, float]:
        return {
            key: round(stage_ratio(value, ordered_qty), 2)
            for key, value in self.as_dict().items()
        }

    def overflow(self, ordered_qty: Number | None) -> dict[str, bool]:
        return {key: ratio > 100 for key, ratio in self.ratios(ordered_qty).items()}


def inventory_for_work_order(
    work_order_id: int | None,
    inventory: Iterable[InventoryRecord],
    item_code: str | None = None,
) -> Number:
    """Finished goods tied to the work order plus unassigned stock of its item."""

    tied = 0
    by_item = 0
    for record in inventory:
        if work_order_id is not None and record.work_order_id == work_order_id:
            tied += qty(record.quantity_available)
        elif (
            item_code
            and record.work_order_id is None
            and record.item_code == item_code
        ):
            by_item += qty(record.quantity_available)
    return tied + by_item


def aggregate_stage_quantities(
    work_order_id: int | None,
    batches: Iterable[BatchRecord],
    cartons: Iterable[CartonRecord] = (),
    external_moves: Iterable[ExternalMoveRecord] = (),
    inventory: Iterable[InventoryRecord] = (),
    *,
    item_code: str | None = None,
) -> StageTotals:
    batch_list = list(batches)
    return StageTotals(
        work_order_id=work_order_id,
        produced=total(batch.produced_qty for batch in batch_list),
        qc_approved=total(batch.qc_approved_qty for batch in batch_list),
        packed=total(carton.quantity for carton in cartons),
        dispatched=total(batch.dispatched_qty for batch in batch_list),
        in_inventory=inventory_for_work_order(work_order_id, inventory, item_code),
        at_external=total(move.balance for move in external_moves),
    )


@dataclass(frozen=True)
class QuantityBreakdown:
    ordered: Number
    in_production: Number
    at_external: Number
    external_breakdown: list[dict[str, object]]
    qc_approved: Number
    qc_pending: Number
    qc_rejected: Number
    packed: Number
    dispatched: Number
    remaining: Number
    progress_percent: float

    def to_dict(self) -> dict[str, object]:
        return {
            "ordered": self.ordered,
            "in_production": self.in_production,
            "at_external": self.at_external,
            "external_breakdown": list(self.external_breakdown),
            "qc_approved": self.qc_approved,
            "qc_pending": self.qc_pending,
            "qc_rejected": self.qc_rejected,
            "packed": self.packed,
            "dispatched": self.dispatched,
            "remaining": self.remaining,
            "progress_percent": round(self.progress_percent, 2),
        }


def _sorted_breakdown(mapping: Mapping[str, Number]) -> list[dict[str, object]]:
    rows = [
        {"process": process, "quantity": quantity}
        for process, quantity in mapping.items()
    ]
    rows.sort(key=lambda row: (-row["quantity"], row["process"]))
    return rows


def _is_completed(batch: BatchRecord) -> bool:
    return (batch.status or "").strip().lower() == BATCH_STATUS_COMPLETED


def quantity_breakdown(
    ordered_qty: Number | None,
    batches: Iterable[BatchRecord],
    cartons: Iterable[CartonRecord] = (),
    dispatches: Iterable[DispatchRecord] = (),
) -> QuantityBreakdown:
    ordered = qty(ordered_qty)
    in_production = 0
    at_external = 0
    external_map: dict[str, Number] = defaultdict(int)
    qc_approved = 0
    qc_pending = 0
    qc_rejected = 0

    for batch in batches:
        batch_qty = batch.stage_qty
        stage = (batch.stage or "").strip().lower()
        if stage == STAGE_EXTERNAL:
            at_external += batch_qty
            external_map[batch.external_process_type or "Other"] += batch_qty
        elif stage == STAGE_PRODUCTION and not _is_completed(batch):
            in_production += batch_qty

        approved = qty(batch.qc_approved_qty)
        rejected = qty(batch.qc_rejected_qty)
        qc_approved += approved
        qc_rejected += rejected
        qc_pending += qty(qty(batch.produced_qty) - approved - rejected)

    packed = total(carton.quantity for carton in cartons)
    dispatched = total(dispatch.quantity for dispatch in dispatches)

    return QuantityBreakdown(
        ordered=ordered,
        in_production=in_production,
        at_external=at_external,
        external_breakdown=_sorted_breakdown(external_map),
        qc_approved=qc_approved,
        qc_pending=qc_pending,
        qc_rejected=qc_rejected,
        packed=packed,
        dispatched=dispatched,
        remaining=qty(ordered - dispatched),
        progress_percent=stage_percentage(dispatched, ordered),
    )


@dataclass
class StageBreakdown:
    production: Number = 0
    external: Number = 0
    external_breakdown: dict[str, Number] = field(default_factory=dict)
    qc: Number = 0
    packing: Number = 0
    dispatched: Number = 0
    total_active: Number = 0

    @property
    def stage_count(self) -> int:
        return sum(
            1
            for value in (self.production, self.external, self.qc, self.packing)
            if value > 0
        )

    @property
    def is_split_flow(self) -> bool:
        return self.stage_count > 1

    def to_dict(self) -> dict[str, object]:
        return {
            "production": self.production,
            "external": self.external,
            "external_breakdown": dict(self.external_breakdown),
            "qc": self.qc,
            "packing": self.packing,
            "dispatched": self.dispatched,
            "total_active": self.total_active,
            "stage_count": self.stage_count,
            "is_split_flow": self.is_split_flow,
        }


def _add_to_stage(breakdown: StageBreakdown, batch: BatchRecord) -> None:
    batch_qty = qty(batch.batch_qty)
    stage = (batch.stage or STAGE_PRODUCTION).strip().lower()

    if stage in (STAGE_DISPATCHED, "dispatch"):
        breakdown.dispatched += batch_qty
        return

    # a batch row only counts toward the stage it currently sits in
    if not batch.is_active:
        return

    if stage == STAGE_EXTERNAL:
        breakdown.external += batch_qty
        process = batch.external_process_type or "Unknown"
        breakdown.external_breakdown[process] = (
            breakdown.external_breakdown.get(process, 0) + batch_qty
        )
    elif stage == STAGE_QC:
        breakdown.qc += batch_qty
    elif stage == STAGE_PACKING:
        breakdown.packing += batch_qty
    else:
        # cutting, production and anything unrecognized
        breakdown.production += batch_qty
    breakdown.total_active += batch_qty


def stage_breakdown(batches: Iterable[BatchRecord]) -> StageBreakdown:
    breakdown = StageBreakdown()
    for batch in batches:
        _add_to_stage(breakdown, batch)
    return breakdown


def stage_breakdown_by_work_order(
    batches: Iterable[BatchRecord],
) -> dict[int | None, StageBreakdown]:
    result: dict[int | None, StageBreakdown] = {}
    for batch in batches:
        breakdown = result.setdefault(batch.work_order_id, StageBreakdown())
        _add_to_stage(breakdown, batch)
    return result


def external_move_status(move: ExternalMoveRecord, today: date | None = None) -> str:
    current_day = today or date.today()
    balance = move.balance
    if balance == 0:
        return MOVE_STATUS_COMPLETED
    if (
        move.expected_return_date is not None
        and move.returned_date is None
        and move.expected_return_date < current_day
    ):
        return MOVE_STATUS_OVERDUE
    if qty(move.quantity_returned) > 0:
        return MOVE_STATUS_PARTIAL
    return MOVE_STATUS_SENT


def external_summary(
    moves: Iterable[ExternalMoveRecord], today: date | None = None
) -> dict[str, object]:
    move_list = list(moves)
    pending_by_process: dict[str, Number] = defaultdict(int)
    overdue_count = 0
    for move in move_list:
        if external_move_status(move, today) == MOVE_STATUS_OVERDUE:
            overdue_count += 1
        if move.balance > 0:
            pending_by_process[move.process or "Unknown"] += move.balance

    total_sent = total(move.quantity_sent for move in move_list)
    total_returned = total(move.quantity_returned for move in move_list)
    return {
        "total_sent": total_sent,
        "total_returned": total_returned,
        "total_pending": total(move.balance for move in move_list),
        "overdue_count": overdue_count,
        "pending_by_process": _sorted_breakdown(pending_by_process),
    }
