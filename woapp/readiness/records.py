"""Plain record shapes consumed by the readiness functions.

These mirror the rows of the work order, batch, carton, dispatch, external
move and finished goods tables, detached from the ORM so the computations stay
pure. Numeric fields are optional; :func:`qty` is the single place where a
missing quantity becomes zero.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Union

Number = Union[int, float, Decimal]

BATCH_STATUS_IN_QUEUE = "in_queue"
BATCH_STATUS_IN_PROGRESS = "in_progress"
BATCH_STATUS_COMPLETED = "completed"

STAGE_CUTTING = "cutting"
STAGE_PRODUCTION = "production"
STAGE_EXTERNAL = "external"
STAGE_QC = "qc"
STAGE_PACKING = "packing"
STAGE_DISPATCHED = "dispatched"


def qty(value: Number | None) -> Number:
    """Return ``value`` as a non-negative quantity, treating ``None`` as zero."""

    if value is None:
        return 0
    if isinstance(value, float) and math.isnan(value):
        return 0
    if isinstance(value, Decimal) and value.is_nan():
        return 0
    if value < 0:
        return 0
    return value


@dataclass(frozen=True)
class WorkOrderRecord:
    id: int | None
    ordered_qty: Number | None
    material_qc_status: str | None = None
    first_piece_qc_status: str | None = None
    item_code: str | None = None
    status: str | None = None


@dataclass(frozen=True)
class BatchRecord:
    id: int | None = None
    work_order_id: int | None = None
    batch_number: int | None = None
    stage: str | None = STAGE_PRODUCTION
    status: str | None = BATCH_STATUS_IN_QUEUE
    batch_qty: Number | None = None
    produced_qty: Number | None = None
    qc_approved_qty: Number | None = None
    qc_rejected_qty: Number | None = None
    dispatched_qty: Number | None = None
    qc_final_status: str | None = None
    external_process_type: str | None = None
    external_partner_id: int | None = None
    production_complete: bool = False
    stage_entered_at: datetime | None = None
    ended_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.ended_at is None

    @property
    def is_production_terminal(self) -> bool:
        return (
            self.production_complete
            or self.ended_at is not None
            or (self.status or "").strip().lower() == BATCH_STATUS_COMPLETED
        )

    @property
    def stage_qty(self) -> Number:
        # batch_qty of 0 falls back to produced_qty as well
        return qty(self.batch_qty) or qty(self.produced_qty)


@dataclass(frozen=True)
class CartonRecord:
    quantity: Number | None = None
    id: int | None = None
    work_order_id: int | None = None
    batch_id: int | None = None
    dispatched_qty: Number | None = None


@dataclass(frozen=True)
class DispatchRecord:
    quantity: Number | None = None
    id: int | None = None
    work_order_id: int | None = None
    carton_id: int | None = None


@dataclass(frozen=True)
class ExternalMoveRecord:
    quantity_sent: Number | None = None
    quantity_returned: Number | None = None
    process: str | None = None
    status: str | None = None
    id: int | None = None
    work_order_id: int | None = None
    partner_id: int | None = None
    dispatch_date: date | None = None
    expected_return_date: date | None = None
    returned_date: date | None = None

    @property
    def balance(self) -> Number:
        return qty(qty(self.quantity_sent) - qty(self.quantity_returned))


@dataclass(frozen=True)
class InventoryRecord:
    quantity_available: Number | None = None
    work_order_id: int | None = None
    item_code: str | None = None
