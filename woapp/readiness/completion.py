"""Decide whether a work order may be marked complete.

The evaluation is recomputed in full from the batches and cartons handed in;
it keeps no state between calls, so two evaluations of the same inputs return
equal results, blockers included.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Sequence

from .gates import GateState
from .quantities import total
from .records import BatchRecord, CartonRecord, Number, qty
from .statuses import is_gate_complete

BLOCKER_BATCHES_INCOMPLETE = "Production not complete for all batches"
BLOCKER_FINAL_QC = "Final QC not complete for all batches"
BLOCKER_NOT_PACKED = "No quantity packed yet"


def _short_production_message(produced: Number, ordered: Number) -> str:
    return f"Produced qty ({produced}) < ordered qty ({ordered})"


@dataclass(frozen=True)
class CompletionStatus:
    all_batches_production_complete: bool
    all_batches_final_qc_complete: bool
    has_packed_qty: bool
    total_produced: Number
    total_final_qc_approved: Number
    total_packed: Number
    total_dispatched: Number
    ordered_qty: Number
    production_complete: bool
    can_mark_complete: bool
    active_batch_id: int | None = None
    completion_blockers: tuple[str, ...] = field(default_factory=tuple)
    gate_state: GateState | None = None

    @property
    def criteria_met(self) -> int:
        return sum(
            (
                self.production_complete,
                self.all_batches_final_qc_complete,
                self.has_packed_qty,
            )
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "all_batches_production_complete": self.all_batches_production_complete,
            "all_batches_final_qc_complete": self.all_batches_final_qc_complete,
            "has_packed_qty": self.has_packed_qty,
            "total_produced": self.total_produced,
            "total_final_qc_approved": self.total_final_qc_approved,
            "total_packed": self.total_packed,
            "total_dispatched": self.total_dispatched,
            "ordered_qty": self.ordered_qty,
            "production_complete": self.production_complete,
            "can_mark_complete": self.can_mark_complete,
            "active_batch_id": self.active_batch_id,
            "completion_blockers": list(self.completion_blockers),
            "criteria_met": self.criteria_met,
            "criteria_total": 3,
            "qc_gates": self.gate_state.to_dict() if self.gate_state else None,
        }


def _active_batch_id(batches: Sequence[BatchRecord]) -> int | None:
    """Newest batch that has neither ended nor been flagged production complete."""

    candidates = [
        batch for batch in batches if batch.is_active and not batch.production_complete
    ]
    if not candidates:
        return None
    candidates.sort(
        key=lambda batch: (
            batch.batch_number if batch.batch_number is not None else -1,
            batch.id if batch.id is not None else -1,
        ),
        reverse=True,
    )
    return candidates[0].id


def evaluate_completion(
    batches: Iterable[BatchRecord],
    cartons: Iterable[CartonRecord],
    gate_state: GateState | None,
    ordered_qty: Number | None,
) -> CompletionStatus:
    """Evaluate the completion criteria for one work order.

    ``can_mark_complete`` requires all three of: production complete (every
    batch terminal and produced >= ordered), final QC passed or waived on
    every batch, and something packed. Blockers are listed in that order.
    """

    batch_list = list(batches)
    ordered = qty(ordered_qty)

    produced = total(batch.produced_qty for batch in batch_list)
    qc_approved = total(batch.qc_approved_qty for batch in batch_list)
    dispatched = total(batch.dispatched_qty for batch in batch_list)
    packed = total(carton.quantity for carton in cartons)

    all_terminal = bool(batch_list) and all(
        batch.is_production_terminal for batch in batch_list
    )
    all_final_qc = bool(batch_list) and all(
        is_gate_complete(batch.qc_final_status) for batch in batch_list
    )
    has_packed = packed > 0
    production_complete = all_terminal and produced >= ordered

    blockers: list[str] = []
    if not all_terminal:
        blockers.append(BLOCKER_BATCHES_INCOMPLETE)
    elif produced < ordered:
        blockers.append(_short_production_message(produced, ordered))
    if not all_final_qc:
        blockers.append(BLOCKER_FINAL_QC)
    if not has_packed:
        blockers.append(BLOCKER_NOT_PACKED)

    return CompletionStatus(
        all_batches_production_complete=all_terminal,
        all_batches_final_qc_complete=all_final_qc,
        has_packed_qty=has_packed,
        total_produced=produced,
        total_final_qc_approved=qc_approved,
        total_packed=packed,
        total_dispatched=dispatched,
        ordered_qty=ordered,
        production_complete=production_complete,
        can_mark_complete=production_complete and all_final_qc and has_packed,
        active_batch_id=_active_batch_id(batch_list),
        completion_blockers=tuple(blockers),
        gate_state=gate_state,
    )
