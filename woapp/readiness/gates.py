"""QC gate dependency resolution and work-order level aggregation.

Material QC is the prerequisite of First-Piece QC. A dependent gate that is
still waiting displays as ``blocked`` until its prerequisite completes, but a
gate that already reached an outcome always shows that outcome.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .statuses import (
    QCStatus,
    is_gate_complete,
    is_gate_failed,
    is_gate_pending,
    normalize_qc_status,
)


class GateVerdict(str, Enum):
    COMPLETE = "complete"
    BLOCKED = "blocked"
    PENDING = "pending"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value


def resolve_gate_status(
    own_status: str | QCStatus | None, blocked_by_prerequisite: bool = False
) -> QCStatus:
    normalized = normalize_qc_status(own_status)
    if blocked_by_prerequisite and is_gate_pending(normalized):
        return QCStatus.BLOCKED
    return normalized


def first_piece_display_status(
    first_piece_status: str | QCStatus | None,
    material_status: str | QCStatus | None,
) -> QCStatus:
    return resolve_gate_status(
        first_piece_status, not is_gate_complete(material_status)
    )


def aggregate_gates(
    material_status: str | QCStatus | None,
    first_piece_status: str | QCStatus | None,
) -> GateVerdict:
    """Combine the two gates into one verdict.

    The order of the checks matters: a failure on either gate wins even while
    the material gate is still pending.
    """

    material = normalize_qc_status(material_status)
    first_piece = normalize_qc_status(first_piece_status)

    if is_gate_failed(material) or is_gate_failed(first_piece):
        return GateVerdict.FAILED
    if is_gate_complete(material) and is_gate_complete(first_piece):
        return GateVerdict.COMPLETE
    if is_gate_pending(material):
        return GateVerdict.BLOCKED
    return GateVerdict.PENDING


@dataclass(frozen=True)
class GateState:
    material: QCStatus
    first_piece_raw: QCStatus
    first_piece: QCStatus
    overall: GateVerdict

    @property
    def is_complete(self) -> bool:
        return self.overall is GateVerdict.COMPLETE

    def to_dict(self) -> dict[str, object]:
        return {
            "material_qc_status": self.material.value,
            "first_piece_qc_status": self.first_piece.value,
            "first_piece_qc_raw_status": self.first_piece_raw.value,
            "overall": self.overall.value,
            "is_complete": self.is_complete,
        }


def build_gate_state(
    material_status: str | QCStatus | None,
    first_piece_status: str | QCStatus | None,
) -> GateState:
    material = normalize_qc_status(material_status)
    first_piece_raw = normalize_qc_status(first_piece_status)
    first_piece = first_piece_display_status(first_piece_raw, material)
    return GateState(
        material=material,
        first_piece_raw=first_piece_raw,
        first_piece=first_piece,
        overall=aggregate_gates(material, first_piece),
    )
