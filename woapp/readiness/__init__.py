"""Pure work-order readiness and QC gate rules.

Nothing in this package touches the database or the request context; the
service layer loads records and hands them in.
"""

from .completion import CompletionStatus, evaluate_completion
from .errors import InvalidInput, NCRTransitionError, ReadinessError, WriteRejected
from .gates import (
    GateState,
    GateVerdict,
    aggregate_gates,
    build_gate_state,
    first_piece_display_status,
    resolve_gate_status,
)
from .quantities import (
    StageTotals,
    aggregate_stage_quantities,
    quantity_breakdown,
    stage_breakdown,
    stage_percentage,
    stage_ratio,
)
from .statuses import QCStatus, normalize_qc_status

__all__ = [
    "CompletionStatus",
    "GateState",
    "GateVerdict",
    "InvalidInput",
    "NCRTransitionError",
    "QCStatus",
    "ReadinessError",
    "StageTotals",
    "WriteRejected",
    "aggregate_gates",
    "aggregate_stage_quantities",
    "build_gate_state",
    "evaluate_completion",
    "first_piece_display_status",
    "normalize_qc_status",
    "quantity_breakdown",
    "resolve_gate_status",
    "stage_breakdown",
    "stage_percentage",
    "stage_ratio",
]
