from __future__ import annotations

from typing import Sequence


class ReadinessError(Exception):
    """Base class for errors surfaced by the readiness layer."""


class InvalidInput(ReadinessError, TypeError):
    """Raised when a caller passes a value outside the documented contract."""


class WriteRejected(ReadinessError):
    """Raised when the "mark complete" write-back declines the transition.

    The caller is expected to show ``message`` to the user and re-evaluate
    from fresh data. Nothing about the locally computed completion status is
    changed as a side effect of the rejection.
    """

    def __init__(
        self,
        message: str,
        *,
        work_order_id: int | None = None,
        blockers: Sequence[str] = (),
    ) -> None:
        super().__init__(message)
        self.message = message
        self.work_order_id = work_order_id
        self.blockers = list(blockers)


class NCRTransitionError(ReadinessError, ValueError):
    """Raised when an NCR cannot move to the requested status."""

    def __init__(self, message: str, *, missing: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.message = message
        self.missing = list(missing)
