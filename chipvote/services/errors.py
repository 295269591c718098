"""Tagged failures raised by the voting engine.

Every error is scoped to a single request. The request layer renders them as
``{"detail": ..., "code": ...}`` with the attached status code.
"""

from __future__ import annotations

from typing import Optional


class EngineError(Exception):
    code = "engine_error"
    status_code = 400
    default_detail = "The request could not be processed."

    def __init__(self, detail: Optional[str] = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)

    def to_payload(self) -> dict:
        return {"detail": self.detail, "code": self.code}


class NotFoundError(EngineError):
    code = "not_found"
    status_code = 404
    default_detail = "Session not found."


class PhaseClosedError(EngineError):
    code = "phase_closed"
    status_code = 409
    default_detail = "Voting is not open for this round."


class InvalidOptionError(EngineError):
    code = "invalid_option"
    default_detail = "Allocation targets an option that is not part of this round."


class InvalidAllocationError(EngineError):
    code = "invalid_allocation"
    default_detail = "Chip counts must be non-negative whole numbers."


class BudgetMismatchError(EngineError):
    code = "budget_mismatch"
    default_detail = "Allocations must use every chip."


class AlreadySubmittedError(EngineError):
    code = "already_submitted"
    status_code = 409
    default_detail = "Allocations already submitted for this round."


class NotRoutedError(EngineError):
    code = "not_routed"
    status_code = 403
    default_detail = "Participant is not routed to this group."


class IllegalTransitionError(EngineError):
    code = "illegal_transition"
    status_code = 409
    default_detail = "Phase transition is not allowed."


class ProfileRequiredError(EngineError):
    code = "profile_required"
    default_detail = "A department is required to join this session."


class CatalogError(EngineError):
    code = "catalog_invalid"
    status_code = 500
    default_detail = "The session option catalog is invalid."
