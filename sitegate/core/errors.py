"""Errors raised by the approval engine.

All failures are local and synchronous. Nothing is retried; a failed
operation leaves the request exactly as it was.
"""

from typing import Optional


class ApprovalError(Exception):
    """Base class for approval engine errors."""

    def __init__(self, message: str, *, request_id: Optional[str] = None):
        super().__init__(message)
        self.request_id = request_id


class NotFound(ApprovalError):
    """Raised when a request or user is unknown."""

    def __init__(self, kind: str, identifier: str):
        super().__init__(
            f"{kind} {identifier} not found",
            request_id=identifier if kind == "Approval request" else None,
        )
        self.kind = kind
        self.identifier = identifier


class InvalidState(ApprovalError):
    """Raised when an operation is attempted outside its valid request status."""

    def __init__(self, message: str, *, request_id: str, status: str):
        super().__init__(message, request_id=request_id)
        self.status = status


class Unauthorized(ApprovalError):
    """Raised when the caller is not the current step's designated approver."""

    def __init__(self, action: str, *, request_id: str, user_id: str):
        super().__init__(
            f"User {user_id} is not authorized to {action} request {request_id}",
            request_id=request_id,
        )
        self.action = action
        self.user_id = user_id


class AlreadyProcessed(InvalidState):
    """Raised when the caller's step has already been decided."""

    def __init__(self, *, request_id: str, step_number: int, step_status: str, status: str):
        super().__init__(
            f"Step {step_number} of request {request_id} already processed ({step_status})",
            request_id=request_id,
            status=status,
        )
        self.step_number = step_number
        self.step_status = step_status


class EscalationNotAllowed(ApprovalError):
    """Raised when the current step may not be escalated."""

    def __init__(self, *, request_id: str, step_number: int):
        super().__init__(
            f"Step {step_number} of request {request_id} cannot be escalated",
            request_id=request_id,
        )
        self.step_number = step_number


class NoHigherAuthority(ApprovalError):
    """Raised when the hierarchy walk finds no supervisor to escalate to."""

    def __init__(self, *, request_id: str, user_id: str):
        super().__init__(
            f"No higher authority found above {user_id} for request {request_id}",
            request_id=request_id,
        )
        self.user_id = user_id


class ValidationError(ApprovalError):
    """Raised when an operation argument is unusable (e.g. a blank reason)."""


class PolicyError(ApprovalError):
    """Raised when a threshold policy or directory definition is inconsistent."""
