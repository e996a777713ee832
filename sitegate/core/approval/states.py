"""Approval workflow states and transitions.

Request-level state machine:

    ┌─────────┐
    │  DRAFT  │ ← create_request
    └────┬────┘
         │ submit (chain built, frozen)
         ├──────────────────────────────┐
         │                              │ empty chain
    ┌────▼─────────────┐          ┌─────▼─────┐
    │ PENDING_APPROVAL │◄──┐      │ COMPLETED │
    └──┬──────┬────┬───┘   │      └───────────┘
       │      │    │ escalate
       │      │  ┌─▼───────┴─┐
       │      │  │ ESCALATED │ (approve → next step / reject / escalate again)
       │      │  └───────────┘
  ┌────▼───┐ ┌▼─────────┐
  │APPROVED│ │ REJECTED │
  └────────┘ └──────────┘

APPROVED, REJECTED and COMPLETED are terminal. SUBMITTED is transient: a
request passes through it inside a single submit operation and is never
stored in it.
"""

from enum import Enum
from typing import Dict, NamedTuple, Optional, Set


class ApprovalType(str, Enum):
    """Kinds of requests routed through the engine."""

    EXPENSE = "expense"
    TASK_COMPLETION = "task_completion"
    BUDGET_ALLOCATION = "budget_allocation"
    EQUIPMENT_PURCHASE = "equipment_purchase"
    SAFE_ACCESS = "safe_access"
    PAYROLL_ADJUSTMENT = "payroll_adjustment"
    DOCUMENT_APPROVAL = "document_approval"
    MILESTONE_COMPLETION = "milestone_completion"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RequestStatus(str, Enum):
    """Request-level lifecycle states."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    REQUIRES_HIGHER_APPROVAL = "requires_higher_approval"  # never assigned by the engine
    ESCALATED = "escalated"
    COMPLETED = "completed"


class StepStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SKIPPED = "skipped"


class CommentType(str, Enum):
    COMMENT = "comment"
    APPROVAL = "approval"
    REJECTION = "rejection"
    ESCALATION = "escalation"


class RequestAction(str, Enum):
    """Operations that move a request between states."""

    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    ESCALATE = "escalate"


class TransitionRule(NamedTuple):
    """A state from which an action may be applied."""
    from_state: RequestStatus
    action: RequestAction
    requires_reason: bool = False


TRANSITION_RULES: list[TransitionRule] = [
    TransitionRule(RequestStatus.DRAFT, RequestAction.SUBMIT),

    TransitionRule(RequestStatus.PENDING_APPROVAL, RequestAction.APPROVE),
    TransitionRule(RequestStatus.PENDING_APPROVAL, RequestAction.REJECT, requires_reason=True),
    TransitionRule(RequestStatus.PENDING_APPROVAL, RequestAction.ESCALATE, requires_reason=True),

    TransitionRule(RequestStatus.ESCALATED, RequestAction.APPROVE),
    TransitionRule(RequestStatus.ESCALATED, RequestAction.REJECT, requires_reason=True),
    TransitionRule(RequestStatus.ESCALATED, RequestAction.ESCALATE, requires_reason=True),
]

VALID_ACTIONS: Dict[RequestStatus, Set[RequestAction]] = {}
RULES_BY_KEY: Dict[tuple[RequestStatus, RequestAction], TransitionRule] = {}

for rule in TRANSITION_RULES:
    VALID_ACTIONS.setdefault(rule.from_state, set()).add(rule.action)
    RULES_BY_KEY[(rule.from_state, rule.action)] = rule


TERMINAL_STATES: Set[RequestStatus] = {
    RequestStatus.APPROVED,
    RequestStatus.REJECTED,
    RequestStatus.COMPLETED,
}

# States in which the current step awaits a decision
PENDING_STATES: Set[RequestStatus] = {
    RequestStatus.PENDING_APPROVAL,
    RequestStatus.ESCALATED,
}

# Types that always need sign-off from the top of the hierarchy
TOP_APPROVAL_TYPES: Set[ApprovalType] = {
    ApprovalType.SAFE_ACCESS,
    ApprovalType.PAYROLL_ADJUSTMENT,
}


def can_apply(status: RequestStatus, action: RequestAction) -> bool:
    """Check if an action is valid from the given request status."""
    return action in VALID_ACTIONS.get(status, set())


def get_rule(status: RequestStatus, action: RequestAction) -> Optional[TransitionRule]:
    """Get the transition rule for a status/action combination."""
    return RULES_BY_KEY.get((status, action))
