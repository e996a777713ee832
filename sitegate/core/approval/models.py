"""Approval request data model.

Plain dataclasses owned by the request store. ``to_dict``/``from_dict``
give a JSON-safe representation used by the SQL store and by callers
that render requests.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .states import ApprovalType, CommentType, Priority, RequestStatus, StepStatus


def new_request_id() -> str:
    return f"approval_{uuid.uuid4().hex}"


def new_comment_id() -> str:
    return f"comment_{uuid.uuid4().hex}"


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC; aware ones pass through unchanged."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _num(value: Optional[float]) -> Any:
    # JSON has no infinity
    if value is None or value == float("inf"):
        return None
    return value


@dataclass
class ApprovalComment:
    """Immutable entry in a request's comment log."""

    id: str
    user_id: str
    user_name: str
    user_role: str
    comment: str
    created_at: datetime
    type: CommentType = CommentType.COMMENT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "user_role": self.user_role,
            "comment": self.comment,
            "created_at": _iso(self.created_at),
            "type": self.type.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ApprovalComment":
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            user_name=data["user_name"],
            user_role=data["user_role"],
            comment=data["comment"],
            created_at=_parse(data["created_at"]),
            type=CommentType(data.get("type", CommentType.COMMENT.value)),
        )


@dataclass
class ApprovalStep:
    """One approver's assignment within an approval chain."""

    step_number: int
    approver_id: str
    approver_name: str
    approver_role: str
    org_unit_id: str
    status: StepStatus = StepStatus.PENDING
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    comments: Optional[str] = None
    financial_threshold: Optional[float] = None
    can_escalate: bool = True

    @property
    def is_pending(self) -> bool:
        return self.status == StepStatus.PENDING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_number": self.step_number,
            "approver_id": self.approver_id,
            "approver_name": self.approver_name,
            "approver_role": self.approver_role,
            "org_unit_id": self.org_unit_id,
            "status": self.status.value,
            "approved_at": _iso(self.approved_at),
            "rejected_at": _iso(self.rejected_at),
            "comments": self.comments,
            "financial_threshold": _num(self.financial_threshold),
            "unlimited": self.financial_threshold == float("inf"),
            "can_escalate": self.can_escalate,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ApprovalStep":
        threshold = data.get("financial_threshold")
        if data.get("unlimited"):
            threshold = float("inf")
        return cls(
            step_number=data["step_number"],
            approver_id=data["approver_id"],
            approver_name=data["approver_name"],
            approver_role=data["approver_role"],
            org_unit_id=data["org_unit_id"],
            status=StepStatus(data.get("status", StepStatus.PENDING.value)),
            approved_at=_parse(data.get("approved_at")),
            rejected_at=_parse(data.get("rejected_at")),
            comments=data.get("comments"),
            financial_threshold=threshold,
            can_escalate=data.get("can_escalate", True),
        )


@dataclass
class ApprovalRequest:
    """One approval lifecycle instance.

    ``current_approver_index`` points at the step awaiting action and always
    satisfies ``0 <= current_approver_index <= len(approval_chain)``.
    """

    id: str
    type: ApprovalType
    requestor_id: str
    requestor_name: str
    requestor_role: str
    org_unit_id: str
    title: str
    description: str
    created_at: datetime
    amount: Optional[float] = None
    priority: Priority = Priority.MEDIUM
    status: RequestStatus = RequestStatus.DRAFT
    submitted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    attachments: List[str] = field(default_factory=list)
    approval_chain: List[ApprovalStep] = field(default_factory=list)
    current_approver_index: int = 0
    comments: List[ApprovalComment] = field(default_factory=list)

    @property
    def current_step(self) -> Optional[ApprovalStep]:
        """Step awaiting action, or None once the pointer ran off the chain."""
        if 0 <= self.current_approver_index < len(self.approval_chain):
            return self.approval_chain[self.current_approver_index]
        return None

    def involves(self, user_id: str) -> bool:
        """True if the user requested this or appears anywhere in its chain."""
        return self.requestor_id == user_id or any(
            step.approver_id == user_id for step in self.approval_chain
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "requestor_id": self.requestor_id,
            "requestor_name": self.requestor_name,
            "requestor_role": self.requestor_role,
            "org_unit_id": self.org_unit_id,
            "title": self.title,
            "description": self.description,
            "amount": self.amount,
            "priority": self.priority.value,
            "status": self.status.value,
            "created_at": _iso(self.created_at),
            "submitted_at": _iso(self.submitted_at),
            "completed_at": _iso(self.completed_at),
            "metadata": dict(self.metadata),
            "attachments": list(self.attachments),
            "approval_chain": [step.to_dict() for step in self.approval_chain],
            "current_approver_index": self.current_approver_index,
            "comments": [comment.to_dict() for comment in self.comments],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ApprovalRequest":
        return cls(
            id=data["id"],
            type=ApprovalType(data["type"]),
            requestor_id=data["requestor_id"],
            requestor_name=data["requestor_name"],
            requestor_role=data["requestor_role"],
            org_unit_id=data["org_unit_id"],
            title=data["title"],
            description=data.get("description", ""),
            amount=data.get("amount"),
            priority=Priority(data.get("priority", Priority.MEDIUM.value)),
            status=RequestStatus(data.get("status", RequestStatus.DRAFT.value)),
            created_at=_parse(data["created_at"]),
            submitted_at=_parse(data.get("submitted_at")),
            completed_at=_parse(data.get("completed_at")),
            metadata=dict(data.get("metadata") or {}),
            attachments=list(data.get("attachments") or []),
            approval_chain=[ApprovalStep.from_dict(s) for s in data.get("approval_chain", [])],
            current_approver_index=data.get("current_approver_index", 0),
            comments=[ApprovalComment.from_dict(c) for c in data.get("comments", [])],
        )
