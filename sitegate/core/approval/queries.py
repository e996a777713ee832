"""Read-only views over approval requests.

Everything here works on snapshots handed in by the service and never
touches the store.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from .models import ApprovalRequest, as_utc
from .states import PENDING_STATES, ApprovalType, RequestStatus


@dataclass
class RequestFilters:
    """Optional listing filters; date bounds are inclusive on ``created_at``."""

    type: Optional[ApprovalType] = None
    status: Optional[RequestStatus] = None
    org_unit_id: Optional[str] = None
    requestor_id: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None

    def __post_init__(self):
        # Naive bounds are taken as UTC, matching stored timestamps.
        self.date_from = as_utc(self.date_from)
        self.date_to = as_utc(self.date_to)

    def matches(self, request: ApprovalRequest) -> bool:
        if self.type is not None and request.type != self.type:
            return False
        if self.status is not None and request.status != self.status:
            return False
        if self.org_unit_id is not None and request.org_unit_id != self.org_unit_id:
            return False
        if self.requestor_id is not None and request.requestor_id != self.requestor_id:
            return False
        if self.date_from is not None and as_utc(request.created_at) < self.date_from:
            return False
        if self.date_to is not None and as_utc(request.created_at) > self.date_to:
            return False
        return True


@dataclass
class ApprovalStatistics:
    """Dashboard aggregates."""

    total: int = 0
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    by_type: Dict[str, int] = field(default_factory=dict)
    by_priority: Dict[str, int] = field(default_factory=dict)
    average_approval_time_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "pending": self.pending,
            "approved": self.approved,
            "rejected": self.rejected,
            "byType": dict(self.by_type),
            "byPriority": dict(self.by_priority),
            "averageApprovalTime": self.average_approval_time_ms,
        }


def newest_first(requests: Iterable[ApprovalRequest]) -> List[ApprovalRequest]:
    return sorted(requests, key=lambda r: as_utc(r.created_at), reverse=True)


def filter_requests(
    requests: Iterable[ApprovalRequest], filters: Optional[RequestFilters] = None
) -> List[ApprovalRequest]:
    """Apply filters and sort newest-first by creation time."""
    if filters is not None:
        requests = [r for r in requests if filters.matches(r)]
    return newest_first(requests)


def is_pending_for(request: ApprovalRequest, user_id: str) -> bool:
    """True if ``user_id`` holds the pending current step of an open request."""
    if request.status not in PENDING_STATES:
        return False
    step = request.current_step
    return step is not None and step.approver_id == user_id and step.is_pending


def pending_for_user(requests: Iterable[ApprovalRequest], user_id: str) -> List[ApprovalRequest]:
    return newest_first(r for r in requests if is_pending_for(r, user_id))


def requests_for_user(requests: Iterable[ApprovalRequest], user_id: str) -> List[ApprovalRequest]:
    """Requests the user raised or appears in as an approver."""
    return newest_first(r for r in requests if r.involves(user_id))


def compute_statistics(
    requests: Iterable[ApprovalRequest],
    user_id: Optional[str] = None,
    org_unit_id: Optional[str] = None,
) -> ApprovalStatistics:
    """
    Aggregate counts and mean approval latency.

    Args:
        requests: Request snapshots
        user_id: Restrict to requests the user raised or appears in
        org_unit_id: Restrict to requests raised in this org unit

    Returns:
        ApprovalStatistics; latency is the mean of completed_at - submitted_at
        in milliseconds over requests having both, 0.0 when there are none
    """
    selected = list(requests)
    if user_id:
        selected = [r for r in selected if r.involves(user_id)]
    if org_unit_id:
        selected = [r for r in selected if r.org_unit_id == org_unit_id]

    stats = ApprovalStatistics(total=len(selected))
    durations = []
    for request in selected:
        if request.status in PENDING_STATES:
            stats.pending += 1
        elif request.status == RequestStatus.APPROVED:
            stats.approved += 1
        elif request.status == RequestStatus.REJECTED:
            stats.rejected += 1

        type_key = request.type.value
        stats.by_type[type_key] = stats.by_type.get(type_key, 0) + 1
        priority_key = request.priority.value
        stats.by_priority[priority_key] = stats.by_priority.get(priority_key, 0) + 1

        if request.submitted_at and request.completed_at:
            elapsed = request.completed_at - request.submitted_at
            durations.append(elapsed.total_seconds() * 1000)

    if durations:
        stats.average_approval_time_ms = sum(durations) / len(durations)
    return stats
