"""SQLAlchemy-backed request store.

Each public store call runs in its own session and commits once, so a
service operation (lock, get, mutate, save) maps to a single write
transaction. Per-request serialization uses in-process locks; deployments
with several processes must add row locking on their database.
"""

from typing import List, Optional

from sqlalchemy.orm import Session, sessionmaker

from sitegate.common.logger import get_logger
from sitegate.core.approval.models import (
    ApprovalComment,
    ApprovalRequest,
    ApprovalStep,
    as_utc,
)
from sitegate.core.approval.states import ApprovalType, Priority, RequestStatus
from sitegate.core.approval.store import RequestLocks
from sitegate.core.errors import NotFound
from sitegate.db.models.approval import ApprovalRequestRecord

logger = get_logger(__name__)


def to_record(request: ApprovalRequest, record: Optional[ApprovalRequestRecord] = None) -> ApprovalRequestRecord:
    """Copy a request onto a (new or existing) database record."""
    record = record or ApprovalRequestRecord(id=request.id)
    record.type = request.type.value
    record.requestor_id = request.requestor_id
    record.requestor_name = request.requestor_name
    record.requestor_role = request.requestor_role
    record.org_unit_id = request.org_unit_id
    record.title = request.title
    record.description = request.description
    record.amount = request.amount
    record.priority = request.priority.value
    record.extra_data = dict(request.metadata)
    record.attachments = list(request.attachments)
    record.status = request.status.value
    record.approval_chain = [step.to_dict() for step in request.approval_chain]
    record.current_approver_index = request.current_approver_index
    record.comments = [comment.to_dict() for comment in request.comments]
    record.created_at = request.created_at
    record.submitted_at = request.submitted_at
    record.completed_at = request.completed_at
    return record


def from_record(record: ApprovalRequestRecord) -> ApprovalRequest:
    """Rebuild a request from its database record."""
    return ApprovalRequest(
        id=record.id,
        type=ApprovalType(record.type),
        requestor_id=record.requestor_id,
        requestor_name=record.requestor_name,
        requestor_role=record.requestor_role,
        org_unit_id=record.org_unit_id,
        title=record.title,
        description=record.description or "",
        amount=record.amount,
        priority=Priority(record.priority),
        status=RequestStatus(record.status),
        # SQLite returns naive datetimes even for timezone-aware columns
        created_at=as_utc(record.created_at),
        submitted_at=as_utc(record.submitted_at),
        completed_at=as_utc(record.completed_at),
        metadata=dict(record.extra_data or {}),
        attachments=list(record.attachments or []),
        approval_chain=[ApprovalStep.from_dict(s) for s in record.approval_chain or []],
        current_approver_index=record.current_approver_index,
        comments=[ApprovalComment.from_dict(c) for c in record.comments or []],
    )


class SqlRequestStore:
    """Request store persisting to any SQLAlchemy-supported database."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory
        self._locks = RequestLocks()

    def _session(self) -> Session:
        return self._session_factory()

    def add(self, request: ApprovalRequest) -> None:
        with self._session() as session:
            if session.get(ApprovalRequestRecord, request.id) is not None:
                raise ValueError(f"Approval request {request.id} already exists")
            session.add(to_record(request))
            session.commit()

    def get(self, request_id: str) -> ApprovalRequest:
        request = self.find(request_id)
        if request is None:
            raise NotFound("Approval request", request_id)
        return request

    def find(self, request_id: str) -> Optional[ApprovalRequest]:
        with self._session() as session:
            record = session.get(ApprovalRequestRecord, request_id)
            return from_record(record) if record else None

    def save(self, request: ApprovalRequest) -> None:
        with self._session() as session:
            record = session.get(ApprovalRequestRecord, request.id)
            if record is None:
                raise NotFound("Approval request", request.id)
            to_record(request, record)
            session.commit()
        logger.debug(f"Persisted request {request.id} [{request.status.value}]")

    def all(self) -> List[ApprovalRequest]:
        with self._session() as session:
            records = session.query(ApprovalRequestRecord).order_by(
                ApprovalRequestRecord.created_at.desc()
            ).all()
            return [from_record(record) for record in records]

    def lock(self, request_id: str):
        return self._locks.hold(request_id)
