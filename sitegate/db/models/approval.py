"""Approval workflow database models.

One row per approval request. Filterable fields live in their own
columns; the chain and the comment log are stored as JSON documents
because they are only ever read and written whole.
"""

from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, JSON, Text, Float, Integer

from sitegate.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ApprovalRequestRecord(Base):
    """Persisted approval request."""
    __tablename__ = "approval_requests"

    id = Column(String(64), primary_key=True)
    type = Column(String(50), nullable=False, index=True)

    # Requestor snapshot, immutable once submitted
    requestor_id = Column(String(64), nullable=False, index=True)
    requestor_name = Column(String(255), nullable=False)
    requestor_role = Column(String(50), nullable=False)
    org_unit_id = Column(String(64), nullable=False, index=True)

    # Business payload
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    amount = Column(Float, nullable=True)
    priority = Column(String(20), nullable=False, default="medium", index=True)
    extra_data = Column(JSON, nullable=False, default=dict)
    attachments = Column(JSON, nullable=False, default=list)

    # Workflow state
    status = Column(String(50), nullable=False, default="draft", index=True)
    approval_chain = Column(JSON, nullable=False, default=list)
    current_approver_index = Column(Integer, nullable=False, default=0)
    comments = Column(JSON, nullable=False, default=list)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def __repr__(self) -> str:
        return f"<ApprovalRequestRecord {self.id} {self.type} [{self.status}]>"
