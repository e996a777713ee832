"""Database models for SiteGate."""

from sitegate.db.models.approval import ApprovalRequestRecord

__all__ = [
    "ApprovalRequestRecord",
]
