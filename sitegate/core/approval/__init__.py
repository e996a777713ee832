"""Approval workflow module for SiteGate.

Implements approval chain generation, step execution and the query facade.
"""

from .states import (
    ApprovalType,
    CommentType,
    Priority,
    RequestAction,
    RequestStatus,
    StepStatus,
    TERMINAL_STATES,
    PENDING_STATES,
)
from .models import ApprovalComment, ApprovalRequest, ApprovalStep
from .policy import ApprovalThreshold, ThresholdPolicy, default_policy
from .chain import ChainBuilder
from .machine import StepExecutor, Approved, Rejected, SkippedWithRedirect
from .store import InMemoryRequestStore, RequestStore
from .queries import ApprovalStatistics, RequestFilters
from .service import ApprovalWorkflowService, build_service

__all__ = [
    "ApprovalType",
    "CommentType",
    "Priority",
    "RequestAction",
    "RequestStatus",
    "StepStatus",
    "TERMINAL_STATES",
    "PENDING_STATES",
    "ApprovalComment",
    "ApprovalRequest",
    "ApprovalStep",
    "ApprovalThreshold",
    "ThresholdPolicy",
    "default_policy",
    "ChainBuilder",
    "StepExecutor",
    "Approved",
    "Rejected",
    "SkippedWithRedirect",
    "InMemoryRequestStore",
    "RequestStore",
    "ApprovalStatistics",
    "RequestFilters",
    "ApprovalWorkflowService",
    "build_service",
]
