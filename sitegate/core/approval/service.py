"""Approval workflow service.

Public entry point of the engine. Wires the chain builder, step executor
and store together and makes every mutating operation one atomic unit per
request: lock, read, validate, mutate, save.
"""

import copy
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union

from sitegate.common.logger import get_logger
from sitegate.core.errors import InvalidState
from sitegate.core.org.directory import Directory, User

from .chain import ChainBuilder
from .machine import StepExecutor
from .models import ApprovalComment, ApprovalRequest, new_comment_id, new_request_id
from .policy import ThresholdPolicy
from .queries import (
    ApprovalStatistics,
    RequestFilters,
    compute_statistics,
    filter_requests,
    pending_for_user,
    requests_for_user,
)
from .states import ApprovalType, CommentType, Priority, RequestAction, RequestStatus, can_apply
from .store import RequestStore

logger = get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ApprovalWorkflowService:
    """
    High-level service for approval workflows.

    Handles:
    - Creating and submitting approval requests
    - Approving, rejecting and escalating the current step
    - Comments
    - Listing, pending queues and dashboard statistics

    Every returned request is a deep copy; mutate requests only through
    the service.
    """

    def __init__(
        self,
        store: RequestStore,
        directory: Directory,
        policy: ThresholdPolicy,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the approval service.

        Args:
            store: Request store (in-memory or SQL)
            directory: Identity/org directory
            policy: Threshold policy and role ladder
            clock: Returns the current time; defaults to UTC now
        """
        self.store = store
        self.directory = directory
        self.policy = policy
        self.clock = clock or utcnow
        self.chain_builder = ChainBuilder(directory, policy)
        self.executor = StepExecutor(self.chain_builder, self.clock)

    def create_request(
        self,
        type: Union[ApprovalType, str],
        requestor: User,
        *,
        title: str,
        description: str = "",
        amount: Optional[float] = None,
        priority: Union[Priority, str, None] = None,
        metadata: Optional[Dict[str, Any]] = None,
        attachments: Optional[List[str]] = None,
    ) -> ApprovalRequest:
        """
        Create a draft approval request.

        Returns:
            The new request in ``draft`` status
        """
        request = ApprovalRequest(
            id=new_request_id(),
            type=ApprovalType(type),
            requestor_id=requestor.id,
            requestor_name=requestor.name,
            requestor_role=requestor.role,
            org_unit_id=requestor.org_unit_id,
            title=title,
            description=description,
            amount=amount,
            priority=Priority(priority) if priority else Priority.MEDIUM,
            created_at=self.clock(),
            metadata=dict(metadata or {}),
            attachments=list(attachments or []),
        )
        self.store.add(request)
        logger.debug(f"Created {request.type.value} request {request.id} for {requestor.id}")
        return copy.deepcopy(request)

    def submit_request(self, request_id: str) -> ApprovalRequest:
        """
        Submit a draft: build and freeze its approval chain.

        A requestor without a resolvable supervisor needs no approval; the
        request completes immediately.

        Raises:
            NotFound: If the request or its requestor is unknown
            InvalidState: If the request is not a draft
        """
        def submit(request: ApprovalRequest) -> ApprovalRequest:
            if not can_apply(request.status, RequestAction.SUBMIT):
                raise InvalidState(
                    f"Only draft requests can be submitted; {request_id} is {request.status.value}",
                    request_id=request_id,
                    status=request.status.value,
                )

            chain = self.chain_builder.build(request)
            now = self.clock()
            request.approval_chain = chain
            request.current_approver_index = 0
            request.submitted_at = now
            request.status = RequestStatus.SUBMITTED
            if chain:
                request.status = RequestStatus.PENDING_APPROVAL
            else:
                request.status = RequestStatus.COMPLETED
                request.completed_at = now
            logger.info(
                f"Submitted {request_id}: {len(chain)} step(s), status {request.status.value}"
            )
            return request

        return self._mutate(request_id, submit)

    def approve_step(
        self, request_id: str, approver_id: str, comment: Optional[str] = None
    ) -> ApprovalRequest:
        """
        Approve the current step.

        Raises:
            NotFound, InvalidState, Unauthorized, AlreadyProcessed
        """
        return self._mutate(
            request_id, lambda r: self.executor.approve(r, approver_id, comment)
        )

    def reject_step(self, request_id: str, approver_id: str, reason: str) -> ApprovalRequest:
        """
        Reject the current step, ending the whole request.

        Raises:
            NotFound, InvalidState, Unauthorized, AlreadyProcessed,
            ValidationError (blank reason)
        """
        return self._mutate(request_id, lambda r: self.executor.reject(r, approver_id, reason))

    def escalate_request(self, request_id: str, approver_id: str, reason: str) -> ApprovalRequest:
        """
        Hand the current step to the approver's supervisor.

        Raises:
            NotFound, InvalidState, Unauthorized, AlreadyProcessed,
            EscalationNotAllowed, NoHigherAuthority, ValidationError
        """
        return self._mutate(request_id, lambda r: self.executor.escalate(r, approver_id, reason))

    def add_comment(self, request_id: str, user_id: str, text: str) -> ApprovalRequest:
        """
        Append a free-text comment. Allowed in any status.

        Raises:
            NotFound: If the request or user is unknown
        """
        user = self.directory.get_user(user_id)

        def append(request: ApprovalRequest) -> ApprovalRequest:
            request.comments.append(
                ApprovalComment(
                    id=new_comment_id(),
                    user_id=user.id,
                    user_name=user.name,
                    user_role=user.role,
                    comment=text,
                    created_at=self.clock(),
                    type=CommentType.COMMENT,
                )
            )
            return request

        return self._mutate(request_id, append)

    def get_request(self, request_id: str) -> ApprovalRequest:
        """
        Raises:
            NotFound: If the request is unknown
        """
        with self._lock_existing(request_id):
            return copy.deepcopy(self.store.get(request_id))

    def list_requests(self, filters: Optional[RequestFilters] = None) -> List[ApprovalRequest]:
        """Requests matching ``filters``, newest first."""
        return filter_requests(self._snapshot(), filters)

    def get_pending_for_user(self, user_id: str) -> List[ApprovalRequest]:
        """Open requests whose current pending step belongs to ``user_id``."""
        return pending_for_user(self._snapshot(), user_id)

    def get_user_requests(self, user_id: str) -> List[ApprovalRequest]:
        """Requests the user raised or appears in as an approver."""
        return requests_for_user(self._snapshot(), user_id)

    def get_statistics(
        self, user_id: Optional[str] = None, org_unit_id: Optional[str] = None
    ) -> ApprovalStatistics:
        return compute_statistics(self._snapshot(), user_id=user_id, org_unit_id=org_unit_id)

    def _mutate(
        self, request_id: str, operation: Callable[[ApprovalRequest], ApprovalRequest]
    ) -> ApprovalRequest:
        with self._lock_existing(request_id):
            # Work on a copy so a failed operation cannot leave partial changes.
            request = copy.deepcopy(self.store.get(request_id))
            updated = operation(request)
            self.store.save(updated)
            return copy.deepcopy(updated)

    def _lock_existing(self, request_id: str):
        # Requests are never deleted, so only known ids get a lock entry.
        self.store.get(request_id)
        return self.store.lock(request_id)

    def _snapshot(self) -> List[ApprovalRequest]:
        snapshots = []
        for request in self.store.all():
            with self.store.lock(request.id):
                current = self.store.find(request.id)
                if current is not None:
                    snapshots.append(copy.deepcopy(current))
        return snapshots


def build_service(settings=None, *, clock: Optional[Callable[[], datetime]] = None) -> ApprovalWorkflowService:
    """
    Wire a service from runtime settings.

    Args:
        settings: ``Settings`` instance; defaults to ``get_settings()``
        clock: Optional clock override

    Returns:
        ApprovalWorkflowService backed by the configured store
    """
    from sitegate.common.config import load_directory, load_policy
    from sitegate.common.logger import configure_logging
    from sitegate.core.approval.policy import default_policy
    from sitegate.core.approval.store import InMemoryRequestStore
    from sitegate.core.config import get_settings
    from sitegate.core.org.directory import InMemoryDirectory

    settings = settings or get_settings()
    configure_logging(settings)

    policy = load_policy(settings.policy_file) if settings.policy_file else default_policy()
    directory = (
        load_directory(settings.directory_file) if settings.directory_file else InMemoryDirectory()
    )

    if settings.database_url:
        from sitegate.db.base import init_db, make_engine, make_session_factory
        from sitegate.db.store import SqlRequestStore

        engine = make_engine(settings.database_url, echo=settings.database_echo)
        init_db(engine)
        store = SqlRequestStore(make_session_factory(engine))
    else:
        store = InMemoryRequestStore()

    logger.info(
        f"Approval service ready: {len(policy.hierarchy)} roles, "
        f"store={type(store).__name__}"
    )
    return ApprovalWorkflowService(store, directory, policy, clock=clock)
