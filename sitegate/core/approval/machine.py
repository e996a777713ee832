"""Step execution for approval chains.

Approve, reject and escalate all act on the step at
``current_approver_index``. They share one guard and differ only in the
outcome applied to that step:

- ``Approved``: the step is approved and the pointer advances.
- ``Rejected``: the step is rejected and the whole request ends.
- ``SkippedWithRedirect``: the step is skipped and a new step for the
  supervisor is appended and made current.

Every check runs before the first mutation, so a refused operation leaves
the request untouched.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Union

from sitegate.common.logger import get_logger
from sitegate.core.errors import (
    AlreadyProcessed,
    EscalationNotAllowed,
    InvalidState,
    NoHigherAuthority,
    Unauthorized,
    ValidationError,
)
from sitegate.core.org.directory import User

from .chain import ChainBuilder
from .models import ApprovalComment, ApprovalRequest, ApprovalStep, new_comment_id
from .states import (
    CommentType,
    RequestAction,
    RequestStatus,
    StepStatus,
    can_apply,
    get_rule,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class Approved:
    comment: Optional[str] = None


@dataclass(frozen=True)
class Rejected:
    reason: str


@dataclass(frozen=True)
class SkippedWithRedirect:
    reason: str
    redirect_to: User


StepOutcome = Union[Approved, Rejected, SkippedWithRedirect]


class StepExecutor:
    """
    Applies step outcomes to requests.

    The executor mutates the request object it is handed. Callers are
    expected to hold the request's lock and persist the result.
    """

    def __init__(self, chain_builder: ChainBuilder, clock: Callable[[], datetime]):
        self.chain_builder = chain_builder
        self.clock = clock

    def approve(
        self, request: ApprovalRequest, approver_id: str, comment: Optional[str] = None
    ) -> ApprovalRequest:
        step = self.check(request, approver_id, RequestAction.APPROVE)
        return self.apply(request, step, Approved(comment))

    def reject(self, request: ApprovalRequest, approver_id: str, reason: str) -> ApprovalRequest:
        step = self.check(request, approver_id, RequestAction.REJECT, reason=reason)
        return self.apply(request, step, Rejected(reason.strip()))

    def escalate(self, request: ApprovalRequest, approver_id: str, reason: str) -> ApprovalRequest:
        step = self.check(request, approver_id, RequestAction.ESCALATE, reason=reason)

        current = self.chain_builder.directory.get_user(approver_id)
        supervisor = self.chain_builder.find_supervisor(current)
        if supervisor is None:
            logger.warning(f"Escalation of {request.id} by {approver_id}: no higher authority")
            raise NoHigherAuthority(request_id=request.id, user_id=approver_id)

        return self.apply(request, step, SkippedWithRedirect(reason.strip(), supervisor))

    def check(
        self,
        request: ApprovalRequest,
        approver_id: str,
        action: RequestAction,
        *,
        reason: Optional[str] = None,
    ) -> ApprovalStep:
        """
        Validate that ``approver_id`` may perform ``action`` on the current step.

        Returns:
            The current step

        Raises:
            AlreadyProcessed: If the caller's step has already been decided,
                even when that decision ended the request
            InvalidState: If the request is not awaiting a decision
            Unauthorized: If the caller is not the current step's approver
            EscalationNotAllowed: If escalating a step that forbids it
            ValidationError: If a required reason is blank
        """
        step = request.current_step
        if step is None or step.approver_id != approver_id or not step.is_pending:
            decided = self._decided_step_of(request, approver_id)
            if decided is not None:
                raise AlreadyProcessed(
                    request_id=request.id,
                    step_number=decided.step_number,
                    step_status=decided.status.value,
                    status=request.status.value,
                )

        if not can_apply(request.status, action):
            logger.warning(
                f"Refused {action.value} on {request.id}: status is {request.status.value}"
            )
            raise InvalidState(
                f"Cannot {action.value} request {request.id} in status {request.status.value}",
                request_id=request.id,
                status=request.status.value,
            )

        if step is None or step.approver_id != approver_id:
            logger.warning(f"Refused {action.value} on {request.id}: {approver_id} is not the approver")
            raise Unauthorized(action.value, request_id=request.id, user_id=approver_id)

        if action == RequestAction.ESCALATE and not step.can_escalate:
            raise EscalationNotAllowed(request_id=request.id, step_number=step.step_number)

        rule = get_rule(request.status, action)
        if rule.requires_reason and (reason is None or not reason.strip()):
            raise ValidationError(
                f"A reason is required to {action.value} request {request.id}",
                request_id=request.id,
            )

        return step

    def apply(
        self, request: ApprovalRequest, step: ApprovalStep, outcome: StepOutcome
    ) -> ApprovalRequest:
        """Apply a validated outcome to the current step."""
        now = self.clock()

        if isinstance(outcome, Approved):
            step.status = StepStatus.APPROVED
            step.approved_at = now
            step.comments = outcome.comment
            self._log_comment(
                request, step, outcome.comment or f"Approved by {step.approver_name}",
                CommentType.APPROVAL, now,
            )
            request.current_approver_index += 1
            if request.current_approver_index >= len(request.approval_chain):
                request.status = RequestStatus.APPROVED
                request.completed_at = now
                logger.info(f"Request {request.id} fully approved")
            else:
                request.status = RequestStatus.PENDING_APPROVAL
                logger.info(
                    f"Request {request.id} step {step.step_number} approved by {step.approver_id}"
                )

        elif isinstance(outcome, Rejected):
            step.status = StepStatus.REJECTED
            step.rejected_at = now
            step.comments = outcome.reason
            request.status = RequestStatus.REJECTED
            request.completed_at = now
            self._log_comment(request, step, outcome.reason, CommentType.REJECTION, now)
            logger.info(
                f"Request {request.id} rejected at step {step.step_number} by {step.approver_id}"
            )

        elif isinstance(outcome, SkippedWithRedirect):
            target = outcome.redirect_to
            step.status = StepStatus.SKIPPED
            step.comments = f"Escalated: {outcome.reason}"
            request.approval_chain.append(
                self.chain_builder.make_step(
                    target,
                    step_number=len(request.approval_chain) + 1,
                    can_escalate=not self.chain_builder.policy.is_top(target.role),
                )
            )
            request.current_approver_index = len(request.approval_chain) - 1
            request.status = RequestStatus.ESCALATED
            self._log_comment(
                request, step, f"Escalated to {target.name}: {outcome.reason}",
                CommentType.ESCALATION, now,
            )
            logger.info(f"Request {request.id} escalated from {step.approver_id} to {target.id}")

        else:
            raise TypeError(f"Unknown step outcome: {outcome!r}")

        return request

    @staticmethod
    def _decided_step_of(request: ApprovalRequest, user_id: str) -> Optional[ApprovalStep]:
        # A rejected step stays current, so scan the whole chain.
        for step in request.approval_chain:
            if step.approver_id == user_id and not step.is_pending:
                return step
        return None

    @staticmethod
    def _log_comment(
        request: ApprovalRequest,
        step: ApprovalStep,
        text: str,
        kind: CommentType,
        now: datetime,
    ) -> None:
        request.comments.append(
            ApprovalComment(
                id=new_comment_id(),
                user_id=step.approver_id,
                user_name=step.approver_name,
                user_role=step.approver_role,
                comment=text,
                created_at=now,
                type=kind,
            )
        )
