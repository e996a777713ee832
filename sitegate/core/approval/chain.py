"""Approval chain generation.

Turns a requestor, an amount and a request type into the ordered list of
approvers. The chain is computed once at submission and then frozen.
"""

from typing import List, Optional

from sitegate.common.logger import get_logger
from sitegate.core.org.directory import Directory, User

from .models import ApprovalRequest, ApprovalStep
from .policy import ThresholdPolicy
from .states import TOP_APPROVAL_TYPES

logger = get_logger(__name__)


class ChainBuilder:
    """
    Resolves approvers by walking the role ladder and the org tree.

    A candidate is sufficient when the request amount fits within the
    candidate's org-level threshold (request raised in the candidate's own
    unit or below it) or cross-org threshold (anywhere else). The walk
    stops at the first sufficient candidate.
    """

    def __init__(self, directory: Directory, policy: ThresholdPolicy):
        self.directory = directory
        self.policy = policy

    def find_supervisor(self, user: User) -> Optional[User]:
        """
        Resolve a user's immediate supervisor.

        The supervisor holds the next role up the ladder and sits in the
        user's org unit or one of its ancestors; the nearest unit wins.

        Returns:
            The supervisor, or None at the top of the ladder, off the ladder,
            or when nobody holds the next role in reach.
        """
        role = self.policy.supervisor_role(user.role)
        if role is None:
            return None

        candidates = self.directory.users_with_role(role)
        if not candidates:
            return None

        reach = [user.org_unit_id]
        reach.extend(self._ancestors(user.org_unit_id))
        for unit_id in reach:
            for candidate in candidates:
                if candidate.org_unit_id == unit_id:
                    return candidate
        return None

    def within_subtree(self, approver: User, org_unit_id: str) -> bool:
        """True if ``org_unit_id`` is the approver's unit or lies below it."""
        return approver.org_unit_id == org_unit_id or self.directory.is_ancestor(
            approver.org_unit_id, org_unit_id
        )

    def can_approve(self, approver: User, amount: float, org_unit_id: str) -> bool:
        return self.policy.can_approve(
            approver.role, amount, self.within_subtree(approver, org_unit_id)
        )

    def required_approvers(self, request: ApprovalRequest) -> List[User]:
        """
        Determine every approver the request needs, in walk order.

        Raises:
            NotFound: If the requestor is not in the directory
        """
        requestor = self.directory.get_user(request.requestor_id)
        amount = request.amount or 0

        approvers: List[User] = []
        current = self.find_supervisor(requestor)
        if current is None:
            logger.info(
                f"No supervisor for {requestor.id} ({requestor.role}); "
                f"request {request.id} needs no approval"
            )
            return approvers

        approvers.append(current)
        while not self.can_approve(current, amount, requestor.org_unit_id):
            higher = self.find_supervisor(current)
            if higher is None or any(a.id == higher.id for a in approvers):
                break
            approvers.append(higher)
            current = higher

        if request.type in TOP_APPROVAL_TYPES:
            top = self._top_authority()
            if top is not None and not any(a.id == top.id for a in approvers):
                approvers.append(top)

        return approvers

    def build(self, request: ApprovalRequest) -> List[ApprovalStep]:
        """Build the frozen approval chain for a request."""
        approvers = self.required_approvers(request)
        steps = []
        for index, approver in enumerate(approvers):
            is_last = index == len(approvers) - 1
            steps.append(
                self.make_step(
                    approver,
                    step_number=index + 1,
                    can_escalate=not (is_last and self.policy.is_top(approver.role)),
                )
            )
        return steps

    def make_step(self, approver: User, *, step_number: int, can_escalate: bool) -> ApprovalStep:
        """Create a pending step, snapshotting the approver's org-level threshold."""
        threshold = self.policy.threshold_for(approver.role)
        return ApprovalStep(
            step_number=step_number,
            approver_id=approver.id,
            approver_name=approver.name,
            approver_role=approver.role,
            org_unit_id=approver.org_unit_id,
            financial_threshold=threshold.org_level_threshold,
            can_escalate=can_escalate,
        )

    def _top_authority(self) -> Optional[User]:
        holders = self.directory.users_with_role(self.policy.top_role)
        return holders[0] if holders else None

    def _ancestors(self, org_unit_id: str) -> List[str]:
        result = []
        seen = {org_unit_id}
        parent = self.directory.get_parent(org_unit_id)
        while parent and parent not in seen:
            result.append(parent)
            seen.add(parent)
            parent = self.directory.get_parent(parent)
        return result
