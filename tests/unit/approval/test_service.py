"""Tests for the approval workflow service."""

import threading

import pytest

from sitegate.core.approval.policy import default_policy
from sitegate.core.approval.service import ApprovalWorkflowService
from sitegate.core.approval.states import CommentType, Priority, RequestStatus, StepStatus
from sitegate.core.approval.store import InMemoryRequestStore
from sitegate.core.errors import (
    AlreadyProcessed,
    EscalationNotAllowed,
    InvalidState,
    NoHigherAuthority,
    NotFound,
    Unauthorized,
    ValidationError,
)

from tests.factories import STANDARD_UNITS, STANDARD_USERS, build_directory, create_user, submit


def assert_pointer_in_range(request):
    assert 0 <= request.current_approver_index <= len(request.approval_chain)


class TestCreateAndSubmit:

    def test_create_draft(self, service, directory, clock):
        draft = service.create_request(
            "expense",
            directory.get_user("se1"),
            title="Cement",
            description="40 bags",
            amount=1200,
            metadata={"site": "S-14"},
            attachments=["receipt-1.jpg"],
        )
        assert draft.id.startswith("approval_")
        assert draft.status == RequestStatus.DRAFT
        assert draft.priority == Priority.MEDIUM
        assert draft.org_unit_id == "zone-1"
        assert draft.created_at == clock.now
        assert draft.approval_chain == []
        assert draft.metadata == {"site": "S-14"}

    def test_submit_builds_chain(self, service, clock):
        request = submit(service, "se1", amount=8_000)
        assert request.status == RequestStatus.PENDING_APPROVAL
        assert request.current_approver_index == 0
        assert [s.approver_id for s in request.approval_chain] == ["zm1"]
        assert request.submitted_at == clock.now
        assert request.completed_at is None

    def test_submit_without_supervisor_completes(self, service):
        request = submit(service, "se2", amount=50)
        assert request.approval_chain == []
        assert request.status == RequestStatus.COMPLETED
        assert request.completed_at is not None
        assert_pointer_in_range(request)

    def test_submit_twice(self, service):
        request = submit(service, "se1", amount=10)
        with pytest.raises(InvalidState):
            service.submit_request(request.id)

    def test_submit_unknown_request(self, service):
        with pytest.raises(NotFound):
            service.submit_request("approval_missing")

    def test_submit_unknown_requestor_leaves_draft(self, service):
        outsider = create_user(user_id="outsider")
        draft = service.create_request("expense", outsider, title="X", amount=1)
        with pytest.raises(NotFound):
            service.submit_request(draft.id)
        assert service.get_request(draft.id).status == RequestStatus.DRAFT


class TestApprove:

    def test_approve_last_step(self, service, clock):
        request = submit(service, "se1", amount=8_000)
        clock.advance(hours=2)
        approved = service.approve_step(request.id, "zm1", "Looks fine")

        assert approved.status == RequestStatus.APPROVED
        assert approved.completed_at == clock.now
        assert approved.current_approver_index == 1
        step = approved.approval_chain[0]
        assert step.status == StepStatus.APPROVED
        assert step.approved_at == clock.now
        assert step.comments == "Looks fine"
        assert approved.comments[-1].type == CommentType.APPROVAL
        assert_pointer_in_range(approved)

    def test_approve_advances_pointer(self, service):
        request = submit(service, "se1", amount=150_000)
        request = service.approve_step(request.id, "zm1")
        assert request.status == RequestStatus.PENDING_APPROVAL
        assert request.current_approver_index == 1
        assert request.comments[-1].comment == "Approved by Khaled Zone"

        request = service.approve_step(request.id, "pm1")
        request = service.approve_step(request.id, "am1")
        assert request.status == RequestStatus.APPROVED
        assert all(s.status == StepStatus.APPROVED for s in request.approval_chain)

    def test_wrong_approver(self, service):
        request = submit(service, "se1", amount=150_000)
        with pytest.raises(Unauthorized):
            service.approve_step(request.id, "pm1")
        assert service.get_request(request.id).approval_chain[0].status == StepStatus.PENDING

    def test_approve_twice_is_already_processed(self, service):
        request = submit(service, "se1", type="safe_access", amount=100)
        service.approve_step(request.id, "zm1")
        with pytest.raises(AlreadyProcessed):
            service.approve_step(request.id, "zm1")

    def test_approve_after_completion(self, service):
        request = submit(service, "se1", amount=8_000)
        service.approve_step(request.id, "zm1")
        with pytest.raises(AlreadyProcessed) as exc_info:
            service.approve_step(request.id, "zm1")
        assert exc_info.value.status == "approved"
        assert exc_info.value.step_status == "approved"
        assert isinstance(exc_info.value, InvalidState)

    def test_stranger_after_completion_is_invalid_state(self, service):
        request = submit(service, "se1", amount=100)
        service.approve_step(request.id, "zm1")
        with pytest.raises(InvalidState) as exc_info:
            service.approve_step(request.id, "pm1")
        assert not isinstance(exc_info.value, AlreadyProcessed)

    def test_approve_draft(self, service, directory):
        draft = service.create_request("expense", directory.get_user("se1"), title="X")
        with pytest.raises(InvalidState):
            service.approve_step(draft.id, "zm1")


class TestReject:

    def test_reject_ends_request(self, service, clock):
        request = submit(service, "se1", amount=150_000)
        service.approve_step(request.id, "zm1")
        clock.advance(minutes=30)
        rejected = service.reject_step(request.id, "pm1", "Over budget")

        assert rejected.status == RequestStatus.REJECTED
        assert rejected.completed_at == clock.now
        assert rejected.approval_chain[1].status == StepStatus.REJECTED
        assert rejected.approval_chain[1].rejected_at == clock.now
        # remaining steps are never reached
        assert rejected.approval_chain[2].status == StepStatus.PENDING
        assert rejected.comments[-1].type == CommentType.REJECTION
        assert rejected.comments[-1].comment == "Over budget"
        assert_pointer_in_range(rejected)

    def test_no_actions_after_reject(self, service):
        request = submit(service, "se1", amount=150_000)
        service.reject_step(request.id, "zm1", "Wrong site")
        with pytest.raises(AlreadyProcessed):
            service.approve_step(request.id, "zm1")
        with pytest.raises(AlreadyProcessed):
            service.reject_step(request.id, "zm1", "Still wrong")
        with pytest.raises(InvalidState):
            service.escalate_request(request.id, "pm1", "try again")

    @pytest.mark.parametrize("reason", ["", "   ", None])
    def test_blank_reason_refused(self, service, reason):
        request = submit(service, "se1", amount=100)
        with pytest.raises(ValidationError):
            service.reject_step(request.id, "zm1", reason)
        unchanged = service.get_request(request.id)
        assert unchanged.status == RequestStatus.PENDING_APPROVAL
        assert unchanged.comments == []


class TestEscalate:

    def test_escalate_to_supervisor(self, service):
        request = submit(service, "se1", amount=8_000)
        escalated = service.escalate_request(request.id, "zm1", "Needs project sign-off")

        assert escalated.status == RequestStatus.ESCALATED
        assert len(escalated.approval_chain) == 2
        skipped, added = escalated.approval_chain
        assert skipped.status == StepStatus.SKIPPED
        assert skipped.comments == "Escalated: Needs project sign-off"
        assert added.approver_id == "pm1"
        assert added.step_number == 2
        assert added.financial_threshold == 100_000
        assert added.can_escalate is True
        assert escalated.current_approver_index == 1
        assert escalated.comments[-1].type == CommentType.ESCALATION
        assert escalated.comments[-1].comment == "Escalated to Omar Project: Needs project sign-off"

    def test_escalated_request_can_be_approved(self, service):
        request = submit(service, "se1", amount=8_000)
        service.escalate_request(request.id, "zm1", "Unsure")
        assert [r.id for r in service.get_pending_for_user("pm1")] == [request.id]
        approved = service.approve_step(request.id, "pm1")
        assert approved.status == RequestStatus.APPROVED

    def test_chain_grows_by_one_per_escalation(self, service):
        request = submit(service, "se1", amount=8_000)
        for approver in ("zm1", "pm1", "am1"):
            before = len(request.approval_chain)
            request = service.escalate_request(request.id, approver, "Up")
            assert len(request.approval_chain) == before + 1
            assert [s.step_number for s in request.approval_chain] == list(
                range(1, len(request.approval_chain) + 1)
            )
            assert_pointer_in_range(request)
        assert request.approval_chain[-1].approver_id == "pmo1"
        assert request.approval_chain[-1].can_escalate is False

    def test_cannot_escalate_final_top_step(self, service):
        request = submit(service, "am1", amount=1_000)
        assert request.approval_chain[0].approver_id == "pmo1"

        with pytest.raises(EscalationNotAllowed):
            service.escalate_request(request.id, "pmo1", "Nobody above")
        unchanged = service.get_request(request.id)
        assert unchanged.status == RequestStatus.PENDING_APPROVAL
        assert len(unchanged.approval_chain) == 1
        assert unchanged.approval_chain[0].status == StepStatus.PENDING

    def test_no_higher_authority(self, clock):
        users = [u for u in STANDARD_USERS if u.role != "PROJECT_MANAGER"]
        service = ApprovalWorkflowService(
            InMemoryRequestStore(),
            build_directory(users=users, org_units=STANDARD_UNITS),
            default_policy(),
            clock=clock,
        )
        request = submit(service, "se1", amount=100)
        with pytest.raises(NoHigherAuthority):
            service.escalate_request(request.id, "zm1", "Above my pay grade")
        assert service.get_request(request.id).status == RequestStatus.PENDING_APPROVAL

    def test_escalate_requires_reason(self, service):
        request = submit(service, "se1", amount=100)
        with pytest.raises(ValidationError):
            service.escalate_request(request.id, "zm1", " ")


class TestComments:

    def test_add_comment(self, service):
        request = submit(service, "se1", amount=100)
        updated = service.add_comment(request.id, "se1", "Receipt attached")
        comment = updated.comments[-1]
        assert comment.type == CommentType.COMMENT
        assert comment.user_name == "Ali Engineer"
        assert comment.id.startswith("comment_")

    def test_comment_on_finished_request(self, service):
        request = submit(service, "se1", amount=100)
        service.reject_step(request.id, "zm1", "No")
        assert len(service.add_comment(request.id, "pm1", "Agreed").comments) == 2

    def test_unknown_user(self, service):
        request = submit(service, "se1", amount=100)
        with pytest.raises(NotFound):
            service.add_comment(request.id, "ghost", "Hello")


class TestUnknownRequests:

    def test_lookups_do_not_create_locks(self, service, store):
        for i in range(100):
            with pytest.raises(NotFound):
                service.get_request(f"nope-{i}")
            with pytest.raises(NotFound):
                service.approve_step(f"nope-{i}", "zm1")
        assert len(store._locks) == 0

    def test_known_request_has_one_lock(self, service, store):
        request = submit(service, "se1", amount=100)
        service.get_request(request.id)
        service.approve_step(request.id, "zm1")
        assert len(store._locks) == 1


class TestIsolation:

    def test_returned_objects_are_copies(self, service):
        request = submit(service, "se1", amount=100)
        request.approval_chain[0].status = StepStatus.APPROVED
        request.status = RequestStatus.APPROVED
        stored = service.get_request(request.id)
        assert stored.status == RequestStatus.PENDING_APPROVAL
        assert stored.approval_chain[0].status == StepStatus.PENDING


class TestConcurrency:

    def test_same_request_one_winner(self, service):
        request = submit(service, "se1", amount=100)
        results = []
        barrier = threading.Barrier(8)

        def approve():
            barrier.wait()
            try:
                service.approve_step(request.id, "zm1")
                results.append("ok")
            except (InvalidState, AlreadyProcessed):
                results.append("refused")

        threads = [threading.Thread(target=approve) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count("ok") == 1
        assert results.count("refused") == 7
        final = service.get_request(request.id)
        assert len([c for c in final.comments if c.type == CommentType.APPROVAL]) == 1

    def test_different_requests_independent(self, service):
        ids = [submit(service, "se1", amount=100).id for _ in range(10)]
        errors = []

        def approve(request_id):
            try:
                service.approve_step(request_id, "zm1")
            except Exception as exc:  # pragma: no cover - surfaced below
                errors.append(exc)

        threads = [threading.Thread(target=approve, args=(rid,)) for rid in ids]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert all(service.get_request(rid).status == RequestStatus.APPROVED for rid in ids)
