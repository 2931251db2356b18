"""
Tests for the two-stage offer approval: HR Manager approval, then
interviewer acknowledgment.
"""

from decimal import Decimal

import pytest
from sqlalchemy import select

from api.services import offers as service
from core.events import EmailEvent, InAppNotice
from core.workflow import IllegalStatusTransition, WorkflowError
from database.models.candidates import CandidateStatus, StatusHistory
from database.models.communications import EmailEventType, NotificationType
from database.models.interviews import AssignmentStatus
from database.models.users import Role
from tests.helpers import (
    HR_EMAIL,
    HR_ID,
    INTERVIEWER_EMAIL,
    INTERVIEWER_ID,
    MANAGER_EMAIL,
    MANAGER_ID,
    add_user,
    make_context,
    offer_form,
    personal_form,
)

S = CandidateStatus


@pytest.fixture
def offer_ready(staff, make_candidate, assign):
    """Candidate in ``to_offer`` whose interview was held by the test interviewer."""

    async def factory(status=S.TO_OFFER):
        candidate = await make_candidate(status=status)
        await assign(candidate, status=AssignmentStatus.COMPLETED, with_interview=True)
        return candidate

    return factory


@pytest.fixture
def pending_offer(db, offer_ready, hr_context):
    """A submitted offer awaiting HR Manager approval."""

    async def factory():
        candidate = await offer_ready()
        result = await service.send_offer(
            db, candidate.id, offer_form(), personal_form(), hr_context
        )
        return candidate, result["proposal"]["id"]

    return factory


async def history(db, candidate_id):
    result = await db.execute(
        select(StatusHistory)
        .where(StatusHistory.candidate_id == candidate_id)
        .order_by(StatusHistory.id)
    )
    return result.scalars().all()


class TestSendOffer:

    @pytest.mark.asyncio
    async def test_send_offer(self, db, offer_ready, hr_context):
        candidate = await offer_ready()

        result = await service.send_offer(
            db, candidate.id, offer_form(), personal_form(), hr_context
        )

        assert result["success"]
        proposal = result["proposal"]
        assert result["candidate"]["status"] == "pending_approval"
        assert proposal["offer_status"] == "pending"
        assert proposal["assigned_hr_manager_id"] == MANAGER_ID
        assert proposal["assigned_hr_manager_email"] == MANAGER_EMAIL
        assert proposal["hr_manager_approved"] is False
        assert proposal["interviewer_acknowledged"] is False
        assert proposal["expected_salary"] == "85000"
        assert proposal["created_by_email"] == HR_EMAIL

        assert candidate.national_id == "1234567890123"
        assert candidate.first_name_en == "Jane"
        assert candidate.moo is None

        [notice] = result["events"]
        assert isinstance(notice, InAppNotice)
        assert notice.user_id == MANAGER_ID
        assert notice.type == NotificationType.OFFER_APPROVAL_HR_MANAGER
        assert notice.title == "New Offer Pending Approval"
        assert notice.related_proposal_id == proposal["id"]

        rows = await history(db, candidate.id)
        assert rows[-1].to_status == "pending_approval"
        assert rows[-1].notes == "Job offer submitted for approval"

    @pytest.mark.asyncio
    async def test_straight_from_shortlist(self, db, offer_ready, hr_context):
        candidate = await offer_ready(status=S.SHORTLISTED)

        result = await service.send_offer(
            db, candidate.id, offer_form(), personal_form(), hr_context
        )

        assert result["candidate"]["status"] == "pending_approval"

    @pytest.mark.asyncio
    async def test_send_from_new_is_illegal(self, db, offer_ready, hr_context):
        candidate = await offer_ready(status=S.NEW)

        with pytest.raises(IllegalStatusTransition):
            await service.send_offer(db, candidate.id, offer_form(), personal_form(), hr_context)

    @pytest.mark.asyncio
    async def test_missing_fields(self, db, offer_ready, hr_context):
        candidate = await offer_ready()

        result = await service.send_offer(
            db, candidate.id, offer_form(job_grade=" "), personal_form(province=None), hr_context
        )

        assert result["error"] == "Missing required fields: job_grade, province"
        assert candidate.status == S.TO_OFFER

    @pytest.mark.parametrize("offer,personal,error", [
        ({}, {"national_id": "12345"}, "National ID must be 13 digits"),
        ({"manager_email": "not-an-email"}, {}, "Invalid email address for manager_email"),
        ({"expected_salary": Decimal("-1")}, {}, "expected_salary must not be negative"),
    ])
    @pytest.mark.asyncio
    async def test_invalid_input(self, db, offer_ready, hr_context, offer, personal, error):
        candidate = await offer_ready()

        result = await service.send_offer(
            db, candidate.id, offer_form(**offer), personal_form(**personal), hr_context
        )

        assert result["error"] == error

    @pytest.mark.asyncio
    async def test_no_hr_manager(self, db, make_candidate, hr_context):
        candidate = await make_candidate(status=S.TO_OFFER)

        result = await service.send_offer(
            db, candidate.id, offer_form(), personal_form(), hr_context
        )

        assert result["error"] == "No active HR Manager available to approve the offer"

    @pytest.mark.asyncio
    async def test_explicit_hr_manager(self, db, offer_ready, hr_context):
        await add_user(db, "user-mgr-2", "second@example.com", Role.HR_MANAGER)
        candidate = await offer_ready()

        result = await service.send_offer(
            db, candidate.id, offer_form(), personal_form(), hr_context,
            hr_manager_id="user-mgr-2",
        )

        assert result["proposal"]["assigned_hr_manager_email"] == "second@example.com"

    @pytest.mark.asyncio
    async def test_hr_manager_list(self, db, staff):
        managers = await service.list_hr_managers(db)
        assert [m["user_id"] for m in managers] == [MANAGER_ID]


class TestManagerStage:

    @pytest.mark.asyncio
    async def test_approve(self, db, pending_offer, manager_context):
        candidate, proposal_id = await pending_offer()

        result = await service.approve_by_manager(db, proposal_id, manager_context)

        assert result["proposal"]["hr_manager_approved"] is True
        assert result["proposal"]["hr_manager_approved_by"] == MANAGER_ID
        assert candidate.status == S.PENDING_APPROVAL

        interviewer_notice, email, submitter_notice = result["events"]
        assert interviewer_notice.user_id == INTERVIEWER_ID
        assert interviewer_notice.title == "Offer Acknowledgment Required"
        assert isinstance(email, EmailEvent)
        assert email.event_type == EmailEventType.OFFER_APPROVED_BY_HR_MANAGER
        assert email.recipient_email == INTERVIEWER_EMAIL
        assert submitter_notice.user_id == HR_ID
        assert submitter_notice.type == NotificationType.OFFER_APPROVED_HR_MANAGER

    @pytest.mark.asyncio
    async def test_approve_twice_conflicts(self, db, pending_offer, manager_context):
        _, proposal_id = await pending_offer()
        await service.approve_by_manager(db, proposal_id, manager_context)

        result = await service.approve_by_manager(db, proposal_id, manager_context)

        assert result["status_code"] == 409

    @pytest.mark.asyncio
    async def test_approve_without_interviewer_account(
        self, db, staff, make_candidate, assign, hr_context, manager_context
    ):
        candidate = await make_candidate(status=S.TO_OFFER)
        await assign(
            candidate,
            interviewer_email="contractor@example.com",
            status=AssignmentStatus.COMPLETED,
            with_interview=True,
        )
        sent = await service.send_offer(db, candidate.id, offer_form(), personal_form(), hr_context)

        result = await service.approve_by_manager(db, sent["proposal"]["id"], manager_context)

        assert result["proposal"]["hr_manager_approved"] is True
        [submitter_notice] = result["events"]
        assert submitter_notice.type == NotificationType.OFFER_APPROVED_HR_MANAGER

    @pytest.mark.asyncio
    async def test_reject_after_approval_conflicts(
        self, db, pending_offer, manager_context, interviewer_context
    ):
        _, proposal_id = await pending_offer()
        await service.approve_by_manager(db, proposal_id, manager_context)

        result = await service.reject_by_manager(db, proposal_id, "salary too low", manager_context)
        acknowledged = await service.acknowledge(db, proposal_id, interviewer_context)

        assert result["status_code"] == 409
        assert result["error"] == "Offer is already approved by HR Manager"
        assert acknowledged["proposal"]["hr_manager_rejection_notes"] is None

    @pytest.mark.asyncio
    async def test_other_manager_forbidden(self, db, pending_offer):
        _, proposal_id = await pending_offer()
        other = make_context(Role.HR_MANAGER, "user-mgr-2", "second@example.com")

        result = await service.approve_by_manager(db, proposal_id, other)

        assert result["status_code"] == 403

    @pytest.mark.asyncio
    async def test_reject_keeps_status_and_notes(self, db, pending_offer, manager_context):
        candidate, proposal_id = await pending_offer()

        result = await service.reject_by_manager(db, proposal_id, "salary too low", manager_context)

        assert result["proposal"]["hr_manager_rejection_notes"] == "salary too low"
        assert candidate.status == S.PENDING_APPROVAL

        last = (await history(db, candidate.id))[-1]
        assert last.from_status == last.to_status == "pending_approval"
        assert last.notes == "Job offer rejected by HR Manager: salary too low"

        notice, email = result["events"]
        assert notice.user_id == HR_ID
        assert notice.title == "Offer Rejected by HR Manager"
        assert notice.type == NotificationType.OFFER_REJECTED
        assert email.event_type == EmailEventType.OFFER_REJECTED_BY_HR_MANAGER
        assert email.recipient_email == HR_EMAIL
        assert email.data["rejection_notes"] == "salary too low"

    @pytest.mark.asyncio
    async def test_reject_requires_notes(self, db, pending_offer, manager_context):
        _, proposal_id = await pending_offer()

        result = await service.reject_by_manager(db, proposal_id, "  ", manager_context)

        assert result["error"] == "Rejection notes are required"

    @pytest.mark.asyncio
    async def test_unknown_offer(self, db, staff, manager_context):
        result = await service.approve_by_manager(db, 999, manager_context)
        assert result["status_code"] == 404


class TestInterviewerStage:

    @pytest.mark.asyncio
    async def test_acknowledge_before_approval(self, db, pending_offer, interviewer_context):
        _, proposal_id = await pending_offer()

        result = await service.acknowledge(db, proposal_id, interviewer_context)

        assert result["error"] == "Offer must be approved by the HR Manager first"

    @pytest.mark.asyncio
    async def test_approve_then_acknowledge(
        self, db, pending_offer, manager_context, interviewer_context
    ):
        candidate, proposal_id = await pending_offer()
        await service.approve_by_manager(db, proposal_id, manager_context)

        result = await service.acknowledge(db, proposal_id, interviewer_context)

        assert result["candidate"]["status"] == "offer_sent"
        assert result["proposal"]["offer_status"] == "approved"
        assert result["proposal"]["interviewer_acknowledged"] is True
        assert result["proposal"]["interviewer_acknowledged_by"] == INTERVIEWER_ID

        submitter, email, manager = result["events"]
        assert submitter.user_id == HR_ID
        assert submitter.title == "Offer Approval Complete"
        assert email.event_type == EmailEventType.OFFER_ACKNOWLEDGED
        assert email.recipient_email == HR_EMAIL
        assert manager.user_id == MANAGER_ID

        last = (await history(db, candidate.id))[-1]
        assert (last.from_status, last.to_status) == ("pending_approval", "offer_sent")

    @pytest.mark.asyncio
    async def test_other_interviewer_forbidden(self, db, pending_offer, manager_context):
        _, proposal_id = await pending_offer()
        await service.approve_by_manager(db, proposal_id, manager_context)
        stranger = make_context(Role.INTERVIEWER, "user-other", "other@example.com")

        result = await service.acknowledge(db, proposal_id, stranger)

        assert result["status_code"] == 403

    @pytest.mark.asyncio
    async def test_reject_withdraws_manager_approval(
        self, db, pending_offer, manager_context, interviewer_context
    ):
        candidate, proposal_id = await pending_offer()
        await service.approve_by_manager(db, proposal_id, manager_context)

        result = await service.reject_by_interviewer(
            db, proposal_id, "start date too early", interviewer_context
        )

        proposal = result["proposal"]
        assert proposal["hr_manager_approved"] is False
        assert proposal["hr_manager_approved_by"] is None
        assert proposal["hr_manager_approved_at"] is None
        assert proposal["interviewer_rejection_notes"] == "start date too early"
        assert candidate.status == S.PENDING_APPROVAL

        notice, email = result["events"]
        assert notice.title == "Offer Rejected by Interviewer"
        assert email.event_type == EmailEventType.OFFER_REJECTED_BY_INTERVIEWER

    @pytest.mark.asyncio
    async def test_acting_after_offer_sent(
        self, db, pending_offer, manager_context, interviewer_context
    ):
        _, proposal_id = await pending_offer()
        await service.approve_by_manager(db, proposal_id, manager_context)
        await service.acknowledge(db, proposal_id, interviewer_context)

        with pytest.raises(WorkflowError, match="not awaiting approval"):
            await service.reject_by_manager(db, proposal_id, "too late", manager_context)


class TestResubmit:

    @pytest.mark.asyncio
    async def test_resubmit_resets_approvals(
        self, db, pending_offer, manager_context, interviewer_context, hr_context
    ):
        candidate, proposal_id = await pending_offer()
        await service.approve_by_manager(db, proposal_id, manager_context)
        await service.reject_by_interviewer(db, proposal_id, "raise salary", interviewer_context)

        result = await service.resubmit(
            db, proposal_id, offer_form(expected_salary=Decimal("95000")), personal_form(),
            hr_context,
        )

        proposal = result["proposal"]
        assert proposal["expected_salary"] == "95000"
        assert proposal["offer_status"] == "pending"
        assert proposal["hr_manager_approved"] is False
        assert proposal["interviewer_acknowledged"] is False
        assert proposal["interviewer_rejection_notes"] is None
        assert proposal["assigned_hr_manager_id"] == MANAGER_ID
        assert candidate.status == S.PENDING_APPROVAL

        notice, email = result["events"]
        assert notice.user_id == MANAGER_ID
        assert email.event_type == EmailEventType.OFFER_SUBMITTED_FOR_APPROVAL
        assert email.recipient_email == MANAGER_EMAIL

        last = (await history(db, candidate.id))[-1]
        assert last.notes == f"Job offer updated and re-submitted for approval to {MANAGER_EMAIL}"

    @pytest.mark.asyncio
    async def test_resubmit_validates(self, db, pending_offer, hr_context):
        _, proposal_id = await pending_offer()

        result = await service.resubmit(
            db, proposal_id, offer_form(company_name=""), personal_form(), hr_context
        )

        assert result["error"] == "Missing required fields: company_name"


class TestOfferVisibility:

    @pytest.mark.asyncio
    async def test_pending_lists_per_role(
        self, db, pending_offer, manager_context, interviewer_context, hr_context
    ):
        _, proposal_id = await pending_offer()

        assert (await service.list_pending_offers(db, manager_context))["total"] == 1
        assert (await service.list_pending_offers(db, interviewer_context))["total"] == 0
        assert (await service.list_pending_offers(db, hr_context))["total"] == 1

        await service.approve_by_manager(db, proposal_id, manager_context)

        assert (await service.list_pending_offers(db, manager_context))["total"] == 0
        assert (await service.list_pending_offers(db, interviewer_context))["total"] == 1

    @pytest.mark.asyncio
    async def test_get_offer(self, db, pending_offer, interviewer_context, hr_context):
        _, proposal_id = await pending_offer()
        stranger = make_context(Role.INTERVIEWER, "user-other", "other@example.com")

        detail = await service.get_offer(db, proposal_id, hr_context)

        assert detail["personal_info"]["national_id"] == "1234567890123"
        assert detail["candidate"]["status"] == "pending_approval"
        assert await service.get_offer(db, proposal_id, interviewer_context) is not None
        assert await service.get_offer(db, proposal_id, stranger) is None
        assert await service.get_offer(db, 999, hr_context) is None
