"""
Tests for candidate queries, shortlisting, reassignment and status changes.
"""

import pytest
from sqlalchemy import select

from api.services import candidates as service
from core.events import EmailEvent
from core.workflow import IllegalStatusTransition
from database.models.candidates import CandidateStatus, StatusHistory
from database.models.communications import EmailEventType
from database.models.interviews import AssignmentStatus, CandidateAssignment
from database.models.users import Role
from tests.helpers import HR_EMAIL, INTERVIEWER_EMAIL, make_context

S = CandidateStatus


async def history(db, candidate_id):
    result = await db.execute(
        select(StatusHistory)
        .where(StatusHistory.candidate_id == candidate_id)
        .order_by(StatusHistory.id)
    )
    return result.scalars().all()


class TestQueries:

    @pytest.mark.asyncio
    async def test_list_with_search_and_status(self, db, make_candidate):
        await make_candidate()
        await make_candidate(
            status=S.ON_HOLD, first_name="Sam", last_name="Lee",
            email="sam@example.com", position_applied="Designer",
        )

        assert (await service.list_candidates(db))["total"] == 2

        found = await service.list_candidates(db, search="design")
        assert [c["first_name"] for c in found["candidates"]] == ["Sam"]

        held = await service.list_candidates(db, status="on_hold")
        assert held["total"] == 1
        assert held["candidates"][0]["status"] == "on_hold"

    @pytest.mark.asyncio
    async def test_list_rejects_unknown_status(self, db):
        result = await service.list_candidates(db, status="archived")

        assert result == {"success": False, "error": "Invalid status: archived"}

    @pytest.mark.asyncio
    async def test_detail_lists_allowed_transitions(self, db, make_candidate, hr_context):
        candidate = await make_candidate(status=S.OFFER_SENT)

        detail = await service.get_candidate(db, candidate.id, hr_context)

        assert detail["allowed_transitions"] == ["hired", "offer_rejected", "on_hold", "rejected"]
        assert detail["assignment"] is None
        assert detail["latest_proposal_id"] is None

    @pytest.mark.asyncio
    async def test_interviewer_only_sees_assigned_candidates(
        self, db, make_candidate, assign, interviewer_context
    ):
        mine = await make_candidate(status=S.SHORTLISTED)
        other = await make_candidate(email="other@example.com")
        await assign(mine)

        assert await service.get_candidate(db, mine.id, interviewer_context) is not None
        assert await service.get_candidate(db, other.id, interviewer_context) is None

    @pytest.mark.asyncio
    async def test_missing_candidate(self, db, hr_context):
        assert await service.get_candidate(db, 999, hr_context) is None

        result = await service.get_status_history(db, 999)
        assert result["status_code"] == 404


class TestShortlist:
    """Shortlisting assigns an interviewer in the same transaction."""

    @pytest.mark.asyncio
    async def test_shortlist_assigns_interviewer(self, db, make_candidate, hr_context):
        candidate = await make_candidate()

        result = await service.shortlist_candidate(
            db, candidate.id, "Ivan Interviewer", "Interviewer@Example.com", hr_context
        )

        assert result["success"]
        assert result["candidate"]["status"] == "shortlisted"
        assignment = result["assignment"]
        assert assignment["interviewer_email"] == INTERVIEWER_EMAIL
        assert assignment["status"] == "pending"
        assert assignment["is_active"] is True
        assert assignment["assigned_by_email"] == HR_EMAIL

        [event] = result["events"]
        assert isinstance(event, EmailEvent)
        assert event.event_type == EmailEventType.CANDIDATE_ASSIGNED
        assert event.recipient_email == INTERVIEWER_EMAIL
        assert event.data["candidate_name"] == "Jane Doe"
        assert event.data["candidate_link"].endswith(f"/candidates/{candidate.id}")

        rows = await history(db, candidate.id)
        assert [(r.from_status, r.to_status) for r in rows] == [("new", "shortlisted")]

    @pytest.mark.asyncio
    async def test_second_shortlist_conflicts(self, db, make_candidate, assign, hr_context):
        candidate = await make_candidate(status=S.SHORTLISTED)
        await assign(candidate)

        result = await service.shortlist_candidate(
            db, candidate.id, "Other", "other@example.com", hr_context
        )

        assert not result["success"]
        assert result["status_code"] == 409

    @pytest.mark.asyncio
    async def test_shortlist_from_terminal_status(self, db, make_candidate, hr_context):
        candidate = await make_candidate(status=S.REJECTED)

        with pytest.raises(IllegalStatusTransition):
            await service.shortlist_candidate(
                db, candidate.id, "Ivan", INTERVIEWER_EMAIL, hr_context
            )

    @pytest.mark.asyncio
    async def test_shortlist_missing_candidate(self, db, hr_context):
        result = await service.shortlist_candidate(db, 42, "Ivan", INTERVIEWER_EMAIL, hr_context)
        assert result["status_code"] == 404


class TestReassign:
    """Exactly one active assignment per candidate."""

    @pytest.mark.asyncio
    async def test_reassign_supersedes_previous(self, db, make_candidate, assign, hr_context):
        candidate = await make_candidate(status=S.SHORTLISTED)
        previous, _ = await assign(candidate)

        result = await service.reassign_interviewer(
            db, candidate.id, "Nina New", "nina@example.com", hr_context, "holiday cover"
        )

        assert result["success"]
        assert result["previous_assignment"]["is_active"] is False
        assert result["previous_assignment"]["status"] == "reassigned"
        assert result["assignment"]["interviewer_email"] == "nina@example.com"
        assert result["assignment"]["notes"].startswith("Reassigned from Ivan Interviewer")
        assert result["assignment"]["notes"].endswith("holiday cover")

        removed, added = result["events"]
        assert removed.recipient_email == INTERVIEWER_EMAIL
        assert removed.data["notification_type"] == "removed"
        assert added.recipient_email == "nina@example.com"
        assert added.data["notification_type"] == "assigned"

        active = (await db.execute(
            select(CandidateAssignment).where(
                CandidateAssignment.candidate_id == candidate.id,
                CandidateAssignment.is_active.is_(True),
            )
        )).scalars().all()
        assert len(active) == 1

        assert len(await service.list_assignments(db, candidate.id)) == 2

    @pytest.mark.asyncio
    async def test_reassign_to_same_interviewer(self, db, make_candidate, assign, hr_context):
        candidate = await make_candidate(status=S.SHORTLISTED)
        await assign(candidate)

        result = await service.reassign_interviewer(
            db, candidate.id, "Ivan", INTERVIEWER_EMAIL.upper(), hr_context
        )

        assert result == {
            "success": False,
            "error": "Candidate is already assigned to this interviewer",
        }

    @pytest.mark.asyncio
    async def test_reassign_without_assignment(self, db, make_candidate, hr_context):
        candidate = await make_candidate()

        result = await service.reassign_interviewer(
            db, candidate.id, "Nina", "nina@example.com", hr_context
        )

        assert result["error"] == "Candidate has no assigned interviewer"


class TestChangeStatus:
    """Generic moves along the transition table."""

    @pytest.mark.asyncio
    async def test_hold_then_reject(self, db, make_candidate, hr_context):
        candidate = await make_candidate()

        held = await service.change_status(db, candidate.id, S.ON_HOLD, hr_context, "budget freeze")
        rejected = await service.change_status(db, candidate.id, S.REJECTED, hr_context)

        assert held["candidate"]["status"] == "on_hold"
        assert rejected["candidate"]["status"] == "rejected"
        assert held["events"] == []

        result = await service.get_status_history(db, candidate.id)
        assert result["total"] == 2
        assert result["history"][0]["notes"] == "budget freeze"
        assert result["history"][1]["to_status"] == "rejected"

    @pytest.mark.asyncio
    async def test_illegal_move_raises(self, db, make_candidate, hr_context):
        candidate = await make_candidate()

        with pytest.raises(IllegalStatusTransition):
            await service.change_status(db, candidate.id, S.HIRED, hr_context)

        assert await history(db, candidate.id) == []

    @pytest.mark.asyncio
    async def test_terminal_status_is_final(self, db, make_candidate, hr_context):
        candidate = await make_candidate(status=S.HIRED)

        with pytest.raises(IllegalStatusTransition):
            await service.change_status(db, candidate.id, S.ON_HOLD, hr_context)

    @pytest.mark.asyncio
    async def test_managed_status_needs_its_command(self, db, make_candidate, hr_context):
        candidate = await make_candidate()

        result = await service.change_status(db, candidate.id, S.SHORTLISTED, hr_context)

        assert not result["success"]
        assert result["error"] == "Use the shortlist action to move to 'shortlisted'"
        assert candidate.status == S.NEW

    @pytest.mark.asyncio
    async def test_held_candidate_returns_to_shortlist(
        self, db, make_candidate, assign, hr_context
    ):
        candidate = await make_candidate(status=S.ON_HOLD)
        await assign(candidate)

        result = await service.change_status(db, candidate.id, S.SHORTLISTED, hr_context)

        assert result["success"]
        assert result["candidate"]["status"] == "shortlisted"

    @pytest.mark.asyncio
    async def test_held_candidate_returns_to_scheduled_interview(
        self, db, make_candidate, assign, hr_context
    ):
        candidate = await make_candidate(status=S.ON_HOLD)
        await assign(candidate, status=AssignmentStatus.CONFIRMED, with_interview=True)

        result = await service.change_status(db, candidate.id, S.INTERVIEW_SCHEDULED, hr_context)

        assert result["candidate"]["status"] == "interview_scheduled"

    @pytest.mark.asyncio
    async def test_admin_hires_after_offer_sent(self, db, make_candidate, admin_context):
        candidate = await make_candidate(status=S.OFFER_SENT)

        result = await service.change_status(db, candidate.id, S.HIRED, admin_context)

        assert result["candidate"]["status"] == "hired"
        assert result["candidate"]["updated_by_email"] == admin_context.email

    @pytest.mark.asyncio
    async def test_changes_are_attributed(self, db, make_candidate):
        context = make_context(Role.HR_STAFF, "user-x", "x@example.com")
        candidate = await make_candidate()

        await service.change_status(db, candidate.id, S.ON_HOLD, context)

        [row] = await history(db, candidate.id)
        assert row.changed_by == "user-x"
        assert row.changed_by_email == "x@example.com"
