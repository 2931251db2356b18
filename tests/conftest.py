"""Shared fixtures and utilities for tests."""

import os
import tempfile

# Settings are read at import time, so the environment is prepared before
# any application module is imported.
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-key-min-32-chars-long-for-security")
os.environ.setdefault("JWT_ALGORITHM", "HS256")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
os.environ.setdefault("CELERY_BROKER_URL", "redis://localhost:6379/1")
os.environ.setdefault("CELERY_RESULT_BACKEND", "redis://localhost:6379/2")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("EMAIL_TRANSPORT", "relay")
os.environ.setdefault("JSON_LOGS", "false")
os.environ.setdefault("STORAGE_PATH", tempfile.mkdtemp(prefix="talent-ats-tests-"))

from decimal import Decimal
from datetime import date, time

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from database.engine import create_schema, seed_role_permissions
from database.models.candidates import Candidate, CandidateStatus
from database.models.interviews import (
    AssignmentStatus,
    CandidateAssignment,
    Interview,
    InterviewStatus,
)
from database.models.users import Role
from tests.helpers import (
    ADMIN_EMAIL,
    ADMIN_ID,
    HR_EMAIL,
    HR_ID,
    INTERVIEWER_EMAIL,
    INTERVIEWER_ID,
    MANAGER_EMAIL,
    MANAGER_ID,
    add_user,
    make_context,
)


@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        await seed_role_permissions(session)
        yield session


@pytest.fixture
def hr_context():
    return make_context(Role.HR_STAFF, HR_ID, HR_EMAIL, "Helen Staff")


@pytest.fixture
def admin_context():
    return make_context(Role.HR_ADMIN, ADMIN_ID, ADMIN_EMAIL, "Ada Admin")


@pytest.fixture
def manager_context():
    return make_context(Role.HR_MANAGER, MANAGER_ID, MANAGER_EMAIL, "Mona Manager")


@pytest.fixture
def interviewer_context():
    return make_context(Role.INTERVIEWER, INTERVIEWER_ID, INTERVIEWER_EMAIL, "Ivan Interviewer")


@pytest_asyncio.fixture
async def staff(db):
    """The four role holders used across service tests."""
    await add_user(db, HR_ID, HR_EMAIL, Role.HR_STAFF, "Helen Staff")
    await add_user(db, ADMIN_ID, ADMIN_EMAIL, Role.HR_ADMIN, "Ada Admin")
    await add_user(db, MANAGER_ID, MANAGER_EMAIL, Role.HR_MANAGER, "Mona Manager")
    await add_user(db, INTERVIEWER_ID, INTERVIEWER_EMAIL, Role.INTERVIEWER, "Ivan Interviewer")


@pytest.fixture
def make_candidate(db):
    """Factory inserting a candidate in the given status."""

    async def factory(status=CandidateStatus.NEW, **fields):
        values = {
            "first_name": "Jane",
            "last_name": "Doe",
            "email": "jane.doe@example.com",
            "position_applied": "Backend Engineer",
            "years_of_experience": Decimal("5"),
        }
        values.update(fields)
        candidate = Candidate(status=status, **values)
        db.add(candidate)
        await db.commit()
        return candidate

    return factory


@pytest.fixture
def assign(db):
    """Factory inserting an active assignment and optionally a scheduled interview."""

    async def factory(
        candidate,
        interviewer_email=INTERVIEWER_EMAIL,
        status=AssignmentStatus.PENDING,
        with_interview=False,
    ):
        assignment = CandidateAssignment(
            candidate_id=candidate.id,
            interviewer_name="Ivan Interviewer",
            interviewer_email=interviewer_email,
            assigned_by=HR_ID,
            assigned_by_email=HR_EMAIL,
            status=status,
            is_active=True,
        )
        db.add(assignment)
        await db.flush()
        interview = None
        if with_interview:
            interview = Interview(
                candidate_id=candidate.id,
                assignment_id=assignment.id,
                interviewer_name="Ivan Interviewer",
                interviewer_email=interviewer_email,
                interview_date=date(2026, 11, 2),
                interview_time=time(10, 0),
                status=InterviewStatus.SCHEDULED,
                created_by=HR_ID,
                created_by_email=HR_EMAIL,
            )
            db.add(interview)
        await db.commit()
        return assignment, interview

    return factory
