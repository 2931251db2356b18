"""Builders shared by the test modules."""

from datetime import date
from decimal import Decimal

from core.middleware.authorization import DEFAULT_ROLE_PERMISSIONS, SessionContext
from core.security import create_access_token
from database.models.users import User, UserRole

HR_ID = "user-hr-staff"
ADMIN_ID = "user-hr-admin"
MANAGER_ID = "user-hr-manager"
INTERVIEWER_ID = "user-interviewer"

HR_EMAIL = "staff@example.com"
ADMIN_EMAIL = "admin@example.com"
MANAGER_EMAIL = "manager@example.com"
INTERVIEWER_EMAIL = "interviewer@example.com"


def make_context(role, user_id, email, name=None, is_active=True):
    """SessionContext carrying the default matrix for ``role``."""
    matrix = {}
    if role is not None:
        matrix = {
            resource.value: frozenset(verbs)
            for resource, verbs in DEFAULT_ROLE_PERMISSIONS[role].items()
        }
    return SessionContext(
        user_id=user_id,
        email=email,
        name=name,
        role=role,
        is_active=is_active,
        permissions=matrix,
    )


def auth_headers(user_id, email, name=None):
    return {"Authorization": f"Bearer {create_access_token(user_id, email, name)}"}


async def add_user(db, user_id, email, role=None, name=None, is_active=True):
    """Known user, optionally with a role grant."""
    db.add(User(id=user_id, email=email, full_name=name))
    if role is not None:
        db.add(UserRole(user_id=user_id, email=email, role=role, is_active=is_active))
    await db.commit()


def rubric(score=3):
    """A complete rubric with every topic scored ``score``."""
    competency = [{"topic_index": i, "score": score} for i in range(7)]
    core_values = [{"topic_index": i, "score": score} for i in range(8)]
    return competency, core_values


def offer_form(**overrides):
    offer = {
        "position_offered": "Backend Engineer",
        "position_level": "Senior",
        "job_grade": "G7",
        "expected_salary": Decimal("85000"),
        "start_date": date(2026, 12, 1),
        "company_name": "Example Co., Ltd.",
        "department_th": "Technology",
        "department_en": "Technology",
        "division_th": "Platform",
        "division_en": "Platform",
        "section_th": "Core Services",
        "section_en": "Core Services",
    }
    offer.update(overrides)
    return offer


def personal_form(**overrides):
    personal = {
        "name_title": "Ms.",
        "first_name": "Jane",
        "last_name": "Doe",
        "first_name_en": "Jane",
        "last_name_en": "Doe",
        "national_id": "1-2345-67890-12-3",
        "birthday": date(1994, 5, 17),
        "gender": "female",
        "religion": "none",
        "house_no": "99/1",
        "sub_district": "Lumphini",
        "district": "Pathum Wan",
        "province": "Bangkok",
        "postal_code": "10330",
    }
    personal.update(overrides)
    return personal
