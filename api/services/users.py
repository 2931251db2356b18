"""
User administration service functions.

Roles are granted per email by hr_admin. A grant made before the person's
first sign-in is linked to their user id when they first authenticate.
"""

from typing import Any, Dict, List
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.middleware.authorization import SessionContext
from core.utils.validators import validate_email
from database.models.users import Role, User, UserRole

logger = logging.getLogger(__name__)


def role_to_dict(row: UserRole) -> Dict[str, Any]:
    return {
        "id": row.id,
        "user_id": row.user_id,
        "email": row.email,
        "role": row.role.value,
        "department": row.department,
        "is_active": row.is_active,
        "created_at": row.created_at.isoformat() if row.created_at else None,
        "updated_at": row.updated_at.isoformat() if row.updated_at else None,
    }


async def list_roles(db: AsyncSession) -> Dict[str, Any]:
    result = await db.execute(select(UserRole).order_by(UserRole.email))
    rows = result.scalars().all()
    return {"roles": [role_to_dict(r) for r in rows], "total": len(rows)}


async def add_role(
    db: AsyncSession,
    email: str,
    role: Role,
    department: str = "HR",
) -> Dict[str, Any]:
    """
    Grant ``role`` to ``email``.

    Args:
        db: Database session
        email: Address of the person (stored lower-cased)
        role: Role to grant
        department: Department label

    Returns:
        Result dict with the role row
    """
    ok, normalized = validate_email(email)
    if not ok:
        return {"success": False, "error": f"Invalid email address: {normalized}"}
    email = normalized.lower()

    existing = await db.execute(select(UserRole).where(UserRole.email == email))
    if existing.scalar_one_or_none() is not None:
        return {"success": False, "error": f"A role already exists for {email}", "status_code": 409}

    user_id = (await db.execute(select(User.id).where(User.email == email))).scalar_one_or_none()

    row = UserRole(
        user_id=user_id,
        email=email,
        role=role,
        department=department or "HR",
        is_active=True,
    )
    db.add(row)
    await db.commit()

    logger.info(f"Granted role {role.value} to {email}")
    return {"success": True, "role": role_to_dict(row)}


async def toggle_role(db: AsyncSession, role_id: int, context: SessionContext) -> Dict[str, Any]:
    """Flip ``is_active`` on a role row. Admins cannot deactivate themselves."""
    row = await db.get(UserRole, role_id)
    if row is None:
        return {"success": False, "error": "Role not found", "status_code": 404}
    if row.user_id == context.user_id and row.is_active:
        return {"success": False, "error": "You cannot deactivate your own role"}

    row.is_active = not row.is_active
    await db.commit()

    logger.info(f"Role {row.id} for {row.email} is now {'active' if row.is_active else 'inactive'}")
    return {"success": True, "role": role_to_dict(row)}


async def list_pending_users(db: AsyncSession) -> List[Dict[str, Any]]:
    """Known users with no role yet, or still marked pending."""
    result = await db.execute(
        select(User, UserRole)
        .outerjoin(UserRole, UserRole.user_id == User.id)
        .where((UserRole.id.is_(None)) | (UserRole.role == Role.PENDING))
        .order_by(User.created_at.desc())
    )
    return [
        {
            "id": user.id,
            "email": user.email,
            "full_name": user.full_name,
            "created_at": user.created_at.isoformat() if user.created_at else None,
        }
        for user, _ in result.all()
    ]


def describe_context(context: SessionContext) -> Dict[str, Any]:
    """The caller's own role, flags and permission matrix."""
    return {
        "user_id": context.user_id,
        "email": context.email,
        "name": context.name,
        "role": context.role.value if context.role else None,
        "is_active": context.is_active,
        "has_access": context.has_access,
        "is_hr_admin": context.is_hr_admin,
        "is_hr_staff": context.is_hr_staff,
        "is_hr_manager": context.is_hr_manager,
        "is_interviewer": context.is_interviewer,
        "permissions": {
            resource: sorted(verbs) for resource, verbs in context.permissions.items()
        },
    }
