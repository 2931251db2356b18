"""
User administration endpoints.

hr_admin grants roles by email and toggles them; every authenticated user
can read their own session context.
"""

from fastapi import APIRouter, Depends, Path
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_caller_context, raise_for_result
from core.middleware.authorization import ADMIN_ROLES, SessionContext, require_roles
from database.engine import get_db
from database.models.users import Role
from api.services import users as user_service

router = APIRouter(prefix="/users", tags=["users"])


class AddRoleRequest(BaseModel):
    """Request model for granting a role."""
    email: EmailStr = Field(..., description="Email of the person")
    role: Role = Field(..., description="Role to grant")
    department: str = Field("HR", max_length=100, description="Department")


@router.get(
    "/me",
    summary="Get My Access",
    description="The caller's role, role flags and permission matrix. Works for pending users.",
)
async def get_me(context: SessionContext = Depends(get_caller_context)):
    return user_service.describe_context(context)


@router.get(
    "/roles",
    summary="List Roles",
    description="Every role grant. hr_admin only.",
)
async def list_roles(
    context: SessionContext = Depends(require_roles(*ADMIN_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.list_roles(db)


@router.post(
    "/roles",
    status_code=201,
    summary="Add Role",
    description="Grant a role to an email address. hr_admin only.",
)
async def add_role(
    request: AddRoleRequest,
    context: SessionContext = Depends(require_roles(*ADMIN_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    result = await user_service.add_role(db, request.email, request.role, request.department)
    return raise_for_result(result, "Failed to add role")


@router.post(
    "/roles/{role_id}/toggle",
    summary="Toggle Role",
    description="Activate or deactivate a role grant. hr_admin only.",
)
async def toggle_role(
    role_id: int = Path(..., description="Role row ID"),
    context: SessionContext = Depends(require_roles(*ADMIN_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    result = await user_service.toggle_role(db, role_id, context)
    return raise_for_result(result, "Failed to toggle role")


@router.get(
    "/pending",
    summary="List Pending Users",
    description="Users who signed in but have no role yet. hr_admin only.",
)
async def list_pending_users(
    context: SessionContext = Depends(require_roles(*ADMIN_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    users = await user_service.list_pending_users(db)
    return {"users": users, "total": len(users)}
