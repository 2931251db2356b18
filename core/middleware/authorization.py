"""
Authorization: role-based permission resolution and route guards.

This module implements:
1. The role -> resource -> verb permission matrix (stored in role_permissions)
2. A pure capability check over that matrix
3. Loading the caller's SessionContext (role, active flag, matrix)
4. FastAPI dependencies that guard routes by permission or by role set
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Mapping, Optional

from fastapi import Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.security import AuthenticatedUser
from database.engine import get_db
from database.models.users import Role, RolePermission, User, UserRole

logger = logging.getLogger(__name__)


class Resource(str, Enum):
    """Resources named in the permission matrix."""

    CANDIDATES = "candidates"
    INTERVIEWS = "interviews"
    FEEDBACK = "feedback"
    JOB_PROPOSALS = "job_proposals"
    NOTIFICATIONS = "notifications"
    EMAIL_NOTIFICATIONS = "email_notifications"
    NOTIFICATION_CONFIG = "notification_config"
    USERS = "users"


class Verb(str, Enum):
    """Capability verbs."""

    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"


_ALL = {"create", "read", "update", "delete"}

# Seeded into role_permissions when the table is empty
DEFAULT_ROLE_PERMISSIONS: dict[Role, dict[Resource, set[str]]] = {
    Role.HR_ADMIN: {resource: set(_ALL) for resource in Resource},
    Role.HR_STAFF: {
        Resource.CANDIDATES: {"create", "read", "update"},
        Resource.INTERVIEWS: {"create", "read", "update"},
        Resource.FEEDBACK: {"read", "update"},
        Resource.JOB_PROPOSALS: {"create", "read", "update"},
        Resource.NOTIFICATIONS: {"read", "update"},
        Resource.EMAIL_NOTIFICATIONS: {"read"},
    },
    Role.HR_MANAGER: {
        Resource.CANDIDATES: {"read"},
        Resource.INTERVIEWS: {"read"},
        Resource.FEEDBACK: {"read"},
        Resource.JOB_PROPOSALS: {"read", "update"},
        Resource.NOTIFICATIONS: {"read", "update"},
        Resource.EMAIL_NOTIFICATIONS: {"read"},
    },
    Role.INTERVIEWER: {
        Resource.CANDIDATES: {"read"},
        Resource.INTERVIEWS: {"read", "update"},
        Resource.FEEDBACK: {"create", "read"},
        Resource.JOB_PROPOSALS: {"read", "update"},
        Resource.NOTIFICATIONS: {"read", "update"},
    },
    Role.PENDING: {},
}

# Route guard role sets
HR_ROLES = (Role.HR_ADMIN, Role.HR_STAFF)
CANDIDATE_VIEWER_ROLES = (Role.HR_ADMIN, Role.HR_STAFF, Role.INTERVIEWER)
OFFER_APPROVER_ROLES = (Role.HR_ADMIN, Role.HR_STAFF, Role.HR_MANAGER)
INTERVIEWER_ROLES = (Role.INTERVIEWER, Role.HR_ADMIN)
ADMIN_ROLES = (Role.HR_ADMIN,)

PermissionMatrix = Mapping[str, frozenset[str]]


class AuthorizationError(Exception):
    """Raised when the caller may not perform an action."""

    code = "PERMISSION_DENIED"
    status_code = 403


class AccessPendingError(AuthorizationError):
    """Raised when the caller has no active role yet."""

    code = "ACCESS_PENDING"


class InsufficientPermissions(AuthorizationError):
    """Raised when the caller's role lacks a permission or is not allowed."""

    code = "INSUFFICIENT_PERMISSIONS"


def _name(value) -> str:
    """Matrix key for a plain string or a Resource/Verb member."""
    return value.value if isinstance(value, Enum) else value


def has_permission(
    matrix: PermissionMatrix,
    role: Optional[Role],
    resource: str,
    verb: str,
) -> bool:
    """
    Pure capability check.

    Args:
        matrix: Resource name -> granted verbs for the caller's role
        role: Caller's role, None when the caller has no active role
        resource: Exact resource name
        verb: create / read / update / delete

    Returns:
        True only when the role is active and the matrix grants the verb
    """
    if role is None or role == Role.PENDING:
        return False
    return _name(verb) in matrix.get(_name(resource), frozenset())


def build_matrix(rows: Iterable[RolePermission]) -> dict[str, frozenset[str]]:
    """Fold role_permissions rows into a resource -> verbs mapping."""
    matrix: dict[str, frozenset[str]] = {}
    for row in rows:
        verbs = set()
        if row.can_create:
            verbs.add(Verb.CREATE.value)
        if row.can_read:
            verbs.add(Verb.READ.value)
        if row.can_update:
            verbs.add(Verb.UPDATE.value)
        if row.can_delete:
            verbs.add(Verb.DELETE.value)
        matrix[row.resource] = frozenset(verbs)
    return matrix


@dataclass(frozen=True)
class SessionContext:
    """
    Explicit caller context passed into every workflow command.

    Capability checks are pure functions of (role, resource, verb) over the
    matrix captured when the context was built.
    """

    user_id: str
    email: str
    name: Optional[str] = None
    role: Optional[Role] = None
    is_active: bool = False
    permissions: PermissionMatrix = field(default_factory=dict)

    @property
    def display_name(self) -> str:
        return self.name or self.email

    @property
    def has_access(self) -> bool:
        return self.is_active and self.role is not None and self.role != Role.PENDING

    def can(self, resource: str, verb: str) -> bool:
        if not self.is_active:
            return False
        return has_permission(self.permissions, self.role, resource, verb)

    def can_create(self, resource: str) -> bool:
        return self.can(resource, Verb.CREATE)

    def can_read(self, resource: str) -> bool:
        return self.can(resource, Verb.READ)

    def can_update(self, resource: str) -> bool:
        return self.can(resource, Verb.UPDATE)

    def can_delete(self, resource: str) -> bool:
        return self.can(resource, Verb.DELETE)

    @property
    def is_hr_admin(self) -> bool:
        return self.has_access and self.role == Role.HR_ADMIN

    @property
    def is_hr_staff(self) -> bool:
        return self.has_access and self.role == Role.HR_STAFF

    @property
    def is_hr_manager(self) -> bool:
        return self.has_access and self.role == Role.HR_MANAGER

    @property
    def is_interviewer(self) -> bool:
        return self.has_access and self.role == Role.INTERVIEWER


async def remember_user(db: AsyncSession, user: AuthenticatedUser) -> None:
    """Record the token identity the first time it is seen."""
    existing = await db.get(User, user.user_id)
    if existing is not None:
        return
    db.add(User(id=user.user_id, email=user.email.lower(), full_name=user.name))
    await db.commit()
    logger.info(f"Registered new user {user.user_id}")


async def load_session_context(db: AsyncSession, user: AuthenticatedUser) -> SessionContext:
    """
    Resolve the caller's role and permission matrix.

    Any lookup failure is logged and yields a context with no access.
    """
    try:
        await remember_user(db, user)
        result = await db.execute(
            select(UserRole).where(UserRole.user_id == user.user_id)
        )
        role_row = result.scalar_one_or_none()
        if role_row is None:
            # Roles granted by email before the user first signed in
            result = await db.execute(
                select(UserRole).where(
                    UserRole.email == user.email.lower(),
                    UserRole.user_id.is_(None),
                )
            )
            role_row = result.scalar_one_or_none()
            if role_row is not None:
                role_row.user_id = user.user_id
                await db.commit()

        if role_row is None or not role_row.is_active:
            return SessionContext(user_id=user.user_id, email=user.email, name=user.name)

        result = await db.execute(
            select(RolePermission).where(RolePermission.role == role_row.role)
        )
        matrix = build_matrix(result.scalars().all())
    except Exception as e:
        logger.error(f"Permission lookup failed for user {user.user_id}: {e}")
        await db.rollback()
        return SessionContext(user_id=user.user_id, email=user.email, name=user.name)

    return SessionContext(
        user_id=user.user_id,
        email=user.email,
        name=user.name,
        role=role_row.role,
        is_active=role_row.is_active,
        permissions=matrix,
    )


def get_authenticated_user(request: Request) -> AuthenticatedUser:
    """Identity placed on the scope by AuthenticationMiddleware."""
    user = request.scope.get("user")
    if not isinstance(user, AuthenticatedUser):
        raise AuthorizationError("User not authenticated")
    return user


async def get_session_context(
    user: AuthenticatedUser = Depends(get_authenticated_user),
    db: AsyncSession = Depends(get_db),
) -> SessionContext:
    """Dependency: the caller's context, refused when access is still pending."""
    context = await load_session_context(db, user)
    if not context.has_access:
        logger.warning(f"User {user.user_id} has no active role")
        raise AccessPendingError("Your account is awaiting access approval")
    return context


def require_permission(resource: Resource, verb: Verb) -> Callable:
    """
    Dependency to require a matrix permission.

    Args:
        resource: Resource name
        verb: Required verb

    Returns:
        FastAPI dependency resolving to the caller's SessionContext
    """
    async def dependency(
        context: SessionContext = Depends(get_session_context),
    ) -> SessionContext:
        if not context.can(resource.value, verb.value):
            logger.warning(
                f"User {context.user_id} with role {context.role} lacks "
                f"{resource.value}:{verb.value}"
            )
            raise InsufficientPermissions(
                f"Missing permission: {resource.value}:{verb.value}"
            )
        return context

    return dependency


def require_roles(
    *allowed_roles: Role,
    permission: Optional[tuple[Resource, Verb]] = None,
) -> Callable:
    """
    Dependency to require one of the given roles (route guard).

    Args:
        allowed_roles: Roles allowed on the route
        permission: Matrix grant the role must also hold, as (resource, verb)

    Returns:
        FastAPI dependency resolving to the caller's SessionContext
    """
    async def dependency(
        context: SessionContext = Depends(get_session_context),
    ) -> SessionContext:
        if context.role not in allowed_roles:
            logger.warning(
                f"User {context.user_id} with role {context.role} attempted action "
                f"requiring roles: {[r.value for r in allowed_roles]}"
            )
            raise InsufficientPermissions(
                f"Role {context.role.value if context.role else None} not authorized"
            )
        if permission is not None:
            resource, verb = permission
            if not context.can(resource, verb):
                logger.warning(
                    f"User {context.user_id} with role {context.role} lacks "
                    f"{resource.value}:{verb.value}"
                )
                raise InsufficientPermissions(
                    f"Missing permission: {resource.value}:{verb.value}"
                )
        return context

    return dependency
