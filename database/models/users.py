"""
User Models

Users are identities issued by the auth provider; access is granted by a
UserRole row and the role's RolePermission matrix. A user without an active,
non-pending role can authenticate but sees nothing.
"""

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import (
    String,
    Boolean,
    DateTime,
    func,
    Enum as SQLEnum,
    UniqueConstraint,
)
from database.engine import Base, BigIntPK, enum_values
from core.utils.datetime import now
from datetime import datetime
from enum import Enum as PyEnum


# ==================== Enums ===================== #
class Role(str, PyEnum):
    """Application roles."""

    HR_ADMIN = "hr_admin"
    HR_STAFF = "hr_staff"
    HR_MANAGER = "hr_manager"
    INTERVIEWER = "interviewer"
    PENDING = "pending"


# ==================== User Model ===================== #
class User(Base):
    """Identity known from a verified token."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    full_name: Mapped[str | None] = mapped_column(String(200))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now, server_default=func.now()
    )
    last_seen_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class UserRole(Base):
    """Role granted to a user."""

    __tablename__ = "user_roles"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str | None] = mapped_column(String(64), unique=True, index=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    role: Mapped[Role] = mapped_column(
        SQLEnum(Role, native_enum=False, length=50, values_callable=enum_values),
        nullable=False,
    )
    department: Mapped[str] = mapped_column(String(100), nullable=False, default="HR")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=now,
        server_default=func.now(),
        onupdate=now,
    )


class RolePermission(Base):
    """One row of the role -> resource -> verb matrix."""

    __tablename__ = "role_permissions"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    role: Mapped[Role] = mapped_column(
        SQLEnum(Role, native_enum=False, length=50, values_callable=enum_values),
        nullable=False,
        index=True,
    )
    resource: Mapped[str] = mapped_column(String(100), nullable=False)
    can_create: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_update: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_delete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("role", "resource", name="uq_role_permissions_role_resource"),
    )
