"""User directory ORM model.

The directory itself is owned by the identity side of the app; this table
is the read model the leave engine consults for roles, manager of record
and the archived flag.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from leavedesk.common.constants import UserRole
from leavedesk.database import Base


def normalize_email(value: Optional[str]) -> str:
    return (value or "").strip().lower()


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    email: Mapped[str] = mapped_column(sa.String(255), unique=True, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(sa.String(200))
    role: Mapped[UserRole] = mapped_column(
        sa.Enum(UserRole, name="user_role", native_enum=False, validate_strings=True),
        nullable=False,
        default=UserRole.employee,
    )
    manager_email: Mapped[Optional[str]] = mapped_column(sa.String(255))
    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.admin

    @property
    def display_name(self) -> str:
        return self.name or self.email

    def manages(self, manager_email: Optional[str]) -> bool:
        """True when this user is the approver of record for *manager_email*."""
        return bool(manager_email) and normalize_email(self.email) == normalize_email(manager_email)
