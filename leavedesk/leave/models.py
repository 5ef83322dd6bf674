"""Leave ORM models: LeaveType, LeaveBalance, LeaveRequest."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leavedesk.common.constants import DurationType, LeaveStatus
from leavedesk.database import Base
from leavedesk.users.models import User


class LeaveType(Base):
    __tablename__ = "leave_types"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    code: Mapped[str] = mapped_column(sa.String(10), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    # Relationships
    balances: Mapped[list[LeaveBalance]] = relationship(back_populates="leave_type")
    requests: Mapped[list[LeaveRequest]] = relationship(back_populates="leave_type")


class LeaveBalance(Base):
    __tablename__ = "leave_balances"
    __table_args__ = (
        sa.UniqueConstraint("user_id", "leave_type_id", name="uq_leave_balance"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False
    )
    leave_type_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_types.id"), nullable=False
    )
    accrued: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 1), nullable=False, default=Decimal("0")
    )
    used: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 1), nullable=False, default=Decimal("0")
    )
    # Not a generated column: remaining may legitimately go below accrued - used
    # after manual corrections, and below zero as advance leave.
    remaining: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 1), nullable=False, default=Decimal("0")
    )
    last_updated: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    # Relationships
    user: Mapped[User] = relationship()
    leave_type: Mapped[LeaveType] = relationship(back_populates="balances")


class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    __table_args__ = (
        sa.CheckConstraint("start_date <= end_date", name="ck_leave_request_date_order"),
        sa.Index("ix_leave_requests_user_status", "user_id", "status"),
        sa.Index("ix_leave_requests_status_range", "status", "start_date", "end_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False
    )
    email: Mapped[Optional[str]] = mapped_column(sa.String(255))
    leave_type_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_types.id"), nullable=False
    )
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    return_date: Mapped[Optional[date]] = mapped_column(sa.Date)
    duration_type: Mapped[DurationType] = mapped_column(
        sa.Enum(DurationType, name="duration_type", native_enum=False, validate_strings=True),
        nullable=False,
        default=DurationType.full,
    )
    requested_days: Mapped[Decimal] = mapped_column(sa.Numeric(6, 1), nullable=False)
    deducted_days: Mapped[Optional[Decimal]] = mapped_column(sa.Numeric(6, 1))
    status: Mapped[LeaveStatus] = mapped_column(
        sa.Enum(LeaveStatus, name="leave_status", native_enum=False, validate_strings=True),
        nullable=False,
        default=LeaveStatus.pending,
    )
    manager_email: Mapped[Optional[str]] = mapped_column(sa.String(255))
    note: Mapped[Optional[str]] = mapped_column(sa.Text)
    location: Mapped[Optional[str]] = mapped_column(sa.String(200))
    enable_ooo: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    ooo_custom_message: Mapped[Optional[str]] = mapped_column(sa.Text)
    rejection_reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    request_date: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )
    approval_date: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    deduction_date: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    # Relationships
    user: Mapped[User] = relationship(foreign_keys=[user_id])
    leave_type: Mapped[LeaveType] = relationship(back_populates="requests")

    @property
    def charged_days(self) -> Decimal:
        """Days this request currently holds against the balance."""
        if self.status != LeaveStatus.deducted:
            return Decimal("0")
        return self.deducted_days if self.deducted_days is not None else self.requested_days
