"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Request  → request bodies (write)
  - *Out                → response bodies (read)
  - *Brief              → compact embedded representations
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from leavedesk.common.constants import MAX_REQUEST_SPAN_DAYS, DurationType, LeaveStatus


# ═════════════════════════════════════════════════════════════════════
# Policy (passed into the engine at call time)
# ═════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class LeavePolicy:
    """Organisation-level switches the engine needs for request creation."""

    allow_retroactive: bool = True
    default_leave_type_id: Optional[uuid.UUID] = None


# ═════════════════════════════════════════════════════════════════════
# Embedded / shared
# ═════════════════════════════════════════════════════════════════════


class LeaveTypeBrief(BaseModel):
    """Minimal leave type info embedded in responses."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    code: str
    name: str


# ═════════════════════════════════════════════════════════════════════
# Leave Balance
# ═════════════════════════════════════════════════════════════════════


class LeaveBalanceOut(BaseModel):
    """Balance for a single (user, leave type) pair."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    leave_type_id: uuid.UUID
    accrued: Decimal
    used: Decimal
    remaining: Decimal
    last_updated: Optional[datetime] = None

    leave_type: Optional[LeaveTypeBrief] = None


class BalanceAssignRequest(BaseModel):
    """Admin balance assignment payload — sets the remaining days."""

    leave_type_id: Optional[uuid.UUID] = Field(
        None, description="Defaults to the configured default leave type"
    )
    remaining: Decimal = Field(..., description="New remaining days (may be negative)")
    note: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def validate_half_steps(self) -> "BalanceAssignRequest":
        if (self.remaining * 2) % 1 != 0:
            raise ValueError("remaining must be a multiple of 0.5.")
        return self


# ═════════════════════════════════════════════════════════════════════
# Leave Request — Create
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestCreate(BaseModel):
    """Payload for submitting a leave request."""

    leave_type_id: Optional[uuid.UUID] = None
    start_date: date = Field(..., description="Leave start date (inclusive)")
    end_date: date = Field(..., description="Leave end date (inclusive)")
    duration_type: DurationType = DurationType.full
    note: Optional[str] = Field(None, max_length=1000)
    location: Optional[str] = Field(None, max_length=200)
    enable_ooo: bool = False
    ooo_custom_message: Optional[str] = Field(None, max_length=2000)

    @model_validator(mode="after")
    def validate_dates(self) -> "LeaveRequestCreate":
        if self.start_date > self.end_date:
            raise ValueError("start_date must be on or before end_date.")
        if (self.end_date - self.start_date).days > MAX_REQUEST_SPAN_DAYS:
            raise ValueError(
                f"Leave request cannot span more than {MAX_REQUEST_SPAN_DAYS} days."
            )
        if self.duration_type != DurationType.full and self.start_date != self.end_date:
            raise ValueError("Half-day duration is only allowed for single-day requests.")
        return self


# ═════════════════════════════════════════════════════════════════════
# Leave Request — Response
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestOut(BaseModel):
    """Full leave request response."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    email: Optional[str] = None
    leave_type_id: uuid.UUID
    start_date: date
    end_date: date
    return_date: Optional[date] = None
    duration_type: DurationType
    requested_days: Decimal
    deducted_days: Optional[Decimal] = None
    status: LeaveStatus
    manager_email: Optional[str] = None
    note: Optional[str] = None
    location: Optional[str] = None
    enable_ooo: bool = False
    rejection_reason: Optional[str] = None
    request_date: Optional[datetime] = None
    approval_date: Optional[datetime] = None
    deduction_date: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None


class DeductionOut(BaseModel):
    """Result of a deduction: the authoritative count and the new balance."""

    request: LeaveRequestOut
    requested_days: Decimal
    deducted_days: Decimal
    remaining: Decimal
    negative_balance: bool = False
    warning: Optional[str] = None


# ═════════════════════════════════════════════════════════════════════
# Transitions
# ═════════════════════════════════════════════════════════════════════


class LeaveRejectRequest(BaseModel):
    """Payload for rejecting a leave request."""

    reason: Optional[str] = Field(None, max_length=500)


class LeaveCancelRequest(BaseModel):
    """Payload for cancelling a leave request."""

    reason: Optional[str] = Field(None, max_length=500)
