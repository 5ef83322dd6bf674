"""Enums and constants for LeaveDesk — matching the persisted enum values."""

from __future__ import annotations

import enum
from decimal import Decimal


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    employee = "employee"
    manager = "manager"
    admin = "admin"


# ── Leave ───────────────────────────────────────────────────────────

class LeaveStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"
    deducted = "deducted"


class DurationType(str, enum.Enum):
    full = "full"
    half_morning = "half_morning"
    half_afternoon = "half_afternoon"


class HolidayHalf(str, enum.Enum):
    morning = "morning"
    afternoon = "afternoon"


# Source states for every transition. Anything else is refused.
TRANSITIONS: dict[str, tuple[LeaveStatus, ...]] = {
    "approve": (LeaveStatus.pending,),
    "reject": (LeaveStatus.pending,),
    "cancel": (LeaveStatus.pending, LeaveStatus.approved),
    "deduct": (LeaveStatus.approved,),
    "reverse": (LeaveStatus.deducted, LeaveStatus.approved),
}

# Statuses that block a new overlapping request for the same user
ACTIVE_STATUSES = (LeaveStatus.pending, LeaveStatus.approved, LeaveStatus.deducted)


# ── Audit actions ───────────────────────────────────────────────────

class AuditAction(str, enum.Enum):
    submit_request = "submit_request"
    approve_request = "approve_request"
    reject_request = "reject_request"
    cancel_request = "cancel_request"
    deduct_request = "deduct_request"
    revert_deducted_request = "revert_deducted_request"
    revert_approved_request = "revert_approved_request"
    reconcile_holiday_impact = "reconcile_holiday_impact"
    balance_accrual = "balance_accrual"
    balance_correction = "balance_correction"
    holiday_created = "holiday_created"
    holiday_updated = "holiday_updated"
    holiday_deleted = "holiday_deleted"


# ── Misc constants ──────────────────────────────────────────────────

HALF_DAY = Decimal("0.5")
FULL_DAY = Decimal("1")
ZERO_DAYS = Decimal("0")
MAX_REQUEST_SPAN_DAYS = 365
RETURN_DATE_LOOKAHEAD_DAYS = 31
DATE_FORMAT = "%d.%m.%Y"
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50
