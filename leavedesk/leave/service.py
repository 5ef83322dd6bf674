"""Leave service layer — request creation, lifecycle transitions, balances.

Business logic:
  - Request creation with a provisional day count (weekends, full/half-day holidays)
  - Strict state machine: pending → approved → deducted, with reject, cancel and reverse
  - Authoritative recount at deduction time against the current holiday calendar
  - Balance mutations applied in the same transaction as the status change
  - Admin balance assignment, listings and balance reads

Every transition re-checks the source status in the same UPDATE that
writes the target status, so a repeated or concurrent call fails with a
conflict instead of applying twice.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional

from fastapi import BackgroundTasks
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from leavedesk.common.audit import record_audit
from leavedesk.common.constants import (
    ACTIVE_STATUSES,
    RETURN_DATE_LOOKAHEAD_DAYS,
    TRANSITIONS,
    AuditAction,
    LeaveStatus,
)
from leavedesk.common.exceptions import (
    ForbiddenException,
    InvalidTransitionException,
    NotFoundException,
    ValidationException,
)
from leavedesk.common.pagination import PaginatedResponse, PaginationParams, paginate
from leavedesk.holidays.models import Holiday
from leavedesk.leave import balances
from leavedesk.leave.calculator import count_leave_days, is_weekend, next_working_day
from leavedesk.leave.models import LeaveBalance, LeaveRequest, LeaveType
from leavedesk.leave.schemas import (
    BalanceAssignRequest,
    DeductionOut,
    LeaveBalanceOut,
    LeavePolicy,
    LeaveRequestCreate,
    LeaveRequestOut,
    LeaveTypeBrief,
)
from leavedesk.notifications.service import (
    notify_balance_updated,
    notify_leave_approved,
    notify_leave_cancelled,
    notify_leave_deducted,
    notify_leave_rejected,
    notify_leave_reversed,
    notify_leave_submitted,
)
from leavedesk.ooo.service import reconcile_user_ooo
from leavedesk.users.models import User

logger = logging.getLogger(__name__)

LEAVE_REQUESTS = "leave_requests"
LEAVE_BALANCES = "leave_balances"

NEGATIVE_BALANCE_WARNING = "This deduction leaves the employee with a negative balance."


# ═════════════════════════════════════════════════════════════════════
# Holiday lookups
# ═════════════════════════════════════════════════════════════════════


async def holidays_between(db: AsyncSession, start: date, end: date) -> list[Holiday]:
    """Current holiday rows with ``start <= date <= end``."""
    result = await db.execute(
        select(Holiday)
        .where(Holiday.date >= start, Holiday.date <= end)
        .order_by(Holiday.date)
    )
    return list(result.scalars().all())


# ═════════════════════════════════════════════════════════════════════
# LeaveService
# ═════════════════════════════════════════════════════════════════════


class LeaveService:
    """Async leave operations: creation, transitions, balances, listings."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    @staticmethod
    async def _load_request(db: AsyncSession, request_id: uuid.UUID) -> LeaveRequest:
        result = await db.execute(
            select(LeaveRequest)
            .where(LeaveRequest.id == request_id)
            .options(selectinload(LeaveRequest.user))
        )
        leave_req = result.scalars().first()
        if leave_req is None:
            raise NotFoundException("LeaveRequest", str(request_id))
        return leave_req

    @staticmethod
    def _assert_active(actor: User, leave_req: Optional[LeaveRequest] = None) -> None:
        if not actor.is_active:
            raise ForbiddenException("Your account is archived.")
        if leave_req is not None and leave_req.user is not None and not leave_req.user.is_active:
            raise ValidationException({"user_id": ["The leave owner is archived."]})

    @staticmethod
    def _assert_reviewer(actor: User, leave_req: LeaveRequest, action: str) -> None:
        """Manager of record or admin."""
        if not (actor.is_admin or actor.manages(leave_req.manager_email)):
            raise ForbiddenException(f"You are not authorized to {action} this leave request.")

    @staticmethod
    def _assert_source_status(leave_req: LeaveRequest, action: str) -> None:
        allowed = TRANSITIONS[action]
        if leave_req.status not in allowed:
            raise InvalidTransitionException(action, leave_req.status, allowed)

    @staticmethod
    async def _write_status(
        db: AsyncSession,
        leave_req: LeaveRequest,
        action: str,
        expected: LeaveStatus,
        **values: Any,
    ) -> None:
        """Compare-and-set the status row; zero affected rows means we lost a race."""
        result = await db.execute(
            update(LeaveRequest)
            .where(LeaveRequest.id == leave_req.id, LeaveRequest.status == expected)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await db.refresh(leave_req)
            raise InvalidTransitionException(action, leave_req.status, TRANSITIONS[action])
        await db.refresh(leave_req)

    @staticmethod
    def _build_request_response(leave_req: LeaveRequest) -> LeaveRequestOut:
        return LeaveRequestOut.model_validate(leave_req)

    # ─────────────────────────────────────────────────────────────────
    # Create Request
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def create_leave(
        db: AsyncSession,
        owner: User,
        data: LeaveRequestCreate,
        *,
        policy: LeavePolicy,
        background: Optional[BackgroundTasks] = None,
        today: Optional[date] = None,
    ) -> LeaveRequestOut:
        """Submit a leave request in ``pending`` with a provisional day count.

        Validation:
        - Owner active, leave type exists and is active
        - No retroactive start unless the policy allows it
        - No single-day request on a weekend
        - No overlap with the owner's pending/approved/deducted requests
        - At least half a chargeable day in the range
        """
        today = today or LeaveService._now().date()
        LeaveService._assert_active(owner)

        # ── Leave type ──────────────────────────────────────────────
        leave_type_id = data.leave_type_id or policy.default_leave_type_id
        if leave_type_id is None:
            raise ValidationException({"leave_type_id": ["A leave type is required."]})
        leave_type = await db.get(LeaveType, leave_type_id)
        if leave_type is None or not leave_type.is_active:
            raise NotFoundException("LeaveType", str(leave_type_id))

        # ── Dates ───────────────────────────────────────────────────
        if not policy.allow_retroactive and data.start_date < today:
            raise ValidationException(
                {"start_date": ["Leave cannot start in the past."]}
            )
        if data.start_date == data.end_date and is_weekend(data.start_date):
            raise ValidationException(
                {"start_date": ["A single-day leave cannot fall on a weekend."]}
            )

        # ── Provisional day count ───────────────────────────────────
        holidays = await holidays_between(
            db, data.start_date, data.end_date + timedelta(days=RETURN_DATE_LOOKAHEAD_DAYS),
        )
        in_range = [h for h in holidays if h.date <= data.end_date]
        requested_days = count_leave_days(
            data.start_date, data.end_date, in_range, data.duration_type,
        )
        if requested_days <= 0:
            raise ValidationException(
                {"dates": ["No leave days found in the selected range "
                           "(all days may be weekends or holidays)."]}
            )

        # ── Overlap ─────────────────────────────────────────────────
        overlap = await db.execute(
            select(func.count()).select_from(LeaveRequest).where(
                LeaveRequest.user_id == owner.id,
                LeaveRequest.status.in_(ACTIVE_STATUSES),
                LeaveRequest.start_date <= data.end_date,
                LeaveRequest.end_date >= data.start_date,
            )
        )
        if overlap.scalar_one() > 0:
            raise ValidationException(
                {"dates": ["You already have a leave request overlapping with these dates."]}
            )

        now = LeaveService._now()
        leave_req = LeaveRequest(
            user_id=owner.id,
            email=owner.email,
            leave_type_id=leave_type.id,
            start_date=data.start_date,
            end_date=data.end_date,
            return_date=next_working_day(data.end_date, holidays),
            duration_type=data.duration_type,
            requested_days=requested_days,
            status=LeaveStatus.pending,
            manager_email=owner.manager_email,
            note=data.note,
            location=data.location,
            enable_ooo=data.enable_ooo,
            ooo_custom_message=data.ooo_custom_message,
            request_date=now,
            updated_at=now,
        )
        db.add(leave_req)
        await db.flush()

        await record_audit(
            db,
            action=AuditAction.submit_request,
            target_table=LEAVE_REQUESTS,
            target_id=leave_req.id,
            actor_id=owner.id,
            actor_email=owner.email,
            status_before=None,
            status_after=LeaveStatus.pending.value,
            details={
                "leave_type": leave_type.code,
                "start_date": data.start_date.isoformat(),
                "end_date": data.end_date.isoformat(),
                "duration_type": data.duration_type.value,
                "requested_days": str(requested_days),
                "enable_ooo": data.enable_ooo,
            },
        )

        notify_leave_submitted(background, leave_req, owner)
        logger.info(
            "Leave request %s submitted by %s (%s day(s))",
            leave_req.id, owner.email, requested_days,
        )
        return LeaveService._build_request_response(leave_req)

    # ─────────────────────────────────────────────────────────────────
    # Approve
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def approve_leave(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor: User,
        *,
        background: Optional[BackgroundTasks] = None,
    ) -> LeaveRequestOut:
        """pending → approved. No balance effect; refreshes the owner's OOO window."""
        leave_req = await LeaveService._load_request(db, request_id)
        LeaveService._assert_active(actor, leave_req)
        LeaveService._assert_reviewer(actor, leave_req, "approve")
        LeaveService._assert_source_status(leave_req, "approve")

        now = LeaveService._now()
        await LeaveService._write_status(
            db, leave_req, "approve", LeaveStatus.pending,
            status=LeaveStatus.approved,
            approval_date=now,
            updated_at=now,
        )

        await record_audit(
            db,
            action=AuditAction.approve_request,
            target_table=LEAVE_REQUESTS,
            target_id=leave_req.id,
            actor_id=actor.id,
            actor_email=actor.email,
            status_before=LeaveStatus.pending.value,
            status_after=LeaveStatus.approved.value,
            details={
                "start_date": leave_req.start_date.isoformat(),
                "end_date": leave_req.end_date.isoformat(),
                "requested_days": str(leave_req.requested_days),
            },
        )

        notify_leave_approved(background, leave_req)
        if leave_req.enable_ooo:
            await reconcile_user_ooo(db, leave_req.user_id, leave_req.email, background)

        logger.info("Leave request %s approved by %s", leave_req.id, actor.email)
        return LeaveService._build_request_response(leave_req)

    # ─────────────────────────────────────────────────────────────────
    # Reject
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def reject_leave(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor: User,
        reason: Optional[str] = None,
        *,
        background: Optional[BackgroundTasks] = None,
    ) -> LeaveRequestOut:
        """pending → rejected, keeping the optional reason."""
        leave_req = await LeaveService._load_request(db, request_id)
        LeaveService._assert_active(actor)
        LeaveService._assert_reviewer(actor, leave_req, "reject")
        LeaveService._assert_source_status(leave_req, "reject")

        await LeaveService._write_status(
            db, leave_req, "reject", LeaveStatus.pending,
            status=LeaveStatus.rejected,
            rejection_reason=reason,
            updated_at=LeaveService._now(),
        )

        await record_audit(
            db,
            action=AuditAction.reject_request,
            target_table=LEAVE_REQUESTS,
            target_id=leave_req.id,
            actor_id=actor.id,
            actor_email=actor.email,
            status_before=LeaveStatus.pending.value,
            status_after=LeaveStatus.rejected.value,
            details={"reason": reason},
        )

        notify_leave_rejected(background, leave_req, reason)
        logger.info("Leave request %s rejected by %s", leave_req.id, actor.email)
        return LeaveService._build_request_response(leave_req)

    # ─────────────────────────────────────────────────────────────────
    # Cancel
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def cancel_leave(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor: User,
        reason: Optional[str] = None,
        *,
        background: Optional[BackgroundTasks] = None,
    ) -> LeaveRequestOut:
        """{pending, approved} → cancelled by the owner, their manager or an admin."""
        leave_req = await LeaveService._load_request(db, request_id)
        LeaveService._assert_active(actor)

        is_owner = leave_req.user_id == actor.id
        if not (is_owner or actor.is_admin or actor.manages(leave_req.manager_email)):
            raise ForbiddenException("You are not authorized to cancel this leave request.")
        LeaveService._assert_source_status(leave_req, "cancel")

        status_before = leave_req.status
        now = LeaveService._now()
        await LeaveService._write_status(
            db, leave_req, "cancel", status_before,
            status=LeaveStatus.cancelled,
            cancelled_at=now,
            updated_at=now,
        )

        await record_audit(
            db,
            action=AuditAction.cancel_request,
            target_table=LEAVE_REQUESTS,
            target_id=leave_req.id,
            actor_id=actor.id,
            actor_email=actor.email,
            status_before=status_before.value,
            status_after=LeaveStatus.cancelled.value,
            details={
                "reason": reason,
                "start_date": leave_req.start_date.isoformat(),
                "end_date": leave_req.end_date.isoformat(),
            },
        )

        notify_leave_cancelled(background, leave_req, actor)
        if status_before == LeaveStatus.approved and leave_req.enable_ooo:
            await reconcile_user_ooo(db, leave_req.user_id, leave_req.email, background)

        logger.info("Leave request %s cancelled by %s", leave_req.id, actor.email)
        return LeaveService._build_request_response(leave_req)

    # ─────────────────────────────────────────────────────────────────
    # Deduct
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def deduct_leave(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor: User,
        *,
        background: Optional[BackgroundTasks] = None,
    ) -> DeductionOut:
        """approved → deducted. Recounts against today's holiday calendar and
        charges the balance in the same transaction.

        A negative resulting balance is allowed (advance leave) and reported
        as a warning.
        """
        leave_req = await LeaveService._load_request(db, request_id)
        LeaveService._assert_active(actor, leave_req)
        LeaveService._assert_reviewer(actor, leave_req, "deduct")
        LeaveService._assert_source_status(leave_req, "deduct")

        balance = await balances.lock_balance(db, leave_req.user_id, leave_req.leave_type_id)

        holidays = await holidays_between(db, leave_req.start_date, leave_req.end_date)
        deducted_days = count_leave_days(
            leave_req.start_date, leave_req.end_date, holidays, leave_req.duration_type,
        )

        now = LeaveService._now()
        await LeaveService._write_status(
            db, leave_req, "deduct", LeaveStatus.approved,
            status=LeaveStatus.deducted,
            deducted_days=deducted_days,
            deduction_date=now,
            updated_at=now,
        )

        before = balances.snapshot(balance)
        balances.charge(balance, deducted_days, now=now)
        await db.flush()

        negative = Decimal(balance.remaining) < 0
        await record_audit(
            db,
            action=AuditAction.deduct_request,
            target_table=LEAVE_REQUESTS,
            target_id=leave_req.id,
            actor_id=actor.id,
            actor_email=actor.email,
            status_before=LeaveStatus.approved.value,
            status_after=LeaveStatus.deducted.value,
            details={
                "start_date": leave_req.start_date.isoformat(),
                "end_date": leave_req.end_date.isoformat(),
                "requested_days": str(leave_req.requested_days),
                "deducted_days": str(deducted_days),
                "holidays_in_range": len(holidays),
                "balance_before": before,
                "balance_after": balances.snapshot(balance),
            },
        )

        notify_leave_deducted(background, leave_req, deducted_days, Decimal(balance.remaining))
        if negative:
            logger.warning(
                "Leave request %s pushed balance of user %s to %s",
                leave_req.id, leave_req.user_id, balance.remaining,
            )
        logger.info(
            "Leave request %s deducted by %s: requested %s, deducted %s",
            leave_req.id, actor.email, leave_req.requested_days, deducted_days,
        )

        return DeductionOut(
            request=LeaveService._build_request_response(leave_req),
            requested_days=leave_req.requested_days,
            deducted_days=deducted_days,
            remaining=Decimal(balance.remaining),
            negative_balance=negative,
            warning=NEGATIVE_BALANCE_WARNING if negative else None,
        )

    # ─────────────────────────────────────────────────────────────────
    # Reverse
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def reverse_leave(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor: User,
        *,
        background: Optional[BackgroundTasks] = None,
    ) -> LeaveRequestOut:
        """Step back one state.

        - deducted → approved: restore ``deducted_days`` to the balance and
          clear the deduction. Fails untouched if ``used`` would go negative.
        - approved → pending: clear the approval and refresh the OOO window.
        """
        leave_req = await LeaveService._load_request(db, request_id)
        LeaveService._assert_active(actor)
        LeaveService._assert_reviewer(actor, leave_req, "reverse")
        LeaveService._assert_source_status(leave_req, "reverse")

        status_before = leave_req.status
        now = LeaveService._now()
        details: dict[str, Any] = {
            "start_date": leave_req.start_date.isoformat(),
            "end_date": leave_req.end_date.isoformat(),
            "requested_days": str(leave_req.requested_days),
            "enable_ooo": leave_req.enable_ooo,
        }

        if status_before == LeaveStatus.deducted:
            days = (
                leave_req.deducted_days
                if leave_req.deducted_days is not None
                else leave_req.requested_days
            )
            balance = await balances.lock_balance(db, leave_req.user_id, leave_req.leave_type_id)
            balances.check_restorable(balance, days)

            await LeaveService._write_status(
                db, leave_req, "reverse", LeaveStatus.deducted,
                status=LeaveStatus.approved,
                deducted_days=None,
                deduction_date=None,
                updated_at=now,
            )
            before = balances.snapshot(balance)
            balances.restore(balance, days, now=now)
            await db.flush()

            action = AuditAction.revert_deducted_request
            details.update(
                restored_days=str(days),
                balance_before=before,
                balance_after=balances.snapshot(balance),
            )
        else:
            await LeaveService._write_status(
                db, leave_req, "reverse", LeaveStatus.approved,
                status=LeaveStatus.pending,
                approval_date=None,
                updated_at=now,
            )
            action = AuditAction.revert_approved_request

        await record_audit(
            db,
            action=action,
            target_table=LEAVE_REQUESTS,
            target_id=leave_req.id,
            actor_id=actor.id,
            actor_email=actor.email,
            status_before=status_before.value,
            status_after=leave_req.status.value,
            details=details,
        )

        notify_leave_reversed(background, leave_req, status_before.value)
        # Both directions change the set of approved opt-in leaves
        if leave_req.enable_ooo:
            await reconcile_user_ooo(db, leave_req.user_id, leave_req.email, background)

        logger.info(
            "Leave request %s reversed by %s: %s → %s",
            leave_req.id, actor.email, status_before.value, leave_req.status.value,
        )
        return LeaveService._build_request_response(leave_req)

    # ─────────────────────────────────────────────────────────────────
    # Balances
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_balances(db: AsyncSession, user_id: uuid.UUID) -> list[LeaveBalanceOut]:
        """All balances of a user, one per leave type."""
        result = await db.execute(
            select(LeaveBalance)
            .where(LeaveBalance.user_id == user_id)
            .options(selectinload(LeaveBalance.leave_type))
            .order_by(LeaveBalance.leave_type_id)
        )
        output: list[LeaveBalanceOut] = []
        for bal in result.scalars().all():
            out = LeaveBalanceOut.model_validate(bal)
            if bal.leave_type:
                out.leave_type = LeaveTypeBrief.model_validate(bal.leave_type)
            output.append(out)
        return output

    @staticmethod
    async def assign_balance(
        db: AsyncSession,
        admin: User,
        user_id: uuid.UUID,
        data: BalanceAssignRequest,
        *,
        policy: LeavePolicy,
        background: Optional[BackgroundTasks] = None,
    ) -> LeaveBalanceOut:
        """Admin sets the remaining days; creates the balance row on first use.

        ``accrued`` follows as ``remaining + used`` so the triple stays
        coherent. Logged as an accrual when the balance grows, otherwise
        as a correction.
        """
        if not admin.is_admin:
            raise ForbiddenException("Only admins can update leave balances.")

        user = await db.get(User, user_id)
        if user is None:
            raise NotFoundException("User", str(user_id))

        leave_type_id = data.leave_type_id or policy.default_leave_type_id
        if leave_type_id is None:
            raise ValidationException({"leave_type_id": ["A leave type is required."]})
        leave_type = await db.get(LeaveType, leave_type_id)
        if leave_type is None:
            raise NotFoundException("LeaveType", str(leave_type_id))

        balance = await balances.get_balance(db, user_id, leave_type_id, for_update=True)
        if balance is None:
            balance = LeaveBalance(
                user_id=user_id,
                leave_type_id=leave_type_id,
                accrued=Decimal("0"),
                used=Decimal("0"),
                remaining=Decimal("0"),
            )
            db.add(balance)

        old_remaining = Decimal(balance.remaining)
        before = balances.snapshot(balance)
        balance.remaining = data.remaining
        balance.accrued = data.remaining + Decimal(balance.used)
        balance.last_updated = LeaveService._now()
        await db.flush()

        action = (
            AuditAction.balance_accrual
            if data.remaining > old_remaining
            else AuditAction.balance_correction
        )
        await record_audit(
            db,
            action=action,
            target_table=LEAVE_BALANCES,
            target_id=balance.id,
            actor_id=admin.id,
            actor_email=admin.email,
            details={
                "user_id": str(user_id),
                "leave_type_id": str(leave_type_id),
                "remaining_before": str(old_remaining),
                "remaining_after": str(data.remaining),
                "balance_before": before,
                "note": data.note or "",
            },
        )

        notify_balance_updated(
            background, user,
            leave_type_name=leave_type.name,
            before=old_remaining, after=data.remaining, admin=admin, note=data.note,
        )
        await db.refresh(balance, attribute_names=["leave_type"])
        out = LeaveBalanceOut.model_validate(balance)
        out.leave_type = LeaveTypeBrief.model_validate(leave_type)
        return out

    # ─────────────────────────────────────────────────────────────────
    # Listings
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def list_requests(
        db: AsyncSession,
        actor: User,
        params: PaginationParams,
        *,
        scope: str = "my",
        status: Optional[LeaveStatus] = None,
        user_id: Optional[uuid.UUID] = None,
    ) -> PaginatedResponse:
        """List leave requests, newest first.

        Scopes:
          - my: own requests
          - team: requests whose approver of record is the actor
          - all: everyone (admin only)
        """
        query = select(LeaveRequest).order_by(LeaveRequest.request_date.desc())

        if scope == "my":
            query = query.where(LeaveRequest.user_id == actor.id)
        elif scope == "team":
            query = query.where(func.lower(LeaveRequest.manager_email) == actor.email.lower())
        elif scope == "all":
            if not actor.is_admin:
                raise ForbiddenException("Only admins can list all leave requests.")
        else:
            raise ValidationException({"scope": [f"Unknown scope '{scope}'."]})

        if status:
            query = query.where(LeaveRequest.status == status)
        if user_id:
            query = query.where(LeaveRequest.user_id == user_id)

        return await paginate(
            db, query, params, transform=LeaveService._build_request_response,
        )
