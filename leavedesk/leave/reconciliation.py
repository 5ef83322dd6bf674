"""Holiday reconciliation — re-price deducted requests after a calendar edit.

When a holiday is added, removed or changed after leave was already
deducted, every deducted request covering that date is recounted against
the current calendar. Non-zero differences are applied to the request and
its balance; ``dry_run`` only reports them.

Each request is settled inside its own SAVEPOINT, so one broken balance
row is reported and skipped without undoing the others.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.common.audit import record_audit
from leavedesk.common.constants import AuditAction, LeaveStatus
from leavedesk.common.exceptions import AppException, BalanceConsistencyException
from leavedesk.leave import balances
from leavedesk.leave.calculator import count_leave_days, round_half
from leavedesk.leave.models import LeaveRequest
from leavedesk.leave.service import LEAVE_REQUESTS, holidays_between
from leavedesk.users.models import User

logger = logging.getLogger(__name__)


# ── Result schemas ──────────────────────────────────────────────────

class ReconciliationItem(BaseModel):
    """One impacted request and what happened to it."""

    leave_id: uuid.UUID
    user_id: uuid.UUID
    leave_type_id: uuid.UUID
    start_date: date
    end_date: date
    old_deducted_days: Decimal
    new_deducted_days: Decimal
    delta: Decimal
    applied: bool = False
    error: Optional[str] = None


class ReconciliationReport(BaseModel):
    holiday_date: date
    dry_run: bool
    impacted: int = 0
    changed: int = 0
    applied: int = 0
    failed: int = 0
    changes: list[ReconciliationItem] = []


# ── Job ─────────────────────────────────────────────────────────────

async def _apply_change(
    db: AsyncSession,
    leave_req: LeaveRequest,
    item: ReconciliationItem,
    holiday_date: date,
    actor: Optional[User],
    now: datetime,
) -> None:
    """Write one recount: request row, balance, audit. Caller owns the savepoint."""
    guard = (
        LeaveRequest.deducted_days == item.old_deducted_days
        if leave_req.deducted_days is not None
        else LeaveRequest.deducted_days.is_(None)
    )
    result = await db.execute(
        update(LeaveRequest)
        .where(
            LeaveRequest.id == leave_req.id,
            LeaveRequest.status == LeaveStatus.deducted,
            guard,
        )
        .values(deducted_days=item.new_deducted_days, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise BalanceConsistencyException(
            f"Leave request '{leave_req.id}' changed while it was being reconciled."
        )

    balance = await balances.lock_balance(db, leave_req.user_id, leave_req.leave_type_id)
    before = balances.snapshot(balance)
    balances.charge(balance, item.delta, now=now)
    await db.flush()
    await db.refresh(leave_req)

    await record_audit(
        db,
        action=AuditAction.reconcile_holiday_impact,
        target_table=LEAVE_REQUESTS,
        target_id=leave_req.id,
        actor_id=actor.id if actor else None,
        actor_email=actor.email if actor else None,
        status_before=LeaveStatus.deducted.value,
        status_after=LeaveStatus.deducted.value,
        details={
            "holiday_date": holiday_date.isoformat(),
            "old_deducted_days": str(item.old_deducted_days),
            "new_deducted_days": str(item.new_deducted_days),
            "delta": str(item.delta),
            "balance_before": before,
            "balance_after": balances.snapshot(balance),
        },
    )


async def reconcile_holiday_impact(
    db: AsyncSession,
    holiday_date: date,
    *,
    dry_run: bool = False,
    actor: Optional[User] = None,
) -> ReconciliationReport:
    """Recount every deducted request whose range covers *holiday_date*.

    ``delta = new - old``; a positive delta charges the balance, a negative
    one refunds it. Zero-delta requests are counted as impacted and left
    untouched.
    """
    result = await db.execute(
        select(LeaveRequest)
        .where(
            LeaveRequest.status == LeaveStatus.deducted,
            LeaveRequest.start_date <= holiday_date,
            LeaveRequest.end_date >= holiday_date,
        )
        .order_by(LeaveRequest.start_date, LeaveRequest.id)
    )
    impacted = list(result.scalars().all())
    report = ReconciliationReport(
        holiday_date=holiday_date, dry_run=dry_run, impacted=len(impacted),
    )
    if not impacted:
        return report

    # One calendar read for the whole batch, filtered per request below
    calendar = await holidays_between(
        db,
        min(lr.start_date for lr in impacted),
        max(lr.end_date for lr in impacted),
    )
    now = datetime.now(timezone.utc)

    for leave_req in impacted:
        old_days = leave_req.charged_days
        in_range = [
            h for h in calendar if leave_req.start_date <= h.date <= leave_req.end_date
        ]
        new_days = count_leave_days(
            leave_req.start_date, leave_req.end_date, in_range, leave_req.duration_type,
        )
        delta = round_half(new_days - old_days)
        if delta == 0:
            continue

        item = ReconciliationItem(
            leave_id=leave_req.id,
            user_id=leave_req.user_id,
            leave_type_id=leave_req.leave_type_id,
            start_date=leave_req.start_date,
            end_date=leave_req.end_date,
            old_deducted_days=old_days,
            new_deducted_days=new_days,
            delta=delta,
        )
        report.changes.append(item)
        if dry_run:
            continue

        try:
            async with db.begin_nested():
                await _apply_change(db, leave_req, item, holiday_date, actor, now)
        except (AppException, SQLAlchemyError) as exc:
            item.error = str(exc)
            logger.warning(
                "Reconciliation of leave request %s for %s failed: %s",
                leave_req.id, holiday_date, exc,
            )
            continue
        item.applied = True

    report.changed = len(report.changes)
    report.applied = sum(1 for c in report.changes if c.applied)
    report.failed = sum(1 for c in report.changes if c.error)

    logger.info(
        "Holiday reconciliation for %s (dry_run=%s): %d impacted, %d changed, %d applied, %d failed",
        holiday_date, dry_run, report.impacted, report.changed, report.applied, report.failed,
    )
    return report
