"""Leave balance store — locked reads and atomic triple updates.

Only the lifecycle engine, the holiday reconciliation job and the admin
balance assignment write through here. Every write moves ``used`` and
``remaining`` together and stamps ``last_updated``.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.common.exceptions import BalanceConsistencyException
from leavedesk.leave.models import LeaveBalance


async def get_balance(
    db: AsyncSession,
    user_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    *,
    for_update: bool = False,
) -> Optional[LeaveBalance]:
    """Load the balance row; ``for_update`` takes a row lock until commit."""
    query = select(LeaveBalance).where(
        LeaveBalance.user_id == user_id,
        LeaveBalance.leave_type_id == leave_type_id,
    )
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    return result.scalars().first()


async def lock_balance(
    db: AsyncSession,
    user_id: uuid.UUID,
    leave_type_id: uuid.UUID,
) -> LeaveBalance:
    """Row-lock the balance or fail; a missing row is never fabricated."""
    balance = await get_balance(db, user_id, leave_type_id, for_update=True)
    if balance is None:
        raise BalanceConsistencyException(
            f"No leave balance exists for user '{user_id}' and leave type "
            f"'{leave_type_id}'. Assign a balance before deducting."
        )
    return balance


def charge(balance: LeaveBalance, days: Decimal, *, now: Optional[datetime] = None) -> None:
    """Apply ``used += days`` and ``remaining -= days`` (days may be negative)."""
    balance.used = Decimal(balance.used) + days
    balance.remaining = Decimal(balance.remaining) - days
    balance.last_updated = now or datetime.now(timezone.utc)


def check_restorable(balance: LeaveBalance, days: Decimal) -> None:
    """Raise if giving back ``days`` would push ``used`` below zero."""
    new_used = Decimal(balance.used) - days
    if new_used < 0:
        raise BalanceConsistencyException(
            f"Cannot restore {days} day(s): used would become {new_used}. "
            "The balance is inconsistent with the deducted request."
        )


def restore(balance: LeaveBalance, days: Decimal, *, now: Optional[datetime] = None) -> None:
    """Undo a charge. Refuses to push ``used`` below zero."""
    check_restorable(balance, days)
    charge(balance, -days, now=now)


def snapshot(balance: LeaveBalance) -> dict[str, str]:
    """JSON-safe view of the triple, for audit details."""
    return {
        "accrued": str(balance.accrued),
        "used": str(balance.used),
        "remaining": str(balance.remaining),
    }
