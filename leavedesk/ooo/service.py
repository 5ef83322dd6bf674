"""Out-of-office reconciliation — one merged automatic-reply window per user.

The mailbox supports a single scheduled window, so all of a user's current
approved, opted-in leaves collapse to ``[min(start) 00:00, max(end) 23:59:59]``.
Gap days between two separate leaves end up inside the window; that is a
known limitation of the mailbox API.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Iterable, Optional

from fastapi import BackgroundTasks
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.common.constants import DATE_FORMAT, LeaveStatus
from leavedesk.common.tasks import dispatch
from leavedesk.config import settings
from leavedesk.integrations.graph import get_graph_client
from leavedesk.leave.models import LeaveRequest

logger = logging.getLogger(__name__)

END_OF_DAY = time(23, 59, 59)


@dataclass(frozen=True)
class OOOUpdate:
    """What to apply to one mailbox."""

    user_email: str
    enabled: bool
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None
    message: str = ""


def merge_window(ranges: Iterable[tuple[date, date]]) -> Optional[tuple[datetime, datetime]]:
    """Collapse date ranges to one all-day window, or ``None`` if empty."""
    ranges = list(ranges)
    if not ranges:
        return None
    start = min(r[0] for r in ranges)
    end = max(r[1] for r in ranges)
    return datetime.combine(start, time.min), datetime.combine(end, END_OF_DAY)


def build_reply_message(
    start: date,
    end: date,
    *,
    custom_message: Optional[str] = None,
    manager_email: Optional[str] = None,
) -> str:
    if custom_message and custom_message.strip():
        return custom_message.strip()
    urgent = f" For urgent matters please contact {manager_email}." if manager_email else ""
    return (
        f"Hello, I am out of the office from {start.strftime(DATE_FORMAT)} "
        f"to {end.strftime(DATE_FORMAT)}.{urgent}\nI will reply upon my return."
    )


async def apply_ooo_update(update: OOOUpdate) -> None:
    """Push the computed state to the mailbox (runs as a background task)."""
    client = get_graph_client()
    if not update.enabled:
        await client.disable_automatic_replies(update.user_email)
        logger.info("OOO disabled for %s", update.user_email)
        return
    await client.schedule_automatic_replies(
        update.user_email,
        start=update.window_start.isoformat(),
        end=update.window_end.isoformat(),
        time_zone=settings.OOO_TIMEZONE,
        message=update.message,
    )
    logger.info(
        "OOO scheduled for %s: %s → %s",
        update.user_email, update.window_start, update.window_end,
    )


async def reconcile_user_ooo(
    db: AsyncSession,
    user_id: uuid.UUID,
    user_email: Optional[str],
    background: Optional[BackgroundTasks],
    *,
    today: Optional[date] = None,
) -> Optional[OOOUpdate]:
    """Recompute the user's automatic-reply window and queue it.

    Reads through the caller's session so it sees the transition that was
    just flushed. Only the mailbox call is deferred; it cannot fail the
    transition.
    """
    if not user_email:
        logger.info("User %s has no email; skipping OOO reconciliation", user_id)
        return None

    today = today or datetime.now(timezone.utc).date()
    result = await db.execute(
        select(LeaveRequest)
        .where(
            LeaveRequest.user_id == user_id,
            LeaveRequest.enable_ooo.is_(True),
            LeaveRequest.status == LeaveStatus.approved,
            LeaveRequest.end_date >= today,
        )
        .order_by(LeaveRequest.start_date)
    )
    leaves = result.scalars().all()

    window = merge_window((lr.start_date, lr.end_date) for lr in leaves)
    if window is None:
        update = OOOUpdate(user_email=user_email, enabled=False)
    else:
        latest = leaves[-1]
        update = OOOUpdate(
            user_email=user_email,
            enabled=True,
            window_start=window[0],
            window_end=window[1],
            message=build_reply_message(
                window[0].date(),
                window[1].date(),
                custom_message=latest.ooo_custom_message,
                manager_email=latest.manager_email,
            ),
        )

    dispatch(background, apply_ooo_update, update)
    return update
