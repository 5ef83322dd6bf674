"""Email notifications for leave transitions.

Each ``notify_*`` helper renders a message and queues it as a background
task; delivery failures are logged by the task runner and never reach the
caller.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from html import escape
from typing import Optional

from fastapi import BackgroundTasks

from leavedesk.common.constants import DATE_FORMAT, LeaveStatus
from leavedesk.common.tasks import dispatch
from leavedesk.config import settings
from leavedesk.integrations.graph import get_graph_client
from leavedesk.leave.models import LeaveRequest
from leavedesk.users.models import User, normalize_email

logger = logging.getLogger(__name__)


async def send_email(*, to: str, subject: str, html: str) -> None:
    """Deliver one HTML email through Graph."""
    await get_graph_client().send_mail(to=to, subject=subject, html=html)


# ── Rendering ───────────────────────────────────────────────────────

def _fmt_date(value) -> str:
    return value.strftime(DATE_FORMAT) if value else "-"


def _render(greeting: str, lines: list[str], items: Optional[dict[str, object]] = None) -> str:
    body = [f"<p>{escape(greeting)}</p>"]
    body.extend(f"<p>{line}</p>" for line in lines)
    if items:
        body.append("<ul>")
        body.extend(
            f"<li>{escape(label)}: <b>{escape(str(value))}</b></li>"
            for label, value in items.items()
        )
        body.append("</ul>")
    body.append(f'<p><a href="{escape(settings.APP_URL)}">Open the leave app</a></p>')
    return "\n".join(body)


def _request_items(leave_req: LeaveRequest) -> dict[str, object]:
    return {
        "Start": _fmt_date(leave_req.start_date),
        "End": _fmt_date(leave_req.end_date),
        "Days": leave_req.requested_days,
    }


def _queue(background: Optional[BackgroundTasks], to: Optional[str], subject: str, html: str) -> None:
    recipient = normalize_email(to)
    if not recipient:
        logger.info("No recipient for '%s'; skipping email", subject)
        return
    dispatch(background, send_email, to=recipient, subject=subject, html=html)


# ── Transition notifications ────────────────────────────────────────

def notify_leave_submitted(
    background: Optional[BackgroundTasks],
    leave_req: LeaveRequest,
    owner: User,
) -> None:
    items = _request_items(leave_req)
    items["Note"] = leave_req.note or "-"
    items["Automatic reply"] = "Requested" if leave_req.enable_ooo else "Not requested"
    _queue(
        background,
        leave_req.manager_email,
        "New leave request awaiting your approval",
        _render(
            "Hello,",
            [f"<b>{escape(owner.display_name)}</b> submitted the following leave request:"],
            items,
        ),
    )


def notify_leave_approved(background: Optional[BackgroundTasks], leave_req: LeaveRequest) -> None:
    _queue(
        background,
        leave_req.email,
        "Your leave request was approved",
        _render("Hello,", ["Your leave request has been <b>approved</b>."], _request_items(leave_req)),
    )


def notify_leave_rejected(
    background: Optional[BackgroundTasks],
    leave_req: LeaveRequest,
    reason: Optional[str],
) -> None:
    items = _request_items(leave_req)
    items["Reason"] = reason or "-"
    _queue(
        background,
        leave_req.email,
        "Your leave request was rejected",
        _render("Hello,", ["Your leave request has been <b>rejected</b>."], items),
    )


def notify_leave_cancelled(
    background: Optional[BackgroundTasks],
    leave_req: LeaveRequest,
    actor: User,
) -> None:
    recipients = {normalize_email(leave_req.email), normalize_email(leave_req.manager_email)}
    recipients.discard(normalize_email(actor.email))
    for recipient in sorted(r for r in recipients if r):
        _queue(
            background,
            recipient,
            "Leave request cancelled",
            _render(
                "Hello,",
                [f"The leave request below was cancelled by {escape(actor.display_name)}."],
                _request_items(leave_req),
            ),
        )


def notify_leave_deducted(
    background: Optional[BackgroundTasks],
    leave_req: LeaveRequest,
    deducted_days: Decimal,
    remaining: Decimal,
) -> None:
    items = _request_items(leave_req)
    items["Deducted days"] = deducted_days
    items["Remaining balance"] = remaining
    _queue(
        background,
        leave_req.email,
        "Leave days deducted from your balance",
        _render("Hello,", [f"<b>{deducted_days}</b> day(s) were deducted for this leave."], items),
    )


def notify_leave_reversed(
    background: Optional[BackgroundTasks],
    leave_req: LeaveRequest,
    status_before: str,
) -> None:
    if leave_req.status == LeaveStatus.approved:
        line = "The deduction was reversed; your leave is <b>approved</b> again and the balance restored."
    else:
        line = "The approval was withdrawn; your leave is <b>pending</b> again."
    _queue(
        background,
        leave_req.email,
        "Update on your leave request",
        _render("Hello,", [line], _request_items(leave_req) | {"Previous status": status_before}),
    )


def notify_balance_updated(
    background: Optional[BackgroundTasks],
    user: User,
    *,
    leave_type_name: str,
    before: Decimal,
    after: Decimal,
    admin: User,
    note: Optional[str],
) -> None:
    change = after - before
    items: dict[str, object] = {"Previous balance": before, "New balance": after}
    if note:
        items["Note"] = note
    balance_of = (
        f"the {escape(leave_type_name)} balance of <b>{escape(user.display_name)}</b>"
    )
    if change:
        verb = "increased" if change > 0 else "decreased"
        line = f"{escape(admin.display_name)} {verb} {balance_of} by {abs(change)} day(s)."
    else:
        line = f"{escape(admin.display_name)} confirmed {balance_of} at {after} day(s)."
    subject = "Leave balance updated"
    _queue(background, user.email, subject, _render("Hello,", [line], items))
    if user.manager_email:
        _queue(background, user.manager_email, subject, _render("Hello,", [line], items))
