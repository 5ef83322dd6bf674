"""Holiday router — calendar listing, admin edits, reconciliation runs.

Listing is open to any authenticated user; everything else is admin-only.
"""


import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.auth.dependencies import get_current_user, require_role
from leavedesk.common.constants import UserRole
from leavedesk.common.rate_limit import limiter
from leavedesk.database import get_db
from leavedesk.holidays.schemas import (
    HolidayChangeOut,
    HolidayCreate,
    HolidayOut,
    HolidayUpdate,
    ReconcileRequest,
)
from leavedesk.holidays.service import HolidayService
from leavedesk.leave.reconciliation import ReconciliationReport
from leavedesk.users.models import User

router = APIRouter(prefix="", tags=["holidays"])


# ── GET / ───────────────────────────────────────────────────────────

@router.get("", response_model=list[HolidayOut])
async def list_holidays(
    year: Optional[int] = Query(None, ge=1900, le=2999),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List holidays, optionally for one calendar year."""
    return await HolidayService.list_holidays(db, year=year)


# ── POST / ──────────────────────────────────────────────────────────

@router.post("", response_model=HolidayChangeOut, status_code=201)
async def create_holiday(
    body: HolidayCreate,
    admin: User = Depends(require_role(UserRole.admin)),
    db: AsyncSession = Depends(get_db),
):
    """Add a holiday. The response previews its effect on deducted leave."""
    return await HolidayService.create_holiday(db, body, admin)


# ── PATCH /{id} ─────────────────────────────────────────────────────

@router.patch("/{holiday_id}", response_model=HolidayChangeOut)
async def update_holiday(
    holiday_id: uuid.UUID,
    body: HolidayUpdate,
    admin: User = Depends(require_role(UserRole.admin)),
    db: AsyncSession = Depends(get_db),
):
    """Rename a holiday or switch it between full and half day."""
    return await HolidayService.update_holiday(db, holiday_id, body, admin)


# ── DELETE /{id} ────────────────────────────────────────────────────

@router.delete("/{holiday_id}", response_model=HolidayChangeOut)
async def delete_holiday(
    holiday_id: uuid.UUID,
    admin: User = Depends(require_role(UserRole.admin)),
    db: AsyncSession = Depends(get_db),
):
    return await HolidayService.delete_holiday(db, holiday_id, admin)


# ── POST /reconcile ─────────────────────────────────────────────────

@router.post("/reconcile", response_model=ReconciliationReport)
@limiter.limit("10/minute")
async def reconcile_holiday(
    request: Request,
    body: ReconcileRequest,
    admin: User = Depends(require_role(UserRole.admin)),
    db: AsyncSession = Depends(get_db),
):
    """Recount deducted leave covering ``holiday_date``; ``dry_run`` only reports."""
    return await HolidayService.run_reconciliation(
        db, body.holiday_date, admin, dry_run=body.dry_run,
    )
