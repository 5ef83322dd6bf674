"""Leave router — submit, approve/reject/cancel, deduct/reverse, balances.

All endpoints require authentication. Reviewer rights come from the request:
the approver of record (its ``manager_email``) or an admin, whatever role
the approver holds. The service enforces that.
"""


import uuid
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.auth.dependencies import get_current_user, get_leave_policy, require_role
from leavedesk.common.constants import LeaveStatus, UserRole
from leavedesk.common.pagination import PaginationParams
from leavedesk.database import get_db
from leavedesk.leave.schemas import (
    BalanceAssignRequest,
    DeductionOut,
    LeaveBalanceOut,
    LeaveCancelRequest,
    LeavePolicy,
    LeaveRejectRequest,
    LeaveRequestCreate,
    LeaveRequestOut,
)
from leavedesk.leave.service import LeaveService
from leavedesk.users.models import User

router = APIRouter(prefix="", tags=["leave"])


# ── POST /requests ──────────────────────────────────────────────────

@router.post("/requests", response_model=LeaveRequestOut, status_code=201)
async def create_request(
    body: LeaveRequestCreate,
    background: BackgroundTasks,
    user: User = Depends(get_current_user),
    policy: LeavePolicy = Depends(get_leave_policy),
    db: AsyncSession = Depends(get_db),
):
    """Submit a leave request. The day count is provisional until deduction."""
    return await LeaveService.create_leave(
        db, user, body, policy=policy, background=background,
    )


# ── GET /requests/mine ──────────────────────────────────────────────

@router.get("/requests/mine")
async def my_requests(
    status: Optional[LeaveStatus] = Query(None),
    params: PaginationParams = Depends(),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """The authenticated user's own requests."""
    return await LeaveService.list_requests(db, user, params, scope="my", status=status)


# ── GET /requests/team ──────────────────────────────────────────────

@router.get("/requests/team")
async def team_requests(
    status: Optional[LeaveStatus] = Query(None),
    user_id: Optional[uuid.UUID] = Query(None),
    params: PaginationParams = Depends(),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Requests for which the caller is the approver of record."""
    return await LeaveService.list_requests(
        db, user, params, scope="team", status=status, user_id=user_id,
    )


# ── GET /requests ───────────────────────────────────────────────────

@router.get("/requests")
async def all_requests(
    status: Optional[LeaveStatus] = Query(None),
    user_id: Optional[uuid.UUID] = Query(None),
    params: PaginationParams = Depends(),
    user: User = Depends(require_role(UserRole.admin)),
    db: AsyncSession = Depends(get_db),
):
    """Every request in the system (admin)."""
    return await LeaveService.list_requests(
        db, user, params, scope="all", status=status, user_id=user_id,
    )


# ── POST /requests/{id}/approve ─────────────────────────────────────

@router.post("/requests/{request_id}/approve", response_model=LeaveRequestOut)
async def approve_request(
    request_id: uuid.UUID,
    background: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.approve_leave(db, request_id, user, background=background)


# ── POST /requests/{id}/reject ──────────────────────────────────────

@router.post("/requests/{request_id}/reject", response_model=LeaveRequestOut)
async def reject_request(
    request_id: uuid.UUID,
    body: LeaveRejectRequest,
    background: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.reject_leave(
        db, request_id, user, body.reason, background=background,
    )


# ── POST /requests/{id}/cancel ──────────────────────────────────────

@router.post("/requests/{request_id}/cancel", response_model=LeaveRequestOut)
async def cancel_request(
    request_id: uuid.UUID,
    body: LeaveCancelRequest,
    background: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Owner, manager of record or admin may cancel a pending/approved request."""
    return await LeaveService.cancel_leave(
        db, request_id, user, body.reason, background=background,
    )


# ── POST /requests/{id}/deduct ──────────────────────────────────────

@router.post("/requests/{request_id}/deduct", response_model=DeductionOut)
async def deduct_request(
    request_id: uuid.UUID,
    background: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Charge the balance with the day count recomputed against today's calendar."""
    return await LeaveService.deduct_leave(db, request_id, user, background=background)


# ── POST /requests/{id}/reverse ─────────────────────────────────────

@router.post("/requests/{request_id}/reverse", response_model=LeaveRequestOut)
async def reverse_request(
    request_id: uuid.UUID,
    background: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Undo a deduction (restoring the balance) or withdraw an approval."""
    return await LeaveService.reverse_leave(db, request_id, user, background=background)


# ── GET /balances ───────────────────────────────────────────────────

@router.get("/balances", response_model=list[LeaveBalanceOut])
async def my_balances(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_balances(db, user.id)


# ── GET /balances/{user_id} ─────────────────────────────────────────

@router.get("/balances/{user_id}", response_model=list[LeaveBalanceOut])
async def user_balances(
    user_id: uuid.UUID,
    admin: User = Depends(require_role(UserRole.admin)),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_balances(db, user_id)


# ── PUT /balances/{user_id} ─────────────────────────────────────────

@router.put("/balances/{user_id}", response_model=LeaveBalanceOut)
async def assign_balance(
    user_id: uuid.UUID,
    body: BalanceAssignRequest,
    background: BackgroundTasks,
    admin: User = Depends(require_role(UserRole.admin)),
    policy: LeavePolicy = Depends(get_leave_policy),
    db: AsyncSession = Depends(get_db),
):
    """Set the remaining days of a user's balance (creates the row if missing)."""
    return await LeaveService.assign_balance(
        db, admin, user_id, body, policy=policy, background=background,
    )
