"""Holiday service — admin calendar edits with a reconciliation preview.

Editing the calendar never touches deducted leave directly. Every edit
answers with a dry-run of the reconciliation job for the edited date, and
the admin applies it explicitly through ``run_reconciliation``.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import extract, select
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.common.audit import record_audit
from leavedesk.common.constants import AuditAction
from leavedesk.common.exceptions import ConflictError, NotFoundException, ValidationException
from leavedesk.holidays.models import Holiday
from leavedesk.holidays.schemas import (
    HolidayChangeOut,
    HolidayCreate,
    HolidayOut,
    HolidayUpdate,
)
from leavedesk.leave.reconciliation import ReconciliationReport, reconcile_holiday_impact
from leavedesk.users.models import User

logger = logging.getLogger(__name__)

HOLIDAYS = "holidays"


def _holiday_details(holiday: Holiday) -> dict:
    return {
        "date": holiday.date.isoformat(),
        "name": holiday.name,
        "is_half_day": holiday.is_half_day,
        "half": holiday.half.value if holiday.half else None,
    }


class HolidayService:

    @staticmethod
    async def list_holidays(db: AsyncSession, year: Optional[int] = None) -> list[HolidayOut]:
        query = select(Holiday).order_by(Holiday.date)
        if year:
            query = query.where(extract("year", Holiday.date) == year)
        result = await db.execute(query)
        return [HolidayOut.model_validate(h) for h in result.scalars().all()]

    @staticmethod
    async def _get(db: AsyncSession, holiday_id: uuid.UUID) -> Holiday:
        holiday = await db.get(Holiday, holiday_id)
        if holiday is None:
            raise NotFoundException("Holiday", str(holiday_id))
        return holiday

    @staticmethod
    async def create_holiday(
        db: AsyncSession, data: HolidayCreate, admin: User,
    ) -> HolidayChangeOut:
        existing = await db.execute(select(Holiday.id).where(Holiday.date == data.date))
        if existing.scalar_one_or_none() is not None:
            raise ConflictError("date", data.date.isoformat())

        now = datetime.now(timezone.utc)
        holiday = Holiday(
            date=data.date,
            name=data.name,
            is_half_day=data.is_half_day,
            half=data.half if data.is_half_day else None,
            created_at=now,
            updated_at=now,
        )
        db.add(holiday)
        await db.flush()

        await record_audit(
            db,
            action=AuditAction.holiday_created,
            target_table=HOLIDAYS,
            target_id=holiday.id,
            actor_id=admin.id,
            actor_email=admin.email,
            details=_holiday_details(holiday),
        )
        logger.info("Holiday %s (%s) created by %s", holiday.date, holiday.name, admin.email)

        impact = await reconcile_holiday_impact(db, holiday.date, dry_run=True, actor=admin)
        return HolidayChangeOut(holiday=HolidayOut.model_validate(holiday), impact=impact)

    @staticmethod
    async def update_holiday(
        db: AsyncSession, holiday_id: uuid.UUID, data: HolidayUpdate, admin: User,
    ) -> HolidayChangeOut:
        holiday = await HolidayService._get(db, holiday_id)
        before = _holiday_details(holiday)

        if data.name is not None:
            holiday.name = data.name
        if data.is_half_day is not None:
            holiday.is_half_day = data.is_half_day
            holiday.half = data.half if data.is_half_day else None
        elif data.half is not None:
            if not holiday.is_half_day:
                raise ValidationException({"half": ["half is only allowed on a half-day holiday."]})
            holiday.half = data.half
        holiday.updated_at = datetime.now(timezone.utc)
        await db.flush()

        await record_audit(
            db,
            action=AuditAction.holiday_updated,
            target_table=HOLIDAYS,
            target_id=holiday.id,
            actor_id=admin.id,
            actor_email=admin.email,
            details={"before": before, "after": _holiday_details(holiday)},
        )
        logger.info("Holiday %s updated by %s", holiday.date, admin.email)

        impact = await reconcile_holiday_impact(db, holiday.date, dry_run=True, actor=admin)
        return HolidayChangeOut(holiday=HolidayOut.model_validate(holiday), impact=impact)

    @staticmethod
    async def delete_holiday(
        db: AsyncSession, holiday_id: uuid.UUID, admin: User,
    ) -> HolidayChangeOut:
        holiday = await HolidayService._get(db, holiday_id)
        holiday_date = holiday.date
        details = _holiday_details(holiday)

        await db.delete(holiday)
        await db.flush()

        await record_audit(
            db,
            action=AuditAction.holiday_deleted,
            target_table=HOLIDAYS,
            target_id=holiday_id,
            actor_id=admin.id,
            actor_email=admin.email,
            details=details,
        )
        logger.info("Holiday %s deleted by %s", holiday_date, admin.email)

        impact = await reconcile_holiday_impact(db, holiday_date, dry_run=True, actor=admin)
        return HolidayChangeOut(holiday=None, impact=impact)

    @staticmethod
    async def run_reconciliation(
        db: AsyncSession, holiday_date: date, admin: User, *, dry_run: bool,
    ) -> ReconciliationReport:
        return await reconcile_holiday_impact(db, holiday_date, dry_run=dry_run, actor=admin)
