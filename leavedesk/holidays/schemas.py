"""Holiday Pydantic v2 schemas."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from leavedesk.common.constants import HolidayHalf
from leavedesk.leave.reconciliation import ReconciliationReport


def _check_half(is_half_day: Optional[bool], half: Optional[HolidayHalf]) -> None:
    if is_half_day and half is None:
        raise ValueError("half is required for a half-day holiday.")
    if is_half_day is False and half is not None:
        raise ValueError("half is only allowed on a half-day holiday.")


class HolidayCreate(BaseModel):
    date: date
    name: str = Field(..., min_length=1, max_length=150)
    is_half_day: bool = False
    half: Optional[HolidayHalf] = None

    @model_validator(mode="after")
    def validate_half(self) -> "HolidayCreate":
        _check_half(self.is_half_day, self.half)
        return self


class HolidayUpdate(BaseModel):
    """Partial update; the date itself is the key and cannot move."""

    name: Optional[str] = Field(None, min_length=1, max_length=150)
    is_half_day: Optional[bool] = None
    half: Optional[HolidayHalf] = None

    @model_validator(mode="after")
    def validate_half(self) -> "HolidayUpdate":
        _check_half(self.is_half_day, self.half)
        return self


class HolidayOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    date: date
    name: str
    is_half_day: bool
    half: Optional[HolidayHalf] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class HolidayChangeOut(BaseModel):
    """An edited holiday plus the dry-run impact on deducted leave."""

    holiday: Optional[HolidayOut] = None
    impact: ReconciliationReport


class ReconcileRequest(BaseModel):
    holiday_date: date
    dry_run: bool = True
