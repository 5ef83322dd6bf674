"""Holiday ORM model — one row per calendar date."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from leavedesk.common.constants import HolidayHalf
from leavedesk.database import Base


class Holiday(Base):
    __tablename__ = "holidays"
    __table_args__ = (
        sa.CheckConstraint(
            "(is_half_day AND half IS NOT NULL) OR (NOT is_half_day AND half IS NULL)",
            name="ck_holiday_half_matches_flag",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    date: Mapped[date] = mapped_column(sa.Date, unique=True, nullable=False)
    name: Mapped[str] = mapped_column(sa.String(150), nullable=False)
    is_half_day: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    half: Mapped[Optional[HolidayHalf]] = mapped_column(
        sa.Enum(HolidayHalf, name="holiday_half", native_enum=False, validate_strings=True)
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )
