"""Audit log model and async helpers for recording leave-state changes."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import DateTime, Index, String, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column

from leavedesk.database import Base

logger = logging.getLogger(__name__)


# ── Append-only audit table ─────────────────────────────────────────

class AuditLog(Base):
    """Append-only record of every status- or balance-affecting change."""

    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    actor_email: Mapped[Optional[str]] = mapped_column(String(255))
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    target_table: Mapped[str] = mapped_column(String(50), nullable=False)
    target_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    status_before: Mapped[Optional[str]] = mapped_column(String(20))
    status_after: Mapped[Optional[str]] = mapped_column(String(20))
    details: Mapped[Optional[dict]] = mapped_column(JSONB)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("NOW()"),
    )

    __table_args__ = (
        Index("ix_audit_logs_actor_id", "actor_id"),
        Index("ix_audit_logs_target", "target_table", "target_id"),
        Index("ix_audit_logs_created_at", "created_at"),
        Index("ix_audit_logs_action", "action"),
    )

    def __repr__(self) -> str:
        return (
            f"<AuditLog {self.action} {self.target_table}"
            f"/{self.target_id} by {self.actor_email}>"
        )


# ── Helpers ─────────────────────────────────────────────────────────

async def create_audit_entry(
    session: AsyncSession,
    *,
    action: str,
    target_table: str,
    target_id: Optional[uuid.UUID],
    actor_id: Optional[uuid.UUID] = None,
    actor_email: Optional[str] = None,
    status_before: Optional[str] = None,
    status_after: Optional[str] = None,
    details: Optional[dict[str, Any]] = None,
) -> AuditLog:
    """
    Create and flush an audit-log entry.

    Args:
        session: Async SQLAlchemy session.
        action: submit_request | deduct_request | reconcile_holiday_impact | etc.
        target_table: e.g. "leave_requests", "leave_balances".
        target_id: UUID of the affected row.
        actor_id: UUID of the user performing the action.
        actor_email: Email of the user performing the action.
        status_before: Request status before the change, if any.
        status_after: Request status after the change, if any.
        details: Free-form JSON context (dates, day counts, deltas).
    """
    entry = AuditLog(
        actor_id=actor_id,
        actor_email=actor_email,
        action=str(getattr(action, "value", action)),
        target_table=target_table,
        target_id=target_id,
        status_before=status_before,
        status_after=status_after,
        details=details,
    )
    session.add(entry)
    await session.flush()
    return entry


async def record_audit(session: AsyncSession, **kwargs: Any) -> Optional[AuditLog]:
    """Best-effort audit write inside a SAVEPOINT.

    A failed insert only rolls back the savepoint; the surrounding
    transition stays intact and is still committed by the caller.
    """
    try:
        async with session.begin_nested():
            return await create_audit_entry(session, **kwargs)
    except SQLAlchemyError:
        logger.exception(
            "Audit write failed for %s on %s/%s",
            kwargs.get("action"), kwargs.get("target_table"), kwargs.get("target_id"),
        )
        return None
