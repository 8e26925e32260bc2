"""Notification outbox model: one row per push notification obligation."""
from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, CheckConstraint, DateTime, Index, Integer, String, Text, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class OutboxStatus(str, enum.Enum):
    """Lifecycle: queued -> processing -> sent | failed | discarded."""

    queued = "queued"
    processing = "processing"
    sent = "sent"
    failed = "failed"
    discarded = "discarded"


TERMINAL_STATUSES = (OutboxStatus.sent, OutboxStatus.discarded)
PENDING_STATUSES = (OutboxStatus.queued, OutboxStatus.processing, OutboxStatus.failed)


class EventType(str, enum.Enum):
    message_new = "message_new"
    call_ringing = "call_ringing"
    ritual_reminder = "ritual_reminder"
    partner_joined = "partner_joined"
    system = "system"


class NotificationOutbox(Base):
    __tablename__ = "notification_outbox"
    __table_args__ = (
        CheckConstraint(
            "status IN ('queued','processing','sent','failed','discarded')",
            name="ck_notification_outbox_status_valid",
        ),
        Index("ix_notification_outbox_status_next", "status", "next_attempt_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    constellation_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    recipient_user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    actor_user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    event_type: Mapped[str] = mapped_column(String(32), nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        default=dict,
    )

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=OutboxStatus.queued.value)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    next_attempt_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
