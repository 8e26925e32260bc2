"""
Outbox store: the durable job table and its two atomic state transitions.

claim_batch() locks eligible rows with SELECT ... FOR UPDATE SKIP LOCKED, so
overlapping dispatch runs never receive the same row. complete_job() records
one attempt outcome and only ever moves a row out of "processing".
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import OutboxStoreError
from app.core.logging import get_logger
from app.db.models.notification_outbox import (
    PENDING_STATUSES,
    TERMINAL_STATUSES,
    NotificationOutbox,
    OutboxStatus,
)
from app.db.models.push_subscription import PushSubscription

logger = get_logger(__name__)

DEFAULT_LEASE_SECONDS = 300
MAX_ERROR_LENGTH = 2000


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything we write is UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class OutboxJob:
    """A claimed job, detached from the session that claimed it."""

    id: uuid.UUID
    constellation_id: uuid.UUID
    recipient_user_id: uuid.UUID
    actor_user_id: uuid.UUID | None
    event_type: str
    payload: dict[str, Any]
    attempts: int
    subscription_ids: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class QueueStats:
    counts: dict[str, int]
    oldest_pending_created_at: datetime | None


class OutboxStore(Protocol):
    def claim_batch(self, max_size: int, now: datetime | None = None) -> list[OutboxJob]: ...

    def complete_job(
        self,
        job_id: uuid.UUID,
        success: bool,
        error: str | None,
        retry_delay_seconds: int,
        discard: bool,
        now: datetime | None = None,
    ) -> bool: ...

    def queue_stats(self) -> QueueStats: ...


class SqlOutboxStore:
    """OutboxStore backed by the notification_outbox table."""

    def __init__(self, db: Session, lease_seconds: int = DEFAULT_LEASE_SECONDS):
        self.db = db
        self.lease_seconds = lease_seconds

    def claim_batch(self, max_size: int, now: datetime | None = None) -> list[OutboxJob]:
        now = now or utc_now()
        stale_cutoff = now - timedelta(seconds=self.lease_seconds)

        stmt = (
            select(NotificationOutbox)
            .where(
                or_(
                    NotificationOutbox.status == OutboxStatus.queued.value,
                    (NotificationOutbox.status == OutboxStatus.failed.value)
                    & (NotificationOutbox.next_attempt_at <= now),
                    # Lease expired: the run that claimed it died mid-batch.
                    (NotificationOutbox.status == OutboxStatus.processing.value)
                    & (NotificationOutbox.updated_at < stale_cutoff),
                )
            )
            .order_by(NotificationOutbox.created_at.asc())
            .limit(max_size)
            .with_for_update(skip_locked=True)
            .execution_options(populate_existing=True)
        )

        try:
            rows = list(self.db.execute(stmt).scalars().all())
            for row in rows:
                row.status = OutboxStatus.processing.value
                row.updated_at = now

            subscriptions = self._active_subscriptions({row.recipient_user_id for row in rows})
            jobs = [
                OutboxJob(
                    id=row.id,
                    constellation_id=row.constellation_id,
                    recipient_user_id=row.recipient_user_id,
                    actor_user_id=row.actor_user_id,
                    event_type=row.event_type,
                    payload=dict(row.payload or {}),
                    attempts=row.attempts or 0,
                    subscription_ids=subscriptions.get(row.recipient_user_id, []),
                )
                for row in rows
            ]
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise OutboxStoreError(f"claim_batch failed: {e}") from e

        return jobs

    def _active_subscriptions(self, user_ids: set[uuid.UUID]) -> dict[uuid.UUID, list[str]]:
        if not user_ids:
            return {}

        stmt = (
            select(PushSubscription.user_id, PushSubscription.id)
            .where(
                PushSubscription.user_id.in_(user_ids),
                PushSubscription.is_active.is_(True),
            )
            .order_by(PushSubscription.created_at.asc(), PushSubscription.id.asc())
        )
        resolved: dict[uuid.UUID, list[str]] = {}
        for user_id, subscription_id in self.db.execute(stmt):
            resolved.setdefault(user_id, []).append(subscription_id)
        return resolved

    def complete_job(
        self,
        job_id: uuid.UUID,
        success: bool,
        error: str | None,
        retry_delay_seconds: int,
        discard: bool,
        now: datetime | None = None,
    ) -> bool:
        """
        Record one attempt outcome for a claimed job.

        Returns False (and changes nothing) when the row is no longer in
        "processing", e.g. a second completion of a sent or discarded job.
        """
        now = now or utc_now()

        try:
            row = self.db.execute(
                select(NotificationOutbox)
                .where(NotificationOutbox.id == job_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()

            if row is None:
                self.db.rollback()
                raise OutboxStoreError(f"complete_job: outbox job {job_id} not found")

            if row.status != OutboxStatus.processing.value:
                terminal = row.status in {s.value for s in TERMINAL_STATUSES}
                logger.warning(
                    "complete_job ignored: id=%s status=%s terminal=%s",
                    job_id,
                    row.status,
                    terminal,
                )
                self.db.rollback()
                return False

            row.attempts = (row.attempts or 0) + 1
            row.last_error = error[:MAX_ERROR_LENGTH] if error else None
            row.updated_at = now

            if success:
                row.status = OutboxStatus.sent.value
                row.sent_at = now
                row.next_attempt_at = None
            elif discard:
                row.status = OutboxStatus.discarded.value
                row.next_attempt_at = None
            else:
                row.status = OutboxStatus.failed.value
                row.next_attempt_at = now + timedelta(seconds=max(retry_delay_seconds, 0))

            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise OutboxStoreError(f"complete_job failed for {job_id}: {e}") from e

        return True

    def queue_stats(self) -> QueueStats:
        counts = {status.value: 0 for status in OutboxStatus}

        try:
            for status, count in self.db.execute(
                select(NotificationOutbox.status, func.count()).group_by(NotificationOutbox.status)
            ):
                counts[status] = int(count or 0)

            oldest = self.db.execute(
                select(func.min(NotificationOutbox.created_at)).where(
                    NotificationOutbox.status.in_([s.value for s in PENDING_STATUSES])
                )
            ).scalar()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise OutboxStoreError(f"queue_stats failed: {e}") from e

        return QueueStats(
            counts=counts,
            oldest_pending_created_at=as_utc(oldest) if oldest is not None else None,
        )
