"""Pytest configuration and shared fixtures.

Store tests run against an in-memory SQLite database. The claim query's
FOR UPDATE SKIP LOCKED clause is dropped by the SQLite dialect; everything
else (eligibility, state transitions, subscription resolution) is the same
SQL that runs on PostgreSQL.
"""

import os

# Must be set before app.core.config is imported anywhere.
os.environ.setdefault("DATABASE_URL", "sqlite://")

import uuid
from collections.abc import Generator
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import Settings
from app.db.base import Base
from app.db.models.notification_outbox import NotificationOutbox
from app.db.models.push_subscription import PushSubscription
from app.notifications.outbox import OutboxJob, SqlOutboxStore
from app.notifications.push_sender import DeliveryResult

T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine) -> Generator[Session, None, None]:
    session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store(db: Session) -> SqlOutboxStore:
    return SqlOutboxStore(db, lease_seconds=300)


@pytest.fixture
def recipient_id() -> uuid.UUID:
    return uuid.UUID("22222222-2222-2222-2222-222222222222")


@pytest.fixture
def add_job(db: Session, recipient_id: uuid.UUID):
    """Insert an outbox row the way an event producer would."""

    def _add_job(
        event_type: str = "message_new",
        payload: dict | None = None,
        status: str = "queued",
        created_at: datetime = T0,
        recipient: uuid.UUID | None = None,
        attempts: int = 0,
        next_attempt_at: datetime | None = None,
        updated_at: datetime | None = None,
    ) -> NotificationOutbox:
        row = NotificationOutbox(
            id=uuid.uuid4(),
            constellation_id=uuid.UUID("11111111-1111-1111-1111-111111111111"),
            recipient_user_id=recipient or recipient_id,
            actor_user_id=uuid.UUID("33333333-3333-3333-3333-333333333333"),
            event_type=event_type,
            payload=payload if payload is not None else {},
            status=status,
            attempts=attempts,
            next_attempt_at=next_attempt_at,
            created_at=created_at,
            updated_at=updated_at or created_at,
        )
        db.add(row)
        db.commit()
        return row

    return _add_job


@pytest.fixture
def add_subscription(db: Session, recipient_id: uuid.UUID):
    def _add_subscription(
        subscription_id: str,
        user_id: uuid.UUID | None = None,
        is_active: bool = True,
        created_at: datetime = T0,
    ) -> PushSubscription:
        sub = PushSubscription(
            id=subscription_id,
            user_id=user_id or recipient_id,
            is_active=is_active,
            created_at=created_at,
            updated_at=created_at,
        )
        db.add(sub)
        db.commit()
        return sub

    return _add_subscription


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------
class FakeClock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class FakePushClient:
    """Records delivered jobs; replays queued results (or raises queued exceptions)."""

    def __init__(self, results=None):
        self.results = list(results or [])
        self.calls: list[OutboxJob] = []

    def deliver(self, job: OutboxJob) -> DeliveryResult:
        self.calls.append(job)
        result = self.results.pop(0) if self.results else DeliveryResult(ok=True)
        if isinstance(result, Exception):
            raise result
        return result

    def close(self) -> None:
        pass


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def push_client() -> FakePushClient:
    return FakePushClient()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite://",
        ONESIGNAL_REST_API_KEY="test-rest-key",
        ONESIGNAL_APP_ID="test-app-id",
    )


@pytest.fixture
def make_job():
    """Build a detached OutboxJob without touching the database."""

    def _make_job(**overrides) -> OutboxJob:
        fields = {
            "id": uuid.UUID("44444444-4444-4444-4444-444444444444"),
            "constellation_id": uuid.UUID("11111111-1111-1111-1111-111111111111"),
            "recipient_user_id": uuid.UUID("22222222-2222-2222-2222-222222222222"),
            "actor_user_id": uuid.UUID("33333333-3333-3333-3333-333333333333"),
            "event_type": "message_new",
            "payload": {"preview_text": "hi"},
            "attempts": 0,
            "subscription_ids": ["sub-1"],
        }
        fields.update(overrides)
        return OutboxJob(**fields)

    return _make_job


@pytest.fixture
def make_push_client():
    return FakePushClient
