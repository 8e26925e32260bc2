"""
API dependencies (shared DI).

The push client and settings are built once at startup and live on
app.state; the outbox store wraps the per-request database session.
"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.db.session import get_db
from app.notifications.outbox import OutboxStore, SqlOutboxStore
from app.notifications.push_sender import PushClient


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_push_client(request: Request) -> PushClient:
    return request.app.state.push_client


def get_outbox_store(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> OutboxStore:
    return SqlOutboxStore(db, lease_seconds=settings.PROCESSING_LEASE_SECONDS)
