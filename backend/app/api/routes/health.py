"""Outbox health endpoint."""
from fastapi import APIRouter, Depends

from app.api.deps import get_outbox_store, get_settings
from app.core.config import Settings
from app.notifications.health import HealthThresholds, build_health_report
from app.notifications.outbox import OutboxStore

router = APIRouter()


@router.get("/")
def outbox_health(
    store: OutboxStore = Depends(get_outbox_store),
    settings: Settings = Depends(get_settings),
) -> dict:
    """
    Queue depth, oldest pending age and alert verdict.
    Always 200 when the store answers; "degraded" is reported in the body.
    """
    report = build_health_report(store, HealthThresholds.from_settings(settings))
    return {"success": True, "health": report.as_dict()}
