"""Outbox health: queue depth, oldest pending age and threshold alerts."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from app.core.config import Settings
from app.notifications.outbox import OutboxStore, utc_now

PENDING_AGE_ALERT = "pending_age_exceeds_threshold"
FAILED_COUNT_ALERT = "failed_count_exceeds_threshold"
QUEUED_COUNT_ALERT = "queued_count_exceeds_threshold"


@dataclass(frozen=True)
class HealthThresholds:
    pending_age_warn_seconds: int = 300
    failed_warn_count: int = 20
    queued_warn_count: int = 100

    @classmethod
    def from_settings(cls, settings: Settings) -> "HealthThresholds":
        return cls(
            pending_age_warn_seconds=settings.HEALTH_PENDING_AGE_WARN_SECONDS,
            failed_warn_count=settings.HEALTH_FAILED_WARN_COUNT,
            queued_warn_count=settings.HEALTH_QUEUED_WARN_COUNT,
        )


@dataclass(frozen=True)
class HealthReport:
    at: datetime
    status: str
    queue: dict[str, int]
    oldest_pending_age_seconds: int
    thresholds: HealthThresholds
    alerts: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "at": self.at.isoformat(),
            "status": self.status,
            "queue": dict(self.queue),
            "oldest_pending_age_seconds": self.oldest_pending_age_seconds,
            "thresholds": asdict(self.thresholds),
            "alerts": list(self.alerts),
        }


def build_health_report(
    store: OutboxStore,
    thresholds: HealthThresholds | None = None,
    now: datetime | None = None,
) -> HealthReport:
    """
    Read-only snapshot of the outbox.

    Threshold breaches are reported as data (status="degraded"); only a
    failing store query raises.
    """
    thresholds = thresholds or HealthThresholds()
    now = now or utc_now()
    stats = store.queue_stats()

    age = 0
    if stats.oldest_pending_created_at is not None:
        age = max(0, int((now - stats.oldest_pending_created_at).total_seconds()))

    alerts = []
    if age > thresholds.pending_age_warn_seconds:
        alerts.append(PENDING_AGE_ALERT)
    if stats.counts.get("failed", 0) > thresholds.failed_warn_count:
        alerts.append(FAILED_COUNT_ALERT)
    if stats.counts.get("queued", 0) > thresholds.queued_warn_count:
        alerts.append(QUEUED_COUNT_ALERT)

    return HealthReport(
        at=now,
        status="degraded" if alerts else "healthy",
        queue={key: stats.counts.get(key, 0) for key in ("queued", "processing", "failed", "sent", "discarded")},
        oldest_pending_age_seconds=age,
        thresholds=thresholds,
        alerts=alerts,
    )
