"""OneSignal push delivery for claimed outbox jobs."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import requests

from app.core.config import Settings
from app.core.logging import get_logger
from app.notifications.copy import build_copy_for
from app.notifications.outbox import OutboxJob

logger = get_logger(__name__)

NO_ACTIVE_SUBSCRIPTIONS = "no_active_subscription_ids"
ERROR_BODY_MAX_CHARS = 500


@dataclass(frozen=True)
class DeliveryResult:
    ok: bool
    error: str | None = None


def build_request_body(app_id: str, job: OutboxJob) -> dict[str, Any]:
    copy = build_copy_for(job.event_type, job.payload)
    data: dict[str, Any] = {
        "event_type": job.event_type,
        "notification_outbox_id": str(job.id),
        "constellation_id": str(job.constellation_id),
        "actor_user_id": str(job.actor_user_id) if job.actor_user_id else None,
    }
    # Producer-supplied keys win over ours.
    data.update(job.payload or {})
    return {
        "app_id": app_id,
        "include_subscription_ids": list(job.subscription_ids),
        "headings": {"en": copy.title},
        "contents": {"en": copy.body},
        "data": data,
    }


class PushClient:
    """
    Thin wrapper around the OneSignal notifications endpoint.

    Built once per process and shared across dispatch runs. deliver() makes
    at most one HTTP call and never retries; failures come back as a
    DeliveryResult instead of an exception.
    """

    def __init__(
        self,
        api_key: str,
        app_id: str,
        api_url: str = "https://api.onesignal.com/notifications",
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ):
        self.api_key = api_key
        self.app_id = app_id
        self.api_url = api_url
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: Settings) -> "PushClient":
        settings.require_push_credentials()
        return cls(
            api_key=settings.ONESIGNAL_REST_API_KEY,
            app_id=settings.ONESIGNAL_APP_ID,
            api_url=settings.ONESIGNAL_API_URL,
            timeout=settings.PUSH_TIMEOUT_SECONDS,
        )

    def deliver(self, job: OutboxJob) -> DeliveryResult:
        if not job.subscription_ids:
            return DeliveryResult(ok=False, error=NO_ACTIVE_SUBSCRIPTIONS)

        try:
            resp = self.session.post(
                self.api_url,
                headers={
                    "Authorization": f"Key {self.api_key}",
                    "Content-Type": "application/json",
                },
                json=build_request_body(self.app_id, job),
                timeout=self.timeout,
            )
        except requests.Timeout:
            logger.warning("push delivery timed out: id=%s", job.id)
            return DeliveryResult(ok=False, error="timeout")
        except requests.RequestException as e:
            logger.warning("push delivery transport error: id=%s err=%s", job.id, e)
            return DeliveryResult(ok=False, error=f"transport_error:{e}")

        if not 200 <= resp.status_code < 300:
            body = (resp.text or "")[:ERROR_BODY_MAX_CHARS]
            return DeliveryResult(ok=False, error=f"{resp.status_code}:{body}")

        return DeliveryResult(ok=True)

    def close(self) -> None:
        self.session.close()
