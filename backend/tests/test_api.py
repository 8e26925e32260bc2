"""HTTP trigger surface: GET health, POST dispatch, 405 for everything else."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from app.api.deps import get_outbox_store
from app.core.config import Settings
from app.core.errors import ConfigurationError, OutboxStoreError
from app.db.session import get_db
from app.main import create_app


class BrokenStore:
    def claim_batch(self, max_size, now=None):
        raise OutboxStoreError("claim_batch failed: connection refused")

    def complete_job(self, *args, **kwargs):
        raise OutboxStoreError("complete_job failed")

    def queue_stats(self):
        raise OutboxStoreError("queue_stats failed: connection refused")


@pytest.fixture
def app(db, test_settings, push_client):
    app = create_app(settings=test_settings, push_client=push_client)
    app.dependency_overrides[get_db] = lambda: db
    return app


@pytest.fixture
def client(app) -> TestClient:
    with TestClient(app) as client:
        yield client


def test_get_reports_health(client: TestClient) -> None:
    response = client.get("/")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    health = body["health"]
    assert health["status"] == "healthy"
    assert health["alerts"] == []
    assert health["queue"] == {"queued": 0, "processing": 0, "failed": 0, "sent": 0, "discarded": 0}
    assert health["thresholds"]["failed_warn_count"] == 20
    assert "at" in health


def test_get_degraded_is_still_200(client: TestClient, add_job) -> None:
    add_job(created_at=datetime(2020, 1, 1, tzinfo=timezone.utc))

    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["health"]["status"] == "degraded"
    assert "pending_age_exceeds_threshold" in response.json()["health"]["alerts"]


def test_post_runs_one_batch(client: TestClient, push_client, add_job, add_subscription) -> None:
    add_subscription("sub-1")
    add_job(payload={"preview_text": "hi"})
    add_job(payload={"preview_text": "again"})

    response = client.post("/", json={"batch_size": 1})

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "summary": {"claimed": 1, "sent": 1, "failed": 0, "discarded": 0},
    }
    assert len(push_client.calls) == 1


@pytest.mark.parametrize("content", [b"", b"not json", b"[1, 2]", b'{"batch_size": "lots"}'])
def test_post_with_unusable_body_uses_default_batch(client: TestClient, add_job, content: bytes) -> None:
    for _ in range(3):
        add_job()

    response = client.post("/", content=content, headers={"Content-Type": "application/json"})

    assert response.status_code == 200
    assert response.json()["summary"] == {"claimed": 3, "sent": 0, "failed": 0, "discarded": 3}


@pytest.mark.parametrize("method", ["PUT", "PATCH", "DELETE", "TRACE", "PROPFIND"])
def test_other_methods_are_rejected(client: TestClient, method: str) -> None:
    response = client.request(method, "/")
    assert response.status_code == 405
    assert response.json() == {"error": "Method not allowed"}


def test_store_failure_is_a_500(app, client: TestClient) -> None:
    app.dependency_overrides[get_outbox_store] = lambda: BrokenStore()

    post = client.post("/", json={"batch_size": 5})
    get = client.get("/")

    assert post.status_code == 500
    assert post.json() == {"success": False, "error": "claim_batch failed: connection refused"}
    assert get.status_code == 500
    assert get.json()["success"] is False


def test_refuses_to_start_without_push_credentials(db) -> None:
    settings = Settings(_env_file=None, ONESIGNAL_REST_API_KEY="key", ONESIGNAL_APP_ID=None)
    app = create_app(settings=settings)

    with pytest.raises(ConfigurationError, match="ONESIGNAL_APP_ID"):
        with TestClient(app):
            pass
