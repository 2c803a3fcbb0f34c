"""Tests for the FastAPI API endpoints."""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from nudge_engine.api.app import create_app
from nudge_engine.config import EngineConfig
from nudge_engine.exceptions import SnoozeStoreError
from nudge_engine.refresh.controller import RefreshController
from nudge_engine.snooze.store import KeyValueBackend, SnoozeStore
from nudge_engine.sources.memory import InMemoryRecordSet


def _iso(days_ago: float) -> str:
    return (datetime.now(timezone.utc) - timedelta(days=days_ago)).isoformat()


class ReadOnlyBackend(KeyValueBackend):
    def get(self, key):
        return None

    def set(self, key, value):
        raise SnoozeStoreError("read-only")


@pytest.fixture
def client():
    """Create a test client with fresh components."""
    app = create_app(config=EngineConfig())
    return TestClient(app)


def _ingest_stale_lead(client, lead_id="lead-1", days_ago=11):
    response = client.post("/records/leads", json={"rows": [
        {"id": lead_id, "name": "John Doe", "status": "active", "updated_at": _iso(days_ago)},
    ]})
    assert response.status_code == 200


class TestNudgeEndpoints:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_initial_view(self, client):
        data = client.get("/nudges").json()
        assert data["nudges"] == []
        assert data["enabled"] is True
        assert data["is_loading"] is True

    def test_refresh_generates_nudges(self, client):
        _ingest_stale_lead(client)
        client.post("/records/captures", json={"rows": [
            {"id": f"c{i}", "status": "pending", "created_at": _iso(0)} for i in range(7)
        ]})

        response = client.post("/nudges/refresh")
        assert response.status_code == 200
        data = response.json()
        assert data["is_loading"] is False
        assert [n["id"] for n in data["nudges"]] == ["stale-lead-lead-1", "capture-pending"]
        assert data["nudges"][0]["priority"] == "high"
        assert data["nudges"][1]["priority"] == "medium"
        assert data["summary"]["total"] == 2

        assert client.get("/nudges").json() == data

    def test_snooze_hides_nudge(self, client):
        _ingest_stale_lead(client)
        client.post("/nudges/refresh")

        response = client.post("/nudges/stale-lead-lead-1/snooze", json={"hours": 2})
        assert response.status_code == 200
        assert response.json()["nudge_id"] == "stale-lead-lead-1"

        assert client.get("/nudges").json()["nudges"] == []
        snoozes = client.get("/snoozes").json()
        assert [s["nudgeId"] for s in snoozes] == ["stale-lead-lead-1"]

    def test_snooze_without_body_uses_default(self, client):
        response = client.post("/nudges/stale-lead-x/snooze")
        assert response.status_code == 200
        expires = datetime.fromtimestamp(response.json()["expires_at"] / 1000, tz=timezone.utc)
        remaining = expires - datetime.now(timezone.utc)
        assert timedelta(hours=23) < remaining <= timedelta(hours=24)

    def test_unsnooze_restores(self, client):
        _ingest_stale_lead(client)
        client.post("/nudges/refresh")
        client.post("/nudges/stale-lead-lead-1/snooze", json={"minutes": 30})
        client.post("/nudges/stale-lead-lead-1/unsnooze")
        ids = [n["id"] for n in client.get("/nudges").json()["nudges"]]
        assert ids == ["stale-lead-lead-1"]

    def test_dismiss(self, client):
        _ingest_stale_lead(client)
        client.post("/nudges/refresh")
        response = client.post("/nudges/stale-lead-lead-1/dismiss")
        assert response.status_code == 200
        assert client.get("/nudges").json()["nudges"] == []

    def test_negative_snooze_rejected(self, client):
        response = client.post("/nudges/x/snooze", json={"hours": -1})
        assert response.status_code == 422

    def test_snooze_store_failure_is_503(self):
        records = InMemoryRecordSet()
        controller = RefreshController(
            fetchers=records.fetchers(),
            snooze_store=SnoozeStore(ReadOnlyBackend()),
        )
        client = TestClient(create_app(controller=controller, records=records))
        response = client.post("/nudges/x/snooze", json={"hours": 1})
        assert response.status_code == 503


class TestSnoozeEndpoints:
    def test_prune(self, client):
        client.post("/nudges/a/snooze", json={"hours": 1})
        client.post("/nudges/b/unsnooze")
        response = client.post("/snoozes/prune")
        assert response.status_code == 200
        assert response.json() == {"removed": 1, "remaining": 1}


class TestSettingsEndpoints:
    def test_get_defaults(self, client):
        data = client.get("/settings").json()
        assert data["stale_lead_warning_days"] == 5
        assert data["stale_lead_critical_days"] == 10

    def test_update_settings_recomputes(self, client):
        _ingest_stale_lead(client, days_ago=6)
        client.post("/nudges/refresh")

        response = client.put("/settings", json={
            "enabled": True,
            "stale_lead_warning_days": 1,
            "stale_lead_critical_days": 3,
            "deal_stalled_days": 7,
        })
        assert response.status_code == 200
        nudges = client.get("/nudges").json()["nudges"]
        assert nudges[0]["priority"] == "high"

    def test_disable_kill_switch(self, client):
        _ingest_stale_lead(client)
        client.post("/nudges/refresh")
        client.put("/settings", json={"enabled": False})
        data = client.get("/nudges").json()
        assert data["enabled"] is False
        assert data["nudges"] == []
        assert data["summary"]["total"] == 0

    def test_invalid_settings_rejected(self, client):
        response = client.put("/settings", json={
            "stale_lead_warning_days": 10,
            "stale_lead_critical_days": 2,
        })
        assert response.status_code == 422


class TestRecordEndpoints:
    def test_ingest(self, client):
        response = client.post("/records/deals", json={"rows": [{"id": "d1", "stage": "offer"}]})
        assert response.status_code == 200
        assert response.json()["count"] == 1

    def test_unknown_table(self, client):
        response = client.post("/records/widgets", json={"rows": []})
        assert response.status_code == 422
