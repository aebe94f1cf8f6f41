"""
API Tests — detection, threshold, and event query routes.
"""

from datetime import datetime, timedelta, timezone

import httpx
import pytest
from httpx import AsyncClient

from api.deps import get_detector, get_history_source
from api.main import app, lifespan
from core import config as config_module
from factories import BASE_TIME, BATCH_ID, make_event
from integrations.memory import InMemoryHistorySource
from integrations.mirror import MirrorNodeError, MirrorNodeHistorySource


def _body(event) -> dict:
    return {"event": event.model_dump(mode="json", by_alias=True, exclude_none=True)}


class UnreachableLedger(InMemoryHistorySource):
    async def fetch_raw_messages(self, topic_id=None, **kwargs):
        raise MirrorNodeError("mirror down")


@pytest.mark.asyncio
class TestHealthCheck:
    async def test_health_check(self, client: AsyncClient):
        response = await client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "version" in data


@pytest.mark.asyncio
class TestDetectAPI:
    async def test_clean_event(self, client: AsyncClient, coffee_history):
        event = make_event("evt-4", "shipping", BASE_TIME + timedelta(days=4), "addis_ababa", "distributor")

        response = await client.post("/api/v1/anomalies/detect", json=_body(event))

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["data"] == []
        assert data["message"] == "No anomalies detected"
        assert data["metadata"]["previousEventsCount"] == 3
        assert data["metadata"]["anomalyThreshold"] == 0.7
        assert data["metadata"]["degraded"] is False

    async def test_impossible_move_is_reported(self, client: AsyncClient, coffee_history):
        event = make_event("evt-4", "storage", BASE_TIME + timedelta(days=3, hours=2), "hamburg", "distributor")

        response = await client.post("/api/v1/anomalies/detect", json=_body(event))

        data = response.json()
        types = [alert["type"] for alert in data["data"]]
        assert "location_jump" in types
        assert data["message"] == f"Detected {len(types)} anomaly/anomalies"
        alert = data["data"][0]
        assert alert["eventId"] == "evt-4"
        assert alert["batchId"] == BATCH_ID
        assert alert["isResolved"] is False
        assert data["metadata"]["summary"]["total"] == len(types)

    async def test_event_is_not_compared_with_itself(self, client: AsyncClient, coffee_history):
        response = await client.post("/api/v1/anomalies/detect", json=_body(coffee_history[-1]))

        data = response.json()
        assert data["metadata"]["previousEventsCount"] == 2
        assert data["data"] == []

    async def test_explicit_batch_id_selects_history(self, client: AsyncClient, coffee_history):
        event = make_event("evt-x", "processing", BASE_TIME, batch_id="BATCH-NEW")
        body = {**_body(event), "batchId": BATCH_ID}

        response = await client.post("/api/v1/anomalies/detect", json=body)

        assert response.json()["metadata"]["previousEventsCount"] == 3

    async def test_history_outage_still_analyzes(self, client: AsyncClient):
        app.dependency_overrides[get_history_source] = lambda: UnreachableLedger("0.0.1", {})
        event = make_event(event_type="quality_check")

        response = await client.post("/api/v1/anomalies/detect", json=_body(event))

        assert response.status_code == 200
        data = response.json()
        assert data["metadata"]["previousEventsCount"] == 0
        assert [alert["type"] for alert in data["data"]] == ["certification_mismatch"]

    async def test_garbled_mirror_response_still_analyzes(self, client: AsyncClient):
        gateway_page = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>gateway</html>"))
        mirror = MirrorNodeHistorySource(
            topic_id="0.0.4242",
            config={"mirror_node_url": "https://mirror.test", "transport": gateway_page},
        )
        app.dependency_overrides[get_history_source] = lambda: mirror
        event = make_event(event_type="quality_check")

        response = await client.post("/api/v1/anomalies/detect", json=_body(event))

        assert response.status_code == 200
        data = response.json()
        assert data["metadata"]["previousEventsCount"] == 0
        assert data["metadata"]["degraded"] is False
        assert [alert["type"] for alert in data["data"]] == ["certification_mismatch"]

    async def test_invalid_event_is_rejected(self, client: AsyncClient):
        body = {"event": {"id": "evt-1", "batchId": BATCH_ID, "eventType": "teleport"}}
        response = await client.post("/api/v1/anomalies/detect", json=body)
        assert response.status_code == 422


@pytest.mark.asyncio
class TestThresholdAPI:
    async def test_get_default(self, client: AsyncClient):
        response = await client.get("/api/v1/anomalies/threshold")
        assert response.json() == {"threshold": 0.7}

    async def test_update_is_clamped(self, client: AsyncClient):
        response = await client.put("/api/v1/anomalies/threshold", json={"threshold": 1.5})
        assert response.json() == {"threshold": 1.0}

        response = await client.put("/api/v1/anomalies/threshold", json={"threshold": -0.2})
        assert response.json() == {"threshold": 0.0}

        response = await client.get("/api/v1/anomalies/threshold")
        assert response.json() == {"threshold": 0.0}


@pytest.mark.asyncio
class TestEventsAPI:
    async def test_missing_query_is_bad_request(self, client: AsyncClient):
        response = await client.get("/api/v1/events")
        assert response.status_code == 400

    async def test_only_start_date_is_bad_request(self, client: AsyncClient):
        response = await client.get("/api/v1/events", params={"startDate": "2024-03-01T00:00:00Z"})
        assert response.status_code == 400

    async def test_batch_events_most_recent_first(self, client: AsyncClient, coffee_history):
        response = await client.get("/api/v1/events", params={"batchId": BATCH_ID})

        assert response.status_code == 200
        data = response.json()
        assert [e["id"] for e in data["data"]] == ["evt-3", "evt-2", "evt-1"]
        assert data["data"][0]["eventType"] == "packaging"
        assert data["message"] == "Found 3 events"

    async def test_date_range(self, client: AsyncClient, coffee_history):
        now = datetime.now(timezone.utc)
        params = {
            "startDate": (now - timedelta(hours=1)).isoformat(),
            "endDate": (now + timedelta(hours=1)).isoformat(),
        }

        response = await client.get("/api/v1/events", params=params)

        assert response.status_code == 200
        assert len(response.json()["data"]) == 3

    async def test_mirror_outage_is_bad_gateway(self, client: AsyncClient):
        app.dependency_overrides[get_history_source] = lambda: UnreachableLedger("0.0.1", {})
        response = await client.get("/api/v1/events", params={"batchId": BATCH_ID})
        assert response.status_code == 502


@pytest.fixture
def fresh_providers(monkeypatch):
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("ENABLE_AI_MONITORING", "false")
    for cached in (config_module.get_settings, get_detector, get_history_source):
        cached.cache_clear()
    yield
    for cached in (config_module.get_settings, get_detector, get_history_source):
        cached.cache_clear()


@pytest.mark.asyncio
class TestStartup:
    async def test_providers_are_built_before_serving(self, monkeypatch, fresh_providers):
        monkeypatch.setenv("HISTORY_SOURCE", "in_memory")

        async with lifespan(app):
            assert isinstance(app.state.history, InMemoryHistorySource)
            assert app.state.history is get_history_source()
            assert app.state.detector is get_detector()
            assert app.state.detector.get_threshold() == 0.7

    async def test_unknown_history_source_fails_at_startup(self, monkeypatch, fresh_providers):
        monkeypatch.setenv("HISTORY_SOURCE", "kafka")

        with pytest.raises(ValueError):
            async with lifespan(app):
                pass
