"""
Test Configuration — Detector, in-memory ledger, and API client fixtures.

The API client runs against the in-memory history source, so no test
touches the network.
"""

from datetime import timedelta

import pytest
from httpx import ASGITransport, AsyncClient

from api.deps import get_detector, get_history_source
from api.main import app
from factories import BASE_TIME, make_event
from integrations.memory import InMemoryHistorySource
from ml.anomaly import AnomalyDetectionSystem


@pytest.fixture
def detector():
    """Rules-only detector (scorer not initialized)."""
    return AnomalyDetectionSystem()


@pytest.fixture
def ledger():
    return InMemoryHistorySource(topic_id="0.0.4242", config={"max_message_size": 256})


@pytest.fixture
def coffee_history(ledger):
    """Harvest → processing → packaging, recorded on the in-memory ledger."""
    events = [
        make_event("evt-1", "harvest", BASE_TIME, "yirgacheffe"),
        make_event("evt-2", "processing", BASE_TIME + timedelta(days=2), "addis_ababa", "processor"),
        make_event("evt-3", "packaging", BASE_TIME + timedelta(days=3), "addis_ababa", "processor"),
    ]
    for event in events:
        ledger.append_event(event)
    return events


@pytest.fixture
async def client(ledger):
    """Async test client wired to the in-memory ledger and a fresh detector."""
    test_detector = AnomalyDetectionSystem(threshold=0.7)

    app.dependency_overrides[get_history_source] = lambda: ledger
    app.dependency_overrides[get_detector] = lambda: test_detector

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
