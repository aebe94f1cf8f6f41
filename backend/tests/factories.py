"""
Shared test data — locations and a custody event factory.
"""

from datetime import datetime, timezone

from supply_chain.models import SupplyChainEvent

BATCH_ID = "BATCH-COFFEE-001"
BASE_TIME = datetime(2024, 3, 12, 10, 0, tzinfo=timezone.utc)  # Tuesday

LOCATIONS = {
    "addis_ababa": {
        "country": "Ethiopia",
        "region": "Addis Ababa",
        "city": "Addis Ababa",
        "coordinates": {"latitude": 9.0300, "longitude": 38.7400},
    },
    "yirgacheffe": {
        "country": "Ethiopia",
        "region": "SNNPR",
        "city": "Yirgacheffe",
        "coordinates": {"latitude": 6.1600, "longitude": 38.2000},
    },
    "hamburg": {
        "country": "Germany",
        "region": "Hamburg",
        "city": "Hamburg",
        "coordinates": {"latitude": 53.5511, "longitude": 9.9937},
    },
    "rotterdam": {
        "country": "Netherlands",
        "region": "South Holland",
        "city": "Rotterdam",
        "coordinates": {"latitude": 51.9244, "longitude": 4.4777},
    },
    "lima": {
        "country": "Peru",
        "region": "Lima",
        "city": "Lima",
    },
}


def make_event(
    event_id: str = "evt-1",
    event_type: str = "harvest",
    timestamp: datetime = BASE_TIME,
    location: str | dict = "yirgacheffe",
    participant_type: str = "farmer",
    batch_id: str = BATCH_ID,
    **extra,
) -> SupplyChainEvent:
    data = {
        "id": event_id,
        "batchId": batch_id,
        "eventType": event_type,
        "timestamp": timestamp.isoformat(),
        "location": LOCATIONS[location] if isinstance(location, str) else location,
        "description": f"{event_type} event",
        "participantId": "participant-1",
        "participantType": participant_type,
    }
    data.update(extra)
    return SupplyChainEvent.model_validate(data)
