"""
Feature Extraction — fixed-length event vectors for the anomaly scorer.

Every event maps to exactly 10 features, each normalized to roughly
[0, 1]. Order and normalization constants are a fixed contract: a scorer
trained against one version must see identical vectors from the next.

  0  hour_of_day            hour / 24
  1  day_of_week            Sunday=0 .. Saturday=6, / 7
  2  event_type_code        index in EVENT_TYPE_CODES / 8 (-1 when absent)
  3  participant_type_code  index in PARTICIPANT_TYPE_CODES / 5 (-1 when absent)
  4  certification_count    count / 10 (not clamped)
  5  hours_since_last       hours / 168, max 1
  6  distance_from_last     km / 10_000, max 1
  7  history_length         prior events / 100, max 1
  8  country_code           first code point of country / 255
  9  metadata_complexity    metadata keys / 10, max 1
"""

from collections.abc import Sequence

from supply_chain.geo import haversine_km
from supply_chain.models import EventType, ParticipantType, SupplyChainEvent

FEATURE_NAMES = [
    "hour_of_day",
    "day_of_week",
    "event_type_code",
    "participant_type_code",
    "certification_count",
    "hours_since_last",
    "distance_from_last",
    "history_length",
    "country_code",
    "metadata_complexity",
]
N_FEATURES = len(FEATURE_NAMES)

# Encoding tables predate certification/inspection events and the
# inspector/consumer participants; those encode as index -1.
EVENT_TYPE_CODES = [
    EventType.HARVEST,
    EventType.PROCESSING,
    EventType.PACKAGING,
    EventType.SHIPPING,
    EventType.QUALITY_CHECK,
    EventType.STORAGE,
    EventType.RETAIL_ARRIVAL,
    EventType.SALE,
]
PARTICIPANT_TYPE_CODES = [
    ParticipantType.FARMER,
    ParticipantType.PROCESSOR,
    ParticipantType.DISTRIBUTOR,
    ParticipantType.RETAILER,
    ParticipantType.CERTIFIER,
]

HOURS_PER_WEEK = 168
DISTANCE_NORM_KM = 10_000


def _code(value, table: list) -> float:
    index = table.index(value) if value in table else -1
    return index / len(table)


def extract_features(event: SupplyChainEvent, prior_events: Sequence[SupplyChainEvent]) -> list[float]:
    """Build the 10-element feature vector for ``event`` given its ordered history."""
    ts = event.timestamp
    features = [
        ts.hour / 24,
        (ts.isoweekday() % 7) / 7,
        _code(event.event_type, EVENT_TYPE_CODES),
        _code(event.participant_type, PARTICIPANT_TYPE_CODES),
        len(event.certifications or []) / 10,
    ]

    if prior_events:
        last = prior_events[-1]
        hours = (ts - last.timestamp).total_seconds() / 3600
        features.append(min(hours / HOURS_PER_WEEK, 1))
        features.append(min(haversine_km(last.location, event.location) / DISTANCE_NORM_KM, 1))
    else:
        features.extend([0.0, 0.0])

    features.append(min(len(prior_events) / 100, 1))
    country = event.location.country
    features.append(ord(country[0]) / 255 if country else 0.0)
    features.append(min(len(event.metadata or {}) / 10, 1))

    return [float(value) for value in features]


def features_as_dict(features: Sequence[float]) -> dict[str, float]:
    return dict(zip(FEATURE_NAMES, features))
