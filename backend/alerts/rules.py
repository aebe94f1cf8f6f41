"""
Detection Rules — heuristic checks over a batch's custody history.

Each check takes the current event and its prior events (ascending by
time) and returns the alerts it raises. Checks are independent; the
orchestrator in ``ml.anomaly`` decides which run and in what order.
"""

from collections.abc import Sequence

from alerts.engine import create_alert
from supply_chain.geo import haversine_km
from supply_chain.models import (
    AlertSeverity,
    AnomalyAlert,
    AnomalyType,
    EventType,
    SupplyChainEvent,
)

DUPLICATE_WINDOW_MS = 3_600_000
MAX_GROUND_SPEED_KMH = 1000
BUSINESS_HOURS = (6, 22)
COUNTRY_LOOKBACK = 3

EXPECTED_NEXT_EVENTS: dict[EventType, frozenset[EventType]] = {
    EventType.HARVEST: frozenset({EventType.PROCESSING, EventType.QUALITY_CHECK, EventType.PACKAGING}),
    EventType.PROCESSING: frozenset({EventType.QUALITY_CHECK, EventType.PACKAGING, EventType.STORAGE}),
    EventType.PACKAGING: frozenset({EventType.SHIPPING, EventType.STORAGE}),
    EventType.SHIPPING: frozenset({EventType.STORAGE, EventType.RETAIL_ARRIVAL}),
    EventType.STORAGE: frozenset({EventType.SHIPPING, EventType.RETAIL_ARRIVAL, EventType.QUALITY_CHECK}),
    EventType.RETAIL_ARRIVAL: frozenset({EventType.SALE}),
}

BUSINESS_HOURS_EVENTS = frozenset({EventType.PROCESSING, EventType.QUALITY_CHECK, EventType.PACKAGING})
CERTIFICATION_EVENTS = frozenset({EventType.CERTIFICATION, EventType.QUALITY_CHECK})

# Known export → import routes. Not exhaustive.
TRADE_ROUTES: dict[str, tuple[str, ...]] = {
    "Brazil": ("USA", "Germany", "Netherlands", "Japan"),
    "Colombia": ("USA", "Germany", "Netherlands", "Japan"),
    "Ethiopia": ("USA", "Germany", "Italy", "Japan"),
    "Vietnam": ("USA", "Germany", "Japan", "South Korea"),
    "China": ("USA", "Germany", "Japan", "South Korea"),
    "India": ("USA", "Germany", "UAE", "UK"),
}


def _elapsed_ms(a: SupplyChainEvent, b: SupplyChainEvent) -> float:
    return (b.timestamp - a.timestamp).total_seconds() * 1000


# ── Pattern rules ─────────────────────────────────────────────────────────


def check_duplicate(event: SupplyChainEvent, prior_events: Sequence[SupplyChainEvent]) -> list[AnomalyAlert]:
    """Same event type in the same city within an hour of a prior event."""
    for prior in prior_events:
        if (
            prior.event_type == event.event_type
            and prior.location.city == event.location.city
            and abs(_elapsed_ms(prior, event)) < DUPLICATE_WINDOW_MS
        ):
            return [
                create_alert(
                    event,
                    AnomalyType.SUSPICIOUS_PATTERN,
                    AlertSeverity.MEDIUM,
                    "Duplicate event detected within 1 hour",
                    0.8,
                    metadata={"duplicate_of": prior.id},
                )
            ]
    return []


def check_impossible_speed(
    event: SupplyChainEvent, prior_events: Sequence[SupplyChainEvent]
) -> list[AnomalyAlert]:
    """Movement from the last location faster than any ground transport."""
    if not prior_events:
        return []

    last = prior_events[-1]
    distance_km = haversine_km(last.location, event.location)
    hours = _elapsed_ms(last, event) / 1000 / 3600
    if distance_km <= 0 or hours <= 0:
        return []

    speed = distance_km / hours
    if speed <= MAX_GROUND_SPEED_KMH:
        return []

    return [
        create_alert(
            event,
            AnomalyType.LOCATION_JUMP,
            AlertSeverity.HIGH,
            f"Impossible transport speed: {speed:.2f} km/h",
            0.9,
            metadata={"distance_km": round(distance_km, 2), "hours": round(hours, 4)},
        )
    ]


def check_event_sequence(
    event: SupplyChainEvent, prior_events: Sequence[SupplyChainEvent]
) -> list[AnomalyAlert]:
    """Current event type not among the expected successors of the last one."""
    if not prior_events:
        return []

    last_type = prior_events[-1].event_type
    expected = EXPECTED_NEXT_EVENTS.get(last_type)
    if expected is None or event.event_type in expected:
        return []

    return [
        create_alert(
            event,
            AnomalyType.SUSPICIOUS_PATTERN,
            AlertSeverity.MEDIUM,
            f"Unexpected event sequence: {last_type.value} → {event.event_type.value}",
            0.7,
        )
    ]


# ── Time rules ────────────────────────────────────────────────────────────


def check_time_consistency(
    event: SupplyChainEvent, prior_events: Sequence[SupplyChainEvent]
) -> list[AnomalyAlert]:
    """Out-of-order timestamps and business events logged at night."""
    alerts = []

    if prior_events and event.timestamp < prior_events[-1].timestamp:
        alerts.append(
            create_alert(
                event,
                AnomalyType.TIME_INCONSISTENCY,
                AlertSeverity.HIGH,
                "Event timestamp is earlier than previous event",
                0.85,
            )
        )

    # Hour is read in the timestamp's own UTC offset, i.e. the local time
    # at which the participant recorded the event.
    hour = event.timestamp.hour
    opens, closes = BUSINESS_HOURS
    if event.event_type in BUSINESS_HOURS_EVENTS and (hour < opens or hour > closes):
        alerts.append(
            create_alert(
                event,
                AnomalyType.TIME_INCONSISTENCY,
                AlertSeverity.MEDIUM,
                "Business event occurring outside normal hours",
                0.6,
            )
        )

    return alerts


# ── Location rules ────────────────────────────────────────────────────────


def is_reasonable_country_transition(from_country: str, to_country: str) -> bool:
    return (
        from_country == to_country
        or to_country in TRADE_ROUTES.get(from_country, ())
        or from_country in TRADE_ROUTES.get(to_country, ())
    )


def check_country_transition(
    event: SupplyChainEvent, prior_events: Sequence[SupplyChainEvent]
) -> list[AnomalyAlert]:
    """New country that is not on a known trade route from the previous one."""
    countries = [prior.location.country for prior in prior_events[-COUNTRY_LOOKBACK:]]
    if not countries or event.location.country in countries:
        return []

    from_country = countries[-1]
    to_country = event.location.country
    if is_reasonable_country_transition(from_country, to_country):
        return []

    return [
        create_alert(
            event,
            AnomalyType.LOCATION_JUMP,
            AlertSeverity.MEDIUM,
            f"Unexpected country transition: {from_country} → {to_country}",
            0.7,
        )
    ]


# ── Certification rules ───────────────────────────────────────────────────


def check_certifications(
    event: SupplyChainEvent, prior_events: Sequence[SupplyChainEvent]
) -> list[AnomalyAlert]:
    """Missing certifications on certification events, and expired certificates."""
    alerts = []

    if event.event_type in CERTIFICATION_EVENTS and not event.certifications:
        alerts.append(
            create_alert(
                event,
                AnomalyType.CERTIFICATION_MISMATCH,
                AlertSeverity.MEDIUM,
                "Expected certifications missing for certification event",
                0.6,
            )
        )

    expired = [cert for cert in event.certifications or [] if cert.is_expired(event.timestamp)]
    if expired:
        alerts.append(
            create_alert(
                event,
                AnomalyType.CERTIFICATION_MISMATCH,
                AlertSeverity.HIGH,
                f"{len(expired)} expired certification(s) detected",
                0.8,
                metadata={"certificate_ids": [cert.certificate_id for cert in expired]},
            )
        )

    return alerts
