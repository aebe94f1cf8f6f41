"""
Supply Chain Records — events, locations, certifications, anomaly alerts.

Wire payloads on the ledger use camelCase keys (``batchId``,
``eventType``...). Models accept either the camelCase alias or the
snake_case field name and serialize back to camelCase with
``model_dump(by_alias=True)``.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

Scalar = str | int | float | bool | None


class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


def _as_aware(value: datetime) -> datetime:
    """Naive timestamps are read as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ── Enumerations ──────────────────────────────────────────────────────────


class EventType(str, Enum):
    HARVEST = "harvest"
    PROCESSING = "processing"
    PACKAGING = "packaging"
    SHIPPING = "shipping"
    QUALITY_CHECK = "quality_check"
    STORAGE = "storage"
    RETAIL_ARRIVAL = "retail_arrival"
    SALE = "sale"
    CERTIFICATION = "certification"
    INSPECTION = "inspection"


class ParticipantType(str, Enum):
    FARMER = "farmer"
    PROCESSOR = "processor"
    DISTRIBUTOR = "distributor"
    RETAILER = "retailer"
    CERTIFIER = "certifier"
    INSPECTOR = "inspector"
    CONSUMER = "consumer"


class CertificationType(str, Enum):
    ORGANIC = "organic"
    FAIR_TRADE = "fair_trade"
    RAINFOREST_ALLIANCE = "rainforest_alliance"
    UTZ = "utz"
    BIRD_FRIENDLY = "bird_friendly"
    DIRECT_TRADE = "direct_trade"
    KOSHER = "kosher"
    HALAL = "halal"


class AnomalyType(str, Enum):
    TIME_INCONSISTENCY = "time_inconsistency"
    LOCATION_JUMP = "location_jump"
    UNEXPECTED_PARTICIPANT = "unexpected_participant"
    CERTIFICATION_MISMATCH = "certification_mismatch"
    SUSPICIOUS_PATTERN = "suspicious_pattern"
    QUALITY_DEVIATION = "quality_deviation"
    QUANTITY_MISMATCH = "quantity_mismatch"


class AlertSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# ── Locations & certifications ────────────────────────────────────────────


class Coordinates(_Record):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class Location(_Record):
    country: str
    region: str = ""
    city: str = ""
    address: str | None = None
    coordinates: Coordinates | None = None


class Certification(_Record):
    type: CertificationType
    issued_by: str
    issued_date: datetime
    expiry_date: datetime | None = None
    certificate_id: str
    is_valid: bool = True

    @field_validator("issued_date", "expiry_date")
    @classmethod
    def _tz_aware(cls, value: datetime | None) -> datetime | None:
        return _as_aware(value) if value is not None else None

    def is_expired(self, reference: datetime) -> bool:
        """True when the certificate expired strictly before ``reference``."""
        if self.expiry_date is None:
            return False
        return self.expiry_date < _as_aware(reference)


# ── Events ────────────────────────────────────────────────────────────────


class SupplyChainEvent(_Record):
    """A single custody event. Immutable once recorded on the ledger."""

    id: str
    batch_id: str
    event_type: EventType
    timestamp: datetime
    location: Location
    description: str = ""
    participant_id: str
    participant_type: ParticipantType
    certifications: list[Certification] | None = None
    metadata: dict[str, Scalar] | None = None
    ledger_transaction_id: str | None = None
    ledger_topic_id: str | None = None
    sequence_number: int | None = None
    previous_event_id: str | None = None
    anomaly_score: float | None = None
    is_anomaly: bool | None = None

    @field_validator("timestamp")
    @classmethod
    def _tz_aware(cls, value: datetime) -> datetime:
        return _as_aware(value)


# ── Alerts ────────────────────────────────────────────────────────────────


class AnomalyAlert(_Record):
    id: str
    batch_id: str
    event_id: str
    type: AnomalyType
    severity: AlertSeverity
    description: str
    detected_at: datetime
    score: float = Field(..., ge=0.0, le=1.0)
    is_resolved: bool = False
    resolved_at: datetime | None = None
    resolved_by: str | None = None
    metadata: dict[str, Any] | None = None
