"""
Alert Engine — Anomaly alert construction and severity classification.

Rule-based checks carry a fixed severity per rule; only the scorer path
derives severity from the raw score.

Alert Types:
  - suspicious_pattern: duplicates, unexpected sequences, scorer hits
  - location_jump: impossible transport speed, unexpected country transitions
  - time_inconsistency: out-of-order or off-hours events
  - certification_mismatch: missing or expired certifications
"""

import uuid
from datetime import datetime, timezone
from typing import Any

from supply_chain.models import (
    AlertSeverity,
    AnomalyAlert,
    AnomalyType,
    SupplyChainEvent,
)

SEVERITY_THRESHOLDS = {
    "anomaly_score": {
        "critical": 0.9,
        "high": 0.8,
        "medium": 0.6,
    },
}


def score_to_severity(score: float) -> AlertSeverity:
    """Classify scorer output into a severity tier."""
    thresholds = SEVERITY_THRESHOLDS["anomaly_score"]
    if score >= thresholds["critical"]:
        return AlertSeverity.CRITICAL
    elif score >= thresholds["high"]:
        return AlertSeverity.HIGH
    elif score >= thresholds["medium"]:
        return AlertSeverity.MEDIUM
    return AlertSeverity.LOW


def create_alert(
    event: SupplyChainEvent,
    anomaly_type: AnomalyType,
    severity: AlertSeverity,
    description: str,
    score: float,
    metadata: dict[str, Any] | None = None,
) -> AnomalyAlert:
    """Build an unresolved alert for ``event``."""
    return AnomalyAlert(
        id=f"anomaly-{event.id}-{uuid.uuid4().hex[:12]}",
        batch_id=event.batch_id,
        event_id=event.id,
        type=anomaly_type,
        severity=severity,
        description=description,
        detected_at=datetime.now(timezone.utc),
        score=min(max(score, 0.0), 1.0),
        is_resolved=False,
        metadata=metadata,
    )


def summarize_alerts(alerts: list[AnomalyAlert]) -> dict[str, Any]:
    """Counts by severity and type, plus the highest score."""
    by_severity = {severity.value: 0 for severity in AlertSeverity}
    by_type: dict[str, int] = {}
    for alert in alerts:
        by_severity[alert.severity.value] += 1
        by_type[alert.type.value] = by_type.get(alert.type.value, 0) + 1
    return {
        "total": len(alerts),
        "by_severity": by_severity,
        "by_type": by_type,
        "max_score": max((alert.score for alert in alerts), default=0.0),
    }
