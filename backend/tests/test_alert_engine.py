"""
Tests for the Alert Engine — Severity Classification and alert construction.

Covers:
  - Scorer severity tiers
  - Alert identity and clamping
  - Alert summaries
"""

from alerts.engine import create_alert, score_to_severity, summarize_alerts
from factories import BATCH_ID, make_event
from supply_chain.models import AlertSeverity, AnomalyType

# ── Score Severity ────────────────────────────────────────────────────


class TestScoreSeverity:
    def test_critical(self):
        assert score_to_severity(0.95) == AlertSeverity.CRITICAL

    def test_critical_exact_threshold(self):
        assert score_to_severity(0.9) == AlertSeverity.CRITICAL

    def test_high(self):
        assert score_to_severity(0.85) == AlertSeverity.HIGH

    def test_high_exact_threshold(self):
        assert score_to_severity(0.8) == AlertSeverity.HIGH

    def test_medium(self):
        assert score_to_severity(0.75) == AlertSeverity.MEDIUM

    def test_medium_exact_threshold(self):
        assert score_to_severity(0.6) == AlertSeverity.MEDIUM

    def test_low(self):
        assert score_to_severity(0.59) == AlertSeverity.LOW

    def test_zero_is_low(self):
        assert score_to_severity(0.0) == AlertSeverity.LOW


# ── Alert Construction ────────────────────────────────────────────────


class TestCreateAlert:
    def test_alert_references_event_and_batch(self):
        event = make_event("evt-42")
        alert = create_alert(event, AnomalyType.LOCATION_JUMP, AlertSeverity.HIGH, "jump", 0.9)

        assert alert.event_id == "evt-42"
        assert alert.batch_id == BATCH_ID
        assert alert.id.startswith("anomaly-evt-42-")
        assert alert.is_resolved is False
        assert alert.resolved_at is None
        assert alert.detected_at.tzinfo is not None

    def test_ids_are_unique_for_same_event(self):
        event = make_event()
        ids = {create_alert(event, AnomalyType.SUSPICIOUS_PATTERN, AlertSeverity.LOW, "x", 0.5).id for _ in range(50)}
        assert len(ids) == 50

    def test_score_is_clamped(self):
        event = make_event()
        assert create_alert(event, AnomalyType.SUSPICIOUS_PATTERN, AlertSeverity.LOW, "x", 1.7).score == 1.0
        assert create_alert(event, AnomalyType.SUSPICIOUS_PATTERN, AlertSeverity.LOW, "x", -0.3).score == 0.0

    def test_serializes_with_camel_case_keys(self):
        alert = create_alert(make_event(), AnomalyType.TIME_INCONSISTENCY, AlertSeverity.MEDIUM, "late", 0.6)
        body = alert.model_dump(mode="json", by_alias=True)
        assert {"batchId", "eventId", "detectedAt", "isResolved"} <= set(body)
        assert body["type"] == "time_inconsistency"


# ── Summaries ─────────────────────────────────────────────────────────


class TestSummarizeAlerts:
    def test_empty(self):
        summary = summarize_alerts([])
        assert summary["total"] == 0
        assert summary["max_score"] == 0.0
        assert all(count == 0 for count in summary["by_severity"].values())

    def test_counts_by_severity_and_type(self):
        event = make_event()
        alerts = [
            create_alert(event, AnomalyType.LOCATION_JUMP, AlertSeverity.HIGH, "a", 0.9),
            create_alert(event, AnomalyType.LOCATION_JUMP, AlertSeverity.MEDIUM, "b", 0.7),
            create_alert(event, AnomalyType.CERTIFICATION_MISMATCH, AlertSeverity.HIGH, "c", 0.8),
        ]
        summary = summarize_alerts(alerts)

        assert summary["total"] == 3
        assert summary["by_severity"]["high"] == 2
        assert summary["by_severity"]["medium"] == 1
        assert summary["by_type"] == {"location_jump": 2, "certification_mismatch": 1}
        assert summary["max_score"] == 0.9
