"""
Anomaly Detection — rule checks plus an optional scorer over custody events.

Detects:
  - Duplicate events (same type, same city, within an hour)
  - Impossible transport speed between consecutive locations
  - Unexpected event sequences (e.g. shipping → processing)
  - Scorer hits above the configured threshold
  - Out-of-order and off-hours timestamps
  - Country transitions off known trade routes
  - Missing or expired certifications

Failure policy is fail-open: ``analyze`` never raises. An internal error
is logged and yields an empty alert list so an outage in detection never
blocks event logging. ``analyze_detailed`` reports the same alerts with a
``degraded`` flag for callers that need to tell "no anomalies" apart from
"detection failed".
"""

import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

import structlog

from alerts import rules
from alerts.engine import create_alert, score_to_severity
from ml.features import extract_features
from ml.scoring import AnomalyScorer, as_scorer, build_default_scorer
from supply_chain.models import AnomalyAlert, AnomalyType, SupplyChainEvent

logger = structlog.get_logger()

DEFAULT_THRESHOLD = 0.7


@dataclass
class AnalysisResult:
    alerts: list[AnomalyAlert] = field(default_factory=list)
    degraded: bool = False
    score: float | None = None


class AnomalyDetectionSystem:
    """
    Runs every detection rule against an event and its prior history.

    The scorer is optional: until ``initialize()`` installs one (or one is
    passed in), only the rule checks run.
    """

    def __init__(
        self,
        threshold: float = DEFAULT_THRESHOLD,
        scorer: AnomalyScorer | Callable[[Sequence[float]], float] | None = None,
        model_path: str = "",
    ):
        self._threshold = DEFAULT_THRESHOLD
        self.set_threshold(threshold)
        self.model_path = model_path
        self._scorer: AnomalyScorer | None = as_scorer(scorer) if scorer is not None else None

    # ── Lifecycle ─────────────────────────────────────────────────────

    @property
    def is_initialized(self) -> bool:
        return self._scorer is not None

    def initialize(self) -> None:
        """Install the default scorer if none was supplied."""
        if self._scorer is None:
            self._scorer = build_default_scorer(self.model_path)
        logger.info(
            "anomaly.initialized",
            scorer=type(self._scorer).__name__,
            threshold=self._threshold,
        )

    def dispose(self) -> None:
        self._scorer = None

    def set_scorer(self, scorer: AnomalyScorer | Callable[[Sequence[float]], float] | None) -> None:
        self._scorer = as_scorer(scorer) if scorer is not None else None

    # ── Threshold ─────────────────────────────────────────────────────

    def set_threshold(self, threshold: float) -> None:
        """Set the scorer alert threshold, clamped to [0, 1]."""
        self._threshold = max(0.0, min(1.0, float(threshold)))

    def get_threshold(self) -> float:
        return self._threshold

    # ── Detection ─────────────────────────────────────────────────────

    def analyze(
        self,
        event: SupplyChainEvent,
        prior_events: Sequence[SupplyChainEvent],
    ) -> list[AnomalyAlert]:
        """Return all alerts for ``event``. Never raises."""
        return self.analyze_detailed(event, prior_events).alerts

    def analyze_detailed(
        self,
        event: SupplyChainEvent,
        prior_events: Sequence[SupplyChainEvent],
    ) -> AnalysisResult:
        result = AnalysisResult()
        try:
            prior_events = list(prior_events)
            alerts = result.alerts

            alerts.extend(rules.check_duplicate(event, prior_events))
            alerts.extend(rules.check_impossible_speed(event, prior_events))
            alerts.extend(rules.check_event_sequence(event, prior_events))

            if self._scorer is not None:
                alerts.extend(self._score_event(event, prior_events, result))

            alerts.extend(rules.check_time_consistency(event, prior_events))
            alerts.extend(rules.check_country_transition(event, prior_events))
            alerts.extend(rules.check_certifications(event, prior_events))
        except Exception:
            logger.exception("anomaly.analyze_failed", event_id=getattr(event, "id", None))
            return AnalysisResult(alerts=[], degraded=True)

        if result.alerts:
            logger.info(
                "anomaly.detect_complete",
                event_id=event.id,
                batch_id=event.batch_id,
                prior_events=len(prior_events),
                anomalies_detected=len(result.alerts),
            )
        return result

    def _score_event(
        self,
        event: SupplyChainEvent,
        prior_events: list[SupplyChainEvent],
        result: AnalysisResult,
    ) -> list[AnomalyAlert]:
        try:
            features = extract_features(event, prior_events)
            score = float(self._scorer.score(features))
            if not math.isfinite(score):
                raise ValueError(f"non-finite score: {score}")
        except Exception as e:
            logger.warning("anomaly.scorer_failed", event_id=event.id, error=str(e))
            result.degraded = True
            return []

        result.score = score
        if score <= self._threshold:
            return []

        return [
            create_alert(
                event,
                AnomalyType.SUSPICIOUS_PATTERN,
                score_to_severity(score),
                f"ML model detected anomaly (score: {score:.3f})",
                score,
            )
        ]
