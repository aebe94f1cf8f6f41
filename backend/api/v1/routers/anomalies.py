"""
Anomalies API — run detection for a custody event.

Endpoints:
  POST /api/v1/anomalies/detect     — Analyze an event against its batch history
  GET  /api/v1/anomalies/threshold  — Current scorer threshold
  PUT  /api/v1/anomalies/threshold  — Update scorer threshold (clamped to [0, 1])
"""

from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from alerts.engine import summarize_alerts
from api.deps import get_detector, get_history_source
from core.config import Settings, get_settings
from integrations.base import LedgerHistorySource
from ml.anomaly import AnomalyDetectionSystem
from supply_chain.models import SupplyChainEvent

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/anomalies", tags=["anomalies"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class AnomalyDetectionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    event: SupplyChainEvent
    batch_id: str | None = Field(None, alias="batchId")


class ThresholdUpdate(BaseModel):
    threshold: float


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.post("/detect")
async def detect_anomalies(
    request: AnomalyDetectionRequest,
    detector: AnomalyDetectionSystem = Depends(get_detector),
    history: LedgerHistorySource = Depends(get_history_source),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    """
    Analyze an event against the recorded history of its batch.

    History fetch failures are not fatal: detection runs with an empty
    history, which only limits which checks can fire.
    """
    event = request.event
    batch_id = request.batch_id or event.batch_id

    previous_events: list[SupplyChainEvent] = []
    try:
        previous_events = await history.fetch_event_history(batch_id)
    except Exception as e:  # noqa: BLE001
        logger.warning(
            "anomaly.history_unavailable",
            batch_id=batch_id,
            error=str(e),
            error_type=type(e).__name__,
        )

    previous_events = sorted(
        (e for e in previous_events if e.id != event.id),
        key=lambda e: e.timestamp,
    )

    result = detector.analyze_detailed(event, previous_events)
    alerts = result.alerts
    if alerts:
        logger.info("anomaly.detected", event_id=event.id, batch_id=event.batch_id, count=len(alerts))

    return {
        "success": True,
        "data": [alert.model_dump(mode="json", by_alias=True) for alert in alerts],
        "message": f"Detected {len(alerts)} anomaly/anomalies" if alerts else "No anomalies detected",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "metadata": {
            "eventId": event.id,
            "batchId": event.batch_id,
            "previousEventsCount": len(previous_events),
            "anomalyThreshold": detector.get_threshold(),
            "aiEnabled": settings.enable_ai_monitoring,
            "degraded": result.degraded,
            "modelScore": result.score,
            "summary": summarize_alerts(alerts),
        },
    }


@router.get("/threshold")
async def get_threshold(detector: AnomalyDetectionSystem = Depends(get_detector)) -> dict[str, float]:
    return {"threshold": detector.get_threshold()}


@router.put("/threshold")
async def update_threshold(
    body: ThresholdUpdate,
    detector: AnomalyDetectionSystem = Depends(get_detector),
) -> dict[str, float]:
    detector.set_threshold(body.threshold)
    logger.info("anomaly.threshold_updated", requested=body.threshold, applied=detector.get_threshold())
    return {"threshold": detector.get_threshold()}
