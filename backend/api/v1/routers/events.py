"""
Events Router — query recorded custody events from the ledger.
"""

from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query

from api.deps import get_history_source
from integrations.base import LedgerHistorySource
from integrations.mirror import MirrorNodeError

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/events", tags=["events"])


@router.get("")
async def query_events(
    batch_id: str | None = Query(None, alias="batchId"),
    start_date: datetime | None = Query(None, alias="startDate"),
    end_date: datetime | None = Query(None, alias="endDate"),
    history: LedgerHistorySource = Depends(get_history_source),
) -> dict[str, Any]:
    """Events for a batch, or for a consensus-time range. Most recent first."""
    try:
        if start_date and end_date:
            events = await history.fetch_events_in_range(start_date, end_date, batch_id=batch_id)
        elif batch_id:
            events = await history.fetch_event_history(batch_id)
        else:
            raise HTTPException(
                status_code=400,
                detail="Missing query parameter: batchId or date range (startDate & endDate)",
            )
    except MirrorNodeError as e:
        logger.error("events.query_failed", batch_id=batch_id, error=str(e))
        raise HTTPException(status_code=502, detail="Ledger mirror unavailable") from e

    events = sorted(events, key=lambda e: e.timestamp, reverse=True)
    return {
        "success": True,
        "data": [event.model_dump(mode="json", by_alias=True, exclude_none=True) for event in events],
        "message": f"Found {len(events)} events",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
