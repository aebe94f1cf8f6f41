#!/usr/bin/env python3
"""Watch a ledger topic and run anomaly detection on each new custody event.

Polls the mirror for messages newer than the latest one at start-up,
reassembles chunked payloads across polls, and prints one JSON line per
event with the alerts it raised.

Examples:
  python backend/scripts/watch_topic.py --topic 0.0.4242
  python backend/scripts/watch_topic.py --max-events 10 --poll-interval 2
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from collections.abc import Callable
from contextlib import aclosing

import structlog

# Add backend/ to path when run as a script.
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from api.deps import build_detector, build_history_source
from core.config import get_settings
from integrations.base import LedgerHistorySource, parse_event_payloads
from integrations.mirror import MirrorNodeClient, MirrorNodeError
from ml.anomaly import AnomalyDetectionSystem

logger = structlog.get_logger()


async def watch_topic(
    client: MirrorNodeClient,
    topic_id: str,
    detector: AnomalyDetectionSystem,
    history: LedgerHistorySource,
    *,
    poll_interval: float = 5.0,
    batch_size: int = 10,
    max_events: int | None = None,
    emit: Callable[[str], None] = print,
) -> int:
    """Analyze events as they land on ``topic_id``. Returns how many were processed."""
    processed = 0
    stream = client.stream_messages(
        topic_id,
        poll_interval=poll_interval,
        batch_size=batch_size,
        assembler=history.new_assembler(),
    )
    async with aclosing(stream) as payload_batches:
        async for payloads in payload_batches:
            for event in parse_event_payloads(payloads):
                try:
                    prior = await history.fetch_event_history(event.batch_id)
                except Exception as e:  # noqa: BLE001
                    logger.warning(
                        "watch.history_unavailable",
                        batch_id=event.batch_id,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    prior = []

                alerts = detector.analyze(event, [p for p in prior if p.id != event.id])
                emit(
                    json.dumps(
                        {
                            "eventId": event.id,
                            "batchId": event.batch_id,
                            "alerts": [alert.model_dump(mode="json", by_alias=True) for alert in alerts],
                        }
                    )
                )
                processed += 1
                if max_events is not None and processed >= max_events:
                    return processed
    return processed


def main() -> int:
    parser = argparse.ArgumentParser(description="Stream custody events from a ledger topic and flag anomalies")
    parser.add_argument("--topic", default=None, help="Topic id (defaults to LEDGER_TOPIC_ID)")
    parser.add_argument("--poll-interval", type=float, default=None, help="Seconds between mirror polls")
    parser.add_argument("--batch-size", type=int, default=None, help="Messages fetched per poll")
    parser.add_argument("--max-events", type=int, default=None, help="Stop after this many events")
    args = parser.parse_args()

    settings = get_settings()
    topic_id = args.topic or settings.ledger_topic_id
    if not topic_id:
        print(json.dumps({"status": "failed", "error": "No topic id: pass --topic or set LEDGER_TOPIC_ID"}))
        return 1

    client = MirrorNodeClient(
        base_url=settings.mirror_node_url,
        timeout=settings.mirror_request_timeout_seconds,
    )
    logger.info("watch.started", topic_id=topic_id, mirror=settings.mirror_node_url)

    try:
        processed = asyncio.run(
            watch_topic(
                client,
                topic_id,
                build_detector(settings),
                build_history_source(settings),
                poll_interval=args.poll_interval or settings.mirror_poll_interval_seconds,
                batch_size=args.batch_size or settings.mirror_poll_batch_size,
                max_events=args.max_events,
            )
        )
    except KeyboardInterrupt:
        return 0
    except MirrorNodeError as exc:
        print(json.dumps({"status": "failed", "error": str(exc)}))
        return 1

    logger.info("watch.finished", topic_id=topic_id, processed=processed)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
