"""
In-Memory Ledger — process-local, append-only stand-in for the mirror.

Payloads are stored exactly as the mirror would return them: base64
encoded, split into chunk envelopes when they exceed ``max_message_size``,
with increasing sequence numbers and consensus timestamps. Used by local
demos (``HISTORY_SOURCE=in_memory``) and by the test suite.
"""

import base64
import uuid
from datetime import datetime, timezone
from typing import Any

from integrations.base import HistorySourceType, LedgerHistorySource, register_source
from integrations.chunking import split_into_chunks
from integrations.messages import (
    MirrorMessage,
    ensure_utc,
    parse_ledger_timestamp,
    to_ledger_timestamp,
)
from supply_chain.models import SupplyChainEvent

DEFAULT_MAX_MESSAGE_SIZE = 1024


@register_source
class InMemoryHistorySource(LedgerHistorySource):
    """
    Config expects:
        {
            "max_message_size": 1024,   # chars per chunk before splitting
            "history_limit": 1000,
        }
    """

    @property
    def source_type(self) -> HistorySourceType:
        return HistorySourceType.IN_MEMORY

    def __init__(self, topic_id: str, config: dict[str, Any]):
        super().__init__(topic_id or "0.0.local", config)
        self.max_message_size = int(config.get("max_message_size", DEFAULT_MAX_MESSAGE_SIZE))
        self._messages: list[MirrorMessage] = []

    def __len__(self) -> int:
        return len(self._messages)

    def append_raw(self, message: str, consensus_time: datetime | None = None) -> MirrorMessage:
        """Append an already-encoded message."""
        consensus_time = consensus_time or datetime.now(timezone.utc)
        record = MirrorMessage(
            consensus_timestamp=to_ledger_timestamp(consensus_time),
            message=message,
            sequence_number=len(self._messages) + 1,
            topic_id=self.topic_id,
        )
        self._messages.append(record)
        return record

    def append_payload(self, payload: str, consensus_time: datetime | None = None) -> list[MirrorMessage]:
        """Encode, chunk if needed, and append a payload."""
        message_id = uuid.uuid4().hex
        return [
            self.append_raw(base64.b64encode(part.encode("utf-8")).decode("ascii"), consensus_time)
            for part in split_into_chunks(payload, message_id, self.max_message_size)
        ]

    def append_event(self, event: SupplyChainEvent, consensus_time: datetime | None = None) -> list[MirrorMessage]:
        return self.append_payload(event.model_dump_json(by_alias=True, exclude_none=True), consensus_time)

    async def test_connection(self) -> bool:
        return True

    async def fetch_raw_messages(
        self,
        topic_id: str | None = None,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        after_sequence: int | None = None,
        limit: int = 100,
    ) -> list[MirrorMessage]:
        if topic_id and topic_id != self.topic_id:
            return []

        start = ensure_utc(start) if start is not None else None
        end = ensure_utc(end) if end is not None else None

        selected = []
        for message in self._messages:
            if after_sequence is not None and message.sequence_number <= after_sequence:
                continue
            consensus = parse_ledger_timestamp(message.consensus_timestamp)
            if start is not None and consensus < start:
                continue
            if end is not None and consensus > end:
                continue
            selected.append(message)

        if start is None and end is None and after_sequence is None:
            return selected[-limit:]
        return selected[:limit]
