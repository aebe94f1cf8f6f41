"""
Ledger History Source — Abstract Base Class

Every source of custody history (the ledger mirror REST API, the
in-memory ledger used for demos and tests) implements this interface so
the anomaly API is source-agnostic.

A source only has to return raw ledger messages; decoding, chunk
reassembly, batch filtering and time ordering are shared here.
"""

import json
from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import structlog
from pydantic import ValidationError

from integrations.chunking import DEFAULT_MAX_PENDING, DEFAULT_TTL_SECONDS, ChunkAssembler
from integrations.messages import MirrorMessage
from supply_chain.models import SupplyChainEvent

logger = structlog.get_logger()

DEFAULT_HISTORY_LIMIT = 1000


# ── Source types ──────────────────────────────────────────────────────────


class HistorySourceType(str, Enum):
    """Supported history backends."""

    MIRROR_NODE = "mirror_node"  # Ledger mirror REST API
    IN_MEMORY = "in_memory"  # Process-local ledger (demos, tests)


# ── Payload → event helpers ───────────────────────────────────────────────


def parse_event_payloads(payloads: Iterable[str]) -> list[SupplyChainEvent]:
    """Parse decoded payloads into events, skipping anything that is not one."""
    events = []
    for payload in payloads:
        try:
            data = json.loads(payload)
        except ValueError:
            logger.warning("history.payload_not_json", preview=payload[:80])
            continue
        if not isinstance(data, dict):
            continue
        try:
            events.append(SupplyChainEvent.model_validate(data))
        except ValidationError as e:
            logger.warning(
                "history.payload_invalid",
                event_id=data.get("id"),
                errors=e.error_count(),
            )
    return events


def order_batch_events(events: Iterable[SupplyChainEvent], batch_id: str | None = None) -> list[SupplyChainEvent]:
    """Keep events for ``batch_id`` (all when None), ascending by timestamp."""
    selected = [e for e in events if batch_id is None or e.batch_id == batch_id]
    return sorted(selected, key=lambda e: e.timestamp)


# ── Abstract source ───────────────────────────────────────────────────────


class LedgerHistorySource(ABC):
    """
    Base class for custody history backends.

    Lifecycle:
        1. __init__(topic_id, config)  — bind topic / load config
        2. test_connection()           — validate connectivity
        3. fetch_raw_messages()        — raw base64 ledger messages
        4. fetch_event_history()       — decoded events for one batch
        5. fetch_events_in_range()     — decoded events by consensus time
        6. get_status()                — report source health
    """

    def __init__(self, topic_id: str, config: dict[str, Any]):
        self.topic_id = topic_id
        self.config = config
        self.history_limit = int(config.get("history_limit", DEFAULT_HISTORY_LIMIT))
        self.chunk_cache_max_messages = int(config.get("chunk_cache_max_messages", DEFAULT_MAX_PENDING))
        self.chunk_cache_ttl_seconds = float(config.get("chunk_cache_ttl_seconds", DEFAULT_TTL_SECONDS))
        self.logger = logger.bind(
            source=self.source_type.value,
            topic_id=topic_id,
        )

    @property
    @abstractmethod
    def source_type(self) -> HistorySourceType:
        """Return the backend type this source handles."""
        ...

    @abstractmethod
    async def test_connection(self) -> bool:
        """Validate that the source can be reached."""
        ...

    @abstractmethod
    async def fetch_raw_messages(
        self,
        topic_id: str | None = None,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        after_sequence: int | None = None,
        limit: int = 100,
    ) -> list[MirrorMessage]:
        """
        Raw messages ascending by sequence number.

        With no range or cursor, returns the latest ``limit`` messages.
        """
        ...

    def new_assembler(self) -> ChunkAssembler:
        return ChunkAssembler(
            max_pending=self.chunk_cache_max_messages,
            ttl_seconds=self.chunk_cache_ttl_seconds,
        )

    async def fetch_event_history(self, batch_id: str) -> list[SupplyChainEvent]:
        """All recorded events of a batch, ascending by timestamp."""
        messages = await self.fetch_raw_messages(limit=self.history_limit)
        payloads = self.new_assembler().process(messages)
        events = order_batch_events(parse_event_payloads(payloads), batch_id)
        self.logger.info(
            "history.fetched",
            batch_id=batch_id,
            messages=len(messages),
            events=len(events),
        )
        return events

    async def fetch_events_in_range(
        self,
        start: datetime,
        end: datetime,
        batch_id: str | None = None,
    ) -> list[SupplyChainEvent]:
        """Events recorded on the ledger between ``start`` and ``end``."""
        messages = await self.fetch_raw_messages(start=start, end=end, limit=self.history_limit)
        payloads = self.new_assembler().process(messages)
        return order_batch_events(parse_event_payloads(payloads), batch_id)

    async def get_status(self) -> dict[str, Any]:
        """Report health of the source."""
        connected = await self.test_connection()
        return {
            "source_type": self.source_type.value,
            "topic_id": self.topic_id,
            "connected": connected,
            "checked_at": datetime.now(timezone.utc).isoformat(),
        }


# ── Source registry ───────────────────────────────────────────────────────

_SOURCE_REGISTRY: dict[HistorySourceType, type[LedgerHistorySource]] = {}


def register_source(source_cls: type[LedgerHistorySource]):
    """Decorator: register a history source class for its type."""
    _SOURCE_REGISTRY[source_cls.source_type.fget(None)] = source_cls  # type: ignore
    return source_cls


def get_source(
    source_type: HistorySourceType,
    topic_id: str,
    config: dict[str, Any],
) -> LedgerHistorySource:
    """Factory: return the right history source for the given type."""
    source_type = HistorySourceType(source_type)
    source_cls = _SOURCE_REGISTRY.get(source_type)
    if source_cls is None:
        raise ValueError(f"No history source registered for type: {source_type.value}")
    return source_cls(topic_id=topic_id, config=config)
