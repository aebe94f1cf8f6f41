"""
Ledger history integrations package.

Pluggable sources for a batch's custody history:
  - Ledger mirror REST API     (deployments)
  - In-memory ledger           (local demos, tests)

Usage:
    from integrations.base import get_source, HistorySourceType

    source = get_source(
        source_type=HistorySourceType.MIRROR_NODE,
        topic_id="0.0.1234",
        config={"mirror_node_url": "https://testnet.mirrornode.hedera.com"},
    )
    events = await source.fetch_event_history("BATCH-001")
"""

from integrations.base import (
    HistorySourceType,
    LedgerHistorySource,
    get_source,
    order_batch_events,
    parse_event_payloads,
    register_source,
)
from integrations.chunking import ChunkAssembler, decode_message, process_messages, split_into_chunks
from integrations.memory import InMemoryHistorySource
from integrations.messages import MirrorMessage, MirrorNodeResponse
from integrations.mirror import MirrorNodeClient, MirrorNodeError, MirrorNodeHistorySource

__all__ = [
    "HistorySourceType",
    "LedgerHistorySource",
    "get_source",
    "register_source",
    "order_batch_events",
    "parse_event_payloads",
    "ChunkAssembler",
    "decode_message",
    "process_messages",
    "split_into_chunks",
    "MirrorMessage",
    "MirrorNodeResponse",
    "MirrorNodeClient",
    "MirrorNodeError",
    "MirrorNodeHistorySource",
    "InMemoryHistorySource",
]
