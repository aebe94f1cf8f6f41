"""
Ledger message decoding and chunk reassembly.

Ledger topics cap the size of a single message, so large event payloads
are split on submission into JSON envelopes:

    {"messageId": "m1", "chunkIndex": 0, "totalChunks": 3, "data": "<base64>"}

Every mirror message is itself base64 encoded. ``ChunkAssembler`` decodes
each message, passes complete payloads straight through, and holds chunk
envelopes until every index of a message id has arrived. Partial state is
bounded: at most ``max_pending`` message ids are held (least recently
touched evicted first) and ids idle for longer than ``ttl_seconds`` are
dropped.
"""

from __future__ import annotations

import base64
import json
import time
from collections import OrderedDict
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

import structlog

from integrations.messages import MirrorMessage

logger = structlog.get_logger()

DEFAULT_MAX_PENDING = 1024
DEFAULT_TTL_SECONDS = 900.0

RawMessage = MirrorMessage | Mapping[str, Any] | str


def decode_message(message: str) -> str:
    """Base64-decode a payload. Anything that does not decode is returned as-is."""
    padded = message + "=" * (-len(message) % 4)
    try:
        return base64.b64decode(padded, validate=True).decode("utf-8")
    except ValueError:
        return message


def _raw_payload(item: RawMessage) -> str:
    if isinstance(item, MirrorMessage):
        return item.message
    if isinstance(item, Mapping):
        return str(item.get("message", ""))
    return item


def _message_key(message_id: Any) -> str:
    if isinstance(message_id, str):
        return message_id
    return json.dumps(message_id, sort_keys=True)


def _is_index(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_chunk_envelope(parsed: Any) -> bool:
    """Chunk markers must be integers; anything else is a complete message."""
    return (
        isinstance(parsed, dict)
        and _is_index(parsed.get("chunkIndex"))
        and _is_index(parsed.get("totalChunks"))
        and 0 <= parsed["chunkIndex"] < parsed["totalChunks"]
    )


@dataclass
class _PendingMessage:
    chunks: dict[Any, Any] = field(default_factory=dict)
    last_seen: float = 0.0


class ChunkAssembler:
    """Stateful decoder; keep one instance per stream to join chunks across polls."""

    def __init__(
        self,
        max_pending: int = DEFAULT_MAX_PENDING,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_pending < 1:
            raise ValueError("max_pending must be at least 1")
        self.max_pending = max_pending
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._pending: OrderedDict[str, _PendingMessage] = OrderedDict()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def pending_ids(self) -> list[str]:
        return list(self._pending)

    def process(self, raw_messages: Iterable[RawMessage]) -> list[str]:
        """Decode messages in order, returning complete payloads as they become available."""
        complete: list[str] = []
        for item in raw_messages:
            payload = self.feed(decode_message(_raw_payload(item)))
            if payload is not None:
                complete.append(payload)
        return complete

    def feed(self, decoded: str) -> str | None:
        """Accept one decoded message; return a complete payload or None while chunks are missing."""
        self.evict_expired()

        try:
            parsed = json.loads(decoded)
        except ValueError:
            return decoded

        if not _is_chunk_envelope(parsed):
            return decoded

        key = _message_key(parsed.get("messageId"))
        total = parsed["totalChunks"]

        entry = self._pending.get(key)
        if entry is None:
            entry = _PendingMessage()
            self._pending[key] = entry
            self._enforce_capacity()
        else:
            self._pending.move_to_end(key)
        entry.chunks[parsed["chunkIndex"]] = parsed.get("data")
        entry.last_seen = self._clock()

        if len(entry.chunks) != total:
            return None

        del self._pending[key]
        return self._reassemble(entry.chunks, int(total))

    def evict_expired(self) -> int:
        """Drop message ids idle longer than the TTL. Returns how many were dropped."""
        now = self._clock()
        evicted = 0
        while self._pending:
            key, entry = next(iter(self._pending.items()))
            if now - entry.last_seen <= self.ttl_seconds:
                break
            self._pending.popitem(last=False)
            evicted += 1
            logger.warning(
                "chunking.expired",
                message_id=key,
                received=len(entry.chunks),
            )
        return evicted

    def clear(self) -> None:
        self._pending.clear()

    def _enforce_capacity(self) -> None:
        while len(self._pending) > self.max_pending:
            key, entry = self._pending.popitem(last=False)
            logger.warning(
                "chunking.evicted",
                message_id=key,
                received=len(entry.chunks),
                max_pending=self.max_pending,
            )

    @staticmethod
    def _reassemble(chunks: dict[Any, Any], total: int) -> str:
        parts = []
        for index in range(total):
            data = chunks.get(index)
            if data:
                parts.append(decode_message(str(data)))
        return "".join(parts)


def process_messages(raw_messages: Iterable[RawMessage]) -> list[str]:
    """One-shot decode and reassembly of a batch of mirror messages."""
    return ChunkAssembler().process(raw_messages)


def split_into_chunks(payload: str, message_id: str, chunk_size: int) -> list[str]:
    """
    Split a payload into JSON chunk envelopes, the inverse of reassembly.

    Returns a single-element list with the payload itself when it fits.
    """
    if chunk_size < 1:
        raise ValueError("chunk_size must be at least 1")
    if len(payload) <= chunk_size:
        return [payload]

    pieces = [payload[i : i + chunk_size] for i in range(0, len(payload), chunk_size)]
    return [
        json.dumps(
            {
                "messageId": message_id,
                "chunkIndex": index,
                "totalChunks": len(pieces),
                "data": base64.b64encode(piece.encode("utf-8")).decode("ascii"),
            }
        )
        for index, piece in enumerate(pieces)
    ]
