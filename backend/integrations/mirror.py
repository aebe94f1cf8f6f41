"""
Ledger Mirror Node Client

Read-only access to the mirror REST API of the consensus ledger that
stores custody events:

    GET /api/v1/topics/{topic_id}/messages   — topic messages (paginated)
    GET /api/v1/topics/{topic_id}            — topic info
    GET /api/v1/network/nodes                — health probe

Messages come back base64 encoded and possibly chunked; decoding is done
by ``integrations.chunking``.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from datetime import datetime
from typing import Any

import httpx
import structlog
from pydantic import ValidationError
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from core.config import DEFAULT_MIRROR_NODE_URL
from integrations.base import HistorySourceType, LedgerHistorySource, register_source
from integrations.chunking import ChunkAssembler
from integrations.messages import MirrorMessage, MirrorNodeResponse, to_ledger_timestamp

logger = structlog.get_logger()

MAX_PAGE_SIZE = 100


class MirrorNodeError(Exception):
    """Mirror request failed after retries."""


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return isinstance(exc, httpx.TransportError)


class MirrorNodeClient:
    """Async client for the ledger mirror REST API."""

    def __init__(
        self,
        base_url: str = DEFAULT_MIRROR_NODE_URL,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self._transport)

    @retry(
        retry=retry_if_exception(_is_retryable),
        stop=stop_after_attempt(3),
        wait=wait_exponential(min=1, max=10),
        reraise=True,
    )
    async def _request(self, path: str, params: list[tuple[str, str]] | None = None) -> Any:
        async with self._client() as client:
            response = await client.get(path, params=params)
            response.raise_for_status()
            return response.json()

    async def _get(self, path: str, params: list[tuple[str, str]] | None = None) -> Any:
        try:
            return await self._request(path, params)
        except httpx.HTTPError as e:
            logger.error("mirror.request_failed", path=path, error=str(e))
            raise MirrorNodeError(f"Mirror request failed for {path}: {e}") from e
        except ValueError as e:
            # 200 with a non-JSON body, e.g. a proxy error page
            logger.error("mirror.response_not_json", path=path, error=str(e))
            raise MirrorNodeError(f"Mirror returned non-JSON body for {path}") from e

    async def _get_page(self, path: str, params: list[tuple[str, str]] | None = None) -> MirrorNodeResponse:
        data = await self._get(path, params)
        try:
            return MirrorNodeResponse.model_validate(data)
        except ValidationError as e:
            logger.error("mirror.response_invalid", path=path, errors=e.error_count())
            raise MirrorNodeError(f"Unexpected mirror response shape for {path}") from e

    # ── Topic messages ────────────────────────────────────────────────

    async def get_topic_messages(
        self,
        topic_id: str,
        limit: int | None = None,
        order: str | None = None,
        timestamp: str | list[str] | None = None,
        sequence_number: str | int | None = None,
    ) -> MirrorNodeResponse:
        """
        One page of topic messages.

        ``timestamp`` and ``sequence_number`` accept mirror filter syntax
        (``gte:1700000000.000000000``, ``gt:42``); several timestamp
        filters may be given as a list.
        """
        params: list[tuple[str, str]] = []
        if limit:
            params.append(("limit", str(limit)))
        if order:
            params.append(("order", order))
        if timestamp:
            for value in [timestamp] if isinstance(timestamp, str) else timestamp:
                params.append(("timestamp", value))
        if sequence_number is not None:
            params.append(("sequencenumber", str(sequence_number)))

        return await self._get_page(f"/api/v1/topics/{topic_id}/messages", params)

    async def collect_topic_messages(
        self,
        topic_id: str,
        limit: int,
        order: str = "asc",
        timestamp: str | list[str] | None = None,
        sequence_number: str | int | None = None,
    ) -> list[MirrorMessage]:
        """Follow ``links.next`` until ``limit`` messages are collected."""
        response = await self.get_topic_messages(
            topic_id,
            limit=min(limit, MAX_PAGE_SIZE),
            order=order,
            timestamp=timestamp,
            sequence_number=sequence_number,
        )
        messages = list(response.messages)
        while response.links.next and len(messages) < limit:
            response = await self._get_page(response.links.next)
            if not response.messages:
                break
            messages.extend(response.messages)
        return messages[:limit]

    async def get_latest_messages(self, topic_id: str, limit: int = 10) -> list[MirrorMessage]:
        response = await self.get_topic_messages(topic_id, limit=limit, order="desc")
        return response.messages

    async def get_messages_after_sequence(
        self,
        topic_id: str,
        sequence_number: int,
        limit: int = 100,
    ) -> list[MirrorMessage]:
        response = await self.get_topic_messages(
            topic_id,
            limit=limit,
            order="asc",
            sequence_number=f"gt:{sequence_number}",
        )
        return response.messages

    async def get_messages_in_range(
        self,
        topic_id: str,
        start: datetime,
        end: datetime,
        limit: int = 100,
    ) -> list[MirrorMessage]:
        return await self.collect_topic_messages(
            topic_id,
            limit=limit,
            order="asc",
            timestamp=[f"gte:{to_ledger_timestamp(start)}", f"lte:{to_ledger_timestamp(end)}"],
        )

    async def stream_messages(
        self,
        topic_id: str,
        poll_interval: float = 5.0,
        batch_size: int = 10,
        assembler: ChunkAssembler | None = None,
    ) -> AsyncIterator[list[str]]:
        """
        Poll for new messages and yield decoded payloads as they complete.

        One assembler is kept for the whole stream so chunks that straddle
        two polls still join. Stop by breaking out of the loop.
        """
        assembler = assembler or ChunkAssembler()
        latest = await self.get_latest_messages(topic_id, limit=1)
        last_sequence = latest[0].sequence_number if latest else 0

        while True:
            await asyncio.sleep(poll_interval)
            try:
                new_messages = await self.get_messages_after_sequence(topic_id, last_sequence, batch_size)
            except MirrorNodeError as e:
                logger.warning("mirror.stream_poll_failed", topic_id=topic_id, error=str(e))
                continue

            if not new_messages:
                continue
            last_sequence = max(m.sequence_number for m in new_messages)
            decoded = assembler.process(sorted(new_messages, key=lambda m: m.sequence_number))
            if decoded:
                yield decoded

    # ── Metadata & health ─────────────────────────────────────────────

    async def get_topic_info(self, topic_id: str) -> dict[str, Any]:
        return await self._get(f"/api/v1/topics/{topic_id}")

    async def health_check(self) -> bool:
        try:
            async with self._client() as client:
                response = await client.get("/api/v1/network/nodes", timeout=5.0)
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.warning("mirror.health_check_failed", error=str(e))
            return False


# ── History source ────────────────────────────────────────────────────────


@register_source
class MirrorNodeHistorySource(LedgerHistorySource):
    """
    Custody history read from the ledger mirror.

    Config expects:
        {
            "mirror_node_url": "https://testnet.mirrornode.hedera.com",
            "timeout_seconds": 10,
            "history_limit": 1000,
            "chunk_cache_max_messages": 1024,
            "chunk_cache_ttl_seconds": 900,
        }
    """

    @property
    def source_type(self) -> HistorySourceType:
        return HistorySourceType.MIRROR_NODE

    def __init__(self, topic_id: str, config: dict[str, Any]):
        super().__init__(topic_id, config)
        self.client = MirrorNodeClient(
            base_url=config.get("mirror_node_url", DEFAULT_MIRROR_NODE_URL),
            timeout=float(config.get("timeout_seconds", 10.0)),
            transport=config.get("transport"),
        )

    async def test_connection(self) -> bool:
        return await self.client.health_check()

    async def fetch_raw_messages(
        self,
        topic_id: str | None = None,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        after_sequence: int | None = None,
        limit: int = 100,
    ) -> list[MirrorMessage]:
        topic = topic_id or self.topic_id
        if not topic:
            raise MirrorNodeError("No topic id configured")

        timestamp = []
        if start is not None:
            timestamp.append(f"gte:{to_ledger_timestamp(start)}")
        if end is not None:
            timestamp.append(f"lte:{to_ledger_timestamp(end)}")

        if timestamp or after_sequence is not None:
            messages = await self.client.collect_topic_messages(
                topic,
                limit=limit,
                order="asc",
                timestamp=timestamp or None,
                sequence_number=f"gt:{after_sequence}" if after_sequence is not None else None,
            )
        else:
            messages = await self.client.collect_topic_messages(topic, limit=limit, order="desc")

        return sorted(messages, key=lambda m: m.sequence_number)
