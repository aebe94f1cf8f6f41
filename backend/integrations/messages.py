"""
Ledger mirror wire models.

Shapes returned by the mirror REST API
(``GET /api/v1/topics/{topic_id}/messages``). The ``message`` field is
the base64-encoded payload that was submitted to the topic.
"""

from datetime import datetime, timezone

from pydantic import BaseModel, Field


class ChunkInfo(BaseModel):
    initial_transaction_id: str | dict | None = None
    number: int
    total: int


class MirrorMessage(BaseModel):
    consensus_timestamp: str
    message: str
    payer_account_id: str = ""
    running_hash: str = ""
    running_hash_version: int = 0
    sequence_number: int
    topic_id: str = ""
    chunk_info: ChunkInfo | None = None


class MirrorLinks(BaseModel):
    next: str | None = None


class MirrorNodeResponse(BaseModel):
    messages: list[MirrorMessage] = Field(default_factory=list)
    links: MirrorLinks = Field(default_factory=MirrorLinks)


# ── Consensus timestamps ("seconds.nanoseconds") ──────────────────────────


def parse_ledger_timestamp(timestamp: str) -> datetime:
    """Convert a ``seconds.nanoseconds`` consensus timestamp to a UTC datetime."""
    seconds, _, nanos = timestamp.partition(".")
    millis = int(seconds) * 1000 + int(nanos or 0) // 1_000_000
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)


def to_ledger_timestamp(value: datetime) -> str:
    """Convert a datetime to ``seconds.nanoseconds`` at millisecond precision."""
    millis = int(round(ensure_utc(value).timestamp() * 1000))
    seconds, remainder = divmod(millis, 1000)
    return f"{seconds}.{remainder * 1_000_000:09d}"


def ensure_utc(value: datetime) -> datetime:
    """Naive datetimes are read as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
