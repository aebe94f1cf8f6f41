"""
Tests for the in-memory ledger and the history source registry.
"""

from datetime import datetime, timedelta, timezone

import pytest

from factories import BASE_TIME, BATCH_ID, make_event
from integrations import (
    HistorySourceType,
    InMemoryHistorySource,
    MirrorNodeHistorySource,
    get_source,
    order_batch_events,
    parse_event_payloads,
)
from integrations.messages import parse_ledger_timestamp, to_ledger_timestamp

CONSENSUS_START = datetime(2024, 3, 12, tzinfo=timezone.utc)


class TestInMemoryLedger:
    async def test_history_round_trip(self, ledger, coffee_history):
        events = await ledger.fetch_event_history(BATCH_ID)
        assert events == coffee_history

    async def test_large_events_are_chunked(self, ledger):
        event = make_event(description="washed, sun-dried " * 40)
        records = ledger.append_event(event)

        assert len(records) > 1
        assert [r.sequence_number for r in records] == list(range(1, len(records) + 1))
        assert await ledger.fetch_event_history(BATCH_ID) == [event]

    async def test_other_batches_are_excluded(self, ledger, coffee_history):
        ledger.append_event(make_event("other-1", batch_id="BATCH-TEA-007"))

        events = await ledger.fetch_event_history(BATCH_ID)

        assert "other-1" not in [e.id for e in events]
        assert len(await ledger.fetch_event_history("BATCH-TEA-007")) == 1

    async def test_history_is_ordered_by_event_time_not_append_order(self, ledger):
        later = make_event("evt-2", "processing", BASE_TIME + timedelta(days=1))
        earlier = make_event("evt-1", "harvest", BASE_TIME)
        ledger.append_event(later)
        ledger.append_event(earlier)

        assert [e.id for e in await ledger.fetch_event_history(BATCH_ID)] == ["evt-1", "evt-2"]

    async def test_unknown_batch_is_empty(self, ledger, coffee_history):
        assert await ledger.fetch_event_history("BATCH-MISSING") == []

    async def test_non_event_payloads_are_skipped(self, ledger, coffee_history):
        ledger.append_payload("free text note")
        ledger.append_payload('{"id": "half-an-event"}')
        assert len(await ledger.fetch_event_history(BATCH_ID)) == 3

    async def test_history_limit_keeps_latest_messages(self):
        ledger = InMemoryHistorySource(topic_id="0.0.9", config={"history_limit": 2})
        for day in range(4):
            ledger.append_event(make_event(f"evt-{day}", "storage", BASE_TIME + timedelta(days=day), "hamburg"))

        events = await ledger.fetch_event_history(BATCH_ID)

        assert [e.id for e in events] == ["evt-2", "evt-3"]

    async def test_range_uses_consensus_time(self, ledger):
        for hour in range(5):
            ledger.append_event(
                make_event(f"evt-{hour}", "storage", BASE_TIME + timedelta(days=hour), "hamburg"),
                consensus_time=CONSENSUS_START + timedelta(hours=hour),
            )

        events = await ledger.fetch_events_in_range(
            CONSENSUS_START + timedelta(hours=1),
            CONSENSUS_START + timedelta(hours=3),
        )

        assert [e.id for e in events] == ["evt-1", "evt-2", "evt-3"]

    async def test_naive_range_bounds_are_utc(self, ledger):
        ledger.append_event(make_event(), consensus_time=CONSENSUS_START)
        events = await ledger.fetch_events_in_range(datetime(2024, 3, 11), datetime(2024, 3, 13))
        assert len(events) == 1

    async def test_after_sequence(self, ledger, coffee_history):
        messages = await ledger.fetch_raw_messages(after_sequence=1)
        assert [m.sequence_number for m in messages] == [2, 3]

    async def test_other_topic_is_empty(self, ledger, coffee_history):
        assert await ledger.fetch_raw_messages("0.0.1") == []

    async def test_status(self, ledger):
        status = await ledger.get_status()
        assert status["source_type"] == "in_memory"
        assert status["connected"] is True


class TestPayloadHelpers:
    def test_parse_skips_non_objects(self):
        payload = make_event().model_dump_json(by_alias=True)
        events = parse_event_payloads([payload, "[1, 2]", "nope", "{}"])
        assert [e.id for e in events] == ["evt-1"]

    def test_order_without_batch_keeps_everything(self):
        a = make_event("a", timestamp=BASE_TIME + timedelta(hours=1))
        b = make_event("b", timestamp=BASE_TIME, batch_id="OTHER")
        assert [e.id for e in order_batch_events([a, b])] == ["b", "a"]


class TestLedgerTimestamps:
    def test_parse(self):
        assert parse_ledger_timestamp("1710237600.123456789") == datetime(
            2024, 3, 12, 10, 0, 0, 123000, tzinfo=timezone.utc
        )

    def test_format_is_nanosecond_string(self):
        assert to_ledger_timestamp(BASE_TIME) == "1710237600.000000000"


class TestRegistry:
    def test_in_memory_source(self):
        source = get_source(HistorySourceType.IN_MEMORY, "0.0.7", {})
        assert isinstance(source, InMemoryHistorySource)
        assert source.topic_id == "0.0.7"

    def test_mirror_source_reads_config(self):
        source = get_source(
            HistorySourceType.MIRROR_NODE,
            "0.0.7",
            {"mirror_node_url": "https://mirror.example/", "history_limit": 50, "chunk_cache_max_messages": 8},
        )
        assert isinstance(source, MirrorNodeHistorySource)
        assert source.client.base_url == "https://mirror.example"
        assert source.history_limit == 50
        assert source.new_assembler().max_pending == 8

    def test_unknown_type(self):
        with pytest.raises(ValueError):
            get_source("kafka", "0.0.7", {})
