"""
Tests for QueryRunner: ordering, pagination, merging and content hydration
"""

import json
from datetime import datetime, timedelta, timezone

import pytest

from services.event_journal.errors import StoreError, ValidationError
from services.event_journal.keys import partition_key_for_date, row_key
from services.event_journal.query import QueryOptions, QuerySettings
from services.event_journal.runner import QueryRunner
from services.event_journal.schema import JournalEvent, Order, TableRow
from services.event_journal.storage import MemoryTableStore, Shard
from services.event_journal.writer import EventWriter

BASE_TIME = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def ingest(shard, writer, entity_id: str, created: datetime, content: str | None = None):
    if content is None:
        content = json.dumps({"id": entity_id, "at": created.isoformat()})
    return writer.ingest(JournalEvent(id=entity_id, content=content, created=created), shard)


def ingest_series(shard, writer, count: int, entity_id: str = "abc-123") -> list[datetime]:
    times = [BASE_TIME + timedelta(minutes=i) for i in range(count)]
    for created in times:
        ingest(shard, writer, entity_id, created)
    return times


def created_of(records: list[dict]) -> list[datetime]:
    return [datetime.fromisoformat(r["created"]) for r in records]


# =============================================================================
# Construction
# =============================================================================


class TestRunnerConstruction:
    def test_requires_a_shard(self):
        with pytest.raises(ValidationError):
            QueryRunner([], QuerySettings.by_id("abc"))

    def test_rejects_duplicate_shards(self, shard):
        with pytest.raises(ValidationError):
            QueryRunner([shard, shard], QuerySettings.by_id("abc"))


# =============================================================================
# Single shard
# =============================================================================


class TestSingleShard:
    def test_by_id_newest_first(self, shard, writer):
        times = ingest_series(shard, writer, 3)
        ingest(shard, writer, "other", BASE_TIME + timedelta(minutes=1))

        records = QueryRunner([shard], QuerySettings.by_id("ABC123")).get_multiple_results()

        assert created_of(records) == list(reversed(times))
        assert all(r["id"] == "abc-123" for r in records)
        assert records[0]["content"] == {"id": "abc-123", "at": times[-1].isoformat()}
        assert "shard" not in records[0]

    def test_record_keys(self, shard, writer):
        receipt = ingest(shard, writer, "abc-123", BASE_TIME)
        (record,) = QueryRunner([shard], QuerySettings.by_id("abc-123")).get_multiple_results()
        assert list(record) == [
            "id",
            "created",
            "id_partition_key",
            "date_partition_key",
            "row_key",
            "content",
        ]
        assert record["id_partition_key"] == "id:abc123"
        assert record["date_partition_key"] == "date:20250310"
        assert record["row_key"] == receipt.row_key

    def test_descending_top_skip(self, shard, writer):
        times = ingest_series(shard, writer, 20)
        settings = QuerySettings.by_id("abc-123", QueryOptions(top=5, skip=10))
        records = QueryRunner([shard], settings).get_multiple_results()
        assert created_of(records) == list(reversed(times))[10:15]

    def test_ascending_top_skip(self, shard, writer):
        times = ingest_series(shard, writer, 20)
        settings = QuerySettings.by_id(
            "abc-123", QueryOptions(top=5, skip=10, order=Order.ASCENDING)
        )
        records = QueryRunner([shard], settings).get_multiple_results()
        assert created_of(records) == times[10:15]

    def test_skip_past_end_is_empty(self, shard, writer):
        ingest_series(shard, writer, 3)
        settings = QuerySettings.by_id("abc-123", QueryOptions(skip=5))
        assert QueryRunner([shard], settings).get_multiple_results() == []

    def test_bucketed_time_query_ascending(self, shard, writer):
        times = [
            utc(2025, 1, 1, 8),
            utc(2025, 1, 1, 20),
            utc(2025, 1, 2, 9),
            utc(2025, 1, 2, 15),
            utc(2025, 1, 3, 1),
            utc(2025, 1, 3, 23, 59),
        ]
        for i, created in enumerate(times):
            ingest(shard, writer, f"evt-{i}", created)
        ingest(shard, writer, "late", utc(2025, 1, 4, 0, 30))

        settings = QuerySettings.by_time(
            utc(2025, 1, 1), utc(2025, 1, 4), QueryOptions(order=Order.ASCENDING)
        )
        records = QueryRunner([shard], settings).get_multiple_results()

        assert created_of(records) == times
        assert [r["id"] for r in records] == [f"evt-{i}" for i in range(6)]
        # Content of date rows is resolved through the identity row
        assert records[2]["content"] == {"id": "evt-2", "at": times[2].isoformat()}

    def test_bucketed_time_query_descending(self, shard, writer):
        times = [utc(2025, 1, 1, 8), utc(2025, 1, 2, 9), utc(2025, 1, 3, 1)]
        for created in times:
            ingest(shard, writer, "abc", created)
        settings = QuerySettings.by_time(utc(2025, 1, 1), utc(2025, 1, 4))
        records = QueryRunner([shard], settings).get_multiple_results()
        assert created_of(records) == list(reversed(times))

    def test_partial_day_time_query(self, shard, writer):
        times = ingest_series(shard, writer, 10)
        settings = QuerySettings.by_time(
            times[2] - timedelta(seconds=30), times[6] + timedelta(seconds=30), QueryOptions(top=3)
        )
        records = QueryRunner([shard], settings).get_multiple_results()
        assert created_of(records) == [times[6], times[5], times[4]]

    def test_no_content(self, shard, writer):
        ingest_series(shard, writer, 2)
        settings = QuerySettings.by_id("abc-123", QueryOptions(no_content=True))
        records = QueryRunner([shard], settings).get_multiple_results()
        assert len(records) == 2
        assert all("content" not in r for r in records)

    def test_unstructured_content_is_raw_text(self, shard, writer):
        ingest(shard, writer, "abc", BASE_TIME, content="plain text, not JSON")
        ingest(shard, writer, "abc", BASE_TIME + timedelta(minutes=1), content="42")
        records = QueryRunner([shard], QuerySettings.by_id("abc")).get_multiple_results()
        assert [r["content"] for r in records] == ["42", "plain text, not JSON"]

    def test_metadata_fields_included_when_set(self, shard, writer):
        writer.ingest(
            JournalEvent(
                id="abc",
                content="{}",
                created=BASE_TIME,
                description="shipped",
                program_id="prog-1",
                carrier_id="car-2",
                service_name="billing",
            ),
            shard,
        )
        (record,) = QueryRunner([shard], QuerySettings.by_id("abc")).get_multiple_results()
        assert record["description"] == "shipped"
        assert record["program_id"] == "prog-1"
        assert record["carrier_id"] == "car-2"
        assert record["service_name"] == "billing"
        assert record["content"] == {}


# =============================================================================
# Counting
# =============================================================================


class TestResultCount:
    def test_count_ignores_top_and_skip(self, shard, writer):
        ingest_series(shard, writer, 20)
        settings = QuerySettings.by_id(
            "abc-123", QueryOptions(top=5, skip=10, only_count=True)
        )
        assert QueryRunner([shard], settings).get_result_count() == {"count": 20}

    def test_count_across_buckets_and_shards(self, shard, second_shard, writer):
        ingest(shard, writer, "a", utc(2025, 1, 1, 8))
        ingest(shard, writer, "b", utc(2025, 1, 2, 8))
        ingest(second_shard, writer, "c", utc(2025, 1, 2, 9))
        settings = QuerySettings.by_time(utc(2025, 1, 1), utc(2025, 1, 3))
        assert QueryRunner([shard, second_shard], settings).get_result_count() == {"count": 3}

    @pytest.mark.parametrize(
        "options",
        [
            QueryOptions(only_count=True),
            QueryOptions(top=5, only_count=True),
            QueryOptions(skip=1, only_count=True),
            QueryOptions(top=1, skip=2, order=Order.ASCENDING, only_count=True),
        ],
    )
    def test_multi_day_count_with_top_and_skip(self, shard, writer, options):
        ingest(shard, writer, "a", utc(2025, 1, 1, 10))
        ingest(shard, writer, "b", utc(2025, 1, 2, 10))
        ingest(shard, writer, "c", utc(2025, 1, 3, 9))
        settings = QuerySettings.by_time(utc(2025, 1, 1, 8), utc(2025, 1, 3, 12), options)
        assert QueryRunner([shard], settings).get_result_count() == {"count": 3}

    def test_count_empty(self, shard):
        assert QueryRunner([shard], QuerySettings.by_id("none")).get_result_count() == {"count": 0}


# =============================================================================
# Multiple shards
# =============================================================================


class TestMultipleShards:
    def test_ascending_merge_with_shard_tag(self, shard, second_shard, writer):
        ingest(shard, writer, "abc", BASE_TIME + timedelta(minutes=1))
        ingest(second_shard, writer, "abc", BASE_TIME + timedelta(minutes=2))
        ingest(shard, writer, "abc", BASE_TIME + timedelta(minutes=3))
        ingest(second_shard, writer, "abc", BASE_TIME)

        settings = QuerySettings.by_id("abc", QueryOptions(order=Order.ASCENDING))
        records = QueryRunner([shard, second_shard], settings).get_multiple_results()

        assert [(r["shard"], r["created"]) for r in records] == [
            ("archive", BASE_TIME.isoformat()),
            ("omnibus", (BASE_TIME + timedelta(minutes=1)).isoformat()),
            ("archive", (BASE_TIME + timedelta(minutes=2)).isoformat()),
            ("omnibus", (BASE_TIME + timedelta(minutes=3)).isoformat()),
        ]
        assert list(records[0])[0] == "shard"

    def test_descending_page_across_shards(self, shard, second_shard, writer):
        times = [BASE_TIME + timedelta(minutes=i) for i in range(10)]
        for i, created in enumerate(times):
            ingest(shard if i % 2 else second_shard, writer, "abc", created)

        settings = QuerySettings.by_id("abc", QueryOptions(top=3, skip=2))
        records = QueryRunner([shard, second_shard], settings).get_multiple_results()
        assert created_of(records) == [times[7], times[6], times[5]]

    def test_ascending_page_across_shards(self, shard, second_shard, writer):
        times = [BASE_TIME + timedelta(minutes=i) for i in range(10)]
        for i, created in enumerate(times):
            ingest(shard if i % 3 else second_shard, writer, "abc", created)

        settings = QuerySettings.by_id("abc", QueryOptions(top=4, skip=1, order=Order.ASCENDING))
        records = QueryRunner([shard, second_shard], settings).get_multiple_results()
        assert created_of(records) == times[1:5]

    def test_shard_failure_fails_query(self, shard, writer):
        class FailingStore(MemoryTableStore):
            def scan(self, table, row_filter, token=None):
                raise StoreError("scan failed")

        broken = Shard("broken", FailingStore(), shard.blobs)
        ingest(shard, writer, "abc", BASE_TIME)
        with pytest.raises(StoreError):
            QueryRunner([shard, broken], QuerySettings.by_id("abc")).get_multiple_results()


# =============================================================================
# Content overflow and dangling rows
# =============================================================================


class TestContentResolution:
    def test_overflowed_content_read_from_blob(self, shard):
        writer = EventWriter(inline_threshold=16)
        content = json.dumps({"payload": "x" * 500})
        receipt = ingest(shard, writer, "big-1", BASE_TIME, content=content)
        assert receipt.overflowed

        (record,) = QueryRunner([shard], QuerySettings.by_id("big-1")).get_multiple_results()
        assert record["content"] == {"payload": "x" * 500}

        settings = QuerySettings.by_time(BASE_TIME.replace(hour=0), BASE_TIME.replace(hour=23))
        (by_time,) = QueryRunner([shard], settings).get_multiple_results()
        assert by_time["content"] == {"payload": "x" * 500}

    def test_date_row_without_identity_row(self, shard, caplog):
        created = BASE_TIME
        shard.insert(
            TableRow(partition_key_for_date(created), row_key(created), id="ghost", created=created)
        )
        settings = QuerySettings.by_time(BASE_TIME.replace(hour=0), BASE_TIME.replace(hour=23))
        with caplog.at_level("WARNING"):
            (record,) = QueryRunner([shard], settings).get_multiple_results()
        assert record["id"] == "ghost"
        assert "content" not in record
        assert "missing" in caplog.text


# =============================================================================
# Single result
# =============================================================================


class TestSingleResult:
    def test_by_key(self, shard, writer):
        receipt = ingest(shard, writer, "abc-123", BASE_TIME)
        settings = QuerySettings.by_key(receipt.id_partition_key, receipt.row_key)
        record = QueryRunner([shard], settings).get_single_result()
        assert record["row_key"] == receipt.row_key
        assert record["content"] == {"id": "abc-123", "at": BASE_TIME.isoformat()}
        assert "shard" not in record

    def test_by_date_key_resolves_content(self, shard, writer):
        receipt = ingest(shard, writer, "abc-123", BASE_TIME)
        settings = QuerySettings.by_key(receipt.date_partition_key, receipt.row_key)
        record = QueryRunner([shard], settings).get_single_result()
        assert record["id"] == "abc-123"
        assert record["content"]["id"] == "abc-123"

    def test_missing_key_is_empty(self, shard):
        settings = QuerySettings.by_key("id:abc", "0000-none")
        assert QueryRunner([shard], settings).get_single_result() == {}

    def test_requires_one_shard(self, shard, second_shard):
        runner = QueryRunner([shard, second_shard], QuerySettings.by_key("id:abc", "r"))
        with pytest.raises(ValidationError):
            runner.get_single_result()
