"""
Query Runner - Fan out fetches across shards and buckets, merge, paginate

All (shard, filter) fetches of one query run concurrently on a worker
pool; the runner waits for every fetch and fails the whole query if any
fetch fails. Final ordering is established here:

- single shard: buckets were emitted in the requested order and each
  bucket is newest-first, so results are concatenated (each bucket
  reversed for ascending order);
- multiple shards: every matched row is collected and stably sorted by
  creation time, then paginated.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Sequence

from services.event_journal.codec import decompress, parse_structured
from services.event_journal.errors import ContentDecodeError, ValidationError
from services.event_journal.fetcher import FetchResult, fetch_rows
from services.event_journal.filters import RowFilter, build_query_filters
from services.event_journal.keys import partition_key_for_date, partition_key_for_id, split_content_id
from services.event_journal.query import QuerySettings
from services.event_journal.schema import Order, TableRow
from services.event_journal.storage import Shard
from services.logger import PerformanceLogger

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 8


@dataclass
class OutputRecord:
    """
    One query result.

    Optional fields (shard, secondary ids, description, content) are
    emitted only when non-empty; created and the three keys always are.
    """

    created: datetime
    id_partition_key: str
    date_partition_key: str
    row_key: str
    shard: str | None = None
    id: str | None = None
    program_id: str | None = None
    carrier_id: str | None = None
    service_name: str | None = None
    description: str | None = None
    content: Any = None

    def to_dict(self) -> dict[str, Any]:
        record: dict[str, Any] = {}
        for name in ("shard", "id", "program_id", "carrier_id", "service_name", "description"):
            value = getattr(self, name)
            if value:
                record[name] = value
        record["created"] = self.created.isoformat()
        record["id_partition_key"] = self.id_partition_key
        record["date_partition_key"] = self.date_partition_key
        record["row_key"] = self.row_key
        if self.content is not None:
            record["content"] = self.content
        return record


def load_content(shard: Shard, row: TableRow) -> bytes | None:
    """
    Resolve the compressed content of a row.

    Date rows follow their content id to the identity row; identity rows
    without inline content read the blob store.

    Returns:
        Content bytes, or None if a date row's identity row is missing
    """
    if row.content is not None:
        return row.content
    if row.is_date_row:
        partition_key, row_key = split_content_id(row.content_id)
        identity = shard.find_row(partition_key, row_key)
        if identity is None:
            logger.warning(
                f"Identity row {partition_key}/{row_key} missing for date row "
                f"{row.partition_key}/{row.row_key} in {shard.name}"
            )
            return None
        return load_content(shard, identity)
    return shard.get_blob(row.content_id)


class QueryRunner:
    """
    Executes one logical query against one or more shards.

    Usage:
        runner = QueryRunner([shard], QuerySettings.by_id("abc-123"))
        records = runner.get_multiple_results()
    """

    def __init__(
        self,
        shards: Sequence[Shard],
        settings: QuerySettings,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ):
        if not shards:
            raise ValidationError("At least one collection is required")
        if len({s.name for s in shards}) != len(shards):
            raise ValidationError("Duplicate collection in query")
        self._shards = list(shards)
        self._settings = settings
        self._max_workers = max(1, max_workers)

    @property
    def settings(self) -> QuerySettings:
        return self._settings

    def _fetch_all(
        self, filters: list[RowFilter], skip: int, top: int | None
    ) -> list[FetchResult]:
        """Fetch every (shard, filter) pair concurrently, preserving pair order"""
        options = self._settings.options
        jobs = [(shard, f) for shard in self._shards for f in filters]
        with ThreadPoolExecutor(
            max_workers=min(len(jobs), self._max_workers), thread_name_prefix="journal-fetch"
        ) as pool:
            futures = [
                pool.submit(
                    fetch_rows,
                    shard,
                    row_filter,
                    order=options.order,
                    skip=skip,
                    top=top,
                    time_range=self._settings.time_range,
                    only_count=options.only_count,
                )
                for shard, row_filter in jobs
            ]
            try:
                return [future.result() for future in futures]
            except Exception:
                for future in futures:
                    future.cancel()
                raise

    def get_single_result(self) -> dict[str, Any]:
        """First row of a single-shard, single-filter query, or {}"""
        if len(self._shards) != 1:
            raise ValidationError("Single-result lookup requires exactly one collection")
        filters = build_query_filters(self._settings)
        if len(filters) != 1:
            raise ValidationError("Single-result lookup requires exactly one filter")

        shard = self._shards[0]
        with PerformanceLogger(logger, "get_single_result"):
            result = fetch_rows(
                shard,
                filters[0],
                order=self._settings.options.order,
                time_range=self._settings.time_range,
            )
            if not result.rows:
                return {}
            return self._convert(shard, result.rows[0], include_shard=False).to_dict()

    def get_result_count(self) -> dict[str, int]:
        """Number of matching rows across all shards, ignoring top/skip"""
        options = self._settings.options.model_copy(update={"top": None, "skip": 0})
        filters = build_query_filters(replace(self._settings, options=options))
        with PerformanceLogger(logger, "get_result_count"):
            results = self._fetch_all(filters, skip=0, top=None)
        return {"count": sum(r.row_count for r in results)}

    def get_multiple_results(self) -> list[dict[str, Any]]:
        filters = build_query_filters(self._settings)
        with PerformanceLogger(logger, "get_multiple_results"):
            if len(self._shards) == 1:
                records = self._single_shard_results(filters)
            else:
                records = self._multiple_shard_results(filters)
        logger.info(
            f"Query returned {len(records)} record(s) from "
            f"{', '.join(s.name for s in self._shards)} ({len(filters)} filter(s))"
        )
        return [r.to_dict() for r in records]

    def _single_shard_results(self, filters: list[RowFilter]) -> list[OutputRecord]:
        options = self._settings.options
        ascending = options.order is Order.ASCENDING
        top = options.top

        # Descending skip/top run inside the scan; ascending ones apply after reversal
        results = self._fetch_all(
            filters,
            skip=0 if ascending else options.skip,
            top=None if ascending else top,
        )

        rows: list[TableRow] = []
        remaining_skip = options.skip if ascending else 0
        for result in results:
            batch = list(reversed(result.rows)) if ascending else result.rows
            if remaining_skip:
                dropped = min(remaining_skip, len(batch))
                batch = batch[dropped:]
                remaining_skip -= dropped
            if ascending and top is not None:
                batch = batch[: top - len(rows)]
            rows.extend(batch)
            if ascending and top is not None and len(rows) >= top:
                break

        shard = self._shards[0]
        return self._convert_all([(shard, row) for row in rows], include_shard=False)

    def _multiple_shard_results(self, filters: list[RowFilter]) -> list[OutputRecord]:
        options = self._settings.options
        descending = options.order is Order.DESCENDING

        # Each shard's newest skip+top rows suffice for a global descending page
        fetch_top = options.skip + options.top if descending and options.top else None
        results = self._fetch_all(filters, skip=0, top=fetch_top)

        tagged = [(result.shard, row) for result in results for row in result.rows]
        tagged.sort(key=lambda item: item[1].created, reverse=descending)

        page = tagged[options.skip :]
        if options.top is not None:
            page = page[: options.top]
        return self._convert_all(page, include_shard=True)

    def _convert_all(
        self, rows: list[tuple[Shard, TableRow]], include_shard: bool
    ) -> list[OutputRecord]:
        if self._settings.options.no_content or len(rows) < 2:
            return [self._convert(shard, row, include_shard) for shard, row in rows]
        # Content lookups are independent; map() keeps result order
        with ThreadPoolExecutor(
            max_workers=min(len(rows), self._max_workers), thread_name_prefix="journal-content"
        ) as pool:
            return list(pool.map(lambda item: self._convert(item[0], item[1], include_shard), rows))

    def _convert(self, shard: Shard, row: TableRow, include_shard: bool) -> OutputRecord:
        record = OutputRecord(
            created=row.created,
            id_partition_key=partition_key_for_id(row.id or row.program_id),
            date_partition_key=partition_key_for_date(row.created),
            row_key=row.row_key,
            shard=shard.name if include_shard else None,
            id=row.id,
            program_id=row.program_id,
            carrier_id=row.carrier_id,
            service_name=row.service_name,
            description=row.description,
        )
        if not self._settings.options.no_content:
            data = load_content(shard, row)
            if data is not None:
                text = decompress(data)
                try:
                    record.content = parse_structured(text)
                except ContentDecodeError:
                    record.content = text
        return record
