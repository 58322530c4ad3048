"""
Shard Fetcher - Run one filter against one shard

Consumes the store's segmented scan through a ScanCursor owned by the
fetch, applying the time-range check, skip and top. Output keeps the
store-native order (newest first within a partition).
"""

import logging
from dataclasses import dataclass, field

from services.event_journal.filters import RowFilter
from services.event_journal.schema import Order, TableRow
from services.event_journal.storage import ContinuationToken, Shard
from services.event_journal.time_range import TimeRange

logger = logging.getLogger(__name__)


@dataclass
class ScanCursor:
    """Position of one segmented scan; each fetch owns its own cursor."""

    shard: Shard
    row_filter: RowFilter
    token: ContinuationToken | None = None
    exhausted: bool = False
    segments: int = 0

    def next_segment(self) -> list[TableRow]:
        if self.exhausted:
            return []
        segment = self.shard.scan(self.row_filter, self.token)
        self.token = segment.continuation
        self.exhausted = self.token is None
        self.segments += 1
        return segment.rows


@dataclass
class FetchResult:
    shard: Shard
    rows: list[TableRow] = field(default_factory=list)
    row_count: int = 0  # Matched rows, skipped ones included


def fetch_rows(
    shard: Shard,
    row_filter: RowFilter,
    order: Order = Order.DESCENDING,
    skip: int = 0,
    top: int | None = None,
    time_range: TimeRange | None = None,
    only_count: bool = False,
) -> FetchResult:
    """
    Fetch rows matching `row_filter` from `shard`.

    Rows before `skip` are discarded but still counted. Fetching stops once
    `top` rows are kept only when native order matches the requested order
    (descending) or only a count is wanted; ascending requests scan to the
    end of the filter because the oldest rows come last.

    Args:
        shard: Shard to scan
        row_filter: Store-level filter
        order: Requested result order
        skip: Matched rows to discard first
        top: Maximum rows to keep (None for all)
        time_range: Row-level creation time check for time queries

    Returns:
        FetchResult with rows in store-native order
    """
    cursor = ScanCursor(shard, row_filter)
    stop_at_top = top is not None and (only_count or order is Order.DESCENDING)
    result = FetchResult(shard)

    def full() -> bool:
        return stop_at_top and len(result.rows) >= top

    while not cursor.exhausted and not full():
        for row in cursor.next_segment():
            if full():
                break
            if time_range is not None and not time_range.contains(row.created):
                continue
            if result.row_count >= skip:
                result.rows.append(row)
            result.row_count += 1

    logger.debug(
        f"Fetched {len(result.rows)}/{result.row_count} rows from {shard.name} "
        f"in {cursor.segments} segment(s): {row_filter}"
    )
    return result
