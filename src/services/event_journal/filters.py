"""
Filter Builder - Store-level row filters for each query mode

Filters are conjunctions of comparisons on PartitionKey / RowKey. The
in-memory store evaluates them directly; the Parquet store compiles them
to parameterised DuckDB SQL.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from services.event_journal.keys import (
    partition_key_for_date,
    partition_key_for_id,
    row_key_base,
    to_utc,
)
from services.event_journal.query import GetByKey, QueryById, QueryByTime, QuerySettings
from services.event_journal.time_range import ONE_DAY, is_midnight

logger = logging.getLogger(__name__)


class KeyField(str, Enum):
    PARTITION_KEY = "PartitionKey"
    ROW_KEY = "RowKey"


class Comparison(str, Enum):
    EQ = "eq"
    LT = "lt"
    LE = "le"
    GT = "gt"
    GE = "ge"


_SQL_OPERATORS = {
    Comparison.EQ: "=",
    Comparison.LT: "<",
    Comparison.LE: "<=",
    Comparison.GT: ">",
    Comparison.GE: ">=",
}


@dataclass(frozen=True)
class Condition:
    field: KeyField
    op: Comparison
    value: str

    def __str__(self) -> str:
        return f"{self.field.value} {self.op.value} '{self.value}'"

    def matches(self, row: Any) -> bool:
        actual = row.partition_key if self.field is KeyField.PARTITION_KEY else row.row_key
        if self.op is Comparison.EQ:
            return actual == self.value
        if self.op is Comparison.LT:
            return actual < self.value
        if self.op is Comparison.LE:
            return actual <= self.value
        if self.op is Comparison.GT:
            return actual > self.value
        return actual >= self.value


@dataclass(frozen=True)
class RowFilter:
    """AND-combination of key conditions"""

    conditions: tuple[Condition, ...]

    @classmethod
    def where(cls, field: KeyField, op: Comparison, value: str) -> "RowFilter":
        return cls((Condition(field, op, value),))

    def and_(self, field: KeyField, op: Comparison, value: str) -> "RowFilter":
        return RowFilter(self.conditions + (Condition(field, op, value),))

    def __str__(self) -> str:
        return " and ".join(f"({c})" for c in self.conditions)

    def matches(self, row: Any) -> bool:
        return all(c.matches(row) for c in self.conditions)

    @property
    def partition_key(self) -> str | None:
        """Partition key when the filter pins a single partition"""
        for c in self.conditions:
            if c.field is KeyField.PARTITION_KEY and c.op is Comparison.EQ:
                return c.value
        return None

    def to_sql(self) -> tuple[str, dict[str, str]]:
        """Compile to a DuckDB WHERE clause with $-parameters"""
        clauses = []
        params: dict[str, str] = {}
        for i, c in enumerate(self.conditions):
            name = f"k{i}"
            clauses.append(f"{c.field.value} {_SQL_OPERATORS[c.op]} ${name}")
            params[name] = c.value
        return " AND ".join(clauses) or "TRUE", params


def filter_for_id(entity_id: str) -> RowFilter:
    return RowFilter.where(KeyField.PARTITION_KEY, Comparison.EQ, partition_key_for_id(entity_id))


def filter_for_key(partition_key: str, row_key: str) -> RowFilter:
    return RowFilter.where(KeyField.PARTITION_KEY, Comparison.EQ, partition_key).and_(
        KeyField.ROW_KEY, Comparison.EQ, row_key
    )


def filter_for_time_interval(start_time: datetime, end_time: datetime) -> RowFilter:
    """
    Filter over the date index for [start_time, end_time).

    Row keys sort newest-first, so the time bounds invert: the start bound
    becomes `RowKey le base(start)` and the end bound `RowKey gt base(end)`.
    """
    start_time = to_utc(start_time)
    end_time = to_utc(end_time)
    start_pk = partition_key_for_date(start_time)
    end_pk = partition_key_for_date(end_time - ONE_DAY if is_midnight(end_time) else end_time)

    if start_pk == end_pk:
        row_filter = RowFilter.where(KeyField.PARTITION_KEY, Comparison.EQ, start_pk)
    else:
        row_filter = RowFilter.where(KeyField.PARTITION_KEY, Comparison.GE, start_pk).and_(
            KeyField.PARTITION_KEY, Comparison.LT, end_pk
        )

    if not is_midnight(start_time):
        row_filter = row_filter.and_(KeyField.ROW_KEY, Comparison.LE, row_key_base(start_time))
    if not is_midnight(end_time):
        row_filter = row_filter.and_(KeyField.ROW_KEY, Comparison.GT, row_key_base(end_time))
    return row_filter


def build_query_filters(settings: QuerySettings) -> list[RowFilter]:
    """
    One filter per store scan the query needs.

    Bucketed time queries get one filter per day, emitted in the
    requested order; every other query gets exactly one filter.
    """
    mode = settings.mode
    if isinstance(mode, QueryById):
        return [filter_for_id(mode.id)]
    if isinstance(mode, QueryByTime):
        if settings.use_buckets:
            buckets = mode.time_range.split_into_days(settings.options.order)
            logger.debug(f"Time range {mode.time_range} split into {len(buckets)} buckets")
            return [filter_for_time_interval(b.start, b.end) for b in buckets]
        return [filter_for_time_interval(mode.time_range.start, mode.time_range.end)]
    if isinstance(mode, GetByKey):
        return [filter_for_key(mode.partition_key, mode.row_key)]
    raise TypeError(f"Unsupported query mode: {mode!r}")
