"""
Query Settings - Query modes, pagination/order options

A query is one of three modes (by id, by time range, by explicit key)
combined with QueryOptions. Options arrive from the request layer as
strings (`top`, `skip`, `order`, `noContent`, `onlyCount`, `noBuckets`).
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Union

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator

from services.event_journal.errors import ValidationError
from services.event_journal.schema import Order
from services.event_journal.time_range import TimeRange


@dataclass(frozen=True)
class QueryById:
    id: str


@dataclass(frozen=True)
class QueryByTime:
    time_range: TimeRange


@dataclass(frozen=True)
class GetByKey:
    partition_key: str
    row_key: str


QueryMode = Union[QueryById, QueryByTime, GetByKey]


class QueryOptions(BaseModel):
    """Pagination, order and suppression options of a query."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    top: int | None = Field(default=None, gt=0)
    skip: int = Field(default=0, ge=0)
    order: Order = Order.DESCENDING
    no_content: bool = Field(default=False, alias="noContent")
    only_count: bool = Field(default=False, alias="onlyCount")
    no_buckets: bool = Field(default=False, alias="noBuckets")

    @field_validator("order", mode="before")
    @classmethod
    def _parse_order(cls, v):
        return Order.parse(v)

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> "QueryOptions":
        """
        Build options from request parameters; empty values are ignored.

        Raises:
            ValidationError: If a parameter has an invalid value
        """
        values = {
            name: value
            for name, value in params.items()
            if name in _PARAM_NAMES and value not in (None, "")
        }
        try:
            return cls.model_validate(values)
        except pydantic.ValidationError as e:
            raise ValidationError(f"Invalid query parameters: {e}") from e


_PARAM_NAMES = frozenset(["top", "skip", "order", "noContent", "onlyCount", "noBuckets"])


@dataclass(frozen=True)
class QuerySettings:
    """Query mode plus options; decides whether time buckets apply."""

    mode: QueryMode
    options: QueryOptions = field(default_factory=QueryOptions)

    @classmethod
    def by_id(cls, entity_id: str, options: QueryOptions | None = None) -> "QuerySettings":
        return cls(QueryById(entity_id), options or QueryOptions())

    @classmethod
    def by_time(
        cls, from_time: datetime, to_time: datetime, options: QueryOptions | None = None
    ) -> "QuerySettings":
        return cls(QueryByTime(TimeRange(from_time, to_time)), options or QueryOptions())

    @classmethod
    def by_key(
        cls, partition_key: str, row_key: str, options: QueryOptions | None = None
    ) -> "QuerySettings":
        return cls(GetByKey(partition_key, row_key), options or QueryOptions())

    @property
    def time_range(self) -> TimeRange | None:
        """Range checked row-by-row during scans (time queries only)"""
        return self.mode.time_range if isinstance(self.mode, QueryByTime) else None

    @property
    def use_buckets(self) -> bool:
        """
        Per-day buckets apply only to time queries without top/skip.

        Parallel per-bucket fetches cannot enforce a global skip/top on
        their own.
        """
        return (
            isinstance(self.mode, QueryByTime)
            and self.options.top is None
            and self.options.skip == 0
            and not self.options.no_buckets
        )
