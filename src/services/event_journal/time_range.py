"""
Time-Range Bucketer - Split a time range into calendar-day buckets

The date index partitions rows by UTC day, so a multi-day range is
fetched as one single-partition scan per day rather than a single
cross-partition scan.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from services.event_journal.errors import ValidationError
from services.event_journal.keys import to_utc
from services.event_journal.schema import Order

ONE_DAY = timedelta(days=1)


def midnight_of(value: datetime) -> datetime:
    """Start of the UTC day containing `value`"""
    return to_utc(value).replace(hour=0, minute=0, second=0, microsecond=0)


def is_midnight(value: datetime) -> bool:
    return to_utc(value) == midnight_of(value)


@dataclass(frozen=True)
class TimeRange:
    """Half-open UTC interval [start, end)"""

    start: datetime
    end: datetime

    def __post_init__(self):
        start = to_utc(self.start)
        end = to_utc(self.end)
        if start >= end:
            raise ValidationError(f"Time range start must precede end ({start} >= {end})")
        object.__setattr__(self, "start", start)
        object.__setattr__(self, "end", end)

    def __str__(self) -> str:
        return f"[{self.start.isoformat()} .. {self.end.isoformat()}]"

    def contains(self, value: datetime | None) -> bool:
        if value is None:
            return False
        return self.start <= to_utc(value) < self.end

    def split_into_days(self, order: Order = Order.DESCENDING) -> list["TimeRange"]:
        """
        Split into day-aligned sub-ranges covering [start, end) exactly.

        Ascending order yields buckets oldest-day first, descending
        newest-day first. A range within one day is returned unchanged.
        """
        start_day = midnight_of(self.start)
        end_day = midnight_of(self.end)
        if start_day == end_day:
            return [self]

        buckets = [TimeRange(self.start, start_day + ONE_DAY)]
        day = start_day + ONE_DAY
        while day < end_day:
            buckets.append(TimeRange(day, day + ONE_DAY))
            day += ONE_DAY
        if self.end > end_day:
            buckets.append(TimeRange(end_day, self.end))

        if order is Order.DESCENDING:
            buckets.reverse()
        return buckets
