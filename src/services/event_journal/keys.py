"""
Key Codec - Partition and row keys for the dual index

Every event is stored twice under the same row key:
- identity row: partition "id:<normalized id>"
- date row:     partition "date:<YYYYMMDD of created, UTC>"

Row keys are a 19-digit reversed-ticks prefix plus a random suffix, so
ascending lexicographic order over row keys is newest-first.
"""

import re
import uuid
from datetime import datetime, timedelta, timezone

from services.event_journal.errors import ValidationError

ID_KEY_PREFIX = "id:"
DATE_KEY_PREFIX = "date:"

# 100ns ticks from 0001-01-01T00:00:00 to 9999-12-31T23:59:59.9999999
MAX_TICKS = 3155378975999999999
TICKS_PER_MICROSECOND = 10
ROW_KEY_BASE_WIDTH = 19

_TICKS_EPOCH = datetime(1, 1, 1, tzinfo=timezone.utc)

# Characters the table store rejects in PartitionKey/RowKey values
DISALLOWED_KEY_CHARS = re.compile(r"[\\#%+/?\u0000-\u001F\u007F-\u009F]")


def to_utc(value: datetime) -> datetime:
    """Return `value` as an aware UTC datetime (naive values are taken as UTC)"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def ticks_of(value: datetime) -> int:
    """Number of 100ns ticks between 0001-01-01 UTC and `value`"""
    delta = to_utc(value) - _TICKS_EPOCH
    return delta // timedelta(microseconds=1) * TICKS_PER_MICROSECOND


def validate_id(entity_id: str | None) -> str:
    """
    Reject identifiers that cannot form a partition key.

    Raises:
        ValidationError: If id is empty or contains control/reserved characters
    """
    if not entity_id:
        raise ValidationError("Event must have a non-empty Id")
    if DISALLOWED_KEY_CHARS.search(entity_id):
        raise ValidationError(f"Invalid characters in event Id ({entity_id!r})")
    return entity_id


def normalize_id(entity_id: str) -> str:
    """Hyphen- and case-insensitive form of an identifier"""
    return entity_id.replace("-", "").lower()


def partition_key_for_id(entity_id: str) -> str:
    return ID_KEY_PREFIX + normalize_id(validate_id(entity_id))


def partition_key_for_date(value: datetime) -> str:
    utc = to_utc(value)
    return f"{DATE_KEY_PREFIX}{utc.year:04d}{utc.month:02d}{utc.day:02d}"


def row_key_base(created: datetime) -> str:
    """
    Reversed-ticks prefix of a row key.

    Deterministic for a timestamp and strictly decreasing as the timestamp
    increases, so it can serve as a range boundary on its own.
    """
    return f"{MAX_TICKS - ticks_of(created) + 1:0{ROW_KEY_BASE_WIDTH}d}"


def row_key(created: datetime) -> str:
    return f"{row_key_base(created)}-{uuid.uuid4().hex}"


def content_id(entity_id: str, key: str) -> str:
    """Blob name (and identity-row locator) for an event's content"""
    return f"{normalize_id(entity_id)}-{key}"


def split_content_id(value: str) -> tuple[str, str]:
    """
    Recover the identity row's (partition key, row key) from a content id.

    Normalized ids contain no hyphens, so the first hyphen ends the id.
    """
    entity_id, sep, key = value.partition("-")
    if not sep or not entity_id or not key:
        raise ValidationError(f"Malformed content id: {value!r}")
    return partition_key_for_id(entity_id), key
