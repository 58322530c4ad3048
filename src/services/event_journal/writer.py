"""
Event Writer - Ingest events into the dual index

Per event:
1. Validate id/content/created
2. Compress the content
3. Place it inline (small) or in the blob store (at/above threshold)
4. Insert the identity row, then the date row (same row key)

The two inserts are not transactional. If the date row insert fails the
identity row stays behind; the failure is logged and re-raised.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from services.event_journal.codec import compress
from services.event_journal.errors import JournalError, ValidationError
from services.event_journal.keys import (
    content_id,
    partition_key_for_date,
    partition_key_for_id,
    row_key,
    to_utc,
    validate_id,
)
from services.event_journal.schema import JournalEvent, TableRow
from services.event_journal.storage import Shard
from services.logger import PerformanceLogger

logger = logging.getLogger(__name__)

# Largest compressed payload kept inline in the identity row
MAX_INLINE_CONTENT_LENGTH = 0xFFFF


@dataclass(frozen=True)
class IngestReceipt:
    """Where an ingested event was written"""

    shard: str
    id_partition_key: str
    date_partition_key: str
    row_key: str
    content_id: str
    overflowed: bool


def validate_event(event: JournalEvent) -> None:
    """
    Raises:
        ValidationError: If id, content or creation time is missing/invalid
    """
    validate_id(event.id)
    if not event.content:
        raise ValidationError("Event must have non-empty Content")
    if event.created is None or event.created.replace(tzinfo=None) == datetime.min:
        raise ValidationError("Event must have valid creation time")


class EventWriter:
    """
    Writes events as identity/date row pairs.

    Usage:
        writer = EventWriter()
        receipt = writer.ingest(JournalEvent(id="abc-123", content="{}", created=now), shard)
    """

    def __init__(self, inline_threshold: int = MAX_INLINE_CONTENT_LENGTH):
        """
        Args:
            inline_threshold: Compressed size (bytes) at which content overflows to a blob
        """
        if inline_threshold < 1:
            raise ValueError("inline_threshold must be positive")
        self._inline_threshold = inline_threshold

    @property
    def inline_threshold(self) -> int:
        return self._inline_threshold

    def ingest(self, event: JournalEvent, shard: Shard) -> IngestReceipt:
        validate_event(event)
        created = to_utc(event.created)

        with PerformanceLogger(logger, "ingest"):
            compressed = compress(event.content)
            key = row_key(created)
            blob_name = content_id(event.id, key)
            overflowed = len(compressed) >= self._inline_threshold

            if overflowed:
                shard.put_blob(blob_name, compressed)
                logger.debug(f"Content of {event.id} ({len(compressed)} bytes) stored as blob {blob_name}")

            identity_row = TableRow(
                partition_key=partition_key_for_id(event.id),
                row_key=key,
                id=event.id,
                program_id=event.program_id,
                carrier_id=event.carrier_id,
                service_name=event.service_name,
                description=event.description,
                created=created,
                content=None if overflowed else compressed,
            )
            shard.insert(identity_row)

            date_row = TableRow(
                partition_key=partition_key_for_date(created),
                row_key=key,
                id=event.id,
                description=event.description,
                created=created,
            )
            try:
                shard.insert(date_row)
            except JournalError:
                logger.error(
                    f"Date row {date_row.partition_key}/{key} not written; identity row "
                    f"{identity_row.partition_key}/{key} in {shard.name} has no date index entry"
                )
                raise

        logger.info(f"Saved event {event.id} to {shard.name} ({identity_row.partition_key}/{key})")
        return IngestReceipt(
            shard=shard.name,
            id_partition_key=identity_row.partition_key,
            date_partition_key=date_row.partition_key,
            row_key=key,
            content_id=blob_name,
            overflowed=overflowed,
        )
