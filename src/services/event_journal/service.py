"""
Event Journal Service - Public entry point for ingest and queries

Binds shard names to a table store and a blob store, validates inputs
coming from the request layer and dispatches to EventWriter/QueryRunner.
"""

import logging
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any

import pydantic

from services.event_journal.errors import ValidationError
from services.event_journal.paths import JournalPaths
from services.event_journal.parquet_store import FileBlobStore, ParquetTableStore
from services.event_journal.query import QueryOptions, QuerySettings
from services.event_journal.runner import DEFAULT_MAX_WORKERS, QueryRunner
from services.event_journal.schema import JournalEvent
from services.event_journal.storage import (
    BlobStore,
    Shard,
    TableStore,
    normalize_shard_name,
    open_shard,
    open_shards,
)
from services.event_journal.writer import EventWriter, IngestReceipt

logger = logging.getLogger(__name__)


class EventJournal:
    """
    Append-only event journal over a table store and a blob store.

    Usage:
        journal = EventJournal.from_paths(JournalPaths(data_dir))
        journal.create_shard("omnibus")
        journal.ingest("omnibus", {"id": "abc-123", "content": "{}", "created": now})
        records = journal.query_by_id("omnibus", "abc-123")
    """

    def __init__(
        self,
        tables: TableStore,
        blobs: BlobStore,
        writer: EventWriter | None = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ):
        self._tables = tables
        self._blobs = blobs
        self._writer = writer or EventWriter()
        self._max_workers = max_workers

    @classmethod
    def from_paths(cls, paths: JournalPaths | None = None, **kwargs) -> "EventJournal":
        """File-backed journal using the configured page size/threshold/workers"""
        from config import Config

        journal_config = Config.get_journal_config()
        paths = paths or JournalPaths()
        return cls(
            ParquetTableStore(paths, page_size=journal_config["scan_page_size"]),
            FileBlobStore(paths),
            writer=kwargs.pop(
                "writer", EventWriter(inline_threshold=journal_config["inline_content_threshold"])
            ),
            max_workers=kwargs.pop("max_workers", journal_config["max_workers"]),
        )

    # =========================================================================
    # Shards
    # =========================================================================

    def create_shard(self, name: str) -> Shard:
        """Create the table and blob container of a shard (idempotent)"""
        name = normalize_shard_name(name)
        self._tables.create(name)
        self._blobs.create(name)
        logger.info(f"Collection '{name}' ready")
        return Shard(name, self._tables, self._blobs)

    def open_shard(self, name: str) -> Shard:
        return open_shard(self._tables, self._blobs, name)

    def open_shards(self, names: str | Sequence[str]) -> list[Shard]:
        """Accepts a list of names or a comma-separated string"""
        if isinstance(names, str):
            names = [n for n in names.split(",") if n.strip()]
        return open_shards(self._tables, self._blobs, list(names))

    # =========================================================================
    # Ingest
    # =========================================================================

    def ingest(self, shard_name: str, event: JournalEvent | Mapping[str, Any]) -> IngestReceipt:
        """
        Validate and write one event.

        Raises:
            ValidationError: Malformed event
            NotFoundError: Unknown shard
            StoreError: Store failure
        """
        if not isinstance(event, JournalEvent):
            try:
                event = JournalEvent.model_validate(event)
            except pydantic.ValidationError as e:
                raise ValidationError(f"Invalid event payload: {e}") from e
        shard = self.open_shard(shard_name)
        logger.info(f"Saving event to {shard.name}.")
        return self._writer.ingest(event, shard)

    def ingest_json(self, shard_name: str, payload: str | bytes) -> IngestReceipt:
        try:
            event = JournalEvent.model_validate_json(payload)
        except pydantic.ValidationError as e:
            raise ValidationError(f"Invalid event payload: {e}") from e
        return self.ingest(shard_name, event)

    # =========================================================================
    # Queries
    # =========================================================================

    def _runner(self, shards: list[Shard], settings: QuerySettings) -> QueryRunner:
        return QueryRunner(shards, settings, max_workers=self._max_workers)

    def _list(self, shards: list[Shard], settings: QuerySettings):
        runner = self._runner(shards, settings)
        if settings.options.only_count:
            return runner.get_result_count()
        return runner.get_multiple_results()

    def query_by_id(
        self,
        shard_names: str | Sequence[str],
        entity_id: str,
        options: QueryOptions | None = None,
    ) -> list[dict[str, Any]] | dict[str, int]:
        """Events with this id across one or more shards (newest first by default)"""
        settings = QuerySettings.by_id(entity_id, options)
        shards = self.open_shards(shard_names)
        logger.info(f"Retrieving from {','.join(s.name for s in shards)}/{entity_id}.")
        return self._list(shards, settings)

    def query_by_time(
        self,
        shard_names: str | Sequence[str],
        from_time: datetime,
        to_time: datetime,
        options: QueryOptions | None = None,
    ) -> list[dict[str, Any]] | dict[str, int]:
        """Events created in [from_time, to_time)"""
        settings = QuerySettings.by_time(from_time, to_time, options)
        shards = self.open_shards(shard_names)
        logger.info(
            f"Retrieving from {','.join(s.name for s in shards)} {settings.time_range}."
        )
        return self._list(shards, settings)

    def get_by_key(
        self,
        shard_name: str,
        partition_key: str,
        row_key: str,
        options: QueryOptions | None = None,
    ) -> dict[str, Any]:
        """One physical row (identity or date) by its keys, or {}"""
        settings = QuerySettings.by_key(partition_key, row_key, options)
        shard = self.open_shard(shard_name)
        logger.info(f"Retrieving from {shard.name}/{partition_key}/{row_key}.")
        return self._runner([shard], settings).get_single_result()
