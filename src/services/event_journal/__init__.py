"""
Event Journal Module - Append-only, dual-indexed event storage

Every event is written twice under one row key:
- identity row (partition by normalized id) with metadata and content
- date row (partition by UTC day) pointing back at the identity row

Queries by id, by time range or by explicit key fan out over one or more
shards and are merged, ordered and paginated by QueryRunner.
"""

from .errors import ContentDecodeError, JournalError, NotFoundError, StoreError, ValidationError
from .parquet_store import FileBlobStore, ParquetTableStore
from .paths import JournalPaths, get_data_dir
from .query import QueryOptions, QuerySettings
from .runner import QueryRunner
from .schema import JournalEvent, Order, TableRow
from .service import EventJournal
from .storage import MemoryBlobStore, MemoryTableStore, Shard
from .writer import EventWriter, IngestReceipt

__all__ = [
    "ContentDecodeError",
    "EventJournal",
    "EventWriter",
    "FileBlobStore",
    "IngestReceipt",
    "JournalError",
    "JournalEvent",
    "JournalPaths",
    "MemoryBlobStore",
    "MemoryTableStore",
    "NotFoundError",
    "Order",
    "ParquetTableStore",
    "QueryOptions",
    "QueryRunner",
    "QuerySettings",
    "Shard",
    "StoreError",
    "TableRow",
    "ValidationError",
    # Convenience path functions
    "get_data_dir",
]
