"""
Storage contracts - Sorted table store, blob store and shards

TableStore: rows keyed by (PartitionKey, RowKey), scanned in key order
through a segmented protocol with an opaque continuation token.
BlobStore: named byte payloads, one container per shard.
Shard: one named table plus its blob container.

MemoryTableStore / MemoryBlobStore are thread-safe in-process
implementations; see parquet_store for the file-backed ones.
"""

import bisect
import logging
import re
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace

from services.event_journal.errors import NotFoundError, StoreError, ValidationError
from services.event_journal.filters import RowFilter, filter_for_key
from services.event_journal.schema import TableRow

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 1000

# Table/container names: letters and digits, starting with a letter
SHARD_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9]{2,62}$")


def normalize_shard_name(name: str) -> str:
    """
    Lower-case and validate a shard name.

    Raises:
        ValidationError: If name is not 3-63 alphanumerics starting with a letter
    """
    normalized = (name or "").strip().lower()
    if not SHARD_NAME_PATTERN.match(normalized):
        raise ValidationError(f"Invalid collection name: {name!r}")
    return normalized


@dataclass(frozen=True)
class ContinuationToken:
    """Resume point of a segmented scan (exclusive)"""

    partition_key: str
    row_key: str


@dataclass
class ScanSegment:
    rows: list[TableRow]
    continuation: ContinuationToken | None = None


class TableStore(ABC):
    """Sorted key-value store with segmented range scans."""

    @abstractmethod
    def exists(self, table: str) -> bool: ...

    @abstractmethod
    def create(self, table: str) -> None: ...

    @abstractmethod
    def insert(self, table: str, row: TableRow) -> None:
        """Insert a new row; raises StoreError if the key already exists"""

    @abstractmethod
    def scan(
        self, table: str, row_filter: RowFilter, token: ContinuationToken | None = None
    ) -> ScanSegment:
        """Return the next segment of matching rows in (PartitionKey, RowKey) order"""


class BlobStore(ABC):
    """Named binary payloads grouped in containers."""

    @abstractmethod
    def exists(self, container: str) -> bool: ...

    @abstractmethod
    def create(self, container: str) -> None: ...

    @abstractmethod
    def put(self, container: str, key: str, data: bytes) -> None: ...

    @abstractmethod
    def get(self, container: str, key: str) -> bytes:
        """Return blob bytes; raises StoreError if the blob is missing"""


@dataclass(frozen=True)
class Shard:
    """A named collection: one table and the blob container of the same name."""

    name: str
    tables: TableStore = field(repr=False, compare=False)
    blobs: BlobStore = field(repr=False, compare=False)

    def insert(self, row: TableRow) -> None:
        self.tables.insert(self.name, row)

    def scan(self, row_filter: RowFilter, token: ContinuationToken | None = None) -> ScanSegment:
        return self.tables.scan(self.name, row_filter, token)

    def find_row(self, partition_key: str, row_key: str) -> TableRow | None:
        segment = self.scan(filter_for_key(partition_key, row_key))
        return segment.rows[0] if segment.rows else None

    def put_blob(self, key: str, data: bytes) -> None:
        self.blobs.put(self.name, key, data)

    def get_blob(self, key: str) -> bytes:
        return self.blobs.get(self.name, key)


class MemoryTableStore(TableStore):
    """
    In-process sorted table store.

    Each table keeps a sorted list of (PartitionKey, RowKey) keys; scans
    return at most `page_size` matching rows per segment.
    """

    def __init__(self, page_size: int = DEFAULT_PAGE_SIZE):
        if page_size < 1:
            raise ValueError("page_size must be positive")
        self._page_size = page_size
        self._keys: dict[str, list[tuple[str, str]]] = {}
        self._rows: dict[str, dict[tuple[str, str], TableRow]] = {}
        self._lock = threading.RLock()

    @property
    def page_size(self) -> int:
        return self._page_size

    def exists(self, table: str) -> bool:
        with self._lock:
            return table in self._rows

    def create(self, table: str) -> None:
        with self._lock:
            self._keys.setdefault(table, [])
            self._rows.setdefault(table, {})

    def _require(self, table: str) -> None:
        if table not in self._rows:
            raise StoreError(f"Table '{table}' does not exist")

    def insert(self, table: str, row: TableRow) -> None:
        key = (row.partition_key, row.row_key)
        with self._lock:
            self._require(table)
            if key in self._rows[table]:
                raise StoreError(f"Entity already exists: {key[0]}/{key[1]}")
            bisect.insort(self._keys[table], key)
            self._rows[table][key] = replace(row)

    def scan(
        self, table: str, row_filter: RowFilter, token: ContinuationToken | None = None
    ) -> ScanSegment:
        with self._lock:
            self._require(table)
            keys = self._keys[table]
            start = 0
            if token is not None:
                start = bisect.bisect_right(keys, (token.partition_key, token.row_key))

            rows: list[TableRow] = []
            for key in keys[start:]:
                row = self._rows[table][key]
                if not row_filter.matches(row):
                    continue
                if len(rows) == self._page_size:
                    last = rows[-1]
                    return ScanSegment(rows, ContinuationToken(last.partition_key, last.row_key))
                rows.append(replace(row))
            return ScanSegment(rows)


class MemoryBlobStore(BlobStore):
    """In-process blob store."""

    def __init__(self):
        self._containers: dict[str, dict[str, bytes]] = {}
        self._lock = threading.RLock()

    def exists(self, container: str) -> bool:
        with self._lock:
            return container in self._containers

    def create(self, container: str) -> None:
        with self._lock:
            self._containers.setdefault(container, {})

    def put(self, container: str, key: str, data: bytes) -> None:
        with self._lock:
            if container not in self._containers:
                raise StoreError(f"Blob container '{container}' does not exist")
            self._containers[container][key] = bytes(data)

    def get(self, container: str, key: str) -> bytes:
        with self._lock:
            try:
                return self._containers[container][key]
            except KeyError as e:
                raise StoreError(f"Blob '{container}/{key}' not found") from e


def open_shard(tables: TableStore, blobs: BlobStore, name: str) -> Shard:
    """
    Bind a shard whose table and blob container both exist.

    Raises:
        ValidationError: If the name is invalid
        NotFoundError: If the table or blob container is missing
    """
    name = normalize_shard_name(name)
    if not (tables.exists(name) and blobs.exists(name)):
        raise NotFoundError(f"Table or blob container '{name}' does not exist")
    return Shard(name, tables, blobs)


def open_shards(tables: TableStore, blobs: BlobStore, names: list[str]) -> list[Shard]:
    """
    Bind several shards for one query.

    Raises:
        ValidationError: If no names are given or a shard is named twice
        NotFoundError: If any shard is missing
    """
    if not names:
        raise ValidationError("At least one collection is required")
    shards: list[Shard] = []
    for name in names:
        shard = open_shard(tables, blobs, name)
        if any(s.name == shard.name for s in shards):
            raise ValidationError(f"Duplicate collection '{name}'")
        shards.append(shard)
    return shards
