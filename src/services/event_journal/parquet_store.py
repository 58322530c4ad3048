"""
Parquet Table Store - File-backed table and blob stores

Features:
- One Parquet file per row, partitioned by PartitionKey directory
- Atomic writes (write to temp, rename)
- Scans executed by DuckDB directly over the Parquet files (no ETL)
- Partition-equality filters prune the scan to one directory
- Segmented scans: LIMIT page_size with a (PartitionKey, RowKey) resume point
"""

import logging
import re
import threading
from pathlib import Path

import duckdb
import pyarrow as pa
import pyarrow.parquet as pq

from services.event_journal.errors import StoreError
from services.event_journal.filters import RowFilter
from services.event_journal.keys import DISALLOWED_KEY_CHARS
from services.event_journal.paths import JournalPaths
from services.event_journal.schema import TableRow
from services.event_journal.storage import (
    DEFAULT_PAGE_SIZE,
    BlobStore,
    ContinuationToken,
    ScanSegment,
    TableStore,
)

logger = logging.getLogger(__name__)

# Created is stored as ISO-8601 text, Content as gzip bytes
ROW_SCHEMA = pa.schema(
    [
        ("PartitionKey", pa.string()),
        ("RowKey", pa.string()),
        ("Id", pa.string()),
        ("ProgramId", pa.string()),
        ("CarrierId", pa.string()),
        ("ServiceName", pa.string()),
        ("Description", pa.string()),
        ("Created", pa.string()),
        ("Content", pa.binary()),
    ]
)

_GLOB_CHARS = re.compile(r"[*?\[\]{}]")


def _atomic_write(final_path: Path, write) -> None:
    """Write via `write(temp_path)`, then rename into place"""
    temp_path = final_path.parent / f".{final_path.name}.tmp"
    try:
        write(temp_path)
        temp_path.rename(final_path)
    except Exception:
        if temp_path.exists():
            temp_path.unlink()
        raise


class ParquetTableStore(TableStore):
    """
    Table store over a directory of Parquet files.

    Each scan opens a fresh DuckDB connection, so concurrent scans from a
    worker pool need no shared connection state.

    Usage:
        store = ParquetTableStore(JournalPaths(data_dir))
        store.create("events")
        store.insert("events", row)
        segment = store.scan("events", filter_for_id("abc-123"))
    """

    def __init__(self, paths: JournalPaths, page_size: int = DEFAULT_PAGE_SIZE):
        if page_size < 1:
            raise ValueError("page_size must be positive")
        self._paths = paths
        self._page_size = page_size
        self._write_lock = threading.Lock()
        paths.ensure_directories()

    @property
    def page_size(self) -> int:
        return self._page_size

    def exists(self, table: str) -> bool:
        return self._paths.table_dir(table).is_dir()

    def create(self, table: str) -> None:
        try:
            self._paths.table_dir(table).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError(f"Could not create table '{table}': {e}") from e

    def insert(self, table: str, row: TableRow) -> None:
        if not self.exists(table):
            raise StoreError(f"Table '{table}' does not exist")
        for key in (row.partition_key, row.row_key):
            if not key or DISALLOWED_KEY_CHARS.search(key):
                raise StoreError(f"Invalid key value: {key!r}")

        partition_dir = self._paths.partition_dir(table, row.partition_key)
        final_path = partition_dir / f"{row.row_key}.parquet"
        arrow_table = pa.Table.from_pylist([row.to_columns()], schema=ROW_SCHEMA)

        with self._write_lock:
            if final_path.exists():
                raise StoreError(f"Entity already exists: {row.partition_key}/{row.row_key}")
            try:
                partition_dir.mkdir(parents=True, exist_ok=True)
                _atomic_write(final_path, lambda p: pq.write_table(arrow_table, p))
            except (OSError, pa.ArrowException) as e:
                raise StoreError(f"Failed to write row to {final_path}: {e}") from e

        logger.debug(f"Inserted {row.partition_key}/{row.row_key} into {table}")

    def _scan_root(self, table: str, row_filter: RowFilter) -> tuple[Path, str]:
        """Directory and file pattern to scan: one partition when the filter pins it"""
        partition_key = row_filter.partition_key
        if (
            partition_key
            and not DISALLOWED_KEY_CHARS.search(partition_key)
            and not _GLOB_CHARS.search(partition_key)
        ):
            return self._paths.partition_dir(table, partition_key), "*.parquet"
        return self._paths.table_dir(table), "*/*.parquet"

    def scan(
        self, table: str, row_filter: RowFilter, token: ContinuationToken | None = None
    ) -> ScanSegment:
        if not self.exists(table):
            raise StoreError(f"Table '{table}' does not exist")

        root, pattern = self._scan_root(table, row_filter)
        if not root.is_dir() or next(root.glob(pattern), None) is None:
            return ScanSegment([])

        where, params = row_filter.to_sql()
        if token is not None:
            where += " AND (PartitionKey > $cpk OR (PartitionKey = $cpk AND RowKey > $crk))"
            params["cpk"] = token.partition_key
            params["crk"] = token.row_key
        params["limit"] = self._page_size + 1

        # root is derived from validated shard/partition names, not user SQL
        parquet_glob = str(root / pattern).replace("'", "''")
        sql = f"""
            SELECT *
            FROM read_parquet('{parquet_glob}', hive_partitioning=false, union_by_name=true)
            WHERE {where}
            ORDER BY PartitionKey, RowKey
            LIMIT $limit
        """

        conn = duckdb.connect()
        try:
            records = conn.execute(sql, params).fetch_arrow_table().to_pylist()
        except duckdb.Error as e:
            raise StoreError(f"Scan of '{table}' failed ({row_filter}): {e}") from e
        finally:
            conn.close()

        rows = [TableRow.from_columns(r) for r in records[: self._page_size]]
        if len(records) > self._page_size:
            last = rows[-1]
            return ScanSegment(rows, ContinuationToken(last.partition_key, last.row_key))
        return ScanSegment(rows)


class FileBlobStore(BlobStore):
    """Blob store with one file per blob under <data_dir>/blobs/<container>/."""

    def __init__(self, paths: JournalPaths):
        self._paths = paths
        paths.ensure_directories()

    def exists(self, container: str) -> bool:
        return self._paths.container_dir(container).is_dir()

    def create(self, container: str) -> None:
        try:
            self._paths.container_dir(container).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError(f"Could not create blob container '{container}': {e}") from e

    def put(self, container: str, key: str, data: bytes) -> None:
        if not self.exists(container):
            raise StoreError(f"Blob container '{container}' does not exist")
        path = self._paths.blob_path(container, key)
        try:
            _atomic_write(path, lambda p: p.write_bytes(data))
        except OSError as e:
            raise StoreError(f"Failed to write blob {path}: {e}") from e
        logger.debug(f"Wrote {len(data)} byte blob {container}/{key}")

    def get(self, container: str, key: str) -> bytes:
        path = self._paths.blob_path(container, key)
        try:
            return path.read_bytes()
        except OSError as e:
            raise StoreError(f"Blob '{container}/{key}' not found: {e}") from e
