"""
Fixtures for event journal tests
"""

import pytest

from services.event_journal.parquet_store import FileBlobStore, ParquetTableStore
from services.event_journal.paths import JournalPaths
from services.event_journal.service import EventJournal
from services.event_journal.storage import MemoryBlobStore, MemoryTableStore, Shard
from services.event_journal.writer import EventWriter


@pytest.fixture
def memory_stores():
    """Memory table store with a small page size to exercise continuations"""
    return MemoryTableStore(page_size=3), MemoryBlobStore()


@pytest.fixture
def shard(memory_stores):
    """Shard 'omnibus' on memory stores"""
    tables, blobs = memory_stores
    tables.create("omnibus")
    blobs.create("omnibus")
    return Shard("omnibus", tables, blobs)


@pytest.fixture
def second_shard(memory_stores):
    """Shard 'archive' on the same memory stores"""
    tables, blobs = memory_stores
    tables.create("archive")
    blobs.create("archive")
    return Shard("archive", tables, blobs)


@pytest.fixture
def writer():
    return EventWriter()


@pytest.fixture
def journal(memory_stores):
    """In-memory EventJournal with 'omnibus' and 'archive' shards"""
    tables, blobs = memory_stores
    j = EventJournal(tables, blobs, max_workers=4)
    j.create_shard("omnibus")
    j.create_shard("archive")
    return j


@pytest.fixture
def paths(tmp_path):
    """JournalPaths under a temp directory"""
    return JournalPaths(data_dir=tmp_path / "journal_data")


@pytest.fixture
def parquet_stores(paths):
    """File-backed stores with a small page size"""
    return ParquetTableStore(paths, page_size=2), FileBlobStore(paths)


@pytest.fixture
def parquet_shard(parquet_stores):
    tables, blobs = parquet_stores
    tables.create("omnibus")
    blobs.create("omnibus")
    return Shard("omnibus", tables, blobs)
