"""
Event Journal Paths - Derive all directories from config/env

All paths derived from JOURNAL_DATA_DIR.
"""

import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class JournalPaths:
    """
    Centralized path management for the file-backed journal stores.

    Layout:
        <data_dir>/tables/<shard>/<partition dir>/<row key>.parquet
        <data_dir>/blobs/<shard>/<content id>
    """

    def __init__(self, data_dir: Path | None = None):
        """
        Initialize paths from config or explicit directory.

        Args:
            data_dir: Override data directory (for testing)
        """
        if data_dir is not None:
            self._data_dir = Path(data_dir)
        else:
            # Import config lazily to avoid circular imports
            from config import Config

            self._data_dir = Config.get_journal_config()["data_dir"]

    @property
    def data_dir(self) -> Path:
        """Root data directory (JOURNAL_DATA_DIR)"""
        return self._data_dir

    @property
    def tables_dir(self) -> Path:
        return self._data_dir / "tables"

    @property
    def blobs_dir(self) -> Path:
        return self._data_dir / "blobs"

    def table_dir(self, table: str) -> Path:
        return self.tables_dir / table

    def partition_dir(self, table: str, partition_key: str) -> Path:
        """
        Directory holding one partition's rows.

        "id:abc" maps to "id=abc", "date:20250101" to "date=20250101".
        """
        return self.table_dir(table) / partition_key.replace(":", "=", 1)

    def container_dir(self, container: str) -> Path:
        return self.blobs_dir / container

    def blob_path(self, container: str, key: str) -> Path:
        return self.container_dir(container) / key

    def ensure_directories(self) -> dict:
        """
        Create the root directories.

        Returns:
            Dict mapping directory names to creation success status
        """
        status = {}
        for name, path in [
            ("data_dir", self.data_dir),
            ("tables", self.tables_dir),
            ("blobs", self.blobs_dir),
        ]:
            try:
                path.mkdir(parents=True, exist_ok=True)
                status[name] = path.exists()
            except OSError as e:
                logger.error(f"Could not create {name}: {path} - {e}")
                status[name] = False
        return status


def get_data_dir() -> Path:
    """
    Get the journal data directory.

    Returns:
        Path to ~/journal_data/ or JOURNAL_DATA_DIR env value
    """
    from config import Config

    return Config.get_journal_config()["data_dir"]
