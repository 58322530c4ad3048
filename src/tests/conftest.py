"""
Shared test fixtures for pytest
"""

import pytest

from services.logger import cleanup_logging, setup_logging


@pytest.fixture(scope="session", autouse=True)
def setup_test_logging(tmp_path_factory):
    """Setup logging for all tests (log files under a temp dir)"""
    setup_logging(
        {
            "log_dir": str(tmp_path_factory.mktemp("logs")),
            "console_level": "WARNING",
            "console_stream": "stderr",
        }
    )
    yield
    cleanup_logging()
