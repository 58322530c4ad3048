"""Services package.

Keep this module lightweight: importing `services` should not trigger heavy
imports (pyarrow/duckdb pulled in by the journal stores). Import
`services.event_journal` explicitly where the journal is needed.
"""

from __future__ import annotations

from .logger import get_logger, setup_logging

__all__ = ["get_logger", "setup_logging"]
