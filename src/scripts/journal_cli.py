#!/usr/bin/env python3
"""
Ingest and query events in the file-backed event journal.

Usage:
    python scripts/journal_cli.py create-shard omnibus
    python scripts/journal_cli.py ingest omnibus --file events.json
    python scripts/journal_cli.py by-id omnibus,archive abc-123 --top 10
    python scripts/journal_cli.py by-time omnibus 2025-01-01 2025-01-04 --order asc
    python scripts/journal_cli.py by-key omnibus id:abc123 <row key>

Results are printed as JSON on stdout; errors go to stderr with exit code 1.
"""

import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path

from services.event_journal import (
    EventJournal,
    JournalError,
    JournalPaths,
    QueryOptions,
    get_data_dir,
)
from services.logger import setup_logging

logger = logging.getLogger(__name__)


def parse_time(value: str) -> datetime:
    """ISO-8601 date or datetime; naive values are UTC"""
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid ISO-8601 time: {value!r}") from e


def query_options(args: argparse.Namespace) -> QueryOptions:
    """Map command-line flags onto the request-parameter names"""
    return QueryOptions.from_params(
        {
            "top": args.top,
            "skip": args.skip,
            "order": args.order,
            "noContent": args.no_content or None,
            "onlyCount": args.only_count or None,
            "noBuckets": getattr(args, "no_buckets", False) or None,
        }
    )


def read_events(source: str) -> list[dict]:
    """
    Load one event object or a list of them from a JSON file ('-' for stdin).
    """
    text = sys.stdin.read() if source == "-" else Path(source).read_text(encoding="utf-8")
    payload = json.loads(text)
    if isinstance(payload, dict):
        return [payload]
    if isinstance(payload, list) and all(isinstance(e, dict) for e in payload):
        return payload
    raise ValueError("Event file must hold a JSON object or a list of objects")


def cmd_create_shard(journal: EventJournal, args: argparse.Namespace):
    shard = journal.create_shard(args.shard)
    return {"shard": shard.name}


def cmd_ingest(journal: EventJournal, args: argparse.Namespace):
    receipts = []
    for event in read_events(args.file):
        receipt = journal.ingest(args.shard, event)
        receipts.append(
            {
                "shard": receipt.shard,
                "id_partition_key": receipt.id_partition_key,
                "date_partition_key": receipt.date_partition_key,
                "row_key": receipt.row_key,
                "overflowed": receipt.overflowed,
            }
        )
    return receipts


def cmd_by_id(journal: EventJournal, args: argparse.Namespace):
    return journal.query_by_id(args.shards, args.id, query_options(args))


def cmd_by_time(journal: EventJournal, args: argparse.Namespace):
    return journal.query_by_time(args.shards, args.start, args.end, query_options(args))


def cmd_by_key(journal: EventJournal, args: argparse.Namespace):
    return journal.get_by_key(args.shard, args.partition_key, args.row_key, query_options(args))


def _add_query_flags(parser: argparse.ArgumentParser, buckets: bool = False):
    parser.add_argument("--top", type=int, help="Maximum number of records")
    parser.add_argument("--skip", type=int, help="Records to skip before --top applies")
    parser.add_argument("--order", help="'asc' for oldest first (default: newest first)")
    parser.add_argument("--no-content", action="store_true", help="Omit event content")
    parser.add_argument("--only-count", action="store_true", help="Print {\"count\": N} only")
    if buckets:
        parser.add_argument(
            "--no-buckets", action="store_true", help="Scan the range without per-day buckets"
        )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Ingest and query events in the event journal",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create a collection and ingest events from a file
  %(prog)s create-shard omnibus
  %(prog)s ingest omnibus --file events.json

  # Newest 10 events for an id across two collections
  %(prog)s by-id omnibus,archive abc-123 --top 10

  # Count events in a time range
  %(prog)s by-time omnibus 2025-01-01 2025-01-04 --only-count
        """,
    )
    parser.add_argument(
        "--data-dir", type=Path, help="Journal data directory (default: JOURNAL_DATA_DIR)"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("create-shard", help="Create a collection (table + blob container)")
    p.add_argument("shard")
    p.set_defaults(handler=cmd_create_shard)

    p = sub.add_parser("ingest", help="Ingest events from a JSON file")
    p.add_argument("shard")
    p.add_argument("--file", default="-", help="JSON event file ('-' for stdin)")
    p.set_defaults(handler=cmd_ingest)

    p = sub.add_parser("by-id", help="Events with an id")
    p.add_argument("shards", help="Comma-separated collection names")
    p.add_argument("id")
    _add_query_flags(p)
    p.set_defaults(handler=cmd_by_id)

    p = sub.add_parser("by-time", help="Events created in [start, end)")
    p.add_argument("shards", help="Comma-separated collection names")
    p.add_argument("start", type=parse_time)
    p.add_argument("end", type=parse_time)
    _add_query_flags(p, buckets=True)
    p.set_defaults(handler=cmd_by_time)

    p = sub.add_parser("by-key", help="One row by partition and row key")
    p.add_argument("shard")
    p.add_argument("partition_key")
    p.add_argument("row_key")
    _add_query_flags(p)
    p.set_defaults(handler=cmd_by_key)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the script"""
    args = build_parser().parse_args(argv)
    # stdout carries the JSON result
    setup_logging({"console_stream": "stderr"})

    journal = EventJournal.from_paths(JournalPaths(args.data_dir or get_data_dir()))
    try:
        result = args.handler(journal, args)
    except (JournalError, ValueError, OSError) as e:
        logger.debug(f"{args.command} failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
