"""
Content codec - gzip compression of event payloads and content parsing
"""

import gzip
import json
import zlib
from typing import Any

from services.event_journal.errors import ContentDecodeError, StoreError


def compress(text: str) -> bytes:
    return gzip.compress(text.encode("utf-8"))


def decompress(data: bytes) -> str:
    """
    Inverse of compress().

    Raises:
        StoreError: If stored bytes are not valid gzip/UTF-8
    """
    try:
        return gzip.decompress(data).decode("utf-8")
    except (OSError, EOFError, zlib.error, UnicodeDecodeError) as e:
        raise StoreError(f"Stored content is corrupt: {e}") from e


def parse_structured(text: str) -> Any:
    """
    Parse content as a JSON object or array.

    Raises:
        ContentDecodeError: If text is not a JSON object/array
    """
    try:
        value = json.loads(text)
    except json.JSONDecodeError as e:
        raise ContentDecodeError(str(e)) from e
    if not isinstance(value, (dict, list)):
        raise ContentDecodeError(f"Content is a JSON {type(value).__name__}, not a document")
    return value
