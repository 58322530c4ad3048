"""
Event Journal Errors

ValidationError and NotFoundError are surfaced to the caller as-is.
StoreError fails the whole logical operation; a query never returns
partial shard results.
ContentDecodeError is soft: the runner recovers by returning raw text.
"""


class JournalError(Exception):
    """Base class for event journal errors"""

    pass


class ValidationError(JournalError):
    """Malformed ingest payload, key-forming identifier or query"""

    pass


class NotFoundError(JournalError):
    """Referenced shard (table or blob container) does not exist"""

    pass


class StoreError(JournalError):
    """Underlying table or blob store operation failed"""

    pass


class ContentDecodeError(JournalError):
    """Stored content is not structured data"""

    pass
