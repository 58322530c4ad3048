"""
Event Journal Schema - Ingest payload, physical row and result order

Column names of the physical row follow the table store's conventions
(PartitionKey/RowKey plus PascalCase fields).
"""

import json
from dataclasses import dataclass, fields
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from services.event_journal.keys import DATE_KEY_PREFIX, content_id, to_utc


class Order(str, Enum):
    """Result order by creation time"""

    DESCENDING = "descending"  # Store-native order (newest first)
    ASCENDING = "ascending"

    @classmethod
    def parse(cls, value: "str | Order | None") -> "Order":
        """'asc'/'ascending' (any case) is ascending; anything else descending"""
        if isinstance(value, Order):
            return value
        if value is not None and not isinstance(value, str):
            raise ValueError(f"Order must be a string, got {type(value).__name__}")
        if value and value.strip().lower() in ("asc", "ascending"):
            return cls.ASCENDING
        return cls.DESCENDING


class JournalEvent(BaseModel):
    """Event as posted by a producer, before key construction."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str | None = None
    description: str | None = None
    content: str | None = None
    created: datetime | None = None

    program_id: str | None = None
    carrier_id: str | None = None
    service_name: str | None = None

    @field_validator("content", mode="before")
    @classmethod
    def _serialize_structured_content(cls, v):
        if isinstance(v, (dict, list)):
            return json.dumps(v)
        return v

    @field_validator("created")
    @classmethod
    def _coerce_utc(cls, v):
        if v is None or v == datetime.min:
            return v
        return to_utc(v)


@dataclass
class TableRow:
    """
    One physical row of the dual index.

    Identity rows carry full metadata and, when small enough, the
    compressed content. Date rows carry id/description/created only.
    """

    partition_key: str
    row_key: str
    id: str | None = None
    program_id: str | None = None
    carrier_id: str | None = None
    service_name: str | None = None
    description: str | None = None
    created: datetime | None = None
    content: bytes | None = None

    @property
    def is_date_row(self) -> bool:
        return self.partition_key.startswith(DATE_KEY_PREFIX)

    @property
    def content_id(self) -> str:
        """Locator of the content blob / identity row for this event"""
        return content_id(self.id or self.program_id or "", self.row_key)

    def to_columns(self) -> dict[str, Any]:
        """Convert to store columns; `created` is kept as ISO-8601 text"""
        return {
            COLUMN_NAMES[f.name]: (
                self.created.isoformat()
                if f.name == "created" and self.created is not None
                else getattr(self, f.name)
            )
            for f in fields(self)
        }

    @classmethod
    def from_columns(cls, columns: dict[str, Any]) -> "TableRow":
        values = {name: columns.get(column) for name, column in COLUMN_NAMES.items()}
        created = values["created"]
        if isinstance(created, str):
            values["created"] = to_utc(datetime.fromisoformat(created))
        elif isinstance(created, datetime):
            values["created"] = to_utc(created)
        return cls(**values)


COLUMN_NAMES = {
    "partition_key": "PartitionKey",
    "row_key": "RowKey",
    "id": "Id",
    "program_id": "ProgramId",
    "carrier_id": "CarrierId",
    "service_name": "ServiceName",
    "description": "Description",
    "created": "Created",
    "content": "Content",
}
