"""
Log service - the entry point for every external operation.

LogService combines the RecordStore with the pure views in query.py:
- add_entry: normalize, resolve location and append
- list_entries: filtered pagination
- resolve_location: latest declared location of a source
- clear_entries: drop all entries
- get_stats: aggregate counts

Invariants:
    - Location is stamped once, from the store state at the moment of append
    - Resolution and append happen under one write lock
    - Note entries are always stored with name "note"

How to change safely:
    - Keep request decoding in the API layer, this layer sees typed values
    - Any new special transaction needs a rule here and in query.py
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from ..config import QueryConfig
from .codec import encode_value
from .errors import EntryValidationError
from .query import (
    TRANSACTION_NOTE,
    EntryPage,
    StoreStats,
    compute_stats,
    derive_location,
    find_location,
    list_page,
)
from .record_store import RecordStore

logger = logging.getLogger(__name__)


class LogService:
    """Query and aggregation layer over a RecordStore.

    Example:
        >>> service = LogService(store)
        >>> await service.add_entry(
        ...     datetime_=now,
        ...     transaction="set_location",
        ...     name="location",
        ...     value="kitchen",
        ...     source="dev1",
        ... )
        >>> await service.resolve_location("dev1")
        ('kitchen', True)
    """

    def __init__(self, store: RecordStore, config: QueryConfig | None = None) -> None:
        self.store = store
        self.config = config or QueryConfig()

    async def add_entry(
        self,
        datetime_: datetime,
        transaction: str = "",
        name: str = "",
        value: Any = None,
        source: str = "",
        note: str = "",
    ) -> int:
        """Record a new entry.

        Args:
            datetime_: Client-supplied observation time
            transaction: Transaction tag
            name: Field name (ignored for notes)
            value: Payload of any JSON type, stored as text
            source: Emitting device
            note: Note text, required when transaction is "note"

        Returns:
            The id of the new entry

        Raises:
            EntryValidationError: If name, or note for note entries, is missing
            StorageError: If the store file is unavailable
        """
        if transaction == TRANSACTION_NOTE:
            if not note:
                raise EntryValidationError("missing required field: note", field_name="note")
            name = TRANSACTION_NOTE
            text = note
        elif not name:
            raise EntryValidationError("missing required field: name", field_name="name")
        else:
            text = encode_value(value)

        entry_id = await self.store.append_resolved(
            datetime_,
            transaction,
            name,
            text,
            source,
            lambda entries: derive_location(entries, transaction, name, text, source),
        )
        logger.info(f"Added entry {entry_id} ({transaction or '-'}/{name}) from {source or '-'}")
        return entry_id

    async def list_entries(
        self,
        limit: int | None = None,
        offset: int = 0,
        source: str | None = None,
        name: str | None = None,
    ) -> EntryPage:
        """List entries matching source/name, one page at a time.

        Args:
            limit: Page size (configured default when None)
            offset: Number of matching entries to skip
            source: Exact source filter, empty for none
            name: Exact name filter, empty for none
        """
        if limit is None:
            limit = self.config.default_limit
        if self.config.max_limit > 0:
            limit = min(limit, self.config.max_limit)
        entries = await self.store.read_all()
        return list_page(entries, limit, offset, source=source, name=name)

    async def resolve_location(self, source: str) -> tuple[str, bool]:
        """Latest declared location of a source.

        Returns:
            (location, True) if found, ("", False) otherwise
        """
        location = find_location(await self.store.read_all(), source)
        if location is None:
            return "", False
        return location, True

    async def clear_entries(self) -> None:
        """Remove every entry. Irreversible."""
        await self.store.clear()

    async def get_stats(self) -> StoreStats:
        return compute_stats(await self.store.read_all())
