"""
Derived views over scanned entries.

Pure functions only: every function takes the entries from one full scan
and computes a result in memory. Locking and I/O belong to RecordStore.

Invariants:
    - Filtering and pagination never reorder entries
    - Location resolution compares created_at, not scan position
    - Stats counts are the cardinalities of the reported sets
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from .record_store import Entry

TRANSACTION_SET_LOCATION = "set_location"
TRANSACTION_NOTE = "note"
LOCATION_NAME = "location"


@dataclass(frozen=True)
class EntryPage:
    """One page of a filtered listing.

    Attributes:
        entries: Entries in the requested window
        total: Number of entries matching the filter, before pagination
        limit: Page size that was applied
        offset: Offset that was applied
    """

    entries: list[Entry]
    total: int
    limit: int
    offset: int

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.entries) < self.total


@dataclass(frozen=True)
class StoreStats:
    """Aggregate statistics over all entries."""

    total_entries: int
    sources: frozenset[str]
    names: frozenset[str]

    @property
    def unique_sources(self) -> int:
        return len(self.sources)

    @property
    def unique_names(self) -> int:
        return len(self.names)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary with sorted value lists."""
        return {
            "total_entries": self.total_entries,
            "unique_sources": self.unique_sources,
            "unique_names": self.unique_names,
            "sources": sorted(self.sources),
            "names": sorted(self.names),
        }


def is_location_update(transaction: str, name: str) -> bool:
    """Whether an entry declares a new location for its source."""
    return transaction == TRANSACTION_SET_LOCATION and name == LOCATION_NAME


def filter_entries(
    entries: Sequence[Entry],
    source: str | None = None,
    name: str | None = None,
) -> list[Entry]:
    """Keep entries whose source and name match exactly.

    An empty or missing filter matches everything.
    """
    return [
        e
        for e in entries
        if (not source or e.source == source) and (not name or e.name == name)
    ]


def paginate(entries: Sequence[Entry], limit: int, offset: int) -> list[Entry]:
    """Return entries[offset:offset + limit], clamping negative bounds to zero."""
    offset = max(offset, 0)
    limit = max(limit, 0)
    if offset >= len(entries):
        return []
    return list(entries[offset : offset + limit])


def list_page(
    entries: Sequence[Entry],
    limit: int,
    offset: int,
    source: str | None = None,
    name: str | None = None,
) -> EntryPage:
    """Filter, count and paginate in one pass over a scan.

    The page reports the bounds actually applied, after clamping.
    """
    limit = max(limit, 0)
    offset = max(offset, 0)
    matching = filter_entries(entries, source=source, name=name)
    return EntryPage(
        entries=paginate(matching, limit, offset),
        total=len(matching),
        limit=limit,
        offset=offset,
    )


def find_location(entries: Sequence[Entry], source: str) -> str | None:
    """Most recent declared location of a source.

    Walks the entries from newest to oldest and keeps the location update
    with the latest created_at. On equal created_at the later row wins.

    Returns:
        The location value, or None if the source never declared one
    """
    latest: Entry | None = None
    for entry in reversed(entries):
        if entry.source != source or not is_location_update(entry.transaction, entry.name):
            continue
        if latest is None or entry.created_at > latest.created_at:
            latest = entry
    return latest.value if latest is not None else None


def derive_location(
    entries: Sequence[Entry],
    transaction: str,
    name: str,
    value: str,
    source: str,
) -> str:
    """Location to stamp on a new entry.

    A location update carries its own value. Anything else inherits the
    latest location of its source, or "" if there is none.
    """
    if is_location_update(transaction, name):
        return value
    return find_location(entries, source) or ""


def compute_stats(entries: Sequence[Entry]) -> StoreStats:
    return StoreStats(
        total_entries=len(entries),
        sources=frozenset(e.source for e in entries),
        names=frozenset(e.name for e in entries),
    )
