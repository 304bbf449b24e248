"""
Store module for the device log - persistence, querying and aggregation.

This module handles:
- The CSV record store (layout migration, append, scan, clear)
- The reader/writer lock guarding the file
- Filtering, pagination, location resolution and statistics

Invariants:
    - Reads share the lock, appends and clears are exclusive
    - Every operation re-reads the file

How to change safely:
    - Keep query.py free of I/O
    - Add new operations to LogService, not to the API layer
"""

from .codec import encode_value, format_timestamp, parse_client_datetime, parse_timestamp
from .errors import EntryValidationError, LogStoreError, MalformedRowError, StorageError
from .query import EntryPage, StoreStats
from .record_store import COLUMNS, Entry, InitOutcome, ParseMode, RecordStore
from .rwlock import ReadWriteLock
from .service import LogService

__all__ = [
    "COLUMNS",
    "Entry",
    "EntryPage",
    "EntryValidationError",
    "InitOutcome",
    "LogService",
    "LogStoreError",
    "MalformedRowError",
    "ParseMode",
    "ReadWriteLock",
    "RecordStore",
    "StorageError",
    "StoreStats",
    "encode_value",
    "format_timestamp",
    "parse_client_datetime",
    "parse_timestamp",
]
