"""
Device log store - durable telemetry sink for small devices.

Arduino/ESP boards and scripts submit timestamped readings over HTTP; the
server appends them to a single CSV file and serves them back filtered,
paginated and aggregated.

Architecture:
    ┌─────────────┐     ┌─────────────┐     ┌────────────┐     ┌─────────────┐
    │   Device    │────▶│  HTTP API   │────▶│ LogService │────▶│ RecordStore │
    │ (JSON/query)│     │  (FastAPI)  │     │  (query)   │     │    (CSV)    │
    └─────────────┘     └─────────────┘     └────────────┘     └─────────────┘

Invariants:
    - The CSV file is the source of truth, nothing is cached
    - Entries are immutable once appended
    - Ids are strictly increasing until the store is cleared
    - Each entry carries the location its source had when it was appended

How to change safely:
    - Layout changes need a migration rule in store/record_store.py
    - Keep the HTTP endpoints backward compatible, devices are rarely reflashed

Version: see _version.py.
"""

from ._version import __version__

__all__ = ["__version__"]
