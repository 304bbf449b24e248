"""
CSV record store for device log entries.

This module owns the on-disk log file:
- Header detection and destructive migration of obsolete layouts
- Appending entries with ids recomputed from the live file
- Full scans returning every decodable entry in append order
- Truncating the file back to its header

The file is the single source of truth. Nothing is cached between calls,
so a file truncated by clear() or replaced by migration is always seen as is.

Invariants:
    - Every row has exactly 8 fields in COLUMNS order
    - Ids are max(existing ids) + 1, assigned under the write lock
    - A row is flushed (and fsynced when enabled) before the write lock is released
    - Obsolete files are replaced, never converted
    - A record left incomplete by an interrupted write is truncated before the next append
    - File work started under the lock finishes before the lock is released, even on cancellation

How to change safely:
    - New columns go at the end and need a new migration rule in _header_is_current
    - Keep the timestamp format readable by parse_timestamp
    - Test against files written by previous releases

File layout:
    id,transaction,datetime,name,value,source,location,created_at
    1,measurement,2024-05-01T10:00:00Z,temperature,21.5,arduino-1,kitchen,2024-05-01T10:00:02Z
"""

from __future__ import annotations

import asyncio
import csv
import logging
import os
import tempfile
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, TypeVar

from .codec import ZERO_TIME, format_timestamp, parse_timestamp
from .errors import MalformedRowError, StorageError
from .rwlock import ReadWriteLock

logger = logging.getLogger(__name__)

_T = TypeVar("_T")

COLUMNS: tuple[str, ...] = (
    "id",
    "transaction",
    "datetime",
    "name",
    "value",
    "source",
    "location",
    "created_at",
)

# Index of the column whose absence marks the previous 7-column layout
LOCATION_COLUMN_INDEX = 6


class ParseMode(Enum):
    """How to treat rows whose id or timestamps do not parse."""

    LENIENT = "lenient"
    STRICT = "strict"


class InitOutcome(Enum):
    """What initialize() had to do to reach the current layout."""

    CREATED = "created"
    MIGRATED = "migrated"
    EXISTING = "existing"


def _local_now() -> datetime:
    return datetime.now().astimezone()


@dataclass(frozen=True)
class Entry:
    """A single persisted log entry.

    Attributes:
        id: Store-assigned identifier, strictly increasing
        transaction: Semantic tag (measurement, set_location, note, ...)
        datetime: Client-supplied observation time
        name: Measured quantity or field name
        value: Payload as text
        source: Emitting device or client
        location: Location of the source when the entry was appended
        created_at: Server time of the append
    """

    id: int
    transaction: str
    datetime: datetime
    name: str
    value: str
    source: str
    location: str
    created_at: datetime

    def to_row(self) -> list[str]:
        """Encode as a CSV row in COLUMNS order."""
        return [
            str(self.id),
            self.transaction,
            format_timestamp(self.datetime),
            self.name,
            self.value,
            self.source,
            self.location,
            format_timestamp(self.created_at),
        ]

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "id": self.id,
            "transaction": self.transaction,
            "datetime": format_timestamp(self.datetime),
            "name": self.name,
            "value": self.value,
            "source": self.source,
            "location": self.location,
            "created_at": format_timestamp(self.created_at),
        }


def _parse_field(
    raw: str,
    parse: Callable[[str], Any],
    default: Any,
    column: str,
    line_number: int,
    row: list[str],
    mode: ParseMode,
) -> Any:
    try:
        return parse(raw)
    except ValueError:
        if mode is ParseMode.STRICT:
            raise MalformedRowError(
                f"Invalid {column} on line {line_number}: {raw!r}",
                line_number=line_number,
                row=row,
            ) from None
        logger.debug(f"Defaulting unparseable {column} on line {line_number}: {raw!r}")
        return default


def decode_row(
    row: list[str],
    line_number: int,
    mode: ParseMode = ParseMode.LENIENT,
) -> Entry | None:
    """Decode one CSV row.

    Args:
        row: Raw CSV fields
        line_number: 1-based line number, used in errors and logs
        mode: Parse mode for id and timestamp fields

    Returns:
        The decoded Entry, or None if the row has too few fields (lenient mode)

    Raises:
        MalformedRowError: In strict mode, for short rows or unparseable fields
    """
    if len(row) < len(COLUMNS):
        if mode is ParseMode.STRICT:
            raise MalformedRowError(
                f"Row on line {line_number} has {len(row)} fields, expected {len(COLUMNS)}",
                line_number=line_number,
                row=row,
            )
        logger.debug(f"Skipping short row on line {line_number} ({len(row)} fields)")
        return None

    return Entry(
        id=_parse_field(row[0], int, 0, "id", line_number, row, mode),
        transaction=row[1],
        datetime=_parse_field(
            row[2], parse_timestamp, ZERO_TIME, "datetime", line_number, row, mode
        ),
        name=row[3],
        value=row[4],
        source=row[5],
        location=row[6],
        created_at=_parse_field(
            row[7], parse_timestamp, ZERO_TIME, "created_at", line_number, row, mode
        ),
    )


def _header_is_current(header: list[str]) -> bool:
    if len(header) < len(COLUMNS):
        return False
    return header[LOCATION_COLUMN_INDEX] == "location"


def complete_prefix_length(data: bytes) -> int:
    """Length of the longest prefix of data made of complete CSV records.

    A record ends at a newline preceded by an even number of quote
    characters. Escaped quotes ("") count twice and keep the parity.
    """
    end = 0
    position = 0
    quotes = 0
    for line in data.split(b"\n")[:-1]:
        position += len(line) + 1
        quotes += line.count(b'"')
        if quotes % 2 == 0:
            end = position
    return end


class RecordStore:
    """Append-only CSV store for log entries.

    Provides:
    - initialize(): create or migrate the file
    - append(): add one entry and return its id
    - read_all(): full scan in append order
    - clear(): drop every entry, keep the header

    Thread safety:
        All public methods are coroutines guarded by a ReadWriteLock scoped
        to this instance. Reads share the lock, append/clear/initialize take
        it exclusively. File I/O runs in worker threads while the lock is held.
        Two stores (or two processes) on the same path are not coordinated.

    Example:
        >>> store = RecordStore("/var/lib/devicelog/logger.csv")
        >>> await store.initialize()
        >>> entry_id = await store.append(
        ...     datetime_=datetime.now(timezone.utc),
        ...     transaction="measurement",
        ...     name="temperature",
        ...     value="21.5",
        ...     source="arduino-1",
        ...     location="kitchen",
        ... )
    """

    def __init__(
        self,
        file_path: str | os.PathLike[str],
        parse_mode: ParseMode = ParseMode.LENIENT,
        fsync: bool = True,
        clock: Callable[[], datetime] = _local_now,
    ) -> None:
        """Initialize the record store.

        Args:
            file_path: Path of the CSV file
            parse_mode: How to treat rows with unparseable id/timestamps
            fsync: fsync the file after every append and clear
            clock: Source of created_at timestamps
        """
        self.file_path = Path(file_path)
        self.parse_mode = parse_mode
        self.fsync = fsync
        self._clock = clock
        self._lock = ReadWriteLock()

    # -- public API --------------------------------------------------------

    async def initialize(self) -> InitOutcome:
        """Bring the file to the current layout.

        Creates the file if missing. Replaces it with an empty file if its
        header is unreadable or from an obsolete layout.

        Returns:
            What had to be done

        Raises:
            StorageError: If the file cannot be inspected or written
        """
        async with self._lock.write():
            return await self._run_blocking(self._initialize_sync)

    async def read_all(self) -> list[Entry]:
        """Return every decodable entry in file order.

        Raises:
            StorageError: If the file cannot be read
            MalformedRowError: In strict mode, on the first bad row
        """
        async with self._lock.read():
            return await self._run_blocking(self._read_all_sync)

    async def append(
        self,
        datetime_: datetime,
        transaction: str,
        name: str,
        value: str,
        source: str,
        location: str,
    ) -> int:
        """Append an entry with a pre-resolved location.

        Returns:
            The id assigned to the new entry

        Raises:
            StorageError: If the file cannot be read or written
        """
        return await self.append_resolved(
            datetime_, transaction, name, value, source, lambda _entries: location
        )

    async def append_resolved(
        self,
        datetime_: datetime,
        transaction: str,
        name: str,
        value: str,
        source: str,
        resolve_location: Callable[[Sequence[Entry]], str],
    ) -> int:
        """Append an entry whose location is derived from the current entries.

        resolve_location is called with the result of the same scan used for
        id assignment, while the write lock is held, so no other append can
        change the answer between resolution and write.

        Returns:
            The id assigned to the new entry

        Raises:
            StorageError: If the file cannot be read or written
        """
        async with self._lock.write():
            entry = await self._run_blocking(
                self._append_sync, datetime_, transaction, name, value, source, resolve_location
            )

        logger.debug(
            "Appended entry",
            extra={
                "entry_id": entry.id,
                "transaction": entry.transaction,
                "entry_name": entry.name,
                "source": entry.source,
            },
        )
        return entry.id

    async def clear(self) -> None:
        """Remove all entries, keeping the header.

        Raises:
            StorageError: If the file cannot be replaced
        """
        async with self._lock.write():
            await self._run_blocking(self._write_header_only, "clear")
        logger.info(f"Cleared log file: {self.file_path}")

    async def _run_blocking(self, func: Callable[..., _T], *args: Any) -> _T:
        """Run blocking file work in a thread and wait for it to finish.

        A worker thread cannot be interrupted. If the caller is cancelled,
        the cancellation is re-raised only after the thread is done, so the
        lock held by the caller stays held while the file is being touched.
        """
        task = asyncio.ensure_future(asyncio.to_thread(func, *args))
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            while not task.done():
                try:
                    await asyncio.wait({task})
                except asyncio.CancelledError:
                    continue
            if not task.cancelled() and task.exception() is not None:
                logger.warning(
                    f"File operation failed after cancellation: {task.exception()}",
                    extra={"path": str(self.file_path)},
                )
            raise

    # -- blocking helpers, called with the lock held -----------------------

    def _initialize_sync(self) -> InitOutcome:
        try:
            exists = self.file_path.exists()
        except OSError as e:
            raise StorageError(
                f"Failed to check log file: {e}", path=str(self.file_path), operation="initialize"
            ) from e

        if not exists:
            self._write_header_only("initialize")
            logger.info(f"Created log file: {self.file_path}")
            return InitOutcome.CREATED

        header = self._read_header()
        if header is not None and _header_is_current(header):
            return InitOutcome.EXISTING

        logger.warning(
            "Obsolete log file layout, recreating",
            extra={"path": str(self.file_path), "header": header},
        )
        self._write_header_only("migrate")
        return InitOutcome.MIGRATED

    def _read_header(self) -> list[str] | None:
        """Return the header row, or None if it cannot be parsed."""
        try:
            with open(self.file_path, newline="", encoding="utf-8") as f:
                return next(csv.reader(f), None)
        except (csv.Error, UnicodeDecodeError):
            return None
        except OSError as e:
            raise StorageError(
                f"Failed to open log file: {e}", path=str(self.file_path), operation="initialize"
            ) from e

    def _iter_rows(self, f: Any) -> Iterator[tuple[int, list[str]]]:
        reader = csv.reader(f)
        while True:
            try:
                row = next(reader)
            except StopIteration:
                return
            except csv.Error as e:
                if self.parse_mode is ParseMode.STRICT:
                    raise MalformedRowError(
                        f"Unreadable row on line {reader.line_num}: {e}",
                        line_number=reader.line_num,
                    ) from e
                logger.debug(f"Skipping unreadable row on line {reader.line_num}: {e}")
                continue
            yield reader.line_num, row

    def _read_all_sync(self) -> list[Entry]:
        entries: list[Entry] = []
        try:
            with open(self.file_path, newline="", encoding="utf-8", errors="replace") as f:
                for line_number, row in self._iter_rows(f):
                    if line_number == 1:
                        continue  # header
                    entry = decode_row(row, line_number, self.parse_mode)
                    if entry is not None:
                        entries.append(entry)
        except OSError as e:
            raise StorageError(
                f"Failed to read log file: {e}", path=str(self.file_path), operation="read"
            ) from e
        return entries

    def _append_sync(
        self,
        datetime_: datetime,
        transaction: str,
        name: str,
        value: str,
        source: str,
        resolve_location: Callable[[Sequence[Entry]], str],
    ) -> Entry:
        size = self._repair_tail()
        entries = self._read_all_sync()
        max_id = max((e.id for e in entries), default=0)

        entry = Entry(
            id=max_id + 1,
            transaction=transaction,
            datetime=datetime_,
            name=name,
            value=value,
            source=source,
            location=resolve_location(entries),
            created_at=self._clock(),
        )

        try:
            with open(self.file_path, "a", newline="", encoding="utf-8") as f:
                writer = csv.writer(f, lineterminator="\n")
                if size == 0:
                    writer.writerow(COLUMNS)
                writer.writerow(entry.to_row())
                f.flush()
                if self.fsync:
                    os.fsync(f.fileno())
        except OSError as e:
            raise StorageError(
                f"Failed to append entry: {e}", path=str(self.file_path), operation="append"
            ) from e

        return entry

    def _repair_tail(self) -> int:
        """Truncate a record left incomplete by an interrupted write.

        Returns:
            The file size after repair
        """
        try:
            with open(self.file_path, "r+b") as f:
                data = f.read()
                size = complete_prefix_length(data)
                if size < len(data):
                    tail = data[size:][:80].decode("utf-8", "replace")
                    logger.warning(
                        f"Dropping {len(data) - size} bytes of incomplete record",
                        extra={"path": str(self.file_path), "tail": tail},
                    )
                    f.truncate(size)
                    if self.fsync:
                        os.fsync(f.fileno())
        except OSError as e:
            raise StorageError(
                f"Failed to repair log file tail: {e}",
                path=str(self.file_path),
                operation="repair",
            ) from e
        return size

    def _write_header_only(self, operation: str) -> None:
        """Atomically replace the file with a header-only file."""
        directory = self.file_path.parent
        tmp_path: str | None = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                dir=directory,
                prefix=f".{self.file_path.name}.",
                suffix=".tmp",
                newline="",
                encoding="utf-8",
                delete=False,
            ) as tmp_file:
                tmp_path = tmp_file.name
                csv.writer(tmp_file, lineterminator="\n").writerow(COLUMNS)
                tmp_file.flush()
                if self.fsync:
                    os.fsync(tmp_file.fileno())
            os.chmod(tmp_path, 0o644)
            os.replace(tmp_path, self.file_path)
            tmp_path = None
        except OSError as e:
            raise StorageError(
                f"Failed to write log file: {e}", path=str(self.file_path), operation=operation
            ) from e
        finally:
            if tmp_path is not None:
                Path(tmp_path).unlink(missing_ok=True)
