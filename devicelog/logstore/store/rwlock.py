"""
Reader/writer lock for asyncio.

Many readers may hold the lock together; a writer holds it alone. Writers
are preferred: once a writer is waiting, new readers queue behind it so a
steady stream of reads cannot starve appends.

Invariants:
    - writing implies readers == 0
    - A reader never waits behind another reader, only behind a writer

How to change safely:
    - The lock is bound to the event loop that first uses it
    - It does not protect against other processes
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class ReadWriteLock:
    """Writer-preferring reader/writer lock.

    Example:
        >>> lock = ReadWriteLock()
        >>> async with lock.read():
        ...     ...
        >>> async with lock.write():
        ...     ...
    """

    def __init__(self) -> None:
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writing = False
        self._waiting_writers = 0

    @property
    def readers(self) -> int:
        """Number of readers currently holding the lock."""
        return self._readers

    @property
    def writing(self) -> bool:
        """Whether a writer currently holds the lock."""
        return self._writing

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        """Hold the lock in shared mode."""
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writing and self._waiting_writers == 0)
            self._readers += 1
        try:
            yield
        finally:
            async with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @asynccontextmanager
    async def write(self) -> AsyncIterator[None]:
        """Hold the lock in exclusive mode."""
        async with self._cond:
            self._waiting_writers += 1
            try:
                await self._cond.wait_for(lambda: not self._writing and self._readers == 0)
            finally:
                self._waiting_writers -= 1
                # Readers parked behind this writer must re-check if it gave up
                self._cond.notify_all()
            self._writing = True
        try:
            yield
        finally:
            async with self._cond:
                self._writing = False
                self._cond.notify_all()
