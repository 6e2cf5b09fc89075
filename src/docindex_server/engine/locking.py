"""Readers-writer lock guarding one collection.

Readers share the lock; a writer holds it exclusively for the whole
validate-check-write-index sequence, so a reader sees either the state
before a write or the state after it. Waiting writers block new readers,
which keeps a steady stream of queries from starving inserts.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
import threading


class ReadWriteLock:
    """Writer-preferring readers-writer lock built on ``threading.Condition``."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer: int | None = None
        self._waiting_writers = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer is not None or self._waiting_writers:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            if self._readers <= 0:
                raise RuntimeError("release_read() called without a matching acquire_read()")
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        me = threading.get_ident()
        with self._cond:
            if self._writer == me:
                raise RuntimeError("ReadWriteLock is not reentrant")
            self._waiting_writers += 1
            try:
                while self._writer is not None or self._readers:
                    self._cond.wait()
            finally:
                self._waiting_writers -= 1
            self._writer = me

    def release_write(self) -> None:
        with self._cond:
            if self._writer != threading.get_ident():
                raise RuntimeError("release_write() called by a thread that does not hold the lock")
            self._writer = None
            self._cond.notify_all()

    @contextmanager
    def read(self) -> Iterator[None]:
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write(self) -> Iterator[None]:
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()

    @property
    def readers(self) -> int:
        return self._readers

    @property
    def write_locked(self) -> bool:
        return self._writer is not None
