"""Unit tests for the collection readers-writer lock."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
import threading
import time

import pytest

from docindex_server.domain.filters import Equals, Filter
from docindex_server.engine.errors import UniqueConstraintViolation
from docindex_server.engine.locking import ReadWriteLock


def _wait_until(predicate, timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached in time")
        time.sleep(0.001)


@pytest.mark.unit
def test_readers_share_the_lock():
    lock = ReadWriteLock()

    with lock.read(), lock.read():
        assert lock.readers == 2
    assert lock.readers == 0


@pytest.mark.unit
def test_writer_excludes_readers():
    lock = ReadWriteLock()
    entered = threading.Event()

    def reader():
        with lock.read():
            entered.set()

    with lock.write():
        assert lock.write_locked
        thread = threading.Thread(target=reader)
        thread.start()
        assert not entered.wait(0.05)
    thread.join(2)
    assert entered.is_set()


@pytest.mark.unit
def test_waiting_writer_blocks_new_readers():
    lock = ReadWriteLock()
    order: list[str] = []

    def write():
        with lock.write():
            order.append("write")

    def read():
        with lock.read():
            order.append("read")

    lock.acquire_read()
    writer = threading.Thread(target=write)
    writer.start()
    _wait_until(lambda: lock._waiting_writers == 1)
    reader = threading.Thread(target=read)
    reader.start()
    time.sleep(0.05)
    assert order == []

    lock.release_read()
    writer.join(2)
    reader.join(2)
    assert order == ["write", "read"]


@pytest.mark.unit
def test_misuse_raises():
    lock = ReadWriteLock()

    with pytest.raises(RuntimeError):
        lock.release_read()
    with pytest.raises(RuntimeError):
        lock.release_write()

    with lock.write():
        with pytest.raises(RuntimeError, match="not reentrant"):
            lock.acquire_write()


@pytest.mark.unit
def test_concurrent_inserts_of_the_same_username_admit_one(collection, make_person):
    def attempt(n: int) -> str:
        try:
            collection.insert(make_person("ada", email=f"ada{n}@example.com"))
        except UniqueConstraintViolation:
            return "duplicate"
        return "created"

    with ThreadPoolExecutor(max_workers=8) as pool:
        outcomes = list(pool.map(attempt, range(16)))

    assert outcomes.count("created") == 1
    assert outcomes.count("duplicate") == 15
    assert collection.count() == 1
    assert collection.verify() == []


@pytest.mark.unit
def test_queries_never_observe_half_applied_writes(collection, make_person):
    stop = threading.Event()
    mismatches: list[int] = []

    def reader():
        query = Filter.of(Equals(field="tags", value="red"))
        while not stop.is_set():
            with collection.store.lock.read():
                indexed = len(collection.store.indexes["tags_1"].structure.lookup(("red",)))
                stored = sum(1 for doc in collection.store.view().values() if "red" in doc.get("tags", []))
            if indexed != stored:
                mismatches.append(indexed - stored)
            collection.find(query)

    thread = threading.Thread(target=reader)
    thread.start()
    try:
        for n in range(200):
            collection.insert(make_person(f"user{n}", tags=["red"]))
    finally:
        stop.set()
        thread.join(5)

    assert mismatches == []
    assert len(collection.find(Filter.of(Equals(field="tags", value="red")))) == 200
