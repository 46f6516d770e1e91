"""
Resource snapshot cache for CloudRecon analysis runs.

The orchestrator runs three analyzers concurrently over the same
inventory. SnapshotCache makes sure the store is read once per call and
that every analyzer sees the same snapshot.
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from enum import Enum
from typing import Any, Iterator

from cloudrecon.analysis.errors import SnapshotFetchError
from cloudrecon.models import ResourceCollection
from cloudrecon.storage.base import ResourceStore

logger = logging.getLogger(__name__)

SNAPSHOT_KEY = "resources_all"


class CachePolicy(Enum):
    """How analyzers obtain their resource snapshot."""

    PER_CALL = "per_call"  # One shared snapshot per orchestrator call
    NONE = "none"  # Every analyzer reads the store itself


class ReadWriteLock:
    """
    Lock allowing concurrent readers and exclusive writers.

    A waiting writer blocks new readers so that writers are not starved.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._writers_waiting += 1
            while self._writer or self._readers:
                self._cond.wait()
            self._writers_waiting -= 1
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


class SnapshotCache:
    """
    Short-lived cache of the full resource inventory.

    Entries expire after timeout_seconds. The cache is meant to live for a
    single orchestrator call; the orchestrator discards it afterwards.
    """

    def __init__(self, store: ResourceStore, timeout_seconds: float = 300.0) -> None:
        """
        Initialize the cache.

        Args:
            store: Resource store to read from on a miss
            timeout_seconds: Maximum age of a cached snapshot
        """
        self._store = store
        self._timeout = timeout_seconds
        self._lock = ReadWriteLock()
        self._entries: dict[str, tuple[float, ResourceCollection]] = {}
        self._hits = 0
        self._misses = 0
        self._counter_lock = threading.Lock()

    def _lookup(self) -> ResourceCollection | None:
        entry = self._entries.get(SNAPSHOT_KEY)
        if entry is None:
            return None
        stored_at, snapshot = entry
        if time.monotonic() - stored_at > self._timeout:
            return None
        return snapshot

    def get_snapshot(self) -> ResourceCollection:
        """
        Return the cached snapshot, reading the store on a miss.

        Concurrent callers that miss at the same time trigger a single
        store read.

        Returns:
            The resource snapshot

        Raises:
            SnapshotFetchError: If the store read fails
        """
        with self._lock.read_locked():
            snapshot = self._lookup()
        if snapshot is not None:
            with self._counter_lock:
                self._hits += 1
            return snapshot

        with self._lock.write_locked():
            snapshot = self._lookup()
            if snapshot is not None:
                with self._counter_lock:
                    self._hits += 1
                return snapshot

            with self._counter_lock:
                self._misses += 1
            snapshot = fetch_snapshot(self._store)
            self._entries[SNAPSHOT_KEY] = (time.monotonic(), snapshot)
            return snapshot

    def clear(self) -> None:
        """Drop every cached entry."""
        with self._lock.write_locked():
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock.read_locked():
            return len(self._entries)

    def stats(self) -> dict[str, Any]:
        """Return cache statistics."""
        with self._lock.read_locked():
            size = len(self._entries)
        with self._counter_lock:
            return {
                "cache_size": size,
                "hits": self._hits,
                "misses": self._misses,
                "timeout_seconds": self._timeout,
            }


def fetch_snapshot(store: ResourceStore) -> ResourceCollection:
    """
    Read every resource from the store.

    Args:
        store: Resource store to read

    Returns:
        The resource snapshot

    Raises:
        SnapshotFetchError: If the store read fails for any reason
    """
    try:
        snapshot = store.get_resources()
    except Exception as e:
        logger.error(f"Failed to fetch resource snapshot: {e}")
        raise SnapshotFetchError(f"Failed to fetch resources: {e}") from e

    logger.debug(f"Fetched snapshot of {len(snapshot)} resources")
    return snapshot
