"""
Per-record similarity cache.

Holds, for each record key, the keys found similar to it in the most
recent detection run. Lets a run skip pairs whose relation is already
known and lets callers ask "what is similar to X" without rerunning the
pairwise pass.

Invalidated wholesale with clear() at the start of every run: no partial
invalidation, no TTL, no persistence.
"""

import threading
from typing import Dict, List, Set

import structlog

from musicdedup.models.record import RecordKey, sort_key
from musicdedup.observability.metrics import CACHE_OPERATIONS

logger = structlog.get_logger()

DEFAULT_STRIPES = 64


class SimilarityCache:
    """
    Thread-safe symmetric relation cache.

    Entries are guarded by a fixed array of lock stripes selected by key
    hash. Inserts are idempotent, so concurrent writers need no ordering.
    """

    def __init__(self, stripes: int = DEFAULT_STRIPES):
        if stripes < 1:
            raise ValueError("stripes must be >= 1")
        self._entries: Dict[RecordKey, Set[RecordKey]] = {}
        self._locks = [threading.Lock() for _ in range(stripes)]
        # Guards creation of new entry sets
        self._entries_lock = threading.Lock()

    def _lock_for(self, key: RecordKey) -> threading.Lock:
        return self._locks[hash(key) % len(self._locks)]

    def _entry(self, key: RecordKey) -> Set[RecordKey]:
        entry = self._entries.get(key)
        if entry is None:
            with self._entries_lock:
                entry = self._entries.setdefault(key, set())
        return entry

    def get(self, key: RecordKey) -> List[RecordKey]:
        """
        Get keys similar to a record.

        Args:
            key: Record key

        Returns:
            Sorted copy of related keys (empty when unknown)
        """
        entry = self._entries.get(key)
        if entry is None:
            CACHE_OPERATIONS.labels(operation="miss").inc()
            return []
        with self._lock_for(key):
            related = list(entry)
        CACHE_OPERATIONS.labels(operation="hit").inc()
        return sorted(related, key=sort_key)

    def put(self, key: RecordKey, related_key: RecordKey) -> None:
        """
        Record that two records are similar (both directions).

        Args:
            key: First record key
            related_key: Second record key
        """
        if key == related_key:
            return
        for owner, other in ((key, related_key), (related_key, key)):
            entry = self._entry(owner)
            with self._lock_for(owner):
                entry.add(other)
        CACHE_OPERATIONS.labels(operation="set").inc()

    def contains(self, key: RecordKey, related_key: RecordKey) -> bool:
        """Check whether either record already lists the other."""
        for owner, other in ((key, related_key), (related_key, key)):
            entry = self._entries.get(owner)
            if entry is None:
                continue
            with self._lock_for(owner):
                if other in entry:
                    return True
        return False

    def clear(self) -> None:
        """Drop every entry"""
        for lock in self._locks:
            lock.acquire()
        try:
            with self._entries_lock:
                size = len(self._entries)
                self._entries = {}
        finally:
            for lock in reversed(self._locks):
                lock.release()
        logger.debug("similarity_cache_cleared", entries_dropped=size)

    def snapshot(self) -> Dict[RecordKey, List[RecordKey]]:
        """Copy of the whole cache, related keys sorted"""
        return {key: self.get(key) for key in list(self._entries.keys())}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries
