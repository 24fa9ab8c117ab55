"""In-memory parse cache keyed by file identity."""

from __future__ import annotations

import hashlib
import logging
import os
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from smith_validation.errors import CacheError

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

# File signature: (mtime_ns, size, sha256 or None)
Signature = tuple[int, int, str | None]


@dataclass
class CacheEntry:
    """A cached parse result with the file signature it was built from."""

    value: Any
    signature: Signature | None
    created_at: float


@dataclass(frozen=True)
class CacheStatistics:
    hits: int
    misses: int
    size: int
    max_entries: int | None

    @property
    def hit_rate(self) -> float:
        requests = self.hits + self.misses
        return self.hits / requests if requests else 0.0


@dataclass
class _KeyLock:
    """Per-path loader lock, dropped once no caller is waiting on it."""

    lock: threading.Lock = field(default_factory=threading.Lock)
    waiters: int = 0


def _normalize(path: str | Path) -> str:
    return os.path.abspath(os.fspath(path))


class ParseCache:
    """Memoises parsed files so repeated runs do not re-parse unchanged content.

    Staleness is detected from ``(mtime_ns, size)`` and, with
    *hash_contents*, a SHA-256 of the file bytes.  A changed signature is a
    miss and drops the entry.  With *max_entries* the cache evicts the least
    recently used entry; by default it is unbounded.

    Concurrent :meth:`get_or_load` calls for the same uncached path run the
    loader exactly once; the others wait and then read the cached value.
    """

    def __init__(
        self,
        *,
        max_entries: int | None = None,
        check_signature: bool = True,
        hash_contents: bool = False,
    ) -> None:
        if max_entries is not None and max_entries < 1:
            msg = "max_entries must be positive"
            raise ValueError(msg)
        self.max_entries = max_entries
        self.check_signature = check_signature
        self.hash_contents = hash_contents
        self._store: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()
        self._key_locks: dict[str, _KeyLock] = {}
        self._hits = 0
        self._misses = 0

    # -- signatures ------------------------------------------------------------

    def _signature(self, key: str) -> Signature | None:
        if not self.check_signature:
            return None
        try:
            stat = os.stat(key)
            digest: str | None = None
            if self.hash_contents:
                digest = hashlib.sha256(Path(key).read_bytes()).hexdigest()
        except OSError as exc:
            msg = f"cannot stat {key}: {exc}"
            raise CacheError(msg) from exc
        return (stat.st_mtime_ns, stat.st_size, digest)

    # -- public API ------------------------------------------------------------

    def get(self, path: str | Path) -> Any | None:
        """Return the cached value for *path*, or ``None`` on a miss.

        Never parses.  Stale entries are dropped and count as misses.
        """
        key = _normalize(path)
        with self._lock:
            entry = self._store.get(key)

        stale = False
        if entry is not None and entry.signature is not None:
            try:
                stale = self._signature(key) != entry.signature
            except CacheError as exc:
                logger.debug("Cache miss for %s: %s", key, exc)
                stale = True

        with self._lock:
            if stale:
                logger.debug("Cache entry for %s is stale", key)
                if self._store.get(key) is entry:
                    del self._store[key]
                entry = None
            if entry is None:
                self._misses += 1
                return None
            self._store.move_to_end(key)
            self._hits += 1
            return entry.value

    def put(self, value: Any, path: str | Path) -> None:
        """Store *value* for *path* with the file's current signature."""
        key = _normalize(path)
        self._store_entry(key, value, self._signature_or_none(key))

    def _signature_or_none(self, key: str) -> Signature | None:
        try:
            return self._signature(key)
        except CacheError as exc:
            # No file on disk to compare against; the entry lives until invalidated.
            logger.debug("Caching %s without signature: %s", key, exc)
            return None

    def _store_entry(self, key: str, value: Any, signature: Signature | None) -> None:
        with self._lock:
            self._store[key] = CacheEntry(
                value=value, signature=signature, created_at=time.monotonic()
            )
            self._store.move_to_end(key)
            if self.max_entries is not None:
                while len(self._store) > self.max_entries:
                    evicted, _ = self._store.popitem(last=False)
                    logger.debug("Evicted %s from parse cache", evicted)

    def get_or_load(self, path: str | Path, loader: Callable[[], Any]) -> Any:
        """Return the cached value or run *loader* once and cache its result.

        The signature is taken before *loader* runs, so a file rewritten
        while it is being parsed is seen as stale on the next lookup.
        Exceptions from *loader* propagate and nothing is cached.
        """
        key = _normalize(path)
        value = self.get(key)
        if value is not None:
            return value

        with self._lock:
            slot = self._key_locks.setdefault(key, _KeyLock())
            slot.waiters += 1
        try:
            with slot.lock:
                # Another thread may have loaded it while we waited.
                with self._lock:
                    entry = self._store.get(key)
                if entry is not None:
                    return entry.value
                signature = self._signature_or_none(key)
                value = loader()
                self._store_entry(key, value, signature)
                return value
        finally:
            with self._lock:
                slot.waiters -= 1
                if slot.waiters == 0 and self._key_locks.get(key) is slot:
                    del self._key_locks[key]

    def invalidate(self, path: str | Path) -> None:
        key = _normalize(path)
        with self._lock:
            self._store.pop(key, None)

    def clear(self) -> None:
        """Drop every entry and reset statistics."""
        with self._lock:
            self._store.clear()
            self._key_locks.clear()
            self._hits = 0
            self._misses = 0

    def statistics(self) -> CacheStatistics:
        with self._lock:
            return CacheStatistics(
                hits=self._hits,
                misses=self._misses,
                size=len(self._store),
                max_entries=self.max_entries,
            )

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, (str, Path)):
            return False
        with self._lock:
            return _normalize(path) in self._store

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)
