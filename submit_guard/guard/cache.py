"""
Repeat submit cache with atomic check-and-mark.

In-memory and per process: instances behind a load balancer do not share
entries, so deduplication is best-effort across a fleet.

The key space is split over independent shards, each guarded by its own
lock. A check-and-mark holds exactly one shard lock, so unrelated keys on
different shards never wait on each other. Expired entries are dropped
lazily on lookup, by an amortized per-shard purge, and by `sweep()`.
"""

import threading
from typing import NamedTuple

from submit_guard.config import settings
from submit_guard.exceptions import ConfigurationError
from submit_guard.logging.config import get_logger
from submit_guard.utils.clock import Clock, MonotonicClock

logger = get_logger(__name__)


class CacheEntry(NamedTuple):
    """Last accepted submission for a key."""

    key: str
    accepted_at: float
    window: float


class _Shard:
    __slots__ = ("lock", "entries", "last_purge")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.entries: dict[str, CacheEntry] = {}
        self.last_purge: float | None = None


class DedupCache:
    """
    Concurrent map of fingerprint -> last accepted submission.

    Entries become removable once their age reaches the larger of their
    own window and `retention_seconds`; a live entry is never removed.
    """

    def __init__(
        self,
        default_window: float | None = None,
        retention_seconds: float | None = None,
        shard_count: int | None = None,
        purge_interval: float | None = None,
        clock: Clock | None = None,
    ) -> None:
        """
        Initialize the cache.

        Args:
            default_window: Window used when a caller passes none
                (default: GUARD_DEFAULT_WINDOW_SECONDS)
            retention_seconds: Minimum time to keep an entry
                (default: GUARD_RETENTION_SECONDS)
            shard_count: Number of lock stripes (default: GUARD_SHARD_COUNT)
            purge_interval: Seconds between amortized purges of one shard
                (default: GUARD_PURGE_INTERVAL_SECONDS)
            clock: Time source (default: monotonic)
        """
        self.default_window = self._validate_window(
            settings.guard_default_window_seconds
            if default_window is None
            else default_window
        )
        self.retention_seconds = (
            settings.guard_retention_seconds
            if retention_seconds is None
            else retention_seconds
        )
        if self.retention_seconds < 0:
            raise ConfigurationError(
                message="Retention must not be negative",
                details={"retention_seconds": self.retention_seconds},
            )
        count = settings.guard_shard_count if shard_count is None else shard_count
        if count < 1:
            raise ConfigurationError(
                message="Shard count must be at least 1",
                details={"shard_count": count},
            )
        self.purge_interval = (
            settings.guard_purge_interval_seconds
            if purge_interval is None
            else purge_interval
        )
        self.clock: Clock = clock or MonotonicClock()
        self._shards = tuple(_Shard() for _ in range(count))

    @staticmethod
    def _validate_window(window: float) -> float:
        if window <= 0:
            raise ConfigurationError(
                message="Window must be greater than zero",
                details={"window_seconds": window},
            )
        return window

    def _shard_for(self, key: str) -> _Shard:
        return self._shards[hash(key) % len(self._shards)]

    @staticmethod
    def _is_live(entry: CacheEntry, now: float) -> bool:
        return now - entry.accepted_at < entry.window

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.accepted_at >= max(entry.window, self.retention_seconds)

    def _purge(self, shard: _Shard, now: float) -> int:
        """Drop expired entries from a shard. Caller must hold shard.lock."""
        expired = [
            key for key, entry in shard.entries.items() if self._is_expired(entry, now)
        ]
        for key in expired:
            del shard.entries[key]
        shard.last_purge = now
        return len(expired)

    def try_accept(
        self, key: str, now: float | None = None, window: float | None = None
    ) -> bool:
        """
        Accept a submission unless the same key was accepted within the window.

        On acceptance the entry's timestamp becomes `now`. A rejection leaves
        the existing entry untouched, so repeated attempts do not extend the
        suppression. Of any number of concurrent callers for one key, exactly
        one is accepted.

        An entry suppresses its key for the window it was accepted under;
        `window` only applies to the entry written on acceptance. Lookup and
        purge therefore agree, and the answer never depends on when a purge
        last ran.

        Args:
            key: Request fingerprint
            now: Current time (default: cache clock)
            window: Suppression window for a newly accepted entry
                (default: default_window)

        Returns:
            True if accepted, False if it is a duplicate
        """
        window = self.default_window if window is None else self._validate_window(window)
        if now is None:
            now = self.clock.now()

        shard = self._shard_for(key)
        with shard.lock:
            if shard.last_purge is None or now - shard.last_purge >= self.purge_interval:
                self._purge(shard, now)

            entry = shard.entries.get(key)
            if entry is not None and self._is_live(entry, now):
                return False

            shard.entries[key] = CacheEntry(key, now, window)
            return True

    def remaining(self, key: str, now: float | None = None) -> float:
        """
        Seconds until `key` can be accepted again.

        Returns:
            0.0 if the key would be accepted now
        """
        if now is None:
            now = self.clock.now()

        shard = self._shard_for(key)
        with shard.lock:
            entry = shard.entries.get(key)
        if entry is None:
            return 0.0
        return max(0.0, entry.window - (now - entry.accepted_at))

    def sweep(self, now: float | None = None) -> int:
        """
        Remove every expired entry.

        Locks one shard at a time, so traffic on other shards continues.

        Returns:
            Number of entries removed
        """
        if now is None:
            now = self.clock.now()

        removed = 0
        for shard in self._shards:
            with shard.lock:
                removed += self._purge(shard, now)

        logger.debug(
            "Repeat submit cache swept",
            extra={"context": {"removed": removed, "remaining": len(self)}},
        )
        return removed

    def forget(self, key: str) -> bool:
        """
        Drop a key regardless of its age.

        Returns:
            True if an entry was removed
        """
        shard = self._shard_for(key)
        with shard.lock:
            return shard.entries.pop(key, None) is not None

    def clear(self) -> None:
        """Clear all entries (useful for testing)."""
        for shard in self._shards:
            with shard.lock:
                shard.entries.clear()
                shard.last_purge = None

    def __len__(self) -> int:
        total = 0
        for shard in self._shards:
            with shard.lock:
                total += len(shard.entries)
        return total
