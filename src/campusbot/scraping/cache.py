"""
Cache Module - In-memory key/value cache with per-entry expiry.
===============================================================

ExpiringCache holds aggregated results keyed by query. Entries expire
after their TTL; a bounded size evicts the oldest-created entry when a
new key arrives at capacity. A background asyncio task sweeps expired
entries and must be started and stopped with the owning component.

All mutation goes through one threading.Lock.
"""

import asyncio
import fnmatch
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

from pydantic import BaseModel

from campusbot.shared.logging import get_logger
from campusbot.shared.utils import load_json, save_json

logger = get_logger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Data Classes
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class CacheEntry:
    """A cached value with its creation and expiry times (epoch seconds)."""

    value: Any
    created_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


@dataclass
class CacheStats:
    """Point-in-time cache statistics."""

    total: int = 0
    valid: int = 0
    expired: int = 0
    max_size: int = 0
    default_ttl: float = 0.0
    hits: int = 0
    misses: int = 0
    evictions: int = 0

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0


# ─────────────────────────────────────────────────────────────────────────────
# Cache Class
# ─────────────────────────────────────────────────────────────────────────────


class ExpiringCache:
    """
    Bounded TTL cache with a background sweep.

    Example:
        >>> cache = ExpiringCache(default_ttl=60)
        >>> cache.set("notice:신촌:20", result)
        >>> cache.get("notice:신촌:20") is result
        True
    """

    def __init__(
        self,
        default_ttl: float = 1800.0,
        max_size: int = 1000,
        cleanup_interval: float = 300.0,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the cache.

        Args:
            default_ttl: TTL in seconds when set() is given none
            max_size: Maximum number of entries
            cleanup_interval: Seconds between background sweeps
            clock: Time source (injected in tests)
        """
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.default_ttl = default_ttl
        self.max_size = max_size
        self.cleanup_interval = cleanup_interval
        self.clock = clock

        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._sweeper: Optional[asyncio.Task] = None
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.has(key)

    # ─────────────────────────────────────────────────────────────────────────
    # Core operations
    # ─────────────────────────────────────────────────────────────────────────

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """
        Insert or overwrite an entry.

        Overwriting an existing key never evicts; a new key at capacity
        evicts the single oldest-created entry first.
        """
        now = self.clock()
        ttl = self.default_ttl if ttl is None else ttl
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.max_size:
                self._evict_oldest()
            self._entries[key] = CacheEntry(value=value, created_at=now, expires_at=now + ttl)

    def _evict_oldest(self) -> None:
        oldest = min(self._entries, key=lambda k: self._entries[k].created_at)
        del self._entries[oldest]
        self._evictions += 1
        logger.debug(f"Cache full, evicted {oldest}")

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value, or default when absent or expired."""
        now = self.clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return default
            if entry.is_expired(now):
                del self._entries[key]
                self._misses += 1
                return default
            self._hits += 1
            return entry.value

    def has(self, key: str) -> bool:
        """Whether a live entry exists (expired entries are removed)."""
        now = self.clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False
            if entry.is_expired(now):
                del self._entries[key]
                return False
            return True

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def delete_matching(self, pattern: str) -> int:
        """
        Delete every key matching a glob pattern.

        Example:
            >>> cache.delete_matching("studyroom:*")
            2
        """
        with self._lock:
            doomed = [key for key in self._entries if fnmatch.fnmatchcase(key, pattern)]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def sweep(self) -> int:
        """Remove expired entries; returns how many were removed."""
        now = self.clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug(f"Swept {len(expired)} expired cache entries")
        return len(expired)

    def stats(self) -> CacheStats:
        now = self.clock()
        with self._lock:
            expired = sum(1 for entry in self._entries.values() if entry.is_expired(now))
            total = len(self._entries)
        return CacheStats(
            total=total,
            valid=total - expired,
            expired=expired,
            max_size=self.max_size,
            default_ttl=self.default_ttl,
            hits=self._hits,
            misses=self._misses,
            evictions=self._evictions,
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    def start(self) -> None:
        """Launch the periodic sweep on the running event loop."""
        if self.running:
            return
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep_loop())
        logger.debug(f"Cache sweep started (every {self.cleanup_interval}s)")

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval)
            self.sweep()

    def destroy(self) -> None:
        """Stop the sweep and drop every entry."""
        if self._sweeper is not None:
            self._sweeper.cancel()
            self._sweeper = None
        self.clear()

    async def aclose(self) -> None:
        """Stop the sweep, wait for it to finish, and drop every entry."""
        sweeper = self._sweeper
        self.destroy()
        if sweeper is not None:
            try:
                await sweeper
            except asyncio.CancelledError:
                pass

    async def __aenter__(self) -> "ExpiringCache":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        await self.aclose()

    # ─────────────────────────────────────────────────────────────────────────
    # Snapshot
    # ─────────────────────────────────────────────────────────────────────────

    def save_snapshot(self, path: Path) -> int:
        """
        Write live entries as JSON ({key, value, created_at, expires_at}, epoch-ms).

        Pydantic values are dumped in JSON mode; callers re-validate on load.
        """
        now = self.clock()
        with self._lock:
            items = [(k, e) for k, e in self._entries.items() if not e.is_expired(now)]
        payload = [
            {
                "key": key,
                "value": entry.value.model_dump(mode="json")
                if isinstance(entry.value, BaseModel)
                else entry.value,
                "created_at": int(entry.created_at * 1000),
                "expires_at": int(entry.expires_at * 1000),
            }
            for key, entry in items
        ]
        save_json(Path(path), payload)
        logger.info(f"Saved {len(payload)} cache entries to {path}")
        return len(payload)

    def load_snapshot(self, path: Path) -> int:
        """Load entries written by save_snapshot, skipping expired ones."""
        path = Path(path)
        if not path.exists():
            return 0
        now = self.clock()
        loaded = 0
        for item in sorted(load_json(path), key=lambda i: i.get("created_at", 0)):
            entry = CacheEntry(
                value=item.get("value"),
                created_at=item.get("created_at", 0) / 1000,
                expires_at=item.get("expires_at", 0) / 1000,
            )
            if entry.is_expired(now) or "key" not in item:
                continue
            with self._lock:
                if item["key"] not in self._entries and len(self._entries) >= self.max_size:
                    self._evict_oldest()
                self._entries[item["key"]] = entry
            loaded += 1
        logger.info(f"Loaded {loaded} cache entries from {path}")
        return loaded
