"""
TTL-bounded element-set cache with write rate limiting.

Provides:
- ElementCache: TLE and generic (derived artifact) stores with TTL floors,
  an absolute age cap, stale reads while writes are rate limited and a
  background expiry sweep with an explicit start/dispose lifecycle
- RateLimiter: fixed-window write budget
- Storage adapters: in-memory and SQLite (JSON blobs)
"""

import copy
import json
import logging
import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Generator, List, Optional, Tuple, Union

from .tle import InvalidTLEError, TleRecord

logger = logging.getLogger(__name__)

HOUR = 3600.0
DAY = 24 * HOUR

DEFAULT_TTL = DAY
TLE_MINIMUM_TTL = DAY
GENERIC_MINIMUM_TTL = 60.0
MAX_CACHE_AGE = 7 * DAY
DEFAULT_SWEEP_INTERVAL = 12 * HOUR
DEFAULT_RATE_LIMIT = 60
DEFAULT_RATE_WINDOW = HOUR

TLE_STORE = "tle"
GENERIC_STORE = "generic"
STORES = (TLE_STORE, GENERIC_STORE)

Clock = Callable[[], float]


class CacheStorageError(Exception):
    """Raised when the cache storage backend fails."""


class CorruptCacheEntryError(CacheStorageError):
    """Raised when a stored payload cannot be decoded."""


@dataclass
class CacheItem:
    """Stored cache entry. Times are seconds since the epoch."""

    data: Any
    created_at: float
    expires_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data": self.data,
            "created_at": self.created_at,
            "expires_at": self.expires_at,
            "ttl": self.ttl,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheItem":
        created_at = float(data["created_at"])
        expires_at = float(data["expires_at"])
        return cls(
            data=data["data"],
            created_at=created_at,
            expires_at=expires_at,
            ttl=float(data.get("ttl", expires_at - created_at)),
        )


class CacheStorage(ABC):
    """Key-value storage with independent logical stores."""

    @abstractmethod
    def get(self, store: str, key: str) -> Optional[Dict[str, Any]]:
        """Stored payload, or None if absent."""

    @abstractmethod
    def put(self, store: str, key: str, value: Dict[str, Any]) -> None:
        """Insert or replace a payload."""

    @abstractmethod
    def delete(self, store: str, key: str) -> None:
        """Remove a payload; missing keys are ignored."""

    @abstractmethod
    def clear(self, store: Optional[str] = None) -> None:
        """Remove every payload in ``store``, or in all stores when None."""

    @abstractmethod
    def items(self, store: str) -> List[Tuple[str, Dict[str, Any]]]:
        """All (key, payload) pairs of a store; undecodable payloads are skipped."""


class MemoryCacheStorage(CacheStorage):
    """In-process storage; payloads are deep-copied in and out."""

    def __init__(self) -> None:
        self._stores: Dict[str, Dict[str, Dict[str, Any]]] = {name: {} for name in STORES}
        self._lock = threading.Lock()

    def _store(self, store: str) -> Dict[str, Dict[str, Any]]:
        return self._stores.setdefault(store, {})

    def get(self, store: str, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            value = self._store(store).get(key)
            return copy.deepcopy(value) if value is not None else None

    def put(self, store: str, key: str, value: Dict[str, Any]) -> None:
        with self._lock:
            self._store(store)[key] = copy.deepcopy(value)

    def delete(self, store: str, key: str) -> None:
        with self._lock:
            self._store(store).pop(key, None)

    def clear(self, store: Optional[str] = None) -> None:
        with self._lock:
            names = [store] if store else list(self._stores)
            for name in names:
                self._store(name).clear()

    def items(self, store: str) -> List[Tuple[str, Dict[str, Any]]]:
        with self._lock:
            return [(k, copy.deepcopy(v)) for k, v in self._store(store).items()]


class SQLiteCacheStorage(CacheStorage):
    """SQLite-backed storage keeping JSON payloads in a single table."""

    def __init__(self, db_path: Union[str, Path]):
        """
        Initialize database.

        Args:
            db_path: Path to SQLite database file (created if missing)
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Get a database connection with row factory."""
        try:
            conn = sqlite3.connect(str(self.db_path))
        except sqlite3.Error as e:
            raise CacheStorageError(f"Cannot open cache database {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        except sqlite3.Error as e:
            raise CacheStorageError(f"Cache database error: {e}") from e
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._get_connection() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS cache_items (
                    store TEXT NOT NULL,
                    key TEXT NOT NULL,
                    payload TEXT NOT NULL,
                    updated_at TEXT DEFAULT (datetime('now')),
                    PRIMARY KEY (store, key)
                )
            """
            )
            conn.commit()
        logger.info(f"Cache database initialized at {self.db_path}")

    def get(self, store: str, key: str) -> Optional[Dict[str, Any]]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT payload FROM cache_items WHERE store = ? AND key = ?",
                (store, key),
            ).fetchone()
        if row is None:
            return None
        try:
            return json.loads(row["payload"])
        except json.JSONDecodeError as e:
            raise CorruptCacheEntryError(f"Corrupt payload for {store}/{key}: {e}") from e

    def put(self, store: str, key: str, value: Dict[str, Any]) -> None:
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise CacheStorageError(f"Payload for {store}/{key} is not JSON serializable: {e}") from e

        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO cache_items (store, key, payload, updated_at)
                VALUES (?, ?, ?, datetime('now'))
            """,
                (store, key, payload),
            )
            conn.commit()

    def delete(self, store: str, key: str) -> None:
        with self._get_connection() as conn:
            conn.execute("DELETE FROM cache_items WHERE store = ? AND key = ?", (store, key))
            conn.commit()

    def clear(self, store: Optional[str] = None) -> None:
        with self._get_connection() as conn:
            if store:
                conn.execute("DELETE FROM cache_items WHERE store = ?", (store,))
            else:
                conn.execute("DELETE FROM cache_items")
            conn.commit()

    def items(self, store: str) -> List[Tuple[str, Dict[str, Any]]]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT key, payload FROM cache_items WHERE store = ?", (store,)
            ).fetchall()

        result = []
        for row in rows:
            try:
                result.append((row["key"], json.loads(row["payload"])))
            except json.JSONDecodeError:
                logger.warning(f"Skipping corrupt cache payload {store}/{row['key']}")
        return result


@dataclass
class RateLimitWindow:
    """Write count within the current fixed window."""

    count: int = 0
    window_start: float = 0.0


class RateLimiter:
    """Fixed-window limiter: at most ``max_requests`` per ``window_seconds``."""

    def __init__(
        self,
        max_requests: int = DEFAULT_RATE_LIMIT,
        window_seconds: float = DEFAULT_RATE_WINDOW,
        clock: Clock = time.time,
    ) -> None:
        if max_requests < 1:
            raise ValueError(f"max_requests must be >= 1, got {max_requests}")
        if window_seconds <= 0:
            raise ValueError(f"window_seconds must be > 0, got {window_seconds}")

        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self.window = RateLimitWindow(count=0, window_start=clock())

    def _roll(self, now: float) -> None:
        if now - self.window.window_start >= self.window_seconds:
            self.window = RateLimitWindow(count=0, window_start=now)

    def try_acquire(self) -> bool:
        """Count one request; False when the window budget is spent."""
        with self._lock:
            self._roll(self._clock())
            if self.window.count >= self.max_requests:
                return False
            self.window.count += 1
            return True

    def is_limited(self) -> bool:
        with self._lock:
            self._roll(self._clock())
            return self.window.count >= self.max_requests

    def reset(self) -> None:
        with self._lock:
            self.window = RateLimitWindow(count=0, window_start=self._clock())


class ElementCache:
    """
    Cache for element sets and derived artifacts.

    TTLs are in seconds. Every write is stored for
    ``min(max(ttl, store_minimum), max_age)``. The expiry sweep runs on a
    daemon thread between :meth:`start` and :meth:`dispose`; nothing runs
    at construction.
    """

    def __init__(
        self,
        storage: Optional[CacheStorage] = None,
        rate_limiter: Optional[RateLimiter] = None,
        tle_min_ttl: float = TLE_MINIMUM_TTL,
        generic_min_ttl: float = GENERIC_MINIMUM_TTL,
        max_age: float = MAX_CACHE_AGE,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        clock: Clock = time.time,
    ) -> None:
        if sweep_interval <= 0:
            raise ValueError(f"sweep_interval must be > 0, got {sweep_interval}")

        self.storage = storage or MemoryCacheStorage()
        self.rate_limiter = rate_limiter or RateLimiter(clock=clock)
        self.min_ttl = {TLE_STORE: tle_min_ttl, GENERIC_STORE: generic_min_ttl}
        self.max_age = max_age
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._lock = threading.RLock()
        self._stop_event = threading.Event()
        self._sweep_thread: Optional[threading.Thread] = None

    # Lifecycle

    def start(self) -> None:
        """Start the background sweep thread (idempotent)."""
        with self._lock:
            if self._sweep_thread is not None and self._sweep_thread.is_alive():
                return
            self._stop_event.clear()
            self._sweep_thread = threading.Thread(
                target=self._sweep_loop, name="element-cache-sweep", daemon=True
            )
            self._sweep_thread.start()
        logger.info(f"Cache sweep started (every {self.sweep_interval:.0f}s)")

    def dispose(self) -> None:
        """Stop the sweep thread. The cache stays usable for direct calls."""
        self._stop_event.set()
        thread = self._sweep_thread
        if thread is not None:
            thread.join(timeout=5.0)
            self._sweep_thread = None
            logger.info("Cache sweep stopped")

    @property
    def is_running(self) -> bool:
        return self._sweep_thread is not None and self._sweep_thread.is_alive()

    def __enter__(self) -> "ElementCache":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.dispose()

    def _sweep_loop(self) -> None:
        while not self._stop_event.wait(self.sweep_interval):
            try:
                self.sweep()
            except CacheStorageError as e:
                logger.error(f"Cache sweep failed: {e}")

    # Core operations

    def _effective_ttl(self, store: str, ttl: Optional[float]) -> float:
        ttl = DEFAULT_TTL if ttl is None else ttl
        return min(max(ttl, self.min_ttl[store]), self.max_age)

    def _write(self, store: str, key: str, data: Any, ttl: Optional[float]) -> bool:
        with self._lock:
            if not self.rate_limiter.try_acquire():
                logger.warning(f"Cache write rate limit exceeded, dropping {store}/{key}")
                return False

            now = self._clock()
            effective = self._effective_ttl(store, ttl)
            item = CacheItem(data=data, created_at=now, expires_at=now + effective, ttl=effective)
            try:
                self.storage.put(store, key, item.to_dict())
            except CacheStorageError as e:
                logger.error(f"Cache write failed for {store}/{key}: {e}")
                raise
            logger.debug(f"Cached {store}/{key} for {effective:.0f}s")
            return True

    def _discard(self, store: str, key: str) -> None:
        try:
            self.storage.delete(store, key)
        except CacheStorageError as e:
            logger.error(f"Failed to delete {store}/{key}: {e}")

    def _read(self, store: str, key: str) -> Optional[CacheItem]:
        with self._lock:
            try:
                raw = self.storage.get(store, key)
            except CorruptCacheEntryError as e:
                logger.warning(f"{e}; discarding entry")
                self._discard(store, key)
                return None
            except CacheStorageError as e:
                logger.error(f"Cache read failed for {store}/{key}: {e}")
                return None

            if raw is None:
                return None

            try:
                item = CacheItem.from_dict(raw)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Corrupt cache entry {store}/{key}: {e}; discarding entry")
                self._discard(store, key)
                return None

            now = self._clock()
            if item.is_expired(now):
                if self.rate_limiter.is_limited() and now - item.created_at <= 2 * item.ttl:
                    logger.debug(f"Serving stale {store}/{key} while rate limited")
                    return item
                self._discard(store, key)
                return None

            return item

    def get(self, key: str) -> Optional[Any]:
        """
        Get a value from the generic store.

        Returns:
            Cached data, or None on a miss, expiry or storage failure
        """
        item = self._read(GENERIC_STORE, key)
        return item.data if item is not None else None

    def set(self, key: str, data: Any, ttl: Optional[float] = None) -> bool:
        """
        Store a JSON-serializable value in the generic store.

        Args:
            key: Cache key
            data: Value to store
            ttl: Time to live in seconds (clamped to the store limits)

        Returns:
            False if the write was dropped by the rate limiter

        Raises:
            CacheStorageError: If the storage backend fails
        """
        return self._write(GENERIC_STORE, key, data, ttl)

    def cache_tle(self, norad_id: str, tle: TleRecord, ttl: Optional[float] = None) -> bool:
        """Store a TLE record; same contract as :meth:`set`."""
        return self._write(TLE_STORE, str(norad_id), tle.to_dict(), ttl)

    def get_cached_tle(self, norad_id: str) -> Optional[TleRecord]:
        item = self._read(TLE_STORE, str(norad_id))
        if item is None:
            return None
        try:
            return TleRecord.from_dict(item.data)
        except (InvalidTLEError, KeyError, TypeError) as e:
            logger.warning(f"Cached TLE {norad_id} is invalid: {e}; discarding entry")
            with self._lock:
                self._discard(TLE_STORE, str(norad_id))
            return None

    def _clear(self, store: Optional[str], key: Optional[str] = None) -> None:
        with self._lock:
            try:
                if key is None:
                    self.storage.clear(store)
                else:
                    self.storage.delete(store, key)
            except CacheStorageError as e:
                logger.error(f"Cache clear failed: {e}")
                raise

    def clear(self, key: str) -> None:
        self._clear(GENERIC_STORE, key)

    def clear_tle(self, norad_id: str) -> None:
        self._clear(TLE_STORE, str(norad_id))

    def clear_all(self) -> None:
        """Remove every entry from both stores."""
        self._clear(None)
        logger.info("Cache cleared")

    def sweep(self) -> int:
        """
        Delete expired entries and entries older than the age cap.

        Returns:
            Number of entries removed
        """
        removed = 0
        with self._lock:
            now = self._clock()
            for store in STORES:
                for key, raw in self.storage.items(store):
                    try:
                        item = CacheItem.from_dict(raw)
                    except (KeyError, TypeError, ValueError):
                        self._discard(store, key)
                        removed += 1
                        continue
                    if item.is_expired(now) or now - item.created_at > self.max_age:
                        self._discard(store, key)
                        removed += 1

        logger.info(f"Cache sweep removed {removed} entries")
        return removed
