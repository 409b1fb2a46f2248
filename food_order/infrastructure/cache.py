import json
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

import redis
from redis.exceptions import RedisError

from food_order.core.config import settings
from food_order.interfaces.ICache import ICache

logger = logging.getLogger(__name__)


def generate_cache_key(prefix: str, params: Optional[Dict[str, Any]] = None) -> str:
    """
    Deterministic key for a logical read: the same effective query always maps
    to the same key, whatever order the parameters arrived in.

    generate_cache_key("orders:u1", {"page": 1, "status": None, "limit": 10})
    -> 'orders:u1:limit=10:page=1'
    """
    if not params:
        return prefix
    parts = [
        f"{name}={json.dumps(value, sort_keys=True, separators=(',', ':'), default=str)}"
        for name, value in sorted(params.items())
        if value is not None
    ]
    if not parts:
        return prefix
    return f"{prefix}:{':'.join(parts)}"


class MemoryResponseCache(ICache):
    """
    In-process TTL cache. Expired entries are dropped lazily on read and by a
    background sweeper thread that runs between start() and stop().
    """

    def __init__(
        self,
        default_ttl: int = 300,
        sweep_interval: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl = default_ttl
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, float]] = {}
        self._lock = threading.RLock()
        self._stop_event = threading.Event()
        self._sweeper: Optional[threading.Thread] = None

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                logger.debug(f"Cache MISS: {key}")
                return None
            value, expiry = entry
            if self._clock() >= expiry:
                del self._entries[key]
                logger.debug(f"Cache EXPIRED: {key}")
                return None
            logger.debug(f"Cache HIT: {key}")
            return value

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        if value is None:
            return
        ttl = self.default_ttl if ttl is None else ttl
        with self._lock:
            self._entries[key] = (value, self._clock() + ttl)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def delete_pattern(self, prefix: str) -> int:
        with self._lock:
            doomed = [k for k in self._entries if k.startswith(prefix)]
            for k in doomed:
                del self._entries[k]
        if doomed:
            logger.debug(f"Invalidated {len(doomed)} cache entries under '{prefix}'")
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    def stats(self) -> Dict[str, Any]:
        return {"backend": "memory", "size": self.size(), "keys": self.keys()}

    def sweep(self) -> int:
        """Evict every expired entry now. Returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, (_, expiry) in self._entries.items() if now >= expiry]
            for k in expired:
                del self._entries[k]
        if expired:
            logger.info(f"🧹 Cache cleanup: removed {len(expired)} expired items")
        return len(expired)

    def start(self) -> None:
        if self._sweeper and self._sweeper.is_alive():
            return
        self._stop_event.clear()
        self._sweeper = threading.Thread(target=self._sweep_loop, name="cache-sweeper", daemon=True)
        self._sweeper.start()
        logger.info(f"✅ Cache sweeper started (every {self.sweep_interval}s)")

    def stop(self) -> None:
        self._stop_event.set()
        if self._sweeper:
            self._sweeper.join(timeout=self.sweep_interval + 1)
            self._sweeper = None
            logger.info("Cache sweeper stopped")

    def _sweep_loop(self) -> None:
        while not self._stop_event.wait(self.sweep_interval):
            self.sweep()


class RedisResponseCache(ICache):
    """
    Redis-backed cache shared between processes. Values are stored as JSON.

    If Redis is unreachable at startup or fails later, the cache switches to
    its in-memory fallback instead of raising: a broken cache is a slower
    service, never a failing one.
    """

    def __init__(self, url: str, default_ttl: int = 300, fallback: Optional[MemoryResponseCache] = None):
        self.default_ttl = default_ttl
        self.fallback = fallback or MemoryResponseCache(default_ttl=default_ttl)
        try:
            self.redis = redis.from_url(
                url,
                decode_responses=True,
                socket_connect_timeout=1  # Fail fast if Redis is down
            )
            self.redis.ping()
            self.redis_available = True
            logger.info("✅ ResponseCache: Connected to Redis.")
        except (RedisError, ValueError) as e:
            logger.warning(f"⚠️ ResponseCache: Redis unreachable ({e}). Using RAM fallback.")
            self.redis_available = False

    def get(self, key: str) -> Optional[Any]:
        if self.redis_available:
            try:
                raw = self.redis.get(key)
                return json.loads(raw) if raw is not None else None
            except RedisError as e:
                self._handle_redis_error(e)
        return self.fallback.get(key)

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        if value is None:
            return
        ttl = self.default_ttl if ttl is None else ttl
        if self.redis_available:
            try:
                self.redis.setex(key, ttl, json.dumps(value, default=str))
                return
            except RedisError as e:
                self._handle_redis_error(e)
        self.fallback.set(key, value, ttl)

    def delete(self, key: str) -> bool:
        removed = self.fallback.delete(key)
        if self.redis_available:
            try:
                removed = bool(self.redis.delete(key)) or removed
            except RedisError as e:
                self._handle_redis_error(e)
        return removed

    def delete_pattern(self, prefix: str) -> int:
        count = self.fallback.delete_pattern(prefix)
        if self.redis_available:
            try:
                keys = list(self.redis.scan_iter(match=f"{_escape_glob(prefix)}*"))
                if keys:
                    count += self.redis.delete(*keys)
            except RedisError as e:
                self._handle_redis_error(e)
        return count

    def clear(self) -> None:
        self.fallback.clear()
        if self.redis_available:
            try:
                self.redis.flushdb()
            except RedisError as e:
                self._handle_redis_error(e)

    def stats(self) -> Dict[str, Any]:
        return {"backend": "redis" if self.redis_available else "memory", "fallback": self.fallback.stats()}

    def start(self) -> None:
        self.fallback.start()

    def stop(self) -> None:
        self.fallback.stop()

    def _handle_redis_error(self, e: RedisError) -> None:
        """Log error and switch flag to False to stop trying Redis."""
        logger.warning(f"❌ Redis Error: {e}. Switching to RAM mode.")
        self.redis_available = False


class NullCache(ICache):
    """Caches nothing. Useful for tests and for switching caching off."""

    def get(self, key: str) -> Optional[Any]:
        return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        pass

    def delete(self, key: str) -> bool:
        return False

    def delete_pattern(self, prefix: str) -> int:
        return 0

    def clear(self) -> None:
        pass


def _escape_glob(prefix: str) -> str:
    for ch in ("\\", "*", "?", "[", "]"):
        prefix = prefix.replace(ch, f"\\{ch}")
    return prefix


def build_cache() -> ICache:
    memory = MemoryResponseCache(
        default_ttl=settings.CACHE_DEFAULT_TTL,
        sweep_interval=settings.CACHE_SWEEP_INTERVAL,
    )
    if settings.REDIS_URL:
        return RedisResponseCache(settings.REDIS_URL, default_ttl=settings.CACHE_DEFAULT_TTL, fallback=memory)
    return memory
