"""
Expiring key-value stores used for notification dedup state.
Process-local by default, Redis when several instances share the work.
"""

import logging
import os
import time
from threading import Lock
from typing import Any, Callable, Optional, Protocol

import redis

from .config import DEDUP_BACKEND, REDIS_URL

logger = logging.getLogger(__name__)

# Redis connection
redis_client: Optional[redis.Redis] = None


def get_redis_client() -> redis.Redis:
    """
    Get or create Redis client
    Supports both a REDIS_URL and individual REDIS_HOST/PORT/... settings
    """
    global redis_client

    if redis_client is None:
        logger.info("🔄 Initializing Redis connection for notification dedup...")

        if REDIS_URL:
            # Mask password in URL for logging
            if "@" in REDIS_URL:
                url_parts = REDIS_URL.split("@")
                protocol = url_parts[0].split(":")[0]
                masked_url = f"{protocol}:****@{url_parts[1]}"
            else:
                masked_url = "****"
            logger.info(f"📡 Using Redis URL connection: {masked_url}")

            client = redis.from_url(
                REDIS_URL,
                decode_responses=True,
                socket_connect_timeout=15,
                socket_timeout=30,
                retry_on_timeout=True,
                health_check_interval=30,
            )
        else:
            redis_host = os.getenv("REDIS_HOST", "localhost")
            redis_port = int(os.getenv("REDIS_PORT", "6379"))
            redis_ssl = os.getenv("REDIS_SSL", "false").lower() == "true"
            logger.info(f"📡 Using Redis at {redis_host}:{redis_port} (SSL: {'on' if redis_ssl else 'off'})")

            client = redis.Redis(
                host=redis_host,
                port=redis_port,
                password=os.getenv("REDIS_PASSWORD"),
                db=int(os.getenv("REDIS_DB", "0")),
                ssl=redis_ssl,
                decode_responses=True,
                socket_connect_timeout=15,
                socket_timeout=30,
                retry_on_timeout=True,
                health_check_interval=30,
            )

        try:
            client.ping()
        except redis.RedisError as e:
            logger.error(f"❌ Failed to connect to Redis: {e}")
            raise
        logger.info("✅ Redis connected")
        redis_client = client

    return redis_client


class ExpiringStore(Protocol):
    """Key-value store whose entries disappear after a per-key TTL (seconds)"""

    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any, ttl: float) -> None: ...

    def add(self, key: str, value: Any, ttl: float) -> bool:
        """Set only if the key is absent; True when this call set it"""
        ...

    def delete(self, key: str) -> None: ...

    def sweep(self) -> int:
        """Drop expired entries, returning how many were removed"""
        ...


class MemoryExpiringStore:
    """
    Process-local store. Expired entries are invisible to readers straight
    away and are physically removed by sweep().
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[str, tuple[Any, float]] = {}
        self._lock = Lock()

    def _live(self, key: str, now: float):
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry[1] <= now:
            del self._entries[key]
            return None
        return entry

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._live(key, self._clock())
            return entry[0] if entry else None

    def set(self, key: str, value: Any, ttl: float) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock() + ttl)

    def add(self, key: str, value: Any, ttl: float) -> bool:
        with self._lock:
            now = self._clock()
            if self._live(key, now) is not None:
                return False
            self._entries[key] = (value, now + ttl)
            return True

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def sweep(self) -> int:
        with self._lock:
            now = self._clock()
            expired = [key for key, (_, expires_at) in self._entries.items() if expires_at <= now]
            for key in expired:
                del self._entries[key]
            return len(expired)

    def __len__(self) -> int:
        return len(self._entries)


class RedisExpiringStore:
    """Same contract on Redis; expiry is native so sweep() has nothing to do"""

    def __init__(self, client: Optional[redis.Redis] = None, prefix: str = "studiosync:dedup:"):
        self._client = client
        self.prefix = prefix

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = get_redis_client()
        return self._client

    def get(self, key: str) -> Optional[Any]:
        return self.client.get(self.prefix + key)

    def set(self, key: str, value: Any, ttl: float) -> None:
        self.client.set(self.prefix + key, value, px=max(int(ttl * 1000), 1))

    def add(self, key: str, value: Any, ttl: float) -> bool:
        return bool(self.client.set(self.prefix + key, value, px=max(int(ttl * 1000), 1), nx=True))

    def delete(self, key: str) -> None:
        self.client.delete(self.prefix + key)

    def sweep(self) -> int:
        return 0


def build_dedup_store(backend: Optional[str] = None) -> ExpiringStore:
    """Store selected by DEDUP_BACKEND ("memory" or "redis")"""
    backend = (backend or DEDUP_BACKEND).lower()
    if backend == "redis":
        logger.info("🔧 Notification dedup state in Redis")
        return RedisExpiringStore()
    logger.info("🔧 Notification dedup state in process memory")
    return MemoryExpiringStore()
