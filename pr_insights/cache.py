"""Read-through caching with a Redis backend and an in-process fallback."""

from __future__ import annotations

import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Awaitable, Callable, TypeVar

import redis.asyncio as redis
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from redis.exceptions import RedisError

from .config import CacheSettings

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")
Clock = Callable[[], float]


class CacheBackendError(RuntimeError):
    """A cache store could not be reached or refused the operation."""


@dataclass(slots=True)
class CacheEntry:
    key: str
    value: str
    expires_at: float

    def expired(self, now: float) -> bool:
        return now > self.expires_at


class CacheBackend(ABC):
    """Storage strategy holding serialized values with a TTL."""

    name = "backend"

    @abstractmethod
    async def get(self, key: str) -> str | None: ...

    @abstractmethod
    async def set(self, key: str, value: str, ttl: int) -> None: ...

    @abstractmethod
    async def delete(self, key: str) -> bool: ...

    @abstractmethod
    async def exists(self, key: str) -> bool: ...

    @abstractmethod
    async def delete_prefix(self, prefix: str) -> int: ...

    async def ping(self) -> None:
        return None

    async def close(self) -> None:
        return None


class MemoryCacheBackend(CacheBackend):
    """Process-local store; expiry is checked lazily on access."""

    name = "memory"

    def __init__(self, clock: Clock = time.time) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _live(self, key: str) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is not None and entry.expired(self._clock()):
            del self._entries[key]
            return None
        return entry

    async def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._live(key)
            return entry.value if entry else None

    async def set(self, key: str, value: str, ttl: int) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(key=key, value=value, expires_at=self._clock() + ttl)

    async def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    async def exists(self, key: str) -> bool:
        with self._lock:
            return self._live(key) is not None

    async def delete_prefix(self, prefix: str) -> int:
        with self._lock:
            doomed = [key for key in self._entries if key.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
            return len(doomed)

    def cleanup(self) -> int:
        """Drop every expired entry and return how many were removed."""

        with self._lock:
            now = self._clock()
            doomed = [key for key, entry in self._entries.items() if entry.expired(now)]
            for key in doomed:
                del self._entries[key]
        if doomed:
            LOGGER.debug("Evicted %s expired cache entries", len(doomed))
        return len(doomed)

    async def close(self) -> None:
        with self._lock:
            self._entries.clear()


class RedisCacheBackend(CacheBackend):
    """Redis store; every transport failure surfaces as :class:`CacheBackendError`."""

    name = "redis"

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    @classmethod
    def from_settings(cls, settings: CacheSettings) -> "RedisCacheBackend":
        if not settings.redis_url:
            raise ValueError("CacheSettings.redis_url is not configured")
        client = redis.Redis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_connect_timeout=settings.connect_timeout,
            socket_timeout=settings.socket_timeout,
        )
        return cls(client)

    async def get(self, key: str) -> str | None:
        try:
            return await self._client.get(key)
        except (RedisError, OSError) as exc:
            raise CacheBackendError(f"redis GET failed: {exc}") from exc

    async def set(self, key: str, value: str, ttl: int) -> None:
        try:
            await self._client.setex(key, ttl, value)
        except (RedisError, OSError) as exc:
            raise CacheBackendError(f"redis SETEX failed: {exc}") from exc

    async def delete(self, key: str) -> bool:
        try:
            return bool(await self._client.delete(key))
        except (RedisError, OSError) as exc:
            raise CacheBackendError(f"redis DEL failed: {exc}") from exc

    async def exists(self, key: str) -> bool:
        try:
            return bool(await self._client.exists(key))
        except (RedisError, OSError) as exc:
            raise CacheBackendError(f"redis EXISTS failed: {exc}") from exc

    async def delete_prefix(self, prefix: str) -> int:
        removed = 0
        batch: list[str] = []
        try:
            async for key in self._client.scan_iter(match=f"{_glob_escape(prefix)}*", count=500):
                batch.append(key)
                if len(batch) >= 500:
                    removed += await self._client.delete(*batch)
                    batch.clear()
            if batch:
                removed += await self._client.delete(*batch)
        except (RedisError, OSError) as exc:
            raise CacheBackendError(f"redis SCAN/DEL failed: {exc}") from exc
        return removed

    async def ping(self) -> None:
        try:
            await self._client.ping()
        except (RedisError, OSError) as exc:
            raise CacheBackendError(f"redis PING failed: {exc}") from exc

    async def close(self) -> None:
        try:
            await self._client.aclose()
        except (RedisError, OSError) as exc:
            raise CacheBackendError(f"redis close failed: {exc}") from exc


class ReadThroughCache:
    """``get_or_compute`` over a preferred backend with an in-process fallback.

    A primary failure routes that call to the fallback and marks the cache
    degraded. While degraded the primary is skipped; once
    ``reprobe_interval`` seconds have passed the next call tries it again.
    Writes always mirror into the fallback, which is swept for expired
    entries every ``sweep_interval`` seconds. Evictions always reach for the
    primary; one that fails is replayed before the primary serves again.
    Cache failures are logged and never raised to callers.
    """

    def __init__(
        self,
        primary: CacheBackend | None = None,
        fallback: MemoryCacheBackend | None = None,
        *,
        namespace: str = "",
        reprobe_interval: float = 30.0,
        sweep_interval: float = 60.0,
        clock: Clock = time.time,
    ) -> None:
        self._primary = primary
        self._fallback = fallback or MemoryCacheBackend(clock=clock)
        self._prefix = f"{namespace}:" if namespace else ""
        self._reprobe_interval = reprobe_interval
        self._sweep_interval = sweep_interval
        self._clock = clock
        self._degraded_until: float | None = None
        self._next_sweep = clock() + sweep_interval
        # (kind, full key or prefix) awaiting replay on the primary, in order.
        self._pending_evictions: dict[tuple[str, str], None] = {}

    @classmethod
    def from_settings(cls, settings: CacheSettings) -> "ReadThroughCache":
        primary = RedisCacheBackend.from_settings(settings) if settings.redis_url else None
        return cls(
            primary,
            namespace=settings.namespace,
            reprobe_interval=settings.reprobe_interval,
            sweep_interval=settings.sweep_interval,
        )

    async def __aenter__(self) -> "ReadThroughCache":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        await self.close()

    @property
    def degraded(self) -> bool:
        return self._primary is None or self._degraded_until is not None

    @property
    def fallback(self) -> MemoryCacheBackend:
        return self._fallback

    @property
    def pending_evictions(self) -> int:
        return len(self._pending_evictions)

    async def connect(self) -> None:
        if self._primary is None:
            LOGGER.info("No distributed cache configured; using in-process cache")
            return
        try:
            await self._primary.ping()
        except CacheBackendError as exc:
            self._mark_degraded("ping", exc)
        else:
            LOGGER.info("Connected to %s cache", self._primary.name)

    async def close(self) -> None:
        if self._primary is not None:
            if self._pending_evictions:
                LOGGER.warning(
                    "Closing with %s evictions not applied to %s cache",
                    len(self._pending_evictions),
                    self._primary.name,
                )
            try:
                await self._primary.close()
            except CacheBackendError as exc:
                LOGGER.warning("Closing %s cache failed: %s", self._primary.name, exc)
        await self._fallback.close()

    def cleanup(self) -> int:
        self._next_sweep = self._clock() + self._sweep_interval
        return self._fallback.cleanup()

    async def get(self, key: str, type_: Any = None) -> Any:
        """Return the cached value or ``None`` when absent or expired."""

        self._maybe_sweep()
        full_key = self._key(key)
        raw = await self._route("get", lambda backend: backend.get(full_key))
        if raw is None:
            return None
        try:
            return _adapter(type_).validate_json(raw) if type_ is not None else json.loads(raw)
        except (PydanticValidationError, ValueError) as exc:
            LOGGER.warning("Discarding unreadable cache entry %s: %s", full_key, exc)
            await self.delete(key)
            return None

    async def set(self, key: str, value: Any, ttl: int, type_: Any = None) -> None:
        self._maybe_sweep()
        full_key = self._key(key)
        payload = _adapter(type_ if type_ is not None else Any).dump_json(value).decode()
        if await self._use_primary():
            try:
                await self._primary.set(full_key, payload, ttl)  # type: ignore[union-attr]
            except CacheBackendError as exc:
                self._mark_degraded("set", exc)
            else:
                self._mark_healthy()
        await self._fallback.set(full_key, payload, ttl)

    async def exists(self, key: str) -> bool:
        full_key = self._key(key)
        return await self._route("exists", lambda backend: backend.exists(full_key))

    async def delete(self, key: str) -> bool:
        full_key = self._key(key)
        removed = await self._fallback.delete(full_key)
        primary_removed = await self._evict("key", full_key)
        return bool(primary_removed) or removed

    async def delete_by_prefix(self, prefix: str) -> int:
        """Evict every key starting with ``prefix``; returns the count removed.

        The primary's count is reported when it was reached, the fallback's
        otherwise.
        """

        full_prefix = self._key(prefix)
        removed = await self._fallback.delete_prefix(full_prefix)
        primary_removed = await self._evict("prefix", full_prefix)
        if primary_removed is not None:
            removed = primary_removed
        LOGGER.debug("Evicted %s cache entries under %s", removed, full_prefix)
        return removed

    async def get_or_compute(
        self,
        key: str,
        compute: Callable[[], Awaitable[T]],
        ttl: int,
        type_: Any = None,
    ) -> T:
        """Return the cached value, or compute, store and return it.

        Concurrent misses on one key may both compute; the last write wins.
        Errors raised by ``compute`` propagate and nothing is stored.
        """

        cached = await self.get(key, type_)
        if cached is not None:
            LOGGER.debug("Cache hit for %s", key)
            return cached

        LOGGER.debug("Cache miss for %s", key)
        value = await compute()
        await self.set(key, value, ttl, type_)
        return value

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def _route(self, op: str, call: Callable[[CacheBackend], Awaitable[T]]) -> T:
        if await self._use_primary():
            try:
                result = await call(self._primary)  # type: ignore[arg-type]
            except CacheBackendError as exc:
                self._mark_degraded(op, exc)
            else:
                self._mark_healthy()
                return result
        return await call(self._fallback)

    async def _evict(self, kind: str, target: str) -> int | None:
        """Remove ``target`` from the primary even while degraded.

        Returns the primary's count, or ``None`` when it could not be reached,
        in which case the eviction is queued for replay.
        """

        if self._primary is None:
            return None
        if self._pending_evictions and not await self._replay_evictions():
            self._pending_evictions[(kind, target)] = None
            return None
        try:
            removed = await self._apply_eviction(kind, target)
        except CacheBackendError as exc:
            self._mark_degraded(f"delete {target}", exc)
            self._pending_evictions[(kind, target)] = None
            return None
        self._mark_healthy()
        return removed

    async def _apply_eviction(self, kind: str, target: str) -> int:
        if kind == "prefix":
            return await self._primary.delete_prefix(target)  # type: ignore[union-attr]
        return int(await self._primary.delete(target))  # type: ignore[union-attr]

    async def _replay_evictions(self) -> bool:
        for kind, target in list(self._pending_evictions):
            try:
                await self._apply_eviction(kind, target)
            except CacheBackendError as exc:
                self._mark_degraded("eviction replay", exc)
                return False
            del self._pending_evictions[(kind, target)]
            LOGGER.info("Replayed %s eviction of %s", kind, target)
        return True

    async def _use_primary(self) -> bool:
        """Whether the primary may serve this call; replays queued evictions first."""

        if not self._primary_available():
            return False
        if self._pending_evictions:
            return await self._replay_evictions()
        return True

    def _primary_available(self) -> bool:
        if self._primary is None:
            return False
        if self._degraded_until is None:
            return True
        return self._clock() >= self._degraded_until

    def _maybe_sweep(self) -> None:
        if self._clock() >= self._next_sweep:
            self.cleanup()

    def _mark_degraded(self, op: str, exc: Exception) -> None:
        if self._degraded_until is None:
            LOGGER.warning(
                "%s cache unavailable during %s (%s); using in-process cache",
                self._primary.name if self._primary else "primary",
                op,
                exc,
            )
        self._degraded_until = self._clock() + self._reprobe_interval

    def _mark_healthy(self) -> None:
        if self._degraded_until is not None:
            LOGGER.info("%s cache reachable again", self._primary.name if self._primary else "primary")
            self._degraded_until = None


@lru_cache(maxsize=64)
def _adapter(type_: Any) -> TypeAdapter[Any]:
    return TypeAdapter(type_)


def _glob_escape(value: str) -> str:
    return "".join(f"\\{ch}" if ch in "*?[]\\" else ch for ch in value)


__all__ = [
    "CacheBackend",
    "CacheBackendError",
    "CacheEntry",
    "MemoryCacheBackend",
    "ReadThroughCache",
    "RedisCacheBackend",
]
