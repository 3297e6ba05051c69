"""Helpers for tracking GitHub REST rate-limit budgets."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Mapping

from .errors import RateLimitedError

LOGGER = logging.getLogger(__name__)
UTC = timezone.utc


@dataclass(slots=True)
class RateLimitInfo:
    """Snapshot of one rate-limit bucket (``core``, ``search``, ...)."""

    resource: str
    limit: int
    remaining: int
    reset_at: datetime

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> "RateLimitInfo | None":
        headers = {key.lower(): value for key, value in headers.items()}
        try:
            remaining = int(headers["x-ratelimit-remaining"])
            reset = int(headers["x-ratelimit-reset"])
        except (KeyError, TypeError, ValueError):
            return None
        try:
            limit = int(headers.get("x-ratelimit-limit", remaining))
        except (TypeError, ValueError):
            limit = remaining
        return cls(
            resource=headers.get("x-ratelimit-resource", "core"),
            limit=limit,
            remaining=remaining,
            reset_at=datetime.fromtimestamp(reset, tz=UTC),
        )


class RateLimiter:
    """Remembers the last advertised budget per bucket.

    An exhausted bucket whose reset lies in the future fails fast with
    :class:`RateLimitedError` instead of spending a request.
    """

    def __init__(self, *, low_watermark: float = 0.1, clock: Callable[[], datetime] | None = None) -> None:
        self._lock = asyncio.Lock()
        self._buckets: dict[str, RateLimitInfo] = {}
        self._low_watermark = low_watermark
        self._clock = clock or (lambda: datetime.now(tz=UTC))

    async def acquire(self, resource: str = "core") -> None:
        """Raise if ``resource`` is known to be exhausted until a future reset."""

        async with self._lock:
            info = self._buckets.get(resource)
            if info is None or info.remaining > 0:
                return
            if info.reset_at <= self._clock():
                del self._buckets[resource]
                return
            reset_at = info.reset_at

        LOGGER.warning("GitHub %s rate limit exhausted until %s", resource, reset_at.isoformat())
        raise RateLimitedError(
            f"GitHub API {resource} rate limit exhausted; resets at {reset_at.isoformat()}",
            reset_at=reset_at,
            status_code=None,
        )

    async def record(self, headers: Mapping[str, str]) -> RateLimitInfo | None:
        """Update the tracker from a response's rate-limit headers."""

        info = RateLimitInfo.from_headers(headers)
        if info is None:
            return None
        async with self._lock:
            self._buckets[info.resource] = info
        if info.limit and 0 < info.remaining < info.limit * self._low_watermark:
            LOGGER.warning(
                "GitHub %s rate limit low (%s/%s remaining); resets at %s",
                info.resource,
                info.remaining,
                info.limit,
                info.reset_at.isoformat(),
            )
        return info

    async def reset(self) -> None:
        """Forget every bucket, e.g. after the credential changed."""

        async with self._lock:
            self._buckets.clear()

    async def remaining(self, resource: str = "core") -> int | None:
        """Return the last known remaining budget, if any."""

        async with self._lock:
            info = self._buckets.get(resource)
            return info.remaining if info else None


__all__ = ["RateLimitInfo", "RateLimiter"]
