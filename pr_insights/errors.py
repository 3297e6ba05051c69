"""Error taxonomy and classification of GitHub API failures."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Mapping


UTC = timezone.utc


class ValidationError(ValueError):
    """Raised for malformed owner, repository, username or filter input."""


class GitHubAPIError(RuntimeError):
    """Base class for every classified upstream failure."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RateLimitedError(GitHubAPIError):
    """The API quota is exhausted until ``reset_at``."""

    def __init__(self, message: str, reset_at: datetime | None, status_code: int | None = 403) -> None:
        super().__init__(message, status_code)
        self.reset_at = reset_at


class NotFoundError(GitHubAPIError):
    """The owner, repository or user does not exist or is hidden."""

    def __init__(self, message: str, resource: str | None = None) -> None:
        super().__init__(message, 404)
        self.resource = resource


class UnauthorizedError(GitHubAPIError):
    """The credential is missing, invalid, expired or lacks access."""


class UpstreamError(GitHubAPIError):
    """Catch-all for transport failures, timeouts and unexpected statuses."""


def classify_response(
    status_code: int,
    headers: Mapping[str, str],
    payload: Any = None,
    resource: str | None = None,
    now: datetime | None = None,
) -> GitHubAPIError:
    """Map an error response onto exactly one error class.

    Branching only looks at the status code and rate-limit headers. The
    payload's ``message`` is copied into the error text for logs.
    """

    headers = {key.lower(): value for key, value in headers.items()}
    detail = _message(payload)

    remaining = headers.get("x-ratelimit-remaining")
    retry_after = headers.get("retry-after")
    if status_code == 429 or (status_code == 403 and (remaining == "0" or retry_after is not None)):
        reset_at = rate_limit_reset(headers, now=now)
        when = reset_at.isoformat() if reset_at else "unknown"
        return RateLimitedError(
            f"GitHub API rate limit exceeded; resets at {when}{detail}",
            reset_at=reset_at,
            status_code=status_code,
        )

    if status_code == 404:
        target = resource or "resource"
        return NotFoundError(f"GitHub {target} not found{detail}", resource=resource)

    if status_code in {401, 403}:
        return UnauthorizedError(f"GitHub credential rejected (HTTP {status_code}){detail}", status_code)

    return UpstreamError(f"GitHub API error (HTTP {status_code}){detail}", status_code)


def rate_limit_reset(headers: Mapping[str, str], now: datetime | None = None) -> datetime | None:
    """Return the reset instant advertised by rate-limit headers, if any."""

    headers = {key.lower(): value for key, value in headers.items()}
    reset = headers.get("x-ratelimit-reset")
    if reset:
        try:
            return datetime.fromtimestamp(int(reset), tz=UTC)
        except (TypeError, ValueError, OverflowError):
            pass

    value = headers.get("retry-after")
    if not value:
        return None
    now = now or datetime.now(UTC)
    try:
        return now + timedelta(seconds=max(float(value), 0.0))
    except (TypeError, ValueError):
        pass
    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=UTC)
    return retry_at


def _message(payload: Any) -> str:
    if isinstance(payload, dict) and payload.get("message"):
        return f": {payload['message']}"
    return ""


__all__ = [
    "GitHubAPIError",
    "NotFoundError",
    "RateLimitedError",
    "UnauthorizedError",
    "UpstreamError",
    "ValidationError",
    "classify_response",
    "rate_limit_reset",
]
