"""Application configuration helpers."""

from __future__ import annotations

import os
from datetime import timezone
from typing import Any

from pydantic import BaseModel, Field, NonNegativeInt, PositiveInt


UTC = timezone.utc


class GitHubSettings(BaseModel):
    """Configuration options for the GitHub REST API."""

    token: str | None = Field(default=None, description="Personal access token or OAuth token.")
    api_url: str = Field(default="https://api.github.com")
    api_version: str = Field(default="2022-11-28")
    max_retries: PositiveInt = Field(default=3, description="Attempts per request on transient failures.")
    initial_backoff: float = Field(default=0.5, ge=0.0, description="Initial exponential backoff in seconds.")
    max_backoff: float = Field(default=8.0, ge=0.0, description="Maximum delay for exponential backoff in seconds.")
    request_timeout: float = Field(default=15.0, ge=1.0, description="Timeout for a single HTTP request in seconds.")


class AnalyticsSettings(BaseModel):
    """Bounds for pagination and the size of derived aggregates."""

    page_size: PositiveInt = Field(default=100, le=100, description="Items requested per page.")
    max_pages: PositiveInt = Field(default=5, description="Page cap for repository pull listings.")
    max_items: PositiveInt = Field(default=500, description="Item cap for repository pull listings.")
    search_max_pages: PositiveInt = Field(default=3, description="Page cap for user searches.")
    search_max_items: PositiveInt = Field(default=300, description="Item cap for user searches.")
    branch_max_pages: PositiveInt = Field(default=3, description="Page cap for branch and collaborator listings.")
    recent_pr_count: PositiveInt = Field(default=50, description="Number of recent PRs kept on repository stats.")
    review_pr_limit: NonNegativeInt = Field(
        default=20, description="Most recent PRs whose reviews are fetched; 0 disables reviewer rollups."
    )
    top_reviewer_count: PositiveInt = Field(default=10)


class CacheTTLSettings(BaseModel):
    """Time-to-live per data class, in seconds."""

    session: PositiveInt = 86_400
    branches: PositiveInt = 1_800
    maintainers: PositiveInt = 3_600
    repo_stats: PositiveInt = 300
    contributors: PositiveInt = 300
    user_stats: PositiveInt = 600


class CacheSettings(BaseModel):
    """Configuration for the distributed cache and its fallback."""

    redis_url: str | None = Field(default=None, description="Redis connection URL; unset runs memory-only.")
    namespace: str = Field(default="pr-insights", min_length=1)
    connect_timeout: float = Field(default=3.0, gt=0.0)
    socket_timeout: float = Field(default=2.0, gt=0.0)
    reprobe_interval: float = Field(
        default=30.0, ge=0.0, description="Seconds to stay degraded before probing Redis again."
    )
    sweep_interval: float = Field(
        default=60.0, gt=0.0, description="Seconds between sweeps of expired in-process entries."
    )


class AppConfig(BaseModel):
    """Root configuration container."""

    github: GitHubSettings = Field(default_factory=GitHubSettings)
    analytics: AnalyticsSettings = Field(default_factory=AnalyticsSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    ttl: CacheTTLSettings = Field(default_factory=CacheTTLSettings)

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None, overrides: dict[str, Any] | None = None) -> "AppConfig":
        """Construct a configuration object from environment variables."""

        env = env if env is not None else os.environ
        overrides = overrides or {}

        github = GitHubSettings(
            token=overrides.get("github_token") or env.get("GITHUB_TOKEN") or env.get("GH_TOKEN"),
            api_url=overrides.get("github_api_url") or env.get("GITHUB_API_URL") or "https://api.github.com",
            max_retries=int(overrides.get("github_max_retries") or env.get("GITHUB_MAX_RETRIES", 3)),
            initial_backoff=float(overrides.get("github_initial_backoff") or env.get("GITHUB_INITIAL_BACKOFF", 0.5)),
            max_backoff=float(overrides.get("github_max_backoff") or env.get("GITHUB_MAX_BACKOFF", 8.0)),
            request_timeout=float(overrides.get("github_request_timeout") or env.get("GITHUB_REQUEST_TIMEOUT", 15.0)),
        )

        analytics = AnalyticsSettings(
            max_pages=int(overrides.get("max_pages") or env.get("PR_MAX_PAGES", 5)),
            max_items=int(overrides.get("max_items") or env.get("PR_MAX_ITEMS", 500)),
            search_max_pages=int(overrides.get("search_max_pages") or env.get("SEARCH_MAX_PAGES", 3)),
            search_max_items=int(overrides.get("search_max_items") or env.get("SEARCH_MAX_ITEMS", 300)),
            review_pr_limit=int(_first_set(overrides.get("review_pr_limit"), env.get("REVIEW_PR_LIMIT"), 20)),
        )

        cache = CacheSettings(
            redis_url=overrides.get("redis_url") or env.get("REDIS_URL") or _redis_url_from_parts(env),
            namespace=overrides.get("cache_namespace") or env.get("CACHE_NAMESPACE") or "pr-insights",
            reprobe_interval=float(
                _first_set(overrides.get("cache_reprobe_interval"), env.get("CACHE_REPROBE_INTERVAL"), 30.0)
            ),
            sweep_interval=float(_first_set(env.get("CACHE_SWEEP_INTERVAL"), 60.0)),
        )

        ttl = CacheTTLSettings(
            session=int(env.get("CACHE_TTL_SESSION", 86_400)),
            branches=int(env.get("CACHE_TTL_BRANCHES", 1_800)),
            maintainers=int(env.get("CACHE_TTL_MAINTAINERS", 3_600)),
            repo_stats=int(env.get("CACHE_TTL_REPO_STATS", 300)),
            contributors=int(env.get("CACHE_TTL_CONTRIBUTORS", 300)),
            user_stats=int(env.get("CACHE_TTL_USER_STATS", 600)),
        )

        return cls(github=github, analytics=analytics, cache=cache, ttl=ttl)


def _first_set(*values: Any) -> Any:
    for value in values:
        if value is not None and value != "":
            return value
    return None


def _redis_url_from_parts(env: dict[str, str]) -> str | None:
    host = env.get("REDIS_HOST")
    if not host:
        return None
    port = env.get("REDIS_PORT", "6379")
    password = env.get("REDIS_PASSWORD")
    auth = f":{password}@" if password else ""
    return f"redis://{auth}{host}:{port}/0"


__all__ = [
    "AppConfig",
    "AnalyticsSettings",
    "CacheSettings",
    "CacheTTLSettings",
    "GitHubSettings",
    "UTC",
]
