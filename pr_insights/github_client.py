"""HTTP client for interacting with GitHub's REST and search APIs."""

from __future__ import annotations

import asyncio
import logging
from typing import Any
from urllib.parse import quote

import httpx

from .config import GitHubSettings
from .errors import GitHubAPIError, UpstreamError, classify_response
from .rate_limiter import RateLimiter

LOGGER = logging.getLogger(__name__)

TRANSIENT_STATUSES = frozenset({500, 502, 503, 504})


class GitHubRestClient:
    """Light-weight REST client with retries and error classification."""

    def __init__(
        self,
        settings: GitHubSettings,
        client: httpx.AsyncClient | None = None,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        self._settings = settings
        self._base_url = settings.api_url.rstrip("/")
        self._token = settings.token
        self._client = client or httpx.AsyncClient(timeout=settings.request_timeout)
        self._owns_client = client is None
        self.rate_limiter = rate_limiter or RateLimiter()

    async def __aenter__(self) -> "GitHubRestClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @property
    def authenticated(self) -> bool:
        return bool(self._token)

    def set_auth_token(self, token: str | None) -> None:
        """Use ``token`` for every subsequent request on this client."""

        token = token or None
        if token != self._token:
            # Budgets are per credential.
            self.rate_limiter = RateLimiter()
        self._token = token

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": "pr-insights",
            "X-GitHub-Api-Version": self._settings.api_version,
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def get_json(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        *,
        resource: str | None = None,
        bucket: str | None = "core",
    ) -> Any:
        """GET ``path`` and return the decoded body.

        Transport failures and 5xx responses are retried with exponential
        backoff. Every other failure is classified and raised immediately.
        """

        if bucket:
            await self.rate_limiter.acquire(bucket)

        url = f"{self._base_url}{path}"
        backoff = self._settings.initial_backoff
        attempt = 0

        while True:
            attempt += 1
            try:
                response = await self._client.get(
                    url,
                    params=params,
                    headers=self._headers(),
                    timeout=self._settings.request_timeout,
                )
            except httpx.RequestError as exc:
                LOGGER.warning("GitHub request error for %s: %s", path, exc)
                if attempt >= self._settings.max_retries:
                    kind = "timed out" if isinstance(exc, httpx.TimeoutException) else "failed"
                    raise UpstreamError(f"GitHub request {kind} after {attempt} attempts: {path}") from exc
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, self._settings.max_backoff)
                continue

            await self.rate_limiter.record(response.headers)

            if response.status_code in TRANSIENT_STATUSES:
                LOGGER.info("GitHub transient HTTP %s for %s", response.status_code, path)
                if attempt >= self._settings.max_retries:
                    raise classify_response(response.status_code, response.headers, _safe_json(response), resource)
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, self._settings.max_backoff)
                continue

            if response.status_code >= 400:
                error = classify_response(response.status_code, response.headers, _safe_json(response), resource)
                LOGGER.info("GitHub %s for %s: %s", type(error).__name__, path, error)
                raise error

            try:
                return response.json()
            except ValueError as exc:
                raise UpstreamError(f"GitHub returned invalid JSON for {path}", response.status_code) from exc

    async def list_pulls(
        self, owner: str, repo: str, *, base: str = "", page: int = 1, per_page: int = 100
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {
            "state": "all",
            "sort": "created",
            "direction": "desc",
            "per_page": per_page,
            "page": page,
        }
        if base:
            params["base"] = base
        return await self.get_json(
            f"/repos/{_seg(owner)}/{_seg(repo)}/pulls", params, resource=f"repository {owner}/{repo}"
        )

    async def list_branches(self, owner: str, repo: str, *, page: int = 1, per_page: int = 100) -> list[dict[str, Any]]:
        return await self.get_json(
            f"/repos/{_seg(owner)}/{_seg(repo)}/branches",
            {"per_page": per_page, "page": page},
            resource=f"repository {owner}/{repo}",
        )

    async def list_collaborators(
        self, owner: str, repo: str, *, page: int = 1, per_page: int = 100
    ) -> list[dict[str, Any]]:
        return await self.get_json(
            f"/repos/{_seg(owner)}/{_seg(repo)}/collaborators",
            {"affiliation": "all", "per_page": per_page, "page": page},
            resource=f"repository {owner}/{repo}",
        )

    async def list_reviews(
        self, owner: str, repo: str, number: int, *, page: int = 1, per_page: int = 100
    ) -> list[dict[str, Any]]:
        return await self.get_json(
            f"/repos/{_seg(owner)}/{_seg(repo)}/pulls/{number}/reviews",
            {"per_page": per_page, "page": page},
            resource=f"pull request {owner}/{repo}#{number}",
        )

    async def get_user(self, username: str) -> dict[str, Any]:
        return await self.get_json(f"/users/{_seg(username)}", resource=f"user {username}")

    async def search_issues(self, query: str, *, page: int = 1, per_page: int = 100) -> dict[str, Any]:
        return await self.get_json(
            "/search/issues",
            {"q": query, "sort": "created", "order": "desc", "per_page": per_page, "page": page},
            bucket="search",
        )

    async def get_rate_limit(self) -> dict[str, Any]:
        return await self.get_json("/rate_limit", bucket=None)


def _seg(value: str) -> str:
    return quote(value, safe="")


def _safe_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


__all__ = ["GitHubAPIError", "GitHubRestClient"]
