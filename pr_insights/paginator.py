"""Bounded traversal of paginated GitHub endpoints.

Pull listings and searches are requested newest first. Traversal stops after
the first page that satisfies any of, in order:

1. the page is empty;
2. the item cap has been reached (the result is truncated to the cap);
3. the page cap has been reached;
4. the page is shorter than a full page;
5. the oldest (last) item on the page predates the window start.

Rule 5 assumes strictly descending creation order. If GitHub ever returns a
page out of order, later pages holding in-window items are not requested and
the result is silently short. This is accepted; no re-ordering is attempted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, TypeVar

from .github_client import GitHubRestClient
from .models import PullRequest
from .time_window import TimeFilter, parse_timestamp, start_date, to_date_string

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")
PageFetcher = Callable[[int], Awaitable[list[dict[str, Any]]]]


@dataclass(slots=True, frozen=True)
class PageBounds:
    """Hard limits on the cost of one traversal."""

    page_size: int = 100
    max_pages: int = 5
    max_items: int = 500


async def collect_pages(
    fetch_page: PageFetcher,
    bounds: PageBounds,
    transform: Callable[[dict[str, Any]], T],
    *,
    since: datetime | None = None,
    label: str = "items",
) -> list[T]:
    """Walk pages from 1 until one of the stop rules fires."""

    results: list[T] = []
    page = 1
    while True:
        items = await fetch_page(page)
        if not items:
            LOGGER.debug("%s: page %s empty", label, page)
            break

        for item in items:
            if since is not None and _created_at(item) < since:
                continue
            results.append(transform(item))

        if len(results) >= bounds.max_items:
            del results[bounds.max_items :]
            LOGGER.debug("%s: item cap %s reached on page %s", label, bounds.max_items, page)
            break
        if page >= bounds.max_pages:
            LOGGER.debug("%s: page cap %s reached", label, bounds.max_pages)
            break
        if len(items) < bounds.page_size:
            break
        if since is not None and _created_at(items[-1]) < since:
            LOGGER.debug("%s: page %s reaches past %s", label, page, since.isoformat())
            break
        page += 1

    LOGGER.debug("%s: collected %s from %s page(s)", label, len(results), page)
    return results


async def fetch_pull_requests(
    client: GitHubRestClient,
    owner: str,
    repo: str,
    branch: str,
    time_filter: TimeFilter | str,
    bounds: PageBounds,
    now: datetime | None = None,
) -> list[PullRequest]:
    """Pull requests created inside the window, newest first."""

    since = start_date(time_filter, now)
    full_name = f"{owner}/{repo}"

    async def fetch_page(page: int) -> list[dict[str, Any]]:
        return await client.list_pulls(owner, repo, base=branch, page=page, per_page=bounds.page_size)

    return await collect_pages(
        fetch_page,
        bounds,
        lambda item: PullRequest.from_rest(item, full_name),
        since=since,
        label=f"pulls {full_name}",
    )


def user_search_query(username: str, since: datetime) -> str:
    return f"author:{username} is:pr created:>={to_date_string(since)}"


async def search_user_pull_requests(
    client: GitHubRestClient,
    username: str,
    time_filter: TimeFilter | str,
    bounds: PageBounds,
    now: datetime | None = None,
) -> list[PullRequest]:
    """Pull requests authored by ``username`` across all repositories."""

    since = start_date(time_filter, now)
    query = user_search_query(username, since)

    async def fetch_page(page: int) -> list[dict[str, Any]]:
        payload = await client.search_issues(query, page=page, per_page=bounds.page_size)
        if payload.get("incomplete_results"):
            LOGGER.warning("Search results for %r are incomplete", query)
        return payload.get("items") or []

    return await collect_pages(
        fetch_page,
        bounds,
        lambda item: PullRequest.from_search(item, default_author=username),
        since=since,
        label=f"search {username}",
    )


async def fetch_branch_names(client: GitHubRestClient, owner: str, repo: str, bounds: PageBounds) -> list[str]:
    async def fetch_page(page: int) -> list[dict[str, Any]]:
        return await client.list_branches(owner, repo, page=page, per_page=bounds.page_size)

    return await collect_pages(fetch_page, bounds, lambda item: item["name"], label=f"branches {owner}/{repo}")


async def fetch_collaborators(
    client: GitHubRestClient, owner: str, repo: str, bounds: PageBounds
) -> list[dict[str, Any]]:
    async def fetch_page(page: int) -> list[dict[str, Any]]:
        return await client.list_collaborators(owner, repo, page=page, per_page=bounds.page_size)

    return await collect_pages(fetch_page, bounds, lambda item: item, label=f"collaborators {owner}/{repo}")


def _created_at(item: dict[str, Any]) -> datetime:
    return parse_timestamp(item["created_at"])


__all__ = [
    "PageBounds",
    "collect_pages",
    "fetch_branch_names",
    "fetch_collaborators",
    "fetch_pull_requests",
    "search_user_pull_requests",
    "user_search_query",
]
