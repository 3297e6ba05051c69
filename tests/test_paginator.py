from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

from pr_insights.paginator import (
    PageBounds,
    fetch_branch_names,
    fetch_pull_requests,
    search_user_pull_requests,
    user_search_query,
)


NOW = datetime(2024, 6, 15, 12, tzinfo=timezone.utc)


def _stamp(value: datetime) -> str:
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")


def _pr(number: int, created: datetime, author: str = "octocat") -> dict:
    return {
        "number": number,
        "title": f"PR {number}",
        "state": "open",
        "created_at": _stamp(created),
        "merged_at": None,
        "closed_at": None,
        "user": {"login": author},
        "labels": [],
    }


class FakeClient:
    """Serves pre-built pages and records which pages were requested."""

    def __init__(self, pages: list[list[dict]] | None = None, endless_page_size: int = 0) -> None:
        self._pages = pages or []
        self._endless_page_size = endless_page_size
        self.requested: list[int] = []
        self.queries: list[str] = []
        self.incomplete = False

    def _page(self, page: int, per_page: int) -> list[dict]:
        self.requested.append(page)
        if self._endless_page_size:
            base = (page - 1) * self._endless_page_size
            return [_pr(base + index, NOW - timedelta(minutes=base + index)) for index in range(per_page)]
        if page <= len(self._pages):
            return self._pages[page - 1]
        return []

    async def list_pulls(self, owner, repo, *, base="", page=1, per_page=100):
        return self._page(page, per_page)

    async def list_branches(self, owner, repo, *, page=1, per_page=100):
        return self._page(page, per_page)

    async def search_issues(self, query, *, page=1, per_page=100):
        self.queries.append(query)
        return {"incomplete_results": self.incomplete, "items": self._page(page, per_page)}


def test_pagination_never_exceeds_page_cap():
    client = FakeClient(endless_page_size=100)

    prs = asyncio.run(fetch_pull_requests(client, "acme", "demo", "", "all", PageBounds(), NOW))

    assert client.requested == [1, 2, 3, 4, 5]
    assert len(prs) == 500


def test_item_cap_truncates_result():
    client = FakeClient(endless_page_size=10)
    bounds = PageBounds(page_size=10, max_pages=5, max_items=25)

    prs = asyncio.run(fetch_pull_requests(client, "acme", "demo", "", "all", bounds, NOW))

    assert len(prs) == 25
    assert client.requested == [1, 2, 3]


def test_full_page_with_old_tail_stops_after_one_request():
    since = NOW - timedelta(days=14)
    fresh = [_pr(100 - index, NOW - timedelta(hours=index)) for index in range(60)]
    stale = [_pr(40 - index, since - timedelta(days=1 + index)) for index in range(40)]
    client = FakeClient([fresh + stale, [_pr(1, since - timedelta(days=90))]])

    prs = asyncio.run(fetch_pull_requests(client, "acme", "demo", "", "2w", PageBounds(), NOW))

    assert client.requested == [1]
    assert len(prs) == 60
    assert all(pr.created_at >= since for pr in prs)


def test_two_week_window_keeps_june_second_and_drops_may_thirtieth():
    included = _pr(2, datetime(2024, 6, 2, 9, tzinfo=timezone.utc))
    excluded = _pr(1, datetime(2024, 5, 30, 9, tzinfo=timezone.utc))
    client = FakeClient([[included, excluded]])

    prs = asyncio.run(fetch_pull_requests(client, "acme", "demo", "", "2w", PageBounds(), NOW))

    assert [pr.number for pr in prs] == [2]
    assert prs[0].created_at == datetime(2024, 6, 2, 9, tzinfo=timezone.utc)
    assert client.requested == [1]


def test_short_page_stops_traversal():
    client = FakeClient([[_pr(2, NOW), _pr(1, NOW - timedelta(days=1))]])

    prs = asyncio.run(fetch_pull_requests(client, "acme", "demo", "main", "1m", PageBounds(), NOW))

    assert [pr.number for pr in prs] == [2, 1]
    assert [pr.repository for pr in prs] == ["acme/demo", "acme/demo"]
    assert client.requested == [1]


def test_empty_first_page_returns_nothing():
    client = FakeClient([])

    prs = asyncio.run(fetch_pull_requests(client, "acme", "demo", "", "1m", PageBounds(), NOW))

    assert prs == []
    assert client.requested == [1]


def test_out_of_order_page_truncates_early():
    """A stale item at the end of an otherwise fresh page hides later pages."""

    bounds = PageBounds(page_size=3, max_pages=5, max_items=500)
    first = [_pr(10, NOW), _pr(9, NOW - timedelta(days=1)), _pr(3, NOW - timedelta(days=40))]
    second = [_pr(8, NOW - timedelta(days=2)), _pr(7, NOW - timedelta(days=3)), _pr(6, NOW - timedelta(days=4))]
    client = FakeClient([first, second])

    prs = asyncio.run(fetch_pull_requests(client, "acme", "demo", "", "1m", bounds, NOW))

    assert [pr.number for pr in prs] == [10, 9]
    assert client.requested == [1]


def test_user_search_builds_query_and_uses_search_bounds(caplog):
    items = [
        {
            **_pr(5, NOW - timedelta(days=1)),
            "repository_url": "https://api.github.com/repos/acme/demo",
            "pull_request": {"merged_at": None},
        }
    ]
    client = FakeClient([items])
    client.incomplete = True

    with caplog.at_level("WARNING"):
        prs = asyncio.run(
            search_user_pull_requests(client, "octocat", "2w", PageBounds(max_pages=3, max_items=300), NOW)
        )

    assert client.queries == ["author:octocat is:pr created:>=2024-06-01"]
    assert prs[0].repository == "acme/demo"
    assert "incomplete" in caplog.text


def test_user_search_query_format():
    assert user_search_query("octocat", datetime(2024, 5, 16, 7, tzinfo=timezone.utc)) == (
        "author:octocat is:pr created:>=2024-05-16"
    )


def test_branch_names_respect_page_cap():
    pages = [[{"name": f"b{page}-{index}"} for index in range(2)] for page in range(5)]
    client = FakeClient(pages)

    names = asyncio.run(fetch_branch_names(client, "acme", "demo", PageBounds(page_size=2, max_pages=3, max_items=6)))

    assert names == ["b0-0", "b0-1", "b1-0", "b1-1", "b2-0", "b2-1"]
    assert client.requested == [1, 2, 3]
