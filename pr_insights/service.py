"""High level orchestration: fetch, aggregate and cache PR analytics."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from . import keys
from .aggregator import (
    aggregate,
    contributor_rollup,
    maintainer_logins,
    review_statistics,
    user_repository_breakdown,
    user_totals,
)
from .cache import ReadThroughCache
from .config import AppConfig
from .errors import GitHubAPIError, NotFoundError, UnauthorizedError
from .github_client import GitHubRestClient
from .models import (
    ContributorStats,
    PullRequest,
    RateLimitStatus,
    RepositoryStats,
    Review,
    ReviewStats,
    UserProfileStats,
)
from .paginator import (
    PageBounds,
    fetch_branch_names,
    fetch_collaborators,
    fetch_pull_requests,
    search_user_pull_requests,
)
from .time_window import TimeFilter, parse_timestamp
from .validation import validate_branch, validate_owner, validate_repo, validate_username

LOGGER = logging.getLogger(__name__)
UTC = timezone.utc


class InsightsService:
    """Repository and user pull-request analytics behind a read-through cache."""

    def __init__(
        self,
        config: AppConfig,
        client: GitHubRestClient,
        cache: ReadThroughCache,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._config = config
        self._client = client
        self._cache = cache
        self._clock = clock or (lambda: datetime.now(tz=UTC))
        if not client.authenticated:
            LOGGER.info("No GitHub token configured; the unauthenticated quota applies")

        analytics = config.analytics
        self._pull_bounds = PageBounds(analytics.page_size, analytics.max_pages, analytics.max_items)
        self._search_bounds = PageBounds(
            analytics.page_size, analytics.search_max_pages, analytics.search_max_items
        )
        self._list_bounds = PageBounds(
            analytics.page_size,
            analytics.branch_max_pages,
            analytics.page_size * analytics.branch_max_pages,
        )

    def set_auth_token(self, token: str | None) -> None:
        self._client.set_auth_token(token)

    async def get_rate_limit_status(self) -> RateLimitStatus:
        payload = await self._client.get_rate_limit()
        return RateLimitStatus.from_rest(payload)

    async def fetch_pull_requests(
        self, owner: str, repo: str, branch: str = "", time_filter: TimeFilter | str = TimeFilter.ONE_MONTH
    ) -> list[PullRequest]:
        """Uncached, bounded listing of PRs created inside the window."""

        owner, repo, branch = validate_owner(owner), validate_repo(repo), validate_branch(branch)
        time_filter = TimeFilter.parse(time_filter)
        return await fetch_pull_requests(
            self._client, owner, repo, branch, time_filter, self._pull_bounds, self._clock()
        )

    async def fetch_repository_stats(
        self, owner: str, repo: str, branch: str = "", time_filter: TimeFilter | str = TimeFilter.ONE_MONTH
    ) -> RepositoryStats:
        owner, repo, branch = validate_owner(owner), validate_repo(repo), validate_branch(branch)
        time_filter = TimeFilter.parse(time_filter)

        async def compute() -> RepositoryStats:
            LOGGER.info(
                "Fetching repository stats for %s/%s (branch=%s, filter=%s)",
                owner,
                repo,
                branch or "all",
                time_filter.value,
            )
            now = self._clock()
            prs = await fetch_pull_requests(
                self._client, owner, repo, branch, time_filter, self._pull_bounds, now
            )
            maintainers = await self.fetch_maintainers(owner, repo)
            summary = aggregate(prs, maintainers, time_filter, now)
            review_stats = await self._review_stats(owner, repo, prs)
            LOGGER.info(
                "Aggregated %s PRs from %s contributors for %s/%s",
                len(prs),
                len(summary.contributors),
                owner,
                repo,
            )
            return RepositoryStats(
                owner=owner,
                repo=repo,
                branch=branch,
                time_filter=time_filter.value,
                total_prs=len(prs),
                contributors=summary.contributors,
                recent_prs=prs[: self._config.analytics.recent_pr_count],
                label_distribution=summary.label_distribution,
                activity_timeline=summary.activity_timeline,
                review_stats=review_stats,
                generated_at=now,
            )

        return await self._cache.get_or_compute(
            keys.repo_stats(owner, repo, branch, time_filter),
            compute,
            self._config.ttl.repo_stats,
            RepositoryStats,
        )

    async def fetch_contributors(
        self, owner: str, repo: str, branch: str = "", time_filter: TimeFilter | str = TimeFilter.ONE_MONTH
    ) -> list[ContributorStats]:
        owner, repo, branch = validate_owner(owner), validate_repo(repo), validate_branch(branch)
        time_filter = TimeFilter.parse(time_filter)

        async def compute() -> list[ContributorStats]:
            prs = await fetch_pull_requests(
                self._client, owner, repo, branch, time_filter, self._pull_bounds, self._clock()
            )
            maintainers = await self.fetch_maintainers(owner, repo)
            return contributor_rollup(prs, maintainers)

        return await self._cache.get_or_compute(
            keys.contributors(owner, repo, branch, time_filter),
            compute,
            self._config.ttl.contributors,
            list[ContributorStats],
        )

    async def fetch_branches(self, owner: str, repo: str) -> list[str]:
        owner, repo = validate_owner(owner), validate_repo(repo)

        async def compute() -> list[str]:
            return await fetch_branch_names(self._client, owner, repo, self._list_bounds)

        return await self._cache.get_or_compute(
            keys.branches(owner, repo), compute, self._config.ttl.branches, list[str]
        )

    async def fetch_maintainers(self, owner: str, repo: str) -> frozenset[str]:
        """Logins with push or admin access; empty when that cannot be determined."""

        owner, repo = validate_owner(owner), validate_repo(repo)

        async def compute() -> list[str]:
            try:
                collaborators = await fetch_collaborators(self._client, owner, repo, self._list_bounds)
            except (NotFoundError, UnauthorizedError) as exc:
                # Listing collaborators needs push access to the repository.
                LOGGER.debug("Collaborators of %s/%s not visible: %s", owner, repo, exc)
                return []
            return maintainer_logins(collaborators)

        try:
            logins = await self._cache.get_or_compute(
                keys.maintainers(owner, repo), compute, self._config.ttl.maintainers, list[str]
            )
        except GitHubAPIError as exc:
            LOGGER.warning("Maintainer lookup for %s/%s failed: %s", owner, repo, exc)
            return frozenset()
        return frozenset(logins)

    async def fetch_user_stats(
        self, username: str, time_filter: TimeFilter | str = TimeFilter.ONE_MONTH
    ) -> UserProfileStats:
        username = validate_username(username)
        time_filter = TimeFilter.parse(time_filter)

        async def compute() -> UserProfileStats:
            LOGGER.info("Fetching user stats for %s (filter=%s)", username, time_filter.value)
            now = self._clock()
            user = await self._client.get_user(username)
            prs = await search_user_pull_requests(
                self._client, username, time_filter, self._search_bounds, now
            )
            repositories = user_repository_breakdown(prs)
            return UserProfileStats(
                username=user.get("login") or username,
                avatar_url=user.get("avatar_url") or "",
                bio=user.get("bio"),
                location=user.get("location"),
                public_repos=user.get("public_repos") or 0,
                followers=user.get("followers") or 0,
                following=user.get("following") or 0,
                created_at=parse_timestamp(user.get("created_at")),
                repositories=repositories,
                pull_requests=prs,
                total_stats=user_totals(prs),
                maintainer_repos=[name for name, entry in repositories.items() if entry.is_maintainer],
                generated_at=now,
            )

        return await self._cache.get_or_compute(
            keys.user_stats(username, time_filter),
            compute,
            self._config.ttl.user_stats,
            UserProfileStats,
        )

    async def invalidate_repository(self, owner: str, repo: str) -> int:
        """Drop every cached aggregate for one repository."""

        owner, repo = validate_owner(owner), validate_repo(repo)
        removed = 0
        for prefix in keys.repository_prefixes(owner, repo):
            removed += await self._cache.delete_by_prefix(prefix)
        for key in (keys.maintainers(owner, repo), keys.branches(owner, repo)):
            removed += int(await self._cache.delete(key))
        LOGGER.info("Invalidated %s cache entries for %s/%s", removed, owner, repo)
        return removed

    async def invalidate_user(self, username: str) -> int:
        username = validate_username(username)
        return await self._cache.delete_by_prefix(keys.user_prefix(username))

    async def _review_stats(self, owner: str, repo: str, prs: list[PullRequest]) -> ReviewStats:
        limit = self._config.analytics.review_pr_limit
        if limit == 0:
            return review_statistics(prs, {}, self._config.analytics.top_reviewer_count)

        reviews_by_pr: dict[int, list[Review]] = {}
        for pr in prs[:limit]:
            try:
                payload = await self._client.list_reviews(
                    owner, repo, pr.number, per_page=self._pull_bounds.page_size
                )
            except GitHubAPIError as exc:
                LOGGER.warning("Skipping reviewer stats for %s/%s: %s", owner, repo, exc)
                return review_statistics(prs, {}, self._config.analytics.top_reviewer_count)
            reviews_by_pr[pr.number] = [Review.from_rest(item, pr.number) for item in payload]
        return review_statistics(prs, reviews_by_pr, self._config.analytics.top_reviewer_count)


__all__ = ["InsightsService"]
