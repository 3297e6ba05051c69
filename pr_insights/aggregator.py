"""Pure reductions of pull-request collections into statistics.

Nothing here performs I/O; equal inputs always give equal outputs.
"""

from __future__ import annotations

from collections.abc import Collection, Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime

from .models import (
    MAINTAINER_ASSOCIATIONS,
    ActivityDataPoint,
    ContributorStats,
    PullRequest,
    RepositoryContribution,
    Review,
    ReviewerStats,
    ReviewStats,
    UserTotals,
)
from .time_window import TimeFilter, date_range, to_date_string


@dataclass(slots=True)
class Aggregate:
    contributors: list[ContributorStats]
    label_distribution: dict[str, int]
    activity_timeline: list[ActivityDataPoint]


def contributor_rollup(prs: Iterable[PullRequest], maintainers: Collection[str]) -> list[ContributorStats]:
    """Per-author totals, most active first; ties keep discovery order."""

    by_author: dict[str, ContributorStats] = {}
    for pr in prs:
        stats = by_author.get(pr.author)
        if stats is None:
            stats = ContributorStats(
                username=pr.author,
                avatar_url=pr.author_avatar_url,
                is_maintainer=pr.author in maintainers,
            )
            by_author[pr.author] = stats

        stats.total_prs += 1
        stats.total_additions += pr.additions
        stats.total_deletions += pr.deletions
        if pr.merged:
            stats.merged_prs += 1
        elif pr.is_open:
            stats.open_prs += 1
        else:
            stats.closed_prs += 1

    return sorted(by_author.values(), key=lambda stats: stats.total_prs, reverse=True)


def label_distribution(prs: Iterable[PullRequest]) -> dict[str, int]:
    distribution: dict[str, int] = {}
    for pr in prs:
        for label in pr.labels:
            distribution[label] = distribution.get(label, 0) + 1
    return distribution


def activity_timeline(
    prs: Iterable[PullRequest], time_filter: TimeFilter | str, now: datetime
) -> list[ActivityDataPoint]:
    """One bucket per day of the window, including empty days.

    Events dated outside the window (clock skew) are left out.
    """

    timeline = {day: ActivityDataPoint(date=day) for day in date_range(time_filter, now)}
    for pr in prs:
        opened = timeline.get(to_date_string(pr.created_at))
        if opened is not None:
            opened.opened += 1

        if pr.merged_at is not None:
            bucket = timeline.get(to_date_string(pr.merged_at))
            if bucket is not None:
                bucket.merged += 1
        elif pr.closed_at is not None:
            bucket = timeline.get(to_date_string(pr.closed_at))
            if bucket is not None:
                bucket.closed += 1
    return list(timeline.values())


def aggregate(
    prs: Sequence[PullRequest],
    maintainers: Collection[str],
    time_filter: TimeFilter | str,
    now: datetime,
) -> Aggregate:
    return Aggregate(
        contributors=contributor_rollup(prs, maintainers),
        label_distribution=label_distribution(prs),
        activity_timeline=activity_timeline(prs, time_filter, now),
    )


def maintainer_logins(collaborators: Iterable[Mapping[str, object]]) -> list[str]:
    """Logins holding push or admin permission."""

    logins: list[str] = []
    for collaborator in collaborators:
        permissions = collaborator.get("permissions") or {}
        if isinstance(permissions, Mapping) and (permissions.get("push") or permissions.get("admin")):
            logins.append(str(collaborator["login"]))
    return logins


def user_totals(prs: Iterable[PullRequest]) -> UserTotals:
    totals = UserTotals()
    for pr in prs:
        totals.total_prs += 1
        if pr.merged:
            totals.merged_prs += 1
        elif pr.is_open:
            totals.open_prs += 1
        else:
            totals.closed_prs += 1
    return totals


def user_repository_breakdown(prs: Iterable[PullRequest]) -> dict[str, RepositoryContribution]:
    """PR counts per repository for one author.

    The author counts as a maintainer of a repository when GitHub reports an
    owner, member or collaborator association on any of their PRs there.
    """

    repositories: dict[str, RepositoryContribution] = {}
    for pr in prs:
        entry = repositories.get(pr.repository)
        if entry is None:
            entry = RepositoryContribution(full_name=pr.repository)
            repositories[pr.repository] = entry
        entry.pr_count += 1
        if pr.merged:
            entry.merged_count += 1
        if pr.author_association in MAINTAINER_ASSOCIATIONS:
            entry.is_maintainer = True
    return repositories


def review_statistics(
    prs: Sequence[PullRequest],
    reviews_by_pr: Mapping[int, Sequence[Review]],
    top_n: int = 10,
) -> ReviewStats:
    """Reviewer rollups over the PRs whose reviews were fetched.

    Pending reviews and authors reviewing their own PR are ignored. Merge
    time is averaged over every merged PR in ``prs``.
    """

    authors = {pr.number: pr.author for pr in prs}
    created = {pr.number: pr.created_at for pr in prs}
    reviewers: dict[str, ReviewerStats] = {}
    first_review_hours: list[float] = []
    total = 0

    for number, reviews in reviews_by_pr.items():
        first: datetime | None = None
        for review in reviews:
            if review.state == "PENDING" or review.reviewer == authors.get(number):
                continue
            total += 1
            stats = reviewers.get(review.reviewer)
            if stats is None:
                stats = ReviewerStats(username=review.reviewer, avatar_url=review.reviewer_avatar_url)
                reviewers[review.reviewer] = stats
            stats.review_count += 1
            if review.state == "APPROVED":
                stats.approved_count += 1
            elif review.state == "CHANGES_REQUESTED":
                stats.changes_requested_count += 1
            if review.submitted_at is not None and (first is None or review.submitted_at < first):
                first = review.submitted_at
        if first is not None and number in created:
            first_review_hours.append(_hours(created[number], first))

    merge_hours = [_hours(pr.created_at, pr.merged_at) for pr in prs if pr.merged_at is not None]
    top = sorted(reviewers.values(), key=lambda stats: stats.review_count, reverse=True)[:top_n]
    return ReviewStats(
        total_reviews=total,
        avg_time_to_first_review=_mean(first_review_hours),
        avg_time_to_merge=_mean(merge_hours),
        top_reviewers=top,
    )


def _hours(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 3600


def _mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return round(sum(values) / len(values), 2)


__all__ = [
    "Aggregate",
    "activity_timeline",
    "aggregate",
    "contributor_rollup",
    "label_distribution",
    "maintainer_logins",
    "review_statistics",
    "user_repository_breakdown",
    "user_totals",
]
