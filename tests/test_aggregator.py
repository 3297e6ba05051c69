from __future__ import annotations

from datetime import datetime, timedelta, timezone

from pr_insights.aggregator import (
    activity_timeline,
    aggregate,
    contributor_rollup,
    label_distribution,
    maintainer_logins,
    review_statistics,
    user_repository_breakdown,
    user_totals,
)
from pr_insights.models import PullRequest, Review


NOW = datetime(2024, 6, 15, 12, tzinfo=timezone.utc)


def _pr(
    number: int,
    author: str,
    created: datetime,
    *,
    state: str = "open",
    merged_at: datetime | None = None,
    closed_at: datetime | None = None,
    labels: tuple[str, ...] = (),
    repository: str = "acme/demo",
    association: str = "",
    additions: int = 0,
) -> PullRequest:
    return PullRequest(
        number=number,
        title=f"PR {number}",
        state=state,
        merged=merged_at is not None,
        created_at=created,
        merged_at=merged_at,
        closed_at=closed_at or merged_at,
        author=author,
        author_avatar_url=f"https://avatars/{author}",
        repository=repository,
        labels=labels,
        author_association=association,
        additions=additions,
    )


def _sample() -> list[PullRequest]:
    day = timedelta(days=1)
    return [
        _pr(5, "bob", NOW - day, labels=("bug",)),
        _pr(4, "alice", NOW - 2 * day, state="closed", merged_at=NOW - day, labels=("bug", "Bug"), additions=10),
        _pr(3, "alice", NOW - 3 * day),
        _pr(2, "carol", NOW - 4 * day, state="closed", closed_at=NOW - 3 * day),
        _pr(1, "alice", NOW - 5 * day, state="closed", closed_at=NOW - 4 * day, additions=5),
    ]


def test_merged_and_open_contributor():
    prs = [
        _pr(2, "alice", NOW - timedelta(days=2), state="closed", merged_at=NOW - timedelta(days=1)),
        _pr(1, "alice", NOW - timedelta(days=3)),
    ]

    (alice,) = contributor_rollup(prs, maintainers={"alice"})

    assert (alice.total_prs, alice.merged_prs, alice.open_prs, alice.closed_prs) == (2, 1, 1, 0)
    assert alice.is_maintainer is True


def test_contributor_counts_are_consistent():
    prs = _sample()

    contributors = contributor_rollup(prs, maintainers=set())

    assert sum(stats.total_prs for stats in contributors) == len(prs)
    for stats in contributors:
        assert stats.total_prs == stats.merged_prs + stats.open_prs + stats.closed_prs
    assert [stats.username for stats in contributors] == ["alice", "bob", "carol"]
    assert contributors[0].total_additions == 15


def test_ties_keep_discovery_order():
    prs = [_pr(3, "zed", NOW), _pr(2, "amy", NOW), _pr(1, "kim", NOW)]

    assert [stats.username for stats in contributor_rollup(prs, ())] == ["zed", "amy", "kim"]


def test_labels_are_case_sensitive():
    assert label_distribution(_sample()) == {"bug": 2, "Bug": 1}


def test_timeline_is_dense_and_counts_events():
    timeline = activity_timeline(_sample(), "2w", NOW)

    assert len(timeline) == 15
    assert timeline[0].date == "2024-06-01"
    assert timeline[-1].date == "2024-06-15"
    by_day = {point.date: point for point in timeline}
    assert by_day["2024-06-14"].opened == 1
    assert by_day["2024-06-14"].merged == 1
    assert by_day["2024-06-12"].closed == 1
    assert sum(point.opened for point in timeline) == 5
    assert sum(point.closed for point in timeline) == 2


def test_timeline_ignores_events_outside_window():
    prs = [_pr(1, "alice", NOW + timedelta(days=2)), _pr(2, "bob", NOW - timedelta(days=60))]

    timeline = activity_timeline(prs, "1m", NOW)

    assert sum(point.opened for point in timeline) == 0
    assert len(timeline) == 31


def test_aggregation_is_idempotent():
    prs = _sample()

    assert aggregate(prs, {"alice"}, "1m", NOW) == aggregate(prs, {"alice"}, "1m", NOW)


def test_maintainer_logins_require_push_or_admin():
    collaborators = [
        {"login": "alice", "permissions": {"admin": True, "push": True}},
        {"login": "bob", "permissions": {"push": True}},
        {"login": "carol", "permissions": {"pull": True}},
        {"login": "dave"},
    ]

    assert maintainer_logins(collaborators) == ["alice", "bob"]


def test_user_breakdown_and_totals():
    prs = [
        _pr(3, "alice", NOW, repository="acme/demo", association="MEMBER"),
        _pr(2, "alice", NOW, state="closed", merged_at=NOW, repository="acme/demo"),
        _pr(1, "alice", NOW, state="closed", closed_at=NOW, repository="other/lib", association="CONTRIBUTOR"),
    ]

    repositories = user_repository_breakdown(prs)
    totals = user_totals(prs)

    assert repositories["acme/demo"].pr_count == 2
    assert repositories["acme/demo"].merged_count == 1
    assert repositories["acme/demo"].is_maintainer is True
    assert repositories["other/lib"].is_maintainer is False
    assert (totals.total_prs, totals.merged_prs, totals.open_prs, totals.closed_prs) == (3, 1, 1, 1)


def test_review_statistics_skips_pending_and_self_reviews():
    created = NOW - timedelta(hours=10)
    prs = [
        _pr(2, "alice", created, state="closed", merged_at=created + timedelta(hours=4)),
        _pr(1, "bob", created),
    ]
    reviews = {
        2: [
            Review(2, "bob", "", "APPROVED", created + timedelta(hours=2)),
            Review(2, "alice", "", "COMMENTED", created + timedelta(hours=1)),
            Review(2, "carol", "", "PENDING", None),
        ],
        1: [
            Review(1, "carol", "", "CHANGES_REQUESTED", created + timedelta(hours=1)),
            Review(1, "alice", "", "APPROVED", created + timedelta(hours=3)),
        ],
    }

    stats = review_statistics(prs, reviews, top_n=2)

    assert stats.total_reviews == 3
    assert stats.avg_time_to_first_review == 1.5
    assert stats.avg_time_to_merge == 4.0
    assert [reviewer.username for reviewer in stats.top_reviewers] == ["bob", "carol"]
    assert stats.top_reviewers[1].changes_requested_count == 1


def test_review_statistics_without_reviews_is_zeroed():
    stats = review_statistics([_pr(1, "bob", NOW)], {})

    assert stats.total_reviews == 0
    assert stats.avg_time_to_first_review == 0.0
    assert stats.avg_time_to_merge == 0.0
    assert stats.top_reviewers == []
