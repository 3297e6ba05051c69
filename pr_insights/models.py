"""Domain models produced by the fetcher and the aggregator."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from .time_window import parse_timestamp


UTC = timezone.utc
MAINTAINER_ASSOCIATIONS = frozenset({"OWNER", "MEMBER", "COLLABORATOR"})


@dataclass(slots=True, frozen=True)
class PullRequest:
    """Normalized, immutable representation of a pull request."""

    number: int
    title: str
    state: str
    merged: bool
    created_at: datetime
    merged_at: datetime | None
    closed_at: datetime | None
    author: str
    author_avatar_url: str
    repository: str
    repository_url: str = ""
    html_url: str = ""
    target_branch: str = ""
    labels: tuple[str, ...] = ()
    additions: int = 0
    deletions: int = 0
    changed_files: int = 0
    review_comments: int = 0
    author_association: str = ""

    def __post_init__(self) -> None:
        if self.state not in {"open", "closed"}:
            raise ValueError(f"Unexpected pull request state {self.state!r} for #{self.number}")
        if self.merged and (self.state != "closed" or self.merged_at is None):
            raise ValueError(f"Merged pull request #{self.number} must be closed with a merge time")

    @classmethod
    def from_rest(cls, payload: dict[str, Any], repository: str) -> "PullRequest":
        """Convert an item of ``GET /repos/{owner}/{repo}/pulls``."""

        user = payload.get("user") or {}
        base = payload.get("base") or {}
        merged_at = parse_timestamp(payload.get("merged_at"))
        return cls(
            number=payload["number"],
            title=payload.get("title") or "",
            state=payload.get("state", "open"),
            merged=merged_at is not None,
            created_at=parse_timestamp(payload["created_at"]),
            merged_at=merged_at,
            closed_at=parse_timestamp(payload.get("closed_at")),
            author=user.get("login") or "unknown",
            author_avatar_url=user.get("avatar_url") or "",
            repository=repository,
            repository_url=f"https://github.com/{repository}",
            html_url=payload.get("html_url") or "",
            target_branch=base.get("ref") or "",
            labels=_label_names(payload.get("labels")),
            additions=payload.get("additions") or 0,
            deletions=payload.get("deletions") or 0,
            changed_files=payload.get("changed_files") or 0,
            review_comments=payload.get("review_comments") or 0,
            author_association=payload.get("author_association") or "",
        )

    @classmethod
    def from_search(cls, payload: dict[str, Any], default_author: str = "") -> "PullRequest":
        """Convert an item of ``GET /search/issues`` restricted to ``is:pr``."""

        user = payload.get("user") or {}
        pull = payload.get("pull_request") or {}
        merged_at = parse_timestamp(pull.get("merged_at"))
        api_url = payload.get("repository_url") or ""
        parts = api_url.rstrip("/").split("/")
        repository = "/".join(parts[-2:]) if len(parts) >= 2 else ""
        return cls(
            number=payload["number"],
            title=payload.get("title") or "",
            state=payload.get("state", "open"),
            merged=merged_at is not None,
            created_at=parse_timestamp(payload["created_at"]),
            merged_at=merged_at,
            closed_at=parse_timestamp(payload.get("closed_at")),
            author=user.get("login") or default_author,
            author_avatar_url=user.get("avatar_url") or "",
            repository=repository,
            repository_url=f"https://github.com/{repository}" if repository else "",
            html_url=payload.get("html_url") or "",
            labels=_label_names(payload.get("labels")),
            author_association=payload.get("author_association") or "",
        )

    @property
    def is_open(self) -> bool:
        return self.state == "open"


@dataclass(slots=True)
class ContributorStats:
    username: str
    avatar_url: str = ""
    total_prs: int = 0
    merged_prs: int = 0
    open_prs: int = 0
    closed_prs: int = 0
    is_maintainer: bool = False
    total_additions: int = 0
    total_deletions: int = 0


@dataclass(slots=True)
class ActivityDataPoint:
    """PR activity for one calendar day (``YYYY-MM-DD``)."""

    date: str
    opened: int = 0
    merged: int = 0
    closed: int = 0


@dataclass(slots=True)
class Review:
    """A submitted review on a pull request."""

    pr_number: int
    reviewer: str
    reviewer_avatar_url: str
    state: str
    submitted_at: datetime | None

    @classmethod
    def from_rest(cls, payload: dict[str, Any], pr_number: int) -> "Review":
        user = payload.get("user") or {}
        return cls(
            pr_number=pr_number,
            reviewer=user.get("login") or "ghost",
            reviewer_avatar_url=user.get("avatar_url") or "",
            state=(payload.get("state") or "").upper(),
            submitted_at=parse_timestamp(payload.get("submitted_at")),
        )


@dataclass(slots=True)
class ReviewerStats:
    username: str
    avatar_url: str = ""
    review_count: int = 0
    approved_count: int = 0
    changes_requested_count: int = 0


@dataclass(slots=True)
class ReviewStats:
    """Reviewer rollups; all zero when reviews were not fetched."""

    total_reviews: int = 0
    avg_time_to_first_review: float = 0.0
    avg_time_to_merge: float = 0.0
    top_reviewers: list[ReviewerStats] = field(default_factory=list)


@dataclass(slots=True)
class RepositoryStats:
    owner: str
    repo: str
    branch: str
    time_filter: str
    total_prs: int
    contributors: list[ContributorStats]
    recent_prs: list[PullRequest]
    label_distribution: dict[str, int]
    activity_timeline: list[ActivityDataPoint]
    review_stats: ReviewStats
    generated_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(slots=True)
class RepositoryContribution:
    full_name: str
    pr_count: int = 0
    merged_count: int = 0
    is_maintainer: bool = False


@dataclass(slots=True)
class UserTotals:
    total_prs: int = 0
    merged_prs: int = 0
    open_prs: int = 0
    closed_prs: int = 0


@dataclass(slots=True)
class UserProfileStats:
    username: str
    avatar_url: str
    bio: str | None
    location: str | None
    public_repos: int
    followers: int
    following: int
    created_at: datetime | None
    repositories: dict[str, RepositoryContribution]
    pull_requests: list[PullRequest]
    total_stats: UserTotals
    maintainer_repos: list[str] = field(default_factory=list)
    generated_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(slots=True)
class RateLimitStatus:
    """Snapshot of the core REST quota."""

    limit: int
    remaining: int
    used: int
    reset_at: datetime

    @classmethod
    def from_rest(cls, payload: dict[str, Any]) -> "RateLimitStatus":
        rate = (payload.get("resources") or {}).get("core") or payload.get("rate") or {}
        return cls(
            limit=int(rate.get("limit", 0)),
            remaining=int(rate.get("remaining", 0)),
            used=int(rate.get("used", 0)),
            reset_at=datetime.fromtimestamp(int(rate.get("reset", 0)), tz=UTC),
        )


def _label_names(labels: Any) -> tuple[str, ...]:
    names: list[str] = []
    for label in labels or []:
        if isinstance(label, str):
            names.append(label)
        elif isinstance(label, dict) and label.get("name") is not None:
            names.append(label["name"])
    return tuple(names)


__all__ = [
    "ActivityDataPoint",
    "ContributorStats",
    "MAINTAINER_ASSOCIATIONS",
    "PullRequest",
    "RateLimitStatus",
    "RepositoryContribution",
    "RepositoryStats",
    "Review",
    "ReviewStats",
    "ReviewerStats",
    "UserProfileStats",
    "UserTotals",
]
