"""Deterministic cache keys.

Owner, repository and user logins are case-insensitive on GitHub and are
lower-cased. Branch names are case-sensitive and kept verbatim behind an
``@`` marker so that a branch literally named ``all`` never collides with
the all-branches key. None of the validated inputs can contain ``:``.
"""

from __future__ import annotations

from .time_window import TimeFilter


def _branch(branch: str) -> str:
    return f"@{branch}" if branch else "all"


def repo_stats(owner: str, repo: str, branch: str, time_filter: TimeFilter) -> str:
    return f"repo:{owner.lower()}:{repo.lower()}:{_branch(branch)}:{time_filter.value}"


def contributors(owner: str, repo: str, branch: str, time_filter: TimeFilter) -> str:
    return f"contributors:{owner.lower()}:{repo.lower()}:{_branch(branch)}:{time_filter.value}"


def user_stats(username: str, time_filter: TimeFilter) -> str:
    return f"user:{username.lower()}:{time_filter.value}"


def maintainers(owner: str, repo: str) -> str:
    return f"maintainers:{owner.lower()}:{repo.lower()}"


def branches(owner: str, repo: str) -> str:
    return f"branches:{owner.lower()}:{repo.lower()}"


def session(session_id: str) -> str:
    return f"session:{session_id}"


def repository_prefixes(owner: str, repo: str) -> list[str]:
    """Prefixes covering every per-filter key of one repository."""

    scope = f"{owner.lower()}:{repo.lower()}:"
    return [f"repo:{scope}", f"contributors:{scope}"]


def user_prefix(username: str) -> str:
    return f"user:{username.lower()}:"


__all__ = [
    "branches",
    "contributors",
    "maintainers",
    "repo_stats",
    "repository_prefixes",
    "session",
    "user_prefix",
    "user_stats",
]
