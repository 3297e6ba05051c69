"""Input validation run before any request reaches the network."""

from __future__ import annotations

import re

from .errors import ValidationError


_OWNER_PATTERN = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9-]*[A-Za-z0-9])?$")
_REPO_PATTERN = re.compile(r"^[A-Za-z0-9._-]+$")

_REPOSITORY_PATTERNS = (
    re.compile(r"^https?://(?:www\.)?github\.com/([^/]+)/([^/]+)/?$", re.IGNORECASE),
    re.compile(r"^(?:www\.)?github\.com/([^/]+)/([^/]+)/?$", re.IGNORECASE),
    re.compile(r"^https?://api\.github\.com/repos/([^/]+)/([^/]+)/?$", re.IGNORECASE),
    re.compile(r"^([^/]+)/([^/]+)$"),
)

MAX_OWNER_LENGTH = 39
MAX_REPO_LENGTH = 100


def _validate_login(value: str, kind: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationError(f"{kind.capitalize()} is required")
    if len(value) > MAX_OWNER_LENGTH:
        raise ValidationError(f"{kind.capitalize()} too long (max {MAX_OWNER_LENGTH} characters): {value}")
    if not _OWNER_PATTERN.match(value):
        raise ValidationError(f"Invalid {kind}: {value}")
    return value


def validate_owner(owner: str) -> str:
    return _validate_login(owner, "owner")


def validate_repo(repo: str) -> str:
    repo = (repo or "").strip()
    if not repo:
        raise ValidationError("Repository name is required")
    if len(repo) > MAX_REPO_LENGTH:
        raise ValidationError(f"Repository name too long (max {MAX_REPO_LENGTH} characters): {repo}")
    if not _REPO_PATTERN.match(repo) or repo in {".", ".."}:
        raise ValidationError(f"Invalid repository name: {repo}")
    return repo


def validate_username(username: str) -> str:
    return _validate_login(username, "username")


def validate_branch(branch: str | None) -> str:
    """Branch names follow git refname rules; empty means all branches."""

    branch = (branch or "").strip()
    if not branch:
        return ""
    if (
        branch.startswith(("/", "-"))
        or branch.endswith(("/", ".", ".lock"))
        or ".." in branch
        or "//" in branch
        or "@{" in branch
        or any(ch in branch for ch in " ~^:?*[\\")
        or any(ord(ch) < 32 or ord(ch) == 127 for ch in branch)
    ):
        raise ValidationError(f"Invalid branch name: {branch}")
    return branch


def parse_repository(value: str) -> tuple[str, str]:
    """Accept ``owner/repo`` or a github.com / api.github.com URL."""

    if not value or not value.strip():
        raise ValidationError("Repository URL or identifier is required")
    cleaned = value.strip()
    if cleaned.endswith(".git"):
        cleaned = cleaned[: -len(".git")]
    for pattern in _REPOSITORY_PATTERNS:
        match = pattern.match(cleaned)
        if match:
            return validate_owner(match.group(1)), validate_repo(match.group(2))
    raise ValidationError(
        "Invalid GitHub repository format. Use owner/repo, github.com/owner/repo "
        f"or https://github.com/owner/repo (got {value.strip()!r})"
    )


__all__ = [
    "parse_repository",
    "validate_branch",
    "validate_owner",
    "validate_repo",
    "validate_username",
]
