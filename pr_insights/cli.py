"""Command line interface for pull-request insights."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

import typer
from pydantic import TypeAdapter

from .cache import ReadThroughCache
from .config import AppConfig
from .errors import (
    GitHubAPIError,
    NotFoundError,
    RateLimitedError,
    UnauthorizedError,
    ValidationError,
)
from .github_client import GitHubRestClient
from .service import InsightsService
from .validation import parse_repository

app = typer.Typer(add_completion=False)

EXIT_CODES: dict[type[Exception], int] = {
    ValidationError: 2,
    NotFoundError: 3,
    UnauthorizedError: 4,
    RateLimitedError: 5,
    GitHubAPIError: 6,
}


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def _config(github_token: Optional[str], redis_url: Optional[str], **overrides: Any) -> AppConfig:
    if github_token:
        overrides["github_token"] = github_token
    if redis_url:
        overrides["redis_url"] = redis_url
    return AppConfig.from_env(overrides={key: value for key, value in overrides.items() if value is not None})


def _run(config: AppConfig, action: Callable[[InsightsService], Awaitable[Any]]) -> None:
    """Run ``action`` against a fully wired service and print its result as JSON."""

    async def runner() -> Any:
        async with GitHubRestClient(config.github) as client:
            async with ReadThroughCache.from_settings(config.cache) as cache:
                service = InsightsService(config, client, cache)
                return await action(service)

    try:
        result = asyncio.run(runner())
    except (ValidationError, GitHubAPIError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=_exit_code(exc)) from exc

    typer.echo(TypeAdapter(Any).dump_json(result, indent=2).decode())


def _exit_code(exc: Exception) -> int:
    for error_type, code in EXIT_CODES.items():
        if isinstance(exc, error_type):
            return code
    return 1


def _repository(value: str) -> tuple[str, str]:
    try:
        return parse_repository(value)
    except ValidationError as exc:
        raise typer.BadParameter(str(exc)) from exc


@app.command("repo-stats")
def repo_stats(
    repository: str = typer.Argument(..., help="owner/repo or a github.com URL"),
    branch: str = typer.Option("", help="Target branch; all branches when omitted"),
    time_filter: str = typer.Option("1m", "--filter", help="Time window: 2w, 1m, 3m, 6m or all"),
    review_prs: Optional[int] = typer.Option(None, help="Recent PRs whose reviews are fetched"),
    github_token: Optional[str] = typer.Option(None, envvar="GITHUB_TOKEN", help="GitHub token"),
    redis_url: Optional[str] = typer.Option(None, help="Redis URL for the shared cache"),
    log_level: str = typer.Option("INFO", help="Logging level"),
) -> None:
    """Summarize pull-request activity of a repository."""

    configure_logging(log_level)
    owner, repo = _repository(repository)
    config = _config(github_token, redis_url, review_pr_limit=review_prs)
    _run(config, lambda service: service.fetch_repository_stats(owner, repo, branch, time_filter))


@app.command("contributors")
def contributors(
    repository: str = typer.Argument(..., help="owner/repo or a github.com URL"),
    branch: str = typer.Option("", help="Target branch; all branches when omitted"),
    time_filter: str = typer.Option("1m", "--filter", help="Time window: 2w, 1m, 3m, 6m or all"),
    github_token: Optional[str] = typer.Option(None, envvar="GITHUB_TOKEN", help="GitHub token"),
    redis_url: Optional[str] = typer.Option(None, help="Redis URL for the shared cache"),
    log_level: str = typer.Option("INFO", help="Logging level"),
) -> None:
    """List contributors of a repository, most active first."""

    configure_logging(log_level)
    owner, repo = _repository(repository)
    config = _config(github_token, redis_url)
    _run(config, lambda service: service.fetch_contributors(owner, repo, branch, time_filter))


@app.command("user-stats")
def user_stats(
    username: str = typer.Argument(..., help="GitHub login"),
    time_filter: str = typer.Option("1m", "--filter", help="Time window: 2w, 1m, 3m, 6m or all"),
    github_token: Optional[str] = typer.Option(None, envvar="GITHUB_TOKEN", help="GitHub token"),
    redis_url: Optional[str] = typer.Option(None, help="Redis URL for the shared cache"),
    log_level: str = typer.Option("INFO", help="Logging level"),
) -> None:
    """Summarize pull requests authored by a user across repositories."""

    configure_logging(log_level)
    config = _config(github_token, redis_url)
    _run(config, lambda service: service.fetch_user_stats(username, time_filter))


@app.command("branches")
def branches(
    repository: str = typer.Argument(..., help="owner/repo or a github.com URL"),
    github_token: Optional[str] = typer.Option(None, envvar="GITHUB_TOKEN", help="GitHub token"),
    redis_url: Optional[str] = typer.Option(None, help="Redis URL for the shared cache"),
    log_level: str = typer.Option("WARNING", help="Logging level"),
) -> None:
    """List branch names of a repository."""

    configure_logging(log_level)
    owner, repo = _repository(repository)
    config = _config(github_token, redis_url)
    _run(config, lambda service: service.fetch_branches(owner, repo))


@app.command("maintainers")
def maintainers(
    repository: str = typer.Argument(..., help="owner/repo or a github.com URL"),
    github_token: Optional[str] = typer.Option(None, envvar="GITHUB_TOKEN", help="GitHub token"),
    redis_url: Optional[str] = typer.Option(None, help="Redis URL for the shared cache"),
    log_level: str = typer.Option("WARNING", help="Logging level"),
) -> None:
    """List collaborators with push or admin access."""

    configure_logging(log_level)
    owner, repo = _repository(repository)
    config = _config(github_token, redis_url)

    async def action(service: InsightsService) -> list[str]:
        return sorted(await service.fetch_maintainers(owner, repo))

    _run(config, action)


@app.command("rate-limit")
def rate_limit(
    github_token: Optional[str] = typer.Option(None, envvar="GITHUB_TOKEN", help="GitHub token"),
    log_level: str = typer.Option("WARNING", help="Logging level"),
) -> None:
    """Show the remaining core API quota."""

    configure_logging(log_level)
    config = _config(github_token, None)
    _run(config, lambda service: service.get_rate_limit_status())


@app.command("invalidate")
def invalidate(
    repository: Optional[str] = typer.Argument(None, help="owner/repo whose cached stats are dropped"),
    user: Optional[str] = typer.Option(None, help="Drop cached stats of this user instead"),
    redis_url: Optional[str] = typer.Option(None, help="Redis URL for the shared cache"),
    log_level: str = typer.Option("INFO", help="Logging level"),
) -> None:
    """Evict cached aggregates so the next query refetches them."""

    configure_logging(log_level)
    if bool(repository) == bool(user):
        raise typer.BadParameter("Pass either a repository or --user")
    config = _config(None, redis_url)

    if user:
        _run(config, lambda service: service.invalidate_user(user))
        return
    owner, repo = _repository(repository)
    _run(config, lambda service: service.invalidate_repository(owner, repo))


__all__ = ["app", "configure_logging"]
