from __future__ import annotations

import pydantic
import pytest

from pr_insights.config import AnalyticsSettings, AppConfig


def test_from_env_defaults():
    config = AppConfig.from_env(env={})

    assert config.github.token is None
    assert config.github.api_url == "https://api.github.com"
    assert config.analytics.max_pages == 5
    assert config.analytics.max_items == 500
    assert config.analytics.search_max_pages == 3
    assert config.analytics.recent_pr_count == 50
    assert config.cache.redis_url is None
    assert config.cache.namespace == "pr-insights"
    assert (config.ttl.session, config.ttl.maintainers, config.ttl.branches) == (86_400, 3_600, 1_800)
    assert (config.ttl.repo_stats, config.ttl.user_stats) == (300, 600)


def test_from_env_reads_variables_and_overrides():
    env = {
        "GH_TOKEN": "from-env",
        "REDIS_HOST": "cache.internal",
        "REDIS_PASSWORD": "s3cret",
        "PR_MAX_PAGES": "2",
        "REVIEW_PR_LIMIT": "0",
        "CACHE_TTL_REPO_STATS": "60",
    }

    config = AppConfig.from_env(env=env, overrides={"github_token": "cli-token", "max_items": 150})

    assert config.github.token == "cli-token"
    assert config.cache.redis_url == "redis://:s3cret@cache.internal:6379/0"
    assert config.analytics.max_pages == 2
    assert config.analytics.max_items == 150
    assert config.analytics.review_pr_limit == 0
    assert config.ttl.repo_stats == 60


def test_redis_url_takes_precedence_over_parts():
    config = AppConfig.from_env(env={"REDIS_URL": "redis://primary:6380/1", "REDIS_HOST": "ignored"})

    assert config.cache.redis_url == "redis://primary:6380/1"


def test_page_size_is_bounded_by_api_maximum():
    with pytest.raises(pydantic.ValidationError):
        AnalyticsSettings(page_size=250)
