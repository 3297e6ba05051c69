from __future__ import annotations

import pytest

from pr_insights.errors import ValidationError
from pr_insights.validation import (
    parse_repository,
    validate_branch,
    validate_owner,
    validate_repo,
    validate_username,
)


@pytest.mark.parametrize(
    "value",
    [
        "acme/demo",
        "github.com/acme/demo",
        "https://github.com/acme/demo",
        "https://www.github.com/acme/demo/",
        "https://github.com/acme/demo.git",
        "https://api.github.com/repos/acme/demo",
    ],
)
def test_parse_repository_accepts_supported_forms(value):
    assert parse_repository(value) == ("acme", "demo")


@pytest.mark.parametrize("value", ["", "acme", "https://gitlab.com/acme/demo", "a/b/c"])
def test_parse_repository_rejects_other_forms(value):
    with pytest.raises(ValidationError):
        parse_repository(value)


def test_owner_rules():
    assert validate_owner(" acme-corp ") == "acme-corp"
    for bad in ("-acme", "acme-", "ac me", "a" * 40):
        with pytest.raises(ValidationError):
            validate_owner(bad)


def test_repo_rules():
    assert validate_repo("demo.js_v2") == "demo.js_v2"
    for bad in ("", "..", "de/mo", "x" * 101):
        with pytest.raises(ValidationError):
            validate_repo(bad)


def test_username_message_names_username():
    with pytest.raises(ValidationError) as exc:
        validate_username("bad user")

    assert "username" in str(exc.value)


def test_branch_rules():
    assert validate_branch(None) == ""
    assert validate_branch("release/1.x") == "release/1.x"
    for bad in ("feature..x", "a b", "topic.lock", "-x", "x:y", "foo@{1}"):
        with pytest.raises(ValidationError):
            validate_branch(bad)
