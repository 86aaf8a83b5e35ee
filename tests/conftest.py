"""Shared test fixtures."""

from unittest.mock import MagicMock

import pytest

import ghcli.settings as settings_module
from ghcli.models import (
    CollaboratorPermission,
    Label,
    LabelsOptions,
    Repository,
    RepositoryIdentity,
    RuleName,
    RuleSet,
    TeamPermission,
    Webhook,
)
from ghcli.providers.base import MergeCheckClient
from ghcli.providers.github import GitHubClient
from ghcli.providers.pullapprove import PullApproveClient
from ghcli.rules import Services


@pytest.fixture(autouse=True)
def reset_lru_cache():
    settings_module._load_toml.cache_clear()
    yield
    settings_module._load_toml.cache_clear()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    for key in ("GHCLI_LOG_LEVEL", "GHCLI_GITHUB__ORGANIZATION", "GHCLI_GITHUB__TOKEN"):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def identity() -> RepositoryIdentity:
    return RepositoryIdentity(name="my-service", organization="acme")


@pytest.fixture
def repository() -> Repository:
    return Repository(
        id=1296269,
        name="my-service",
        full_name="acme/my-service",
        private=True,
        html_url="https://github.com/acme/my-service",
    )


@pytest.fixture
def full_rules() -> RuleSet:
    return RuleSet(
        enabled=frozenset(RuleName),
        teams=[TeamPermission(id=1), TeamPermission(id=2, permission="admin")],
        collaborators=[CollaboratorPermission(username="octocat")],
        labels=LabelsOptions(labels=[Label(name="blocked", color="d73a4a"), Label(name="ready", color="0e8a16")]),
        webhooks=[Webhook(config={"url": "https://ci.acme.io/hook", "content_type": "json"})],
        branch_protections={"master": ["continuous-integration/travis-ci"]},
    )


@pytest.fixture
def services(repository: Repository) -> Services:
    github = MagicMock(spec=GitHubClient)
    github.create_repository.return_value = repository
    github.get_repository.return_value = repository
    return Services(
        github=github,
        pullapprove=MagicMock(spec=PullApproveClient),
        merge_check=MagicMock(spec=MergeCheckClient),
    )
