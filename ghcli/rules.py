"""Rule appliers: one function per configuration concern.

Every applier takes the shared ``Services`` bundle and a ``RuleContext`` and
returns the ``ItemFailures`` collected across its loop. Appliers never stop at
the first failing item and never decide whether they should run; the
orchestrator owns both the enabled check and the interpretation of the
failures (see ``ABSORBED``).
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass

from ghcli.errors import ErrorKind, GhCliError, ItemFailures
from ghcli.models import Repository, RepositoryIdentity, RuleName, RuleSet
from ghcli.providers.base import MergeCheckClient
from ghcli.providers.github import GitHubClient
from ghcli.providers.pullapprove import PullApproveClient

logger = logging.getLogger(__name__)

DEFAULT_LABELS = [
    "bug",
    "duplicate",
    "enhancement",
    "help wanted",
    "invalid",
    "question",
    "wontfix",
    "good first issue",
]


@dataclass(frozen=True)
class Services:
    """Remote clients handed explicitly to every orchestrator and applier."""

    github: GitHubClient
    pullapprove: PullApproveClient | None = None
    merge_check: MergeCheckClient | None = None

    def close(self) -> None:
        self.github.close()
        if self.merge_check is not None:
            self.merge_check.close()

    def __enter__(self) -> "Services":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


@dataclass(frozen=True)
class RuleContext:
    identity: RepositoryIdentity
    rules: RuleSet
    repository: Repository | None = None  # set when the create step returned it


Applier = Callable[[Services, RuleContext], ItemFailures]


def apply_pullapprove(services: Services, ctx: RuleContext) -> ItemFailures:
    failures = ItemFailures()
    opts = ctx.rules.pullapprove
    org, repo = ctx.identity.organization, ctx.identity.name
    if services.pullapprove is None:
        failures.add(
            0,
            opts.filename,
            GhCliError(ErrorKind.CONFIGURATION_ERROR, "cannot add pull approve: no pullapprove token configured"),
        )
        return failures

    try:
        services.github.add_approval_policy_file(org, repo, opts.filename, opts.protected_branch_name)
    except GhCliError as exc:
        # An existing policy file means the repo was registered on an earlier run.
        failures.add(0, opts.filename, exc)
        return failures

    try:
        services.pullapprove.register(repo, org)
    except GhCliError as exc:
        failures.add(1, f"register {org}/{repo}", exc)
    return failures


def apply_merge_check(services: Services, ctx: RuleContext) -> ItemFailures:
    failures = ItemFailures()
    org, name = ctx.identity.organization, ctx.identity.name
    client = services.merge_check
    if client is None:
        failures.add(0, name, GhCliError(ErrorKind.CONFIGURATION_ERROR, "no merge-check service configured"))
        return failures

    repository = ctx.repository
    try:
        if repository is None:
            logger.debug("Fetching repo details from GitHub")
            try:
                repository = services.github.get_repository(org, name)
            except GhCliError as exc:
                raise GhCliError(
                    exc.kind, "information required to enable the merge check on the repo was not found"
                ) from exc

        if ctx.rules.merge_check.use_app_credentials:
            logger.debug("Retrieving token for the merge-check GitHub app")
            try:
                client.impersonate()
            except GhCliError as exc:
                hint = ""
                if exc.kind is ErrorKind.UNAUTHORIZED:
                    hint = ". it seems you have not logged in to zappr, if you have, log out, log back in and retry"
                raise GhCliError(exc.kind, f"could not retrieve the merge-check app token{hint}") from exc

        client.enable(repository.id)
    except GhCliError as exc:
        failures.add(0, name, exc)
    return failures


def apply_teams(services: Services, ctx: RuleContext) -> ItemFailures:
    failures = ItemFailures()
    org, repo = ctx.identity.organization, ctx.identity.name
    for index, team in enumerate(ctx.rules.teams):
        try:
            services.github.add_team(team.id, org, repo, team.permission)
        except GhCliError as exc:
            failures.add(index, f"team {team.id}", exc)
    return failures


def apply_collaborators(services: Services, ctx: RuleContext) -> ItemFailures:
    failures = ItemFailures()
    org, repo = ctx.identity.organization, ctx.identity.name
    for index, collaborator in enumerate(ctx.rules.collaborators):
        try:
            services.github.add_collaborator(org, repo, collaborator.username, collaborator.permission)
        except GhCliError as exc:
            failures.add(index, collaborator.username, exc)
    return failures


def apply_labels(services: Services, ctx: RuleContext) -> ItemFailures:
    """Create the configured labels, then optionally drop GitHub's defaults.

    Defaults are removed only after creation so a configured label that shares
    a default's name is left in place.
    """
    failures = ItemFailures()
    org, repo = ctx.identity.organization, ctx.identity.name
    opts = ctx.rules.labels
    index = 0
    for label in opts.labels:
        try:
            services.github.create_label(org, repo, label.name, label.color)
        except GhCliError as exc:
            failures.add(index, f"label {label.name}", exc)
        index += 1

    if opts.remove_default_labels:
        configured = {label.name for label in opts.labels}
        for name in DEFAULT_LABELS:
            if name in configured:
                continue
            try:
                services.github.delete_label(org, repo, name)
            except GhCliError as exc:
                failures.add(index, f"default label {name}", exc)
            index += 1
    return failures


def apply_webhooks(services: Services, ctx: RuleContext) -> ItemFailures:
    failures = ItemFailures()
    org, repo = ctx.identity.organization, ctx.identity.name
    for index, hook in enumerate(ctx.rules.webhooks):
        try:
            services.github.create_webhook(org, repo, hook.type, hook.config)
        except GhCliError as exc:
            failures.add(index, f"{hook.type} hook {hook.config.get('url', '')}".strip(), exc)
    return failures


def apply_branch_protections(services: Services, ctx: RuleContext) -> ItemFailures:
    failures = ItemFailures()
    org, repo = ctx.identity.organization, ctx.identity.name
    for index, (branch, contexts) in enumerate(ctx.rules.branch_protections.items()):
        try:
            services.github.set_branch_protection(org, repo, branch, contexts)
        except GhCliError as exc:
            failures.add(index, f"branch {branch}", exc)
    return failures


APPLIERS: dict[RuleName, Applier] = {
    RuleName.PULLAPPROVE: apply_pullapprove,
    RuleName.MERGE_CHECK: apply_merge_check,
    RuleName.TEAMS: apply_teams,
    RuleName.COLLABORATORS: apply_collaborators,
    RuleName.LABELS: apply_labels,
    RuleName.WEBHOOKS: apply_webhooks,
    RuleName.BRANCH_PROTECTIONS: apply_branch_protections,
}

# Error kinds that mean "this part of the rule is already in place".
ABSORBED: dict[RuleName, frozenset[ErrorKind]] = {
    RuleName.PULLAPPROVE: frozenset({ErrorKind.ALREADY_EXISTS}),
    RuleName.MERGE_CHECK: frozenset({ErrorKind.ALREADY_ENABLED}),
    RuleName.TEAMS: frozenset(),
    RuleName.COLLABORATORS: frozenset(),
    RuleName.LABELS: frozenset({ErrorKind.ALREADY_EXISTS, ErrorKind.NOT_FOUND}),
    RuleName.WEBHOOKS: frozenset({ErrorKind.ALREADY_EXISTS}),
    RuleName.BRANCH_PROTECTIONS: frozenset(),
}
