"""ghcli command line interface."""

from dataclasses import dataclass
from pathlib import Path
from typing import Annotated

import typer
from rich import print as rprint
from rich.table import Table

from ghcli import __version__
from ghcli.errors import ConfigurationError, GhCliError, error_chain
from ghcli.hiring import WEEKS_OF_INACTIVITY, send_test, unseat
from ghcli.log import configure_logging
from ghcli.models import (
    LabelsOptions,
    MergeCheckOptions,
    PullApproveOptions,
    RepositoryDescriptor,
    RepositoryIdentity,
    RuleName,
    RuleOutcome,
    RuleSet,
    RunOutcome,
    RunResult,
)
from ghcli.providers.github import GitHubClient
from ghcli.providers.pullapprove import PullApproveClient
from ghcli.providers.zappr import new_merge_check_client
from ghcli.provision import Provisioner
from ghcli.rules import Services
from ghcli.settings import GhCliSettings, get_settings
from ghcli.updater import self_update

app = typer.Typer(help="Manage your organization's GitHub repositories", no_args_is_help=True)
repo_app = typer.Typer(help="GitHub repository management", no_args_is_help=True)
hiring_app = typer.Typer(help="Hiring test management", no_args_is_help=True)
app.add_typer(repo_app, name="repo")
app.add_typer(hiring_app, name="hiring")


@dataclass
class GlobalOptions:
    config: Path | None = None
    token: str | None = None
    organization: str | None = None
    verbose: bool = False


@app.callback()
def main(
    ctx: typer.Context,
    config: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Config file (default: ./.github.toml, then ~/.github.toml)"),
    ] = None,
    token: Annotated[
        str | None,
        typer.Option("--token", "-t", help="GitHub token, overrides the config file and GITHUB_TOKEN"),
    ] = None,
    organization: Annotated[
        str | None,
        typer.Option("--organization", "-o", help="GitHub organization, overrides the config file"),
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
) -> None:
    ctx.obj = GlobalOptions(config=config, token=token, organization=organization, verbose=verbose)
    configure_logging(verbose=verbose)


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def _abort(exc: GhCliError) -> typer.Exit:
    rprint(f"[red]{error_chain(exc)}[/red]")
    return typer.Exit(1)


def load_settings(ctx: typer.Context) -> GhCliSettings:
    opts: GlobalOptions = ctx.obj or GlobalOptions()
    try:
        settings = get_settings(config=opts.config, token=opts.token, organization=opts.organization)
    except ConfigurationError as exc:
        raise _abort(exc) from exc
    if not opts.verbose:
        try:
            configure_logging(level=settings.log_level)
        except ValueError as exc:
            raise _abort(ConfigurationError(str(exc))) from exc
    return settings


def build_services(settings: GhCliSettings, *, pullapprove: bool = False, merge_check: bool = False) -> Services:
    """Build the remote clients a command needs. Raises ConfigurationError before any network call."""
    _, token = settings.github.require("github")
    pullapprove_client = None
    if pullapprove:
        if not settings.pullapprove.token:
            raise ConfigurationError("please provide a pullapprove token in the [pullapprove] section")
        pullapprove_client = PullApproveClient(settings.pullapprove.token.get_secret_value(), settings.pullapprove.url)
    merge_check_client = new_merge_check_client(settings) if merge_check else None
    return Services(github=GitHubClient(token), pullapprove=pullapprove_client, merge_check=merge_check_client)


def build_rule_set(
    settings: GhCliSettings,
    enabled: set[RuleName],
    remove_default_labels: bool | None = None,
    use_app_credentials: bool | None = None,
) -> RuleSet:
    """Combine config defaults with CLI flags. Flags left as None fall back to the config."""
    gh = settings.github
    if remove_default_labels is None:
        remove_default_labels = gh.remove_default_labels
    if use_app_credentials is None:
        use_app_credentials = settings.zappr.use_app_credentials
    return RuleSet(
        enabled=frozenset(enabled),
        pullapprove=PullApproveOptions(
            filename=settings.pullapprove.filename,
            protected_branch_name=settings.pullapprove.protected_branch_name,
        ),
        merge_check=MergeCheckOptions(use_app_credentials=use_app_credentials),
        teams=gh.teams,
        collaborators=gh.collaborators,
        labels=LabelsOptions(remove_default_labels=remove_default_labels, labels=gh.labels),
        webhooks=gh.webhooks,
        branch_protections=gh.protections,
    )


_OUTCOME_STYLE = {
    RuleOutcome.APPLIED: "[green]applied[/green]",
    RuleOutcome.ALREADY_SATISFIED: "[dim]already applied, skipped[/dim]",
    RuleOutcome.FAILED: "[red]failed[/red]",
}


def render_run(run: RunResult) -> Table:
    table = Table(title=run.identity.full_name)
    table.add_column("Rule", style="cyan")
    table.add_column("Status")
    table.add_column("Detail", style="dim")
    for result in sorted(run.results, key=lambda r: list(RuleName).index(r.rule)):
        detail = error_chain(result.error) if result.error else ""
        table.add_row(result.rule.value, _OUTCOME_STYLE[result.outcome], detail)
    return table


# ---------------------------------------------------------------------------
# repo
# ---------------------------------------------------------------------------


@repo_app.command("create")
def repo_create(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Repository name")],
    description: Annotated[str, typer.Option("--description", "-d", help="The repository's description")] = "",
    private: Annotated[bool, typer.Option("--private/--public", help="Is the repository private?")] = True,
    has_issues: Annotated[bool, typer.Option("--has-issues/--no-issues", help="Enables issue pages")] = True,
    has_wiki: Annotated[bool, typer.Option("--has-wiki/--no-wiki", help="Enables wiki pages")] = False,
    has_pages: Annotated[bool, typer.Option("--has-pages/--no-pages", help="Enables GitHub pages")] = False,
    has_pullapprove: Annotated[
        bool, typer.Option("--has-pullapprove/--no-pullapprove", help="Enables PullApprove")
    ] = False,
    has_merge_check: Annotated[
        bool, typer.Option("--has-merge-check/--no-merge-check", help="Enables the Zappr merge check")
    ] = True,
    has_teams: Annotated[bool, typer.Option("--has-teams/--no-teams", help="Adds the configured teams")] = True,
    has_collaborators: Annotated[
        bool, typer.Option("--has-collaborators/--no-collaborators", help="Adds the configured collaborators")
    ] = False,
    has_labels: Annotated[bool, typer.Option("--has-labels/--no-labels", help="Adds the configured labels")] = True,
    rm_default_labels: Annotated[
        bool | None,
        typer.Option(
            "--rm-default-labels/--keep-default-labels",
            help="Removes GitHub's default labels (default: remove_default_labels from config)",
        ),
    ] = None,
    has_webhooks: Annotated[
        bool, typer.Option("--has-webhooks/--no-webhooks", help="Adds the configured webhooks")
    ] = False,
    has_branch_protections: Annotated[
        bool,
        typer.Option("--has-branch-protections/--no-branch-protections", help="Enables branch protections"),
    ] = True,
    use_merge_check_app_credentials: Annotated[
        bool | None,
        typer.Option(
            "--use-merge-check-app-credentials/--use-own-credentials",
            help="Authenticate to GitHub as the Zappr app (default: zappr.use_app_credentials from config)",
        ),
    ] = None,
) -> None:
    """Create a repository and apply the rules defined in your .github.toml."""
    settings = load_settings(ctx)
    flags = {
        RuleName.PULLAPPROVE: has_pullapprove,
        RuleName.MERGE_CHECK: has_merge_check,
        RuleName.TEAMS: has_teams,
        RuleName.COLLABORATORS: has_collaborators,
        RuleName.LABELS: has_labels,
        RuleName.WEBHOOKS: has_webhooks,
        RuleName.BRANCH_PROTECTIONS: has_branch_protections,
    }
    try:
        org, _ = settings.github.require("github")
        rules = build_rule_set(
            settings,
            {rule for rule, on in flags.items() if on},
            remove_default_labels=rm_default_labels,
            use_app_credentials=use_merge_check_app_credentials,
        )
        descriptor = RepositoryDescriptor(
            description=description,
            private=private,
            has_issues=has_issues,
            has_wiki=has_wiki,
            has_pages=has_pages,
        )
        with build_services(settings, pullapprove=has_pullapprove, merge_check=has_merge_check) as services:
            run = Provisioner(services).create(RepositoryIdentity(name=name, organization=org), descriptor, rules)
    except GhCliError as exc:
        raise _abort(exc) from exc

    if run.results:
        rprint(render_run(run))
    if run.outcome is RunOutcome.FAILED:
        raise _abort(run.first_error)  # type: ignore[arg-type]
    rprint(f"[green]✓[/green] Done: [bold]{run.identity.full_name}[/bold]")


@repo_app.command("delete")
def repo_delete(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Repository name")],
) -> None:
    """Disable the merge check and delete a repository."""
    settings = load_settings(ctx)
    try:
        org, _ = settings.github.require("github")
        with build_services(settings, merge_check=True) as services:
            Provisioner(services).delete(RepositoryIdentity(name=name, organization=org))
    except GhCliError as exc:
        raise _abort(exc) from exc
    rprint(f"[green]✓[/green] Deleted [bold]{org}/{name}[/bold]")


# ---------------------------------------------------------------------------
# hiring
# ---------------------------------------------------------------------------


@hiring_app.command("send")
def hiring_send(
    ctx: typer.Context,
    username: Annotated[str, typer.Argument(help="GitHub username of the candidate")],
    repo: Annotated[str, typer.Argument(help="Template repository holding the test")],
    branch: Annotated[str | None, typer.Argument(help="Template branch (default: its default branch)")] = None,
) -> None:
    """Create a hiring test repository for a candidate from a template repository."""
    settings = load_settings(ctx)
    try:
        org, token = settings.github_test_org.require("github_test_org")
        with GitHubClient(token) as github:
            target = send_test(github, org, token, username, repo, branch)
    except GhCliError as exc:
        raise _abort(exc) from exc
    rprint(f"[green]✓[/green] Hiring test for {username} is ready: https://github.com/{org}/{target}")


@hiring_app.command("unseat")
def hiring_unseat(
    ctx: typer.Context,
    page_size: Annotated[
        int, typer.Option("--page-size", min=1, max=100, help="Repositories fetched per page")
    ] = 50,
    page: Annotated[int, typer.Option("--page", min=1, help="Starting page for repositories")] = 1,
    inactive_weeks: Annotated[
        int,
        typer.Option("--inactive-weeks", min=1, help="Repos not pushed to for this many weeks are left alone"),
    ] = WEEKS_OF_INACTIVITY,
) -> None:
    """Remove outside collaborators from recently active repositories."""
    settings = load_settings(ctx)
    try:
        org, token = settings.github_test_org.require("github_test_org")
        with GitHubClient(token) as github:
            count = unseat(github, org, page_size=page_size, page=page, weeks_of_inactivity=inactive_weeks)
    except GhCliError as exc:
        raise _abort(exc) from exc
    rprint(f"[green]✓[/green] {count} outside collaborator(s) unseated")


# ---------------------------------------------------------------------------
# misc
# ---------------------------------------------------------------------------


@app.command("update")
def update(
    ctx: typer.Context,
    timeout: Annotated[float, typer.Option("--timeout", help="Request timeout when searching for a new release")] = 10,
) -> None:
    """Check for a new release and install it."""
    opts: GlobalOptions = ctx.obj or GlobalOptions()
    try:
        with GitHubClient(opts.token, timeout=timeout) as github:
            updated = self_update(github)
    except GhCliError as exc:
        raise _abort(exc) from exc
    if updated:
        rprint(f"[green]✓[/green] Updated to {updated}")
    else:
        rprint(f"Already on the latest version ({__version__})")


@app.command("version")
def version() -> None:
    """Print the version information."""
    typer.echo(f"ghcli {__version__}")
