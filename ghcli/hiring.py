"""Hiring tests: send a template repo to a candidate and unseat finished candidates."""

import logging
import math
import tempfile
from datetime import datetime, timezone

import git

from ghcli.errors import ErrorKind, GhCliError
from ghcli.models import Collaborator, Repository, RepositoryDescriptor
from ghcli.providers.github import GitHubClient

logger = logging.getLogger(__name__)

WEEK_IN_SECONDS = 604800
WEEKS_OF_INACTIVITY = 5

CANDIDATE_REPO = RepositoryDescriptor(private=True, has_issues=False, has_wiki=False, has_pages=False, auto_init=False)


def _remote_url(token: str, org: str, repo: str) -> str:
    return f"https://{token}@github.com/{org}/{repo}"


def _git_error(message: str, exc: Exception, token: str) -> GhCliError:
    # git echoes the remote URL, which embeds the token.
    detail = str(getattr(exc, "stderr", "") or exc).strip().replace(token, "***")
    return GhCliError(ErrorKind.REMOTE_ERROR, f"{message}: {detail}" if detail else message)


def send_test(
    github: GitHubClient,
    org: str,
    token: str,
    candidate: str,
    template: str,
    branch: str | None = None,
) -> str:
    """Create ``{candidate}-{template}``, grant the candidate push and push the template into it.

    Returns the new repository name. Each step depends on the previous one;
    nothing is undone when a later step fails.
    """
    target = f"{candidate}-{template}"

    logger.info("Creating repository %s/%s...", org, target)
    try:
        github.create_repository(org, target, CANDIDATE_REPO)
    except GhCliError as exc:
        raise GhCliError(exc.kind, "could not create github repo for candidate", exc.status_code) from exc

    logger.info("Adding %s as collaborator to %s/%s", candidate, org, target)
    try:
        github.add_collaborator(org, target, candidate, "push")
    except GhCliError as exc:
        raise GhCliError(exc.kind, "could not add collaborators to repository", exc.status_code) from exc

    with tempfile.TemporaryDirectory(prefix="ghcli-hiring-") as workdir:
        logger.info("Cloning repository...")
        clone_kwargs = {"branch": branch} if branch else {}
        try:
            repo = git.Repo.clone_from(_remote_url(token, org, template), workdir, **clone_kwargs)
        except git.GitCommandError as exc:
            raise _git_error(f"error cloning {org}/{template}", exc, token) from None
        logger.debug("Repository %s/%s cloned", org, template)

        logger.info("Changing remote...")
        try:
            origin = repo.remote("origin")
            origin.set_url(_remote_url(token, org, target))
        except (ValueError, git.GitCommandError) as exc:
            raise _git_error("error changing remote for repository", exc, token) from None

        logger.info("Pushing changes...")
        try:
            origin.push(all=True).raise_if_error()
        except git.GitCommandError as exc:
            raise _git_error(f"error pushing to {org}/{target}", exc, token) from None
        finally:
            repo.close()

    logger.info("Done! Hiring test for %s is created", candidate)
    return target


def round_half_away(value: float) -> int:
    """Round to the nearest integer, ties away from zero (4.5 -> 5, -4.5 -> -5)."""
    if value < 0:
        return int(math.ceil(value - 0.5))
    return int(math.floor(value + 0.5))


def weeks_since(moment: datetime, now: datetime) -> int:
    return round_half_away((now - moment).total_seconds() / WEEK_IN_SECONDS)


def is_active(repo: Repository, now: datetime, weeks_of_inactivity: int = WEEKS_OF_INACTIVITY) -> bool:
    """True when the repo was pushed to less than ``weeks_of_inactivity`` (rounded) weeks ago."""
    if repo.pushed_at is None:
        return False
    pushed_at = repo.pushed_at
    if pushed_at.tzinfo is None:
        pushed_at = pushed_at.replace(tzinfo=timezone.utc)
    return weeks_since(pushed_at, now) < weeks_of_inactivity


def fetch_all_repos(github: GitHubClient, org: str, per_page: int = 50, page: int = 1) -> list[Repository]:
    repos: list[Repository] = []
    next_page: int | None = page
    while next_page is not None:
        logger.debug("Fetching repositories page [%d]", next_page)
        batch, next_page = github.list_org_repositories(org, per_page=per_page, page=next_page)
        repos.extend(batch)
    return repos


def fetch_outside_collaborators(github: GitHubClient, org: str, repo: str) -> list[Collaborator]:
    collaborators: list[Collaborator] = []
    next_page: int | None = 1
    while next_page is not None:
        batch, next_page = github.list_outside_collaborators(org, repo, page=next_page)
        collaborators.extend(batch)
    return collaborators


def unseat(
    github: GitHubClient,
    org: str,
    page_size: int = 50,
    page: int = 1,
    weeks_of_inactivity: int = WEEKS_OF_INACTIVITY,
    now: datetime | None = None,
) -> int:
    """Remove outside collaborators from recently pushed repositories.

    Stops at the first error. Returns how many collaborators were removed.
    """
    now = now or datetime.now(timezone.utc)

    logger.info("Fetching repositories...")
    try:
        repos = fetch_all_repos(github, org, page_size, page)
    except GhCliError as exc:
        raise GhCliError(exc.kind, "could not retrieve repositories", exc.status_code) from exc
    logger.info("%d repositories fetched!", len(repos))

    logger.info("Removing outside collaborators...")
    unseated = 0
    for repo in repos:
        if not is_active(repo, now, weeks_of_inactivity):
            continue

        logger.debug("Fetching outside collaborators of %s", repo.name)
        try:
            collaborators = fetch_outside_collaborators(github, org, repo.name)
        except GhCliError as exc:
            raise GhCliError(exc.kind, "could not retrieve outside collaborators", exc.status_code) from exc

        for collaborator in collaborators:
            logger.info("Removing outside collaborator %s from %s", collaborator.login, repo.name)
            try:
                github.remove_collaborator(org, repo.name, collaborator.login)
            except GhCliError as exc:
                raise GhCliError(exc.kind, "could not unseat outside collaborator", exc.status_code) from exc
            unseated += 1

    logger.info("Done! %d outside collaborators unseated", unseated)
    return unseated
