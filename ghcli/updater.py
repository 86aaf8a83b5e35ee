"""Self-update against the tool's GitHub releases."""

import logging
import subprocess
import sys

from ghcli import __version__
from ghcli.errors import ErrorKind, GhCliError
from ghcli.providers.github import GitHubClient

RELEASE_OWNER = "hellofresh"
RELEASE_REPO = "github-cli"

logger = logging.getLogger(__name__)


def _normalize(tag: str) -> str:
    return tag.strip().removeprefix("v")


def latest_version(github: GitHubClient) -> str:
    try:
        release = github.latest_release(RELEASE_OWNER, RELEASE_REPO)
    except GhCliError as exc:
        if exc.kind is ErrorKind.NOT_FOUND:
            raise GhCliError(exc.kind, f"unable to access {RELEASE_OWNER}/{RELEASE_REPO} repository") from exc
        raise GhCliError(exc.kind, "could not retrieve release for update") from exc
    return _normalize(release.tag_name)


def self_update(github: GitHubClient, current: str = __version__) -> str | None:
    """Install the latest release with pip. Returns the new version, or None if already current."""
    logger.info("Checking if any new version is available...")
    latest = latest_version(github)
    if latest == _normalize(current):
        logger.info("You already have the latest version of %s/%s", RELEASE_OWNER, RELEASE_REPO)
        return None

    source = f"git+https://github.com/{RELEASE_OWNER}/{RELEASE_REPO}@v{latest}"
    logger.debug("Installing %s", source)
    result = subprocess.run(
        [sys.executable, "-m", "pip", "install", "--upgrade", source],
        capture_output=True,
        text=True,
    )
    if result.returncode != 0:
        raise GhCliError(
            ErrorKind.REMOTE_ERROR, f"could not update release to version {latest!r}: {result.stderr.strip()}"
        )
    logger.info("Updated to the version %s", latest)
    return latest
