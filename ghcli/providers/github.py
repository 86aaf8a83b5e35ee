"""GitHub REST API v3 client."""

import base64
import logging
from collections.abc import Callable
from typing import Any, TypeVar
from urllib.parse import quote

import httpx

from ghcli.errors import ErrorKind, GhCliError
from ghcli.models import Collaborator, Release, Repository, RepositoryDescriptor

BASE_URL = "https://api.github.com"

logger = logging.getLogger(__name__)

PRIVATE_QUOTA_MESSAGE = "Visibility can't be private"


def _error_message(response: httpx.Response) -> str:
    """Pull GitHub's ``message`` (plus per-field errors) out of an error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text.strip() or response.reason_phrase
    if not isinstance(body, dict):
        return str(body)
    message = body.get("message") or response.reason_phrase
    details = [e.get("message") or e.get("code") for e in body.get("errors", []) if isinstance(e, dict)]
    details = [d for d in details if d]
    if details:
        message = f"{message} ({'; '.join(details)})"
    return message


T = TypeVar("T")


def _decode(response: httpx.Response, parse: Callable[[Any], T]) -> T:
    """Decode a success body, mapping non-JSON or unexpected payloads to REMOTE_ERROR."""
    try:
        return parse(response.json())
    except (ValueError, TypeError) as exc:
        request = response.request
        raise GhCliError(
            ErrorKind.REMOTE_ERROR,
            f"{request.method} {request.url.path} returned an unreadable body",
            response.status_code,
        ) from exc


def _repositories(body: Any) -> list[Repository]:
    if not isinstance(body, list):
        raise TypeError(f"expected a list of repositories, got {type(body).__name__}")
    return [Repository.model_validate(node) for node in body]


def _collaborators(body: Any) -> list[Collaborator]:
    if not isinstance(body, list):
        raise TypeError(f"expected a list of collaborators, got {type(body).__name__}")
    return [Collaborator.model_validate(node) for node in body]


def _next_page(response: httpx.Response) -> int | None:
    link = response.links.get("next")
    if not link:
        return None
    page = httpx.URL(link["url"]).params.get("page")
    return int(page) if page else None


class GitHubClient:
    def __init__(self, token: str | None, base_url: str = BASE_URL, timeout: float = 30) -> None:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:  # anonymous access is enough for public release lookups
            headers["Authorization"] = f"Bearer {token}"
        self._http = httpx.Client(base_url=base_url, headers=headers, timeout=timeout, follow_redirects=True)

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "GitHubClient":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict | None = None,
        params: dict | None = None,
        kinds: dict[int, ErrorKind] | None = None,
    ) -> httpx.Response:
        """Send a request and translate failures into GhCliError.

        ``kinds`` maps status codes to the error kind the calling operation
        gives them (e.g. 422 -> ALREADY_EXISTS when creating a label).
        """
        try:
            response = self._http.request(method, path, json=json, params=params)
        except httpx.HTTPError as exc:
            raise GhCliError(ErrorKind.REMOTE_ERROR, f"{method} {path} failed: {exc}") from exc

        logger.debug("%s %s -> %s", method, path, response.status_code)
        if response.is_success:
            return response

        status = response.status_code
        message = _error_message(response)
        if status == 401:
            raise GhCliError(
                ErrorKind.UNAUTHORIZED, f"GitHub API returned 401: {message}. Check your token.", status
            )
        kind = (kinds or {}).get(status, ErrorKind.REMOTE_ERROR)
        raise GhCliError(kind, f"{method} {path} returned {status}: {message}", status)

    # ------------------------------------------------------------------
    # Repositories
    # ------------------------------------------------------------------

    def create_repository(self, org: str, name: str, descriptor: RepositoryDescriptor) -> Repository:
        body = {"name": name, **descriptor.model_dump()}
        try:
            response = self._request("POST", f"/orgs/{org}/repos", json=body)
        except GhCliError as exc:
            if PRIVATE_QUOTA_MESSAGE in exc.message:
                raise GhCliError(
                    ErrorKind.QUOTA_EXCEEDED,
                    "limit for private repos on this account is exceeded",
                    exc.status_code,
                ) from exc
            if exc.status_code == 422:
                raise GhCliError(
                    ErrorKind.ALREADY_EXISTS, f"github repository {org}/{name} already exists", 422
                ) from exc
            raise
        return _decode(response, Repository.model_validate)

    def get_repository(self, org: str, name: str) -> Repository:
        response = self._request("GET", f"/repos/{org}/{name}", kinds={404: ErrorKind.NOT_FOUND})
        return _decode(response, Repository.model_validate)

    def delete_repository(self, org: str, name: str) -> None:
        self._request("DELETE", f"/repos/{org}/{name}", kinds={404: ErrorKind.NOT_FOUND})

    def list_org_repositories(self, org: str, per_page: int = 50, page: int = 1) -> tuple[list[Repository], int | None]:
        """Return one page of the organization's repositories and the next page number, if any."""
        response = self._request("GET", f"/orgs/{org}/repos", params={"per_page": per_page, "page": page})
        repos = _decode(response, _repositories)
        return repos, _next_page(response)

    def add_approval_policy_file(self, org: str, repo: str, filename: str, branch: str) -> None:
        content = base64.b64encode(f"extends: {org}".encode()).decode()
        self._request(
            "PUT",
            f"/repos/{org}/{repo}/contents/{quote(filename)}",
            json={"message": "Initialize repository :tada:", "content": content, "branch": branch},
            kinds={422: ErrorKind.ALREADY_EXISTS},
        )

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    def add_team(self, team_id: int, org: str, repo: str, permission: str) -> None:
        self._request("PUT", f"/teams/{team_id}/repos/{org}/{repo}", json={"permission": permission})

    def add_collaborator(self, org: str, repo: str, username: str, permission: str) -> None:
        self._request("PUT", f"/repos/{org}/{repo}/collaborators/{username}", json={"permission": permission})

    def list_outside_collaborators(
        self, org: str, repo: str, per_page: int = 100, page: int = 1
    ) -> tuple[list[Collaborator], int | None]:
        """Return one page of the repo's outside collaborators and the next page number, if any."""
        response = self._request(
            "GET",
            f"/repos/{org}/{repo}/collaborators",
            params={"affiliation": "outside", "per_page": per_page, "page": page},
        )
        return _decode(response, _collaborators), _next_page(response)

    def remove_collaborator(self, org: str, repo: str, username: str) -> None:
        self._request("DELETE", f"/repos/{org}/{repo}/collaborators/{username}")

    # ------------------------------------------------------------------
    # Labels, hooks, protections
    # ------------------------------------------------------------------

    def create_label(self, org: str, repo: str, name: str, color: str) -> None:
        self._request(
            "POST",
            f"/repos/{org}/{repo}/labels",
            json={"name": name, "color": color},
            kinds={422: ErrorKind.ALREADY_EXISTS},
        )

    def delete_label(self, org: str, repo: str, name: str) -> None:
        self._request(
            "DELETE",
            f"/repos/{org}/{repo}/labels/{quote(name)}",
            kinds={404: ErrorKind.NOT_FOUND},
        )

    def create_webhook(self, org: str, repo: str, hook_type: str, config: dict) -> None:
        self._request(
            "POST",
            f"/repos/{org}/{repo}/hooks",
            json={"name": hook_type, "config": config, "active": True},
            kinds={422: ErrorKind.ALREADY_EXISTS},
        )

    def set_branch_protection(self, org: str, repo: str, branch: str, contexts: list[str]) -> None:
        # GitHub requires all four keys; null disables the facet.
        body = {
            "required_status_checks": {"strict": False, "contexts": contexts},
            "enforce_admins": None,
            "required_pull_request_reviews": None,
            "restrictions": None,
        }
        self._request("PUT", f"/repos/{org}/{repo}/branches/{quote(branch)}/protection", json=body)

    # ------------------------------------------------------------------
    # Releases
    # ------------------------------------------------------------------

    def latest_release(self, owner: str, repo: str) -> Release:
        response = self._request("GET", f"/repos/{owner}/{repo}/releases/latest", kinds={404: ErrorKind.NOT_FOUND})
        return _decode(response, Release.model_validate)
