"""Zappr merge-check client."""

import logging
import re

import httpx

from ghcli.errors import ErrorKind, GhCliError
from ghcli.providers.base import MergeCheckClient
from ghcli.settings import GhCliSettings

DEFAULT_TIMEOUT = 30.0

ALREADY_ENABLED_DETAIL = "Check approval already exists for repository"
# Zappr reports a repo whose approval check is already gone in one of two ways.
_NOT_ENABLED_DETAIL = re.compile(r"required_status_checks 404|Repository \d+ not found")

logger = logging.getLogger(__name__)


class ZapprClient(MergeCheckClient):
    """Talks to Zappr either as the user (GitHub token) or with a Zappr session cookie."""

    def __init__(
        self,
        base_url: str,
        *,
        github_token: str | None = None,
        zappr_token: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        if not github_token and not zappr_token:
            raise ValueError("ZapprClient needs a github token or a zappr token")
        self._github_token = github_token
        self._zappr_token = zappr_token
        self._http = httpx.Client(base_url=base_url.rstrip("/") + "/", timeout=timeout)

    @classmethod
    def with_github_token(cls, base_url: str, github_token: str, timeout: float = DEFAULT_TIMEOUT) -> "ZapprClient":
        return cls(base_url, github_token=github_token, timeout=timeout)

    @classmethod
    def with_zappr_token(cls, base_url: str, zappr_token: str, timeout: float = DEFAULT_TIMEOUT) -> "ZapprClient":
        return cls(base_url, zappr_token=zappr_token, timeout=timeout)

    def close(self) -> None:
        self._http.close()

    def _auth_headers(self) -> dict[str, str]:
        if self._zappr_token:
            return {"Cookie": self._zappr_token}
        return {"Authorization": f"token {self._github_token}"}

    def _request(self, method: str, path: str, params: dict | None = None) -> tuple[httpx.Response, str | None]:
        """Send a request; return the response and Zappr's error detail for >=400 answers.

        401 raises UNAUTHORIZED right away. Other >=400 answers are returned so
        the caller can recognise the "already" cases before giving up.
        """
        try:
            response = self._http.request(method, path, params=params, headers=self._auth_headers())
        except httpx.HTTPError as exc:
            raise GhCliError(ErrorKind.REMOTE_ERROR, f"zappr request {method} {path} failed: {exc}") from exc

        logger.debug("zappr %s %s -> %s", method, path, response.status_code)
        if response.status_code == 401:
            raise GhCliError(ErrorKind.UNAUTHORIZED, "you do not have permissions to use zappr api", 401)
        if response.status_code < 400:
            return response, None
        try:
            body = response.json()
        except ValueError:
            return response, None
        detail = body.get("detail") if isinstance(body, dict) else None
        if detail is None:
            return response, ""
        return response, detail if isinstance(detail, str) else str(detail)

    @staticmethod
    def _server_error(response: httpx.Response, detail: str | None, action: str) -> GhCliError:
        message = f"unknown error from zappr while trying to {action}"
        if detail:
            message = f"{message}: {detail}"
        return GhCliError(ErrorKind.SERVER_ERROR, message, response.status_code)

    def _sync_repo(self, repo_id: int, action: str) -> None:
        # Fetching with autoSync makes Zappr pick up a repo created moments ago.
        response, detail = self._request("GET", f"api/repos/{repo_id}", params={"autoSync": "true"})
        if response.status_code >= 400:
            raise self._server_error(response, detail, f"fetch repo {repo_id} to {action}")

    def enable(self, repo_id: int) -> None:
        self._sync_repo(repo_id, "enable approval check")
        response, detail = self._request("PUT", f"api/repos/{repo_id}/approval")
        if response.status_code < 400:
            return
        if response.status_code == 503 and detail and detail.startswith(ALREADY_ENABLED_DETAIL):
            raise GhCliError(ErrorKind.ALREADY_ENABLED, "zappr already enabled for the repo", 503)
        raise self._server_error(response, detail, "enable approval check")

    def disable(self, repo_id: int) -> None:
        self._sync_repo(repo_id, "disable approval check")
        response, detail = self._request("DELETE", f"api/repos/{repo_id}/approval")
        if response.status_code < 400:
            return
        if response.status_code == 503 and detail and _NOT_ENABLED_DETAIL.search(detail):
            raise GhCliError(ErrorKind.ALREADY_NOT_ENABLED, "zappr already not enabled for the repo", 503)
        raise self._server_error(response, detail, "disable approval check")

    def impersonate(self) -> str:
        response, detail = self._request("GET", "api/apptoken")
        if response.status_code >= 400:
            raise self._server_error(response, detail, "retrieve the zappr app token")
        try:
            token = response.json()["token"]
        except (ValueError, KeyError, TypeError) as exc:
            raise GhCliError(ErrorKind.REMOTE_ERROR, "zappr returned an unreadable app token response") from exc
        # Later calls act as the Zappr GitHub App.
        self._github_token = token
        self._zappr_token = None
        return token


def new_merge_check_client(settings: GhCliSettings) -> MergeCheckClient:
    """Pick the auth mode from config: a Zappr session token wins over the GitHub token."""
    zappr = settings.zappr
    if zappr.token:
        return ZapprClient.with_zappr_token(zappr.url, zappr.token.get_secret_value(), zappr.timeout)
    _, github_token = settings.github.require("github")
    return ZapprClient.with_github_token(zappr.url, github_token, zappr.timeout)
