"""PullApprove API client."""

import httpx

from ghcli.errors import ErrorKind, GhCliError

BASE_URL = "https://pullapprove.com/api"


class PullApproveClient:
    def __init__(self, token: str, base_url: str = BASE_URL, timeout: float = 30) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._headers = {
            "Authorization": f"Token {token}",
            "Content-Type": "application/json",
        }

    def register(self, name: str, organization: str) -> None:
        """Register a repository with PullApprove so it starts enforcing the policy file."""
        try:
            response = httpx.post(
                f"{self._base_url}/orgs/{organization}/repos/",
                headers=self._headers,
                json={"name": name},
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            raise GhCliError(ErrorKind.REMOTE_ERROR, f"could not create a pull approve repository: {exc}") from exc

        if response.status_code == 401:
            raise GhCliError(ErrorKind.UNAUTHORIZED, "you do not have permissions to use pull approve API", 401)
        if response.status_code != 201:
            raise GhCliError(
                ErrorKind.SERVER_ERROR,
                f"could not create a pull approve repository (status {response.status_code})",
                response.status_code,
            )
