"""Abstract base class for merge-check services."""

from abc import ABC, abstractmethod


class MergeCheckClient(ABC):
    @abstractmethod
    def enable(self, repo_id: int) -> None: ...

    @abstractmethod
    def disable(self, repo_id: int) -> None: ...

    @abstractmethod
    def impersonate(self) -> str:
        """Swap the client's credentials for the service's GitHub App token and return it."""

    def close(self) -> None:
        """Release held connections. Clients without any keep the default."""
