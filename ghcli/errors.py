"""Error kinds shared by the remote clients, rule appliers and orchestrators."""

from collections.abc import Iterable, Iterator
from enum import Enum
from typing import NamedTuple


class ErrorKind(str, Enum):
    ALREADY_EXISTS = "already_exists"
    ALREADY_ENABLED = "already_enabled"
    ALREADY_NOT_ENABLED = "already_not_enabled"
    QUOTA_EXCEEDED = "quota_exceeded"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    SERVER_ERROR = "server_error"  # unexpected >=400 with a decodable body
    REMOTE_ERROR = "remote_error"  # transport failure or undecodable response
    CONFIGURATION_ERROR = "configuration_error"


class GhCliError(Exception):
    """Base exception for every failure the tool reports.

    Callers match on ``kind``, never on the message. Context is layered with
    ``raise GhCliError(...) from err`` so the whole chain can be printed.
    """

    def __init__(self, kind: ErrorKind, message: str, status_code: int | None = None) -> None:
        self.kind = kind
        self.message = message
        self.status_code = status_code
        super().__init__(message)

    def is_kind(self, *kinds: ErrorKind) -> bool:
        return self.kind in kinds


class ConfigurationError(GhCliError):
    """Raised before any network call when options or config are unusable."""

    def __init__(self, message: str) -> None:
        super().__init__(ErrorKind.CONFIGURATION_ERROR, message)


def error_chain(err: BaseException) -> str:
    """Join an exception and its ``__cause__`` chain into one line."""
    parts = []
    current: BaseException | None = err
    while current is not None:
        text = str(current)
        if text and text not in parts:
            parts.append(text)
        current = current.__cause__
    return ": ".join(parts)


class ItemFailure(NamedTuple):
    index: int  # position of the call within the applier's loop
    item: str
    error: GhCliError


class ItemFailures:
    """Failures collected across an applier's per-item loop."""

    def __init__(self, failures: Iterable[ItemFailure] = ()) -> None:
        self._failures = list(failures)

    def add(self, index: int, item: str, error: GhCliError) -> None:
        self._failures.append(ItemFailure(index, item, error))

    @property
    def failed(self) -> bool:
        return bool(self._failures)

    def unabsorbed(self, absorbed: Iterable[ErrorKind]) -> list[ItemFailure]:
        kinds = frozenset(absorbed)
        return [f for f in self._failures if f.error.kind not in kinds]

    def __iter__(self) -> Iterator[ItemFailure]:
        return iter(self._failures)

    def __len__(self) -> int:
        return len(self._failures)

    def __repr__(self) -> str:
        return f"ItemFailures({self._failures!r})"
