"""Error taxonomy shared by the index adapter, sync controller and API.

- ConnectivityError: the index store cannot be reached; never retried here.
- NotFoundError: a catalog product or index document is missing for a
  single-item operation.
- ValidationError: required input is missing or malformed; raised before
  either store is touched.
- PartialBulkFailure: some items of a bulk write failed; the written ones stay.
- AlreadyExistsError / AlreadyInProgressError: idempotency guards.
- OperationCancelled: a long-running bulk operation was cancelled by its caller.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from .index_store import BulkResult


class SearchEngineError(Exception):
    """Base exception for the search engine."""


class ConnectivityError(SearchEngineError):
    """Index store is unreachable."""


class NotFoundError(SearchEngineError):
    def __init__(self, kind: str, identifier: str) -> None:
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} {identifier} not found")


class ValidationError(SearchEngineError):
    """Invalid input; retrying won't help."""


class PartialBulkFailure(SearchEngineError):
    def __init__(self, result: "BulkResult") -> None:
        self.result = result
        super().__init__(
            f"Bulk write failed for {len(result.failed)} of "
            f"{result.succeeded + len(result.failed)} documents"
        )


class AlreadyExistsError(SearchEngineError):
    """The index is already present."""


class AlreadyInProgressError(SearchEngineError):
    """A reindex is already running in this process."""


class OperationCancelled(SearchEngineError):
    """The caller cancelled a long-running operation."""
