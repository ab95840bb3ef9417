"""Error taxonomy for the audit engine.

Mismatches between the two stores are not errors: they surface as findings
(``DiffEvent``/``MissingEvent``/``TrailingEvent``). The exceptions below cover
lookups that miss, unreachable collaborators, malformed input, and checker or
batch-level failures.
"""

from __future__ import annotations

from collections.abc import Sequence


class AuditError(RuntimeError):
    """Base class for audit engine errors."""


class NotFoundError(AuditError, LookupError):
    """Raised by the search index when a document id is absent."""

    def __init__(self, doc_id: str) -> None:
        self.doc_id = doc_id
        super().__init__(f"document {doc_id!r} not found in index")


class ConnectivityError(AuditError):
    """Raised when the source-of-record or the index cannot be reached."""


class MalformedDataError(AuditError, ValueError):
    """Raised when fetched data violates a documented precondition."""


class CheckerError(AuditError):
    """Wraps the root cause of a checker failure, tagged with the checker name."""

    def __init__(self, checker: str, cause: BaseException) -> None:
        self.checker = checker
        self.cause = cause
        super().__init__(f"{checker}: {type(cause).__name__}: {cause}")


class TimeoutExceeded(AuditError):
    """Batch deadline reached while checkers were still running."""

    def __init__(self, pending: Sequence[str], timeout_seconds: float) -> None:
        self.pending = tuple(sorted(pending))
        self.timeout_seconds = timeout_seconds
        names = ", ".join(self.pending)
        super().__init__(
            f"timed out after {timeout_seconds:.0f}s with {len(self.pending)} "
            f"checker(s) outstanding: {names}"
        )


__all__ = [
    "AuditError",
    "CheckerError",
    "ConnectivityError",
    "MalformedDataError",
    "NotFoundError",
    "TimeoutExceeded",
]
