"""Utility exports for concurrency helpers."""

from esync_audit.utils.concurrency import (
    BoundedSemaphore,
    CancellationToken,
    DaemonThreadRunner,
    OperationCancelled,
)

__all__ = [
    "BoundedSemaphore",
    "CancellationToken",
    "DaemonThreadRunner",
    "OperationCancelled",
]
