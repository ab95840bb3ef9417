"""Batch execution of checkers."""

from esync_audit.orchestration.orchestrator import (
    AuditOrchestrator,
    AuditOutcome,
    AuditReport,
    CheckerOutcome,
    CheckerStatus,
)

__all__ = [
    "AuditOrchestrator",
    "AuditOutcome",
    "AuditReport",
    "CheckerOutcome",
    "CheckerStatus",
]
