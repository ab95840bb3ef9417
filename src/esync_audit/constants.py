"""Stable constants shared across the audit engine."""

from __future__ import annotations

from typing import Final

CONFIG_SCHEMA_VERSION: Final[int] = 1

# ACL encoding used by the system-of-record.
ACE_SEPARATOR: Final[str] = ","
DENY_ALL_ACE: Final[str] = "-Everyone"
UNSUPPORTED_ACL: Final[str] = "_UNSUPPORTED_ACL_"
NEGATIVE_ACE_PREFIX: Final[str] = "-"

PATH_SEPARATOR: Final[str] = "/"

# Defaults for the checker pool.
DEFAULT_POOL_SIZE: Final[int] = 4
DEFAULT_TIMEOUT_MINUTES: Final[int] = 60

# Metric names.
METRIC_DB_ACL: Final[str] = "esync.db.acl"
METRIC_DB_CARDINALITY: Final[str] = "esync.db.cardinality"
METRIC_DB_TYPE_CARDINALITY: Final[str] = "esync.db.type.cardinality"
METRIC_DB_DOCUMENT_IDS_FOR_TYPE: Final[str] = "esync.db.type.documentIdsForType"
METRIC_CHECKER_DURATION: Final[str] = "esync.checker.duration_ms"
METRIC_FINDINGS: Final[str] = "esync.findings"
METRIC_CHECKERS_RUNNING: Final[str] = "esync.checkers.running"

__all__ = [
    "ACE_SEPARATOR",
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_POOL_SIZE",
    "DEFAULT_TIMEOUT_MINUTES",
    "DENY_ALL_ACE",
    "METRIC_CHECKERS_RUNNING",
    "METRIC_CHECKER_DURATION",
    "METRIC_DB_ACL",
    "METRIC_DB_CARDINALITY",
    "METRIC_DB_DOCUMENT_IDS_FOR_TYPE",
    "METRIC_DB_TYPE_CARDINALITY",
    "METRIC_FINDINGS",
    "NEGATIVE_ACE_PREFIX",
    "PATH_SEPARATOR",
    "UNSUPPORTED_ACL",
]
