"""Store contracts and their reference implementations."""

from esync_audit.stores.base import SearchIndex, SourceStore
from esync_audit.stores.memory import (
    TYPE_FIELD,
    InMemorySearchIndex,
    InMemorySourceStore,
    is_at_or_under,
    is_under,
)
from esync_audit.stores.sql_store import (
    DEFAULT_DIALECT,
    DIALECTS,
    SqlDialect,
    SqlSourceStore,
    get_dialect,
)

__all__ = [
    "DEFAULT_DIALECT",
    "DIALECTS",
    "TYPE_FIELD",
    "InMemorySearchIndex",
    "InMemorySourceStore",
    "SearchIndex",
    "SourceStore",
    "SqlDialect",
    "SqlSourceStore",
    "get_dialect",
    "is_at_or_under",
    "is_under",
]
