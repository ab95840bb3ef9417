"""SQLite-backed system-of-record reader.

The connection is opened lazily on first use with ``check_same_thread=False``
and every statement runs under one lock, so checker threads can share a store.
``sqlite3.Error`` is surfaced as ``ConnectivityError``; the orchestrator then
fails only the checker that issued the call.
"""

from __future__ import annotations

import sqlite3
import threading
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Final

import structlog

from esync_audit.constants import (
    METRIC_DB_ACL,
    METRIC_DB_CARDINALITY,
    METRIC_DB_DOCUMENT_IDS_FOR_TYPE,
    METRIC_DB_TYPE_CARDINALITY,
)
from esync_audit.domain.documents import Document, decode_acl
from esync_audit.domain.errors import ConnectivityError, MalformedDataError
from esync_audit.observability.metrics import MetricsRegistry

SQLValue = str | int | float | bytes | None

DEFAULT_BUSY_TIMEOUT_MS: Final[int] = 5_000

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class SqlDialect:
    """The four queries the store issues.

    ``acl_query`` returns ``(id, acl)`` rows; ``count_query`` one ``count``
    column; ``type_query`` ``(primarytype, count)`` rows; ``document_ids_query``
    takes the type as its single parameter and returns ``id`` rows.
    """

    name: str
    acl_query: str
    count_query: str
    type_query: str
    document_ids_query: str


DEFAULT_DIALECT: Final[SqlDialect] = SqlDialect(
    name="default",
    acl_query=(
        "SELECT a.id AS id, a.acl AS acl FROM acls a "
        "JOIN hierarchy h ON h.id = a.id "
        "WHERE h.isproperty = 0 ORDER BY a.id"
    ),
    count_query="SELECT count(*) AS count FROM hierarchy WHERE isproperty = 0",
    type_query=(
        "SELECT primarytype, count(*) AS count FROM hierarchy "
        "WHERE isproperty = 0 GROUP BY primarytype ORDER BY primarytype"
    ),
    document_ids_query="SELECT id FROM hierarchy WHERE isproperty = 0 AND primarytype = ?",
)

DIALECTS: Final[dict[str, SqlDialect]] = {DEFAULT_DIALECT.name: DEFAULT_DIALECT}


def get_dialect(name: str) -> SqlDialect:
    try:
        return DIALECTS[name]
    except KeyError:
        allowed = ", ".join(sorted(DIALECTS))
        raise ValueError(f"unknown SQL dialect {name!r}; allowed: {allowed}") from None


class SqlSourceStore:
    """Reads ACL-bearing documents and cardinalities from a SQLite database."""

    def __init__(
        self,
        path: str | Path,
        *,
        dialect: SqlDialect = DEFAULT_DIALECT,
        metrics: MetricsRegistry | None = None,
        busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
    ) -> None:
        if busy_timeout_ms < 0:
            raise ValueError("busy_timeout_ms must be >= 0")
        self._path = Path(path).expanduser()
        self._dialect = dialect
        self._metrics = metrics if metrics is not None else MetricsRegistry()
        self._busy_timeout_ms = busy_timeout_ms
        self._lock = threading.RLock()
        self._conn: sqlite3.Connection | None = None
        self._closed = False

    @property
    def path(self) -> Path:
        return self._path

    @property
    def dialect(self) -> SqlDialect:
        return self._dialect

    def get_documents_with_acl(self) -> list[Document]:
        with self._metrics.timer(METRIC_DB_ACL):
            rows = self._query(self._dialect.acl_query, operation="acl")
        documents: list[Document] = []
        for row in rows:
            try:
                documents.append(Document(id=row["id"], acl=decode_acl(row["acl"])))
            except ValueError as exc:
                raise MalformedDataError(f"invalid ACL row {dict(row)!r}: {exc}") from exc
        return documents

    def get_cardinality(self) -> int:
        with self._metrics.timer(METRIC_DB_CARDINALITY):
            rows = self._query(self._dialect.count_query, operation="cardinality")
        count = -1
        for row in rows:
            count = int(row["count"])
        return count

    def get_type_cardinality(self) -> dict[str, int]:
        with self._metrics.timer(METRIC_DB_TYPE_CARDINALITY):
            rows = self._query(self._dialect.type_query, operation="type cardinality")
        return {str(row["primarytype"]): int(row["count"]) for row in rows}

    def get_document_ids_for_type(self, doc_type: str) -> set[str]:
        with self._metrics.timer(METRIC_DB_DOCUMENT_IDS_FOR_TYPE):
            rows = self._query(
                self._dialect.document_ids_query, (doc_type,), operation="document ids for type"
            )
        return {str(row["id"]) for row in rows}

    def close(self) -> None:
        """Release the connection. Later queries raise ``ConnectivityError``."""
        with self._lock:
            self._closed = True
            if self._conn is None:
                return
            try:
                self._conn.close()
            except sqlite3.Error as exc:
                logger.warning("db_close_failed", path=str(self._path), error=str(exc))
            self._conn = None

    def __enter__(self) -> SqlSourceStore:
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def _query(
        self,
        sql: str,
        params: Sequence[SQLValue] = (),
        *,
        operation: str,
    ) -> list[sqlite3.Row]:
        with self._lock:
            try:
                return self._connection().execute(sql, tuple(params)).fetchall()
            except sqlite3.Error as exc:
                raise ConnectivityError(f"{operation} query failed for {self._path}: {exc}") from exc

    def _connection(self) -> sqlite3.Connection:
        if self._conn is not None:
            return self._conn
        if self._closed:
            raise ConnectivityError(f"store is closed: {self._path}")
        if not self._path.is_file():
            raise ConnectivityError(f"database file not found: {self._path}")
        logger.debug("db_connect", path=str(self._path), dialect=self._dialect.name)
        try:
            conn = sqlite3.connect(
                f"{self._path.resolve().as_uri()}?mode=ro",
                uri=True,
                timeout=self._busy_timeout_ms / 1000.0,
                check_same_thread=False,
            )
        except sqlite3.Error as exc:
            raise ConnectivityError(f"cannot open {self._path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        self._conn = conn
        return conn


__all__ = [
    "DEFAULT_DIALECT",
    "DIALECTS",
    "SqlDialect",
    "SqlSourceStore",
    "get_dialect",
]
