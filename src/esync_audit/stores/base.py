"""Contracts of the two stores the audit engine reads from.

Both are read-only collaborators. Implementations must tolerate concurrent
calls from several checker threads; how they achieve it (one locked
connection, a pool, per-call sessions) is their own business. Pagination of
large index result sets stays inside the implementation: callers only see
fully materialized lists.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from esync_audit.domain.documents import Document


@runtime_checkable
class SourceStore(Protocol):
    """The relational system-of-record."""

    def get_documents_with_acl(self) -> list[Document]:
        """Every non-system document carrying an explicit ACL, ACL decoded."""

    def get_cardinality(self) -> int: ...

    def get_type_cardinality(self) -> dict[str, int]:
        """Document count per primary type, ordered by type name."""

    def get_document_ids_for_type(self, doc_type: str) -> set[str]: ...

    def close(self) -> None: ...


@runtime_checkable
class SearchIndex(Protocol):
    """The derived search index checked for drift."""

    def get_document(self, doc_id: str) -> Document:
        """Return the indexed document or raise ``NotFoundError``."""

    def get_docs_with_invalid_acl(
        self,
        expected_acl: Sequence[str],
        path_prefix: str,
        exclude_paths: Sequence[str],
    ) -> list[Document]:
        """Documents under ``path_prefix`` whose ACL differs from ``expected_acl``.

        Documents at or under any of ``exclude_paths`` are not returned.
        """

    def get_cardinality(self) -> int: ...

    def get_type_cardinality(self) -> dict[str, int]: ...

    def get_document_ids_for_type(self, doc_type: str) -> set[str]: ...

    def close(self) -> None: ...


__all__ = ["SearchIndex", "SourceStore"]
