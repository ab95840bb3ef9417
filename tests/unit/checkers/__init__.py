"""Shared builders for checker tests."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from esync_audit.checkers.base import CheckerContext
from esync_audit.domain.documents import Document
from esync_audit.observability.events import EventSink
from esync_audit.observability.listeners import FindingCollector
from esync_audit.stores.memory import InMemorySearchIndex, InMemorySourceStore


@dataclass(frozen=True, slots=True)
class InvalidAclQuery:
    expected_acl: tuple[str, ...]
    path_prefix: str
    exclude_paths: tuple[str, ...]


class RecordingIndex(InMemorySearchIndex):
    """In-memory index that records every invalid-ACL query it answers."""

    def __init__(self, documents: Iterable[Document] = ()) -> None:
        super().__init__(documents)
        self.queries: list[InvalidAclQuery] = []

    def get_docs_with_invalid_acl(
        self,
        expected_acl: Sequence[str],
        path_prefix: str,
        exclude_paths: Sequence[str],
    ) -> list[Document]:
        self.queries.append(
            InvalidAclQuery(tuple(expected_acl), path_prefix, tuple(sorted(exclude_paths)))
        )
        return super().get_docs_with_invalid_acl(expected_acl, path_prefix, exclude_paths)


def make_context(
    source: InMemorySourceStore,
    index: InMemorySearchIndex,
    *,
    name: str = "TestChecker",
) -> tuple[CheckerContext, FindingCollector]:
    sink = EventSink()
    collector = FindingCollector()
    collector.attach(sink)
    return CheckerContext(name=name, source=source, index=index, sink=sink), collector


def doc(doc_id: str, path: str | None, *acl: str, doc_type: str | None = None) -> Document:
    fields = {"type": doc_type} if doc_type is not None else {}
    return Document(id=doc_id, acl=tuple(acl), path=path, fields=fields)
