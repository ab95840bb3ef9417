"""In-memory stores: test doubles and the offline snapshot-backed index.

``InMemorySearchIndex.from_json_file`` loads documents exported from a real
index (``{"documents": [...]}`` or a bare list, each entry in
``Document.to_dict`` shape), which lets an audit run against a frozen copy of
the index. Queries walk the documents in scroll pages of ``scroll_size`` and
stop at ``max_results`` hits, the way a paginated index client would.
"""

from __future__ import annotations

import json
import threading
from collections import Counter
from collections.abc import Iterable, Iterator, Mapping, Sequence
from pathlib import Path
from typing import Any, Final

import structlog

from esync_audit.domain.documents import Document, decode_acl, is_at_or_under, is_under
from esync_audit.domain.errors import ConnectivityError, MalformedDataError, NotFoundError

TYPE_FIELD: Final[str] = "type"

logger = structlog.get_logger(__name__)


class _DocumentTable:
    """Id-keyed documents guarded by a lock, with the counting queries both stores share."""

    def __init__(self, documents: Iterable[Document]) -> None:
        self._lock = threading.RLock()
        self._documents: dict[str, Document] = {}
        for document in documents:
            self.put(document)

    def put(self, document: Document) -> None:
        if not isinstance(document, Document):
            raise ValueError(f"expected Document, got {type(document).__name__}")
        with self._lock:
            self._documents[document.id] = document

    def remove(self, doc_id: str) -> bool:
        with self._lock:
            return self._documents.pop(doc_id, None) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._documents)

    def documents(self) -> list[Document]:
        with self._lock:
            return sorted(self._documents.values(), key=lambda item: item.id)

    def get_cardinality(self) -> int:
        return len(self)

    def get_type_cardinality(self) -> dict[str, int]:
        counts = Counter(
            doc_type for doc_type in map(_type_of, self.documents()) if doc_type is not None
        )
        return dict(sorted(counts.items()))

    def get_document_ids_for_type(self, doc_type: str) -> set[str]:
        return {item.id for item in self.documents() if _type_of(item) == doc_type}

    def close(self) -> None:
        return None


class InMemorySourceStore(_DocumentTable):
    """System-of-record double. Documents with an empty ACL carry no explicit ACL."""

    def add_row(
        self,
        doc_id: str,
        raw_acl: str | None,
        *,
        path: str | None = None,
        doc_type: str | None = None,
    ) -> Document:
        """Store a row the way the relational store encodes it (comma-joined ACEs)."""

        fields = {TYPE_FIELD: doc_type} if doc_type is not None else {}
        document = Document(id=doc_id, acl=decode_acl(raw_acl), path=path, fields=fields)
        self.put(document)
        return document

    def get_documents_with_acl(self) -> list[Document]:
        return [item for item in self.documents() if item.acl]


class InMemorySearchIndex(_DocumentTable):
    """Search index double with scroll-style pagination of query results."""

    def __init__(
        self,
        documents: Iterable[Document] = (),
        *,
        max_results: int = 1000,
        scroll_size: int = 100,
    ) -> None:
        if not isinstance(max_results, int) or max_results <= 0:
            raise ValueError("max_results must be a positive integer")
        if not isinstance(scroll_size, int) or scroll_size <= 0:
            raise ValueError("scroll_size must be a positive integer")
        super().__init__(documents)
        self.max_results = max_results
        self.scroll_size = scroll_size

    @classmethod
    def from_json_file(cls, path: str | Path, **kwargs: Any) -> InMemorySearchIndex:
        """Load an exported index snapshot."""

        snapshot_path = Path(path)
        try:
            payload = json.loads(snapshot_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise MalformedDataError(f"{snapshot_path}: invalid JSON: {exc}") from exc
        except OSError as exc:
            raise ConnectivityError(f"cannot read index snapshot {snapshot_path}: {exc}") from exc

        entries = payload.get("documents") if isinstance(payload, Mapping) else payload
        if not isinstance(entries, list):
            raise MalformedDataError(f"{snapshot_path}: expected a list of documents")
        documents: list[Document] = []
        for index, entry in enumerate(entries):
            try:
                documents.append(Document.from_dict(entry))
            except ValueError as exc:
                raise MalformedDataError(f"{snapshot_path}: documents[{index}]: {exc}") from exc
        logger.info("index_snapshot_loaded", path=str(snapshot_path), documents=len(documents))
        return cls(documents, **kwargs)

    def get_document(self, doc_id: str) -> Document:
        with self._lock:
            document = self._documents.get(doc_id)
        if document is None:
            raise NotFoundError(doc_id)
        return document

    def get_docs_with_invalid_acl(
        self,
        expected_acl: Sequence[str],
        path_prefix: str,
        exclude_paths: Sequence[str],
    ) -> list[Document]:
        expected = tuple(expected_acl)
        excluded = tuple(exclude_paths)

        def matches(document: Document) -> bool:
            return (
                is_under(document.path, path_prefix)
                and document.acl != expected
                and not any(is_at_or_under(document.path, path) for path in excluded)
            )

        hits: list[Document] = []
        pages = 0
        for page in self._scroll():
            pages += 1
            for document in page:
                if not matches(document):
                    continue
                if len(hits) >= self.max_results:
                    logger.warning(
                        "index_results_truncated",
                        path_prefix=path_prefix,
                        max_results=self.max_results,
                    )
                    return hits
                hits.append(document)
        logger.debug("index_scroll_done", path_prefix=path_prefix, pages=pages, hits=len(hits))
        return hits

    def _scroll(self) -> Iterator[list[Document]]:
        ordered = sorted(self.documents(), key=lambda item: (item.path or "", item.id))
        for start in range(0, len(ordered), self.scroll_size):
            yield ordered[start : start + self.scroll_size]


def _type_of(document: Document) -> str | None:
    value = document.fields.get(TYPE_FIELD)
    return value if isinstance(value, str) and value else None


__all__ = [
    "TYPE_FIELD",
    "InMemorySearchIndex",
    "InMemorySourceStore",
    "is_at_or_under",
    "is_under",
]
