"""Document counts compared between the two stores, overall and per type."""

from __future__ import annotations

from esync_audit.checkers.base import CheckerContext
from esync_audit.domain.documents import Document
from esync_audit.domain.events import DiffEvent


def count_document(doc_id: str, count: int) -> Document:
    """Synthetic document carrying a count, used as one side of a count diff."""

    return Document(id=doc_id, fields={"count": count})


class CardinalityChecker:
    name = "CardinalityChecker"

    def check(self, context: CheckerContext) -> None:
        source_count = context.source.get_cardinality()
        index_count = context.index.get_cardinality()
        context.post_message(
            f"Found {source_count} documents in db and {index_count} in index"
        )
        if source_count != index_count:
            context.post(
                DiffEvent(
                    count_document("cardinality", source_count),
                    count_document("cardinality", index_count),
                    "Document count differs",
                )
            )


class TypeCardinalityChecker:
    name = "TypeCardinalityChecker"

    def check(self, context: CheckerContext) -> None:
        source_counts = context.source.get_type_cardinality()
        index_counts = context.index.get_type_cardinality()
        context.post_message(
            f"Found {len(source_counts)} document types in db and {len(index_counts)} in index"
        )
        for doc_type, (source_count, index_count) in differing_type_counts(
            source_counts, index_counts
        ).items():
            context.raise_if_cancelled()
            context.post(
                DiffEvent(
                    count_document(doc_type, source_count),
                    count_document(doc_type, index_count),
                    "Type count differs",
                )
            )


def differing_type_counts(
    source_counts: dict[str, int],
    index_counts: dict[str, int],
) -> dict[str, tuple[int, int]]:
    """Types whose counts differ, ``{type: (source, index)}``; a missing type counts as 0."""

    differing: dict[str, tuple[int, int]] = {}
    for doc_type in sorted(set(source_counts) | set(index_counts)):
        pair = (source_counts.get(doc_type, 0), index_counts.get(doc_type, 0))
        if pair[0] != pair[1]:
            differing[doc_type] = pair
    return differing


__all__ = [
    "CardinalityChecker",
    "TypeCardinalityChecker",
    "count_document",
    "differing_type_counts",
]
