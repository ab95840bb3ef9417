"""
esync-audit — unit tests for the cardinality, type-cardinality and type-document checkers

Purpose
- Validate count comparisons and per-type id reconciliation.
"""

from __future__ import annotations

from esync_audit.checkers.cardinality_checker import (
    CardinalityChecker,
    TypeCardinalityChecker,
    differing_type_counts,
)
from esync_audit.checkers.type_checker import TypeDocumentChecker
from esync_audit.domain.events import DiffEvent, FindingKind, MissingEvent, TrailingEvent
from esync_audit.stores.memory import InMemorySearchIndex, InMemorySourceStore

from . import doc, make_context


def _stores() -> tuple[InMemorySourceStore, InMemorySearchIndex]:
    source = InMemorySourceStore(
        [
            doc("f1", "/f1", doc_type="File"),
            doc("f2", "/f2", doc_type="File"),
            doc("n1", "/n1", doc_type="Note"),
            doc("w1", "/w1", doc_type="Workspace"),
        ]
    )
    index = InMemorySearchIndex(
        [
            doc("f1", "/f1", doc_type="File"),
            doc("f3", "/f3", doc_type="File"),
            doc("n1", "/n1", doc_type="Note"),
            doc("p1", "/p1", doc_type="Picture"),
            doc("p2", "/p2", doc_type="Picture"),
        ]
    )
    return source, index


def test_differing_type_counts_treats_absent_types_as_zero() -> None:
    assert differing_type_counts({"File": 2, "Note": 1}, {"File": 2, "Picture": 3}) == {
        "Note": (1, 0),
        "Picture": (0, 3),
    }
    assert differing_type_counts({}, {}) == {}


def test_cardinality_checker_reports_count_diff() -> None:
    source, index = _stores()
    context, collector = make_context(source, index, name="CardinalityChecker")

    CardinalityChecker().check(context)

    assert [message.text for message in collector.messages] == [
        "Found 4 documents in db and 5 in index"
    ]
    (diff,) = collector.of_kind(FindingKind.DIFF)
    assert isinstance(diff, DiffEvent)
    assert diff.message == "Document count differs"
    assert diff.subject == "cardinality"
    assert diff.left.fields["count"] == 4
    assert diff.right.fields["count"] == 5


def test_cardinality_checker_equal_counts_is_clean() -> None:
    source = InMemorySourceStore([doc("a", "/a")])
    index = InMemorySearchIndex([doc("b", "/b")])
    context, collector = make_context(source, index)

    CardinalityChecker().check(context)

    assert collector.findings == ()
    assert len(collector.messages) == 1


def test_type_cardinality_checker_reports_each_differing_type() -> None:
    source, index = _stores()
    context, collector = make_context(source, index)

    TypeCardinalityChecker().check(context)

    diffs = collector.of_kind(FindingKind.DIFF)
    assert [(item.subject, item.message) for item in diffs] == [
        ("Picture", "Type count differs"),
        ("Workspace", "Type count differs"),
    ]
    assert diffs[0].left.fields["count"] == 0
    assert diffs[0].right.fields["count"] == 2


def test_type_document_checker_reconciles_ids_of_differing_types() -> None:
    source, index = _stores()
    source.put(doc("f4", "/f4", doc_type="File"))
    context, collector = make_context(source, index)

    TypeDocumentChecker().check(context)

    assert collector.of_kind(FindingKind.MISSING) == (
        MissingEvent("f2", "File not found in index"),
        MissingEvent("f4", "File not found in index"),
        MissingEvent("w1", "Workspace not found in index"),
    )
    assert collector.of_kind(FindingKind.TRAILING) == (
        TrailingEvent("f3", "File not found in db"),
        TrailingEvent("p1", "Picture not found in db"),
        TrailingEvent("p2", "Picture not found in db"),
    )


def test_type_document_checker_skips_types_with_equal_counts() -> None:
    source, index = _stores()
    context, collector = make_context(source, index)

    TypeDocumentChecker().check(context)

    # File counts are 2/2 here, so f2 and f3 are not reconciled.
    subjects = {item.subject for item in collector.findings}
    assert subjects == {"w1", "p1", "p2"}


def test_type_document_checker_nothing_to_reconcile() -> None:
    source = InMemorySourceStore([doc("a", "/a", doc_type="File")])
    index = InMemorySearchIndex([doc("a", "/a", doc_type="File")])
    context, collector = make_context(source, index, name="TypeDocumentChecker")

    TypeDocumentChecker().check(context)

    assert collector.findings == ()
    assert [message.render() for message in collector.messages] == [
        "[TypeDocumentChecker] No document type to reconcile"
    ]
