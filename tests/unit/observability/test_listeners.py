"""
esync-audit — unit tests for the stock sink listeners

Purpose
- Validate what the logging listener emits and how the collector groups events.

What this test file should cover
- Findings logged at error level, messages at info level.
- Collector ordering by kind then arrival, and its JSON payload.
"""

from __future__ import annotations

from typing import Any

from esync_audit.domain.documents import Document
from esync_audit.domain.events import DiffEvent, MissingEvent, TrailingEvent
from esync_audit.observability.events import EventSink
from esync_audit.observability.listeners import FindingCollector, LoggingListener


class _FakeLogger:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str, dict[str, Any]]] = []

    def info(self, event: str, **fields: Any) -> None:
        self.calls.append(("info", event, fields))

    def error(self, event: str, **fields: Any) -> None:
        self.calls.append(("error", event, fields))


def test_logging_listener_levels_and_fields() -> None:
    fake = _FakeLogger()
    sink = EventSink()
    LoggingListener(fake).attach(sink)

    sink.post_message("Checking 3 documents", checker="AclChecker")
    sink.post(
        DiffEvent(
            left=Document("d1", ("a",), path="/x"),
            right=Document("d1", ("b",), path="/x"),
            message="ACL not inherited",
        )
    )
    sink.post(MissingEvent(doc_id="d2", message="Document not indexed"))
    sink.post(TrailingEvent(doc_id="d3", message="Document not in source"))

    levels = [call[0] for call in fake.calls]
    assert levels == ["info", "error", "error", "error"]

    assert fake.calls[0][1] == "Checking 3 documents"
    assert fake.calls[0][2] == {"checker": "AclChecker"}

    assert fake.calls[1][1] == "DIFF"
    assert fake.calls[1][2]["reason"] == "ACL not inherited"
    assert fake.calls[1][2]["expected"]["acl"] == ["a"]
    assert fake.calls[1][2]["actual"]["acl"] == ["b"]

    assert fake.calls[2][1:] == ("MISSING", {"doc_id": "d2", "reason": "Document not indexed"})
    assert fake.calls[3][1] == "REMOVE: d3, Document not in source"


def test_collector_groups_by_kind_in_arrival_order() -> None:
    sink = EventSink()
    collector = FindingCollector()
    collector.attach(sink)

    sink.post(TrailingEvent(doc_id="t1", message="gone"))
    sink.post(MissingEvent(doc_id="m1", message="absent"))
    sink.post(TrailingEvent(doc_id="t2", message="gone"))
    sink.post_message("finished", checker="CardinalityChecker")

    assert [finding.subject for finding in collector.findings] == ["m1", "t1", "t2"]
    assert [finding.subject for finding in collector.of_kind("trailing")] == ["t1", "t2"]
    assert collector.of_kind("diff") == ()
    assert [message.render() for message in collector.messages] == [
        "[CardinalityChecker] finished"
    ]


def test_collector_to_dict_is_json_ready() -> None:
    sink = EventSink()
    collector = FindingCollector()
    collector.attach(sink)

    sink.post(MissingEvent(doc_id="m1", message="absent"))
    sink.post_message("plain")

    assert collector.to_dict() == {
        "missing": [{"kind": "missing", "message": "absent", "doc_id": "m1"}],
        "message": ["plain"],
    }
