"""Stock listeners for the event sink."""

from __future__ import annotations

import threading
from collections import defaultdict
from typing import Any

import structlog

from esync_audit.domain.documents import JSONValue
from esync_audit.domain.events import (
    DiffEvent,
    Finding,
    InfoMessage,
    MissingEvent,
    TrailingEvent,
)
from esync_audit.observability.events import MESSAGE_KIND, EventSink, SinkEvent


class LoggingListener:
    """Writes every finding at error level and every message at info level."""

    def __init__(self, logger: Any | None = None) -> None:
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def __call__(self, event: SinkEvent) -> None:
        if isinstance(event, InfoMessage):
            self._logger.info(event.text, checker=event.checker)
        elif isinstance(event, DiffEvent):
            self._logger.error(
                "DIFF",
                reason=event.message,
                expected=event.left.to_dict(),
                actual=event.right.to_dict(),
            )
        elif isinstance(event, MissingEvent):
            self._logger.error("MISSING", doc_id=event.doc_id, reason=event.message)
        elif isinstance(event, TrailingEvent):
            self._logger.error(event.render(), doc_id=event.doc_id)

    def attach(self, sink: EventSink) -> int:
        return sink.subscribe(None, self)


class FindingCollector:
    """Keeps rendered findings grouped by kind, plus the message lines."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._findings: dict[str, list[Finding]] = defaultdict(list)
        self._messages: list[InfoMessage] = []

    def __call__(self, event: SinkEvent) -> None:
        with self._lock:
            if isinstance(event, InfoMessage):
                self._messages.append(event)
            else:
                self._findings[event.kind.value].append(event)

    def attach(self, sink: EventSink) -> int:
        return sink.subscribe(None, self)

    @property
    def findings(self) -> tuple[Finding, ...]:
        with self._lock:
            return tuple(item for kind in sorted(self._findings) for item in self._findings[kind])

    @property
    def messages(self) -> tuple[InfoMessage, ...]:
        with self._lock:
            return tuple(self._messages)

    def of_kind(self, kind: str) -> tuple[Finding, ...]:
        with self._lock:
            return tuple(self._findings.get(kind, ()))

    def to_dict(self) -> dict[str, JSONValue]:
        with self._lock:
            payload: dict[str, JSONValue] = {
                kind: [item.to_dict() for item in items]
                for kind, items in sorted(self._findings.items())
            }
            payload[MESSAGE_KIND] = [message.render() for message in self._messages]
        return payload


__all__ = ["FindingCollector", "LoggingListener"]
