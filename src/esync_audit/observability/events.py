"""Thread-safe event sink fanning findings and messages out to listeners.

The sink is the only object that several checkers mutate concurrently.
Subscriptions are guarded by a re-entrant lock and snapshotted before
dispatch; dispatch itself is serialized by a second lock so listeners see one
event at a time and never need their own locking. The sink keeps counters and
listener failures only, never the events themselves.
"""

from __future__ import annotations

import threading
from collections import Counter, deque
from collections.abc import Callable
from dataclasses import dataclass
from typing import Final

import structlog

from esync_audit.domain.events import Finding, FindingKind, InfoMessage

MESSAGE_KIND: Final[str] = "message"

SinkEvent = Finding | InfoMessage
Listener = Callable[[SinkEvent], object]

_DEFAULT_ERROR_BUFFER: Final[int] = 1024

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class DispatchError:
    """Listener failure captured without interrupting the posting checker."""

    kind: str
    subject: str
    target: str
    error_type: str
    message: str


@dataclass(frozen=True, slots=True)
class _Subscription:
    token: int
    kind: str | None
    callback: Listener


class EventSink:
    """Fan-out of findings (``post``) and informational lines (``post_message``)."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        # Reentrant: a listener may post a follow-up event from its callback.
        self._dispatch_lock = threading.RLock()
        self._subscriptions: dict[int, _Subscription] = {}
        self._next_token = 1
        self._counts: Counter[str] = Counter()
        self._dispatch_errors = deque[DispatchError](maxlen=_DEFAULT_ERROR_BUFFER)

    def subscribe(self, kind: FindingKind | str | None, callback: Listener) -> int:
        """Register ``callback`` for one kind (``"message"`` for messages) or all when ``None``."""

        if not callable(callback):
            raise ValueError("callback must be callable")
        normalized = _normalize_kind(kind)
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._subscriptions[token] = _Subscription(
                token=token, kind=normalized, callback=callback
            )
        return token

    def unsubscribe(self, token: int) -> bool:
        with self._lock:
            return self._subscriptions.pop(token, None) is not None

    def post(self, finding: Finding) -> tuple[DispatchError, ...]:
        if not isinstance(finding, Finding):
            raise ValueError(f"finding must be a Finding, got {type(finding).__name__}")
        return self._dispatch(finding.kind.value, finding.subject, finding)

    def post_message(self, text: str, *, checker: str | None = None) -> tuple[DispatchError, ...]:
        if not isinstance(text, str):
            raise ValueError(f"message text must be a string, got {type(text).__name__}")
        return self._dispatch(MESSAGE_KIND, checker or "-", InfoMessage(text=text, checker=checker))

    @property
    def finding_count(self) -> int:
        with self._lock:
            return sum(count for kind, count in self._counts.items() if kind != MESSAGE_KIND)

    @property
    def message_count(self) -> int:
        with self._lock:
            return self._counts[MESSAGE_KIND]

    def counts(self) -> dict[str, int]:
        """Posted events per kind, including ``"message"``."""

        with self._lock:
            return dict(sorted(self._counts.items()))

    def dispatch_errors(self) -> tuple[DispatchError, ...]:
        with self._lock:
            return tuple(self._dispatch_errors)

    def _dispatch(self, kind: str, subject: str, event: SinkEvent) -> tuple[DispatchError, ...]:
        with self._lock:
            self._counts[kind] += 1
            subscriptions = tuple(self._subscriptions.values())

        errors: list[DispatchError] = []
        with self._dispatch_lock:
            for subscription in subscriptions:
                if subscription.kind is not None and subscription.kind != kind:
                    continue
                try:
                    subscription.callback(event)
                except Exception as exc:  # noqa: BLE001
                    errors.append(
                        DispatchError(
                            kind=kind,
                            subject=subject,
                            target=_callback_name(subscription.callback),
                            error_type=type(exc).__name__,
                            message=str(exc),
                        )
                    )

        if errors:
            with self._lock:
                self._dispatch_errors.extend(errors)
            for error in errors:
                logger.warning(
                    "listener_failed",
                    target=error.target,
                    kind=error.kind,
                    error_type=error.error_type,
                    error=error.message,
                )
        return tuple(errors)


def _normalize_kind(value: FindingKind | str | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, FindingKind):
        return value.value
    if not isinstance(value, str):
        raise ValueError(f"kind must be string/FindingKind, got {type(value).__name__}")
    normalized = value.strip().lower()
    allowed = {item.value for item in FindingKind} | {MESSAGE_KIND}
    if normalized not in allowed:
        raise ValueError(f"invalid kind {value!r}; allowed: {', '.join(sorted(allowed))}")
    return normalized


def _callback_name(callback: object) -> str:
    name = getattr(callback, "__name__", None)
    if isinstance(name, str) and name:
        return name
    return callback.__class__.__name__


__all__ = ["MESSAGE_KIND", "DispatchError", "EventSink", "Listener", "SinkEvent"]
