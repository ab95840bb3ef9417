"""Checker contract, injected checker context, and the static checker registry.

A checker is any object with a ``name`` and a blocking ``check(context)``.
Everything it needs (both stores, the event sink, a cancellation flag) comes
in through ``CheckerContext``; checkers hold no shared mutable state and are
built fresh for each run by zero-argument factories registered by name.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import NoReturn, Protocol, runtime_checkable

import structlog

from esync_audit.domain.errors import CheckerError
from esync_audit.domain.events import Finding
from esync_audit.observability.events import EventSink
from esync_audit.stores.base import SearchIndex, SourceStore
from esync_audit.utils.concurrency import CancellationToken

CheckerFactory = Callable[[], "Checker"]

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class CheckerContext:
    """Per-checker handles plus posting helpers.

    Once the cancellation token is set, ``post`` and ``post_message`` drop
    their argument: an abandoned checker emits nothing further.
    """

    name: str
    source: SourceStore
    index: SearchIndex
    sink: EventSink
    token: CancellationToken = field(default_factory=CancellationToken)
    _finding_count: int = field(default=0, init=False, repr=False)
    _dropped: int = field(default=0, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            _fail("CheckerContext.name", "must be a non-empty string")
        if not isinstance(self.sink, EventSink):
            _fail("CheckerContext.sink", f"expected EventSink, got {type(self.sink).__name__}")

    def post(self, finding: Finding) -> None:
        if self.cancelled:
            self._drop()
            return
        self.sink.post(finding)
        with self._lock:
            self._finding_count += 1

    def post_message(self, text: str) -> None:
        if self.cancelled:
            self._drop()
            return
        self.sink.post_message(text, checker=self.name)

    @property
    def cancelled(self) -> bool:
        return self.token.is_cancelled

    def raise_if_cancelled(self) -> None:
        self.token.raise_if_cancelled()

    @property
    def finding_count(self) -> int:
        with self._lock:
            return self._finding_count

    @property
    def dropped_count(self) -> int:
        with self._lock:
            return self._dropped

    def _drop(self) -> None:
        with self._lock:
            self._dropped += 1


@runtime_checkable
class Checker(Protocol):
    """An independent audit unit."""

    name: str

    def check(self, context: CheckerContext) -> None: ...


def run_checker(checker: Checker, context: CheckerContext) -> None:
    """Invoke ``checker.check`` and tag any failure with the checker name."""

    try:
        checker.check(context)
    except CheckerError:
        raise
    except Exception as exc:
        raise CheckerError(checker.name, exc) from exc


@dataclass(frozen=True, slots=True)
class CheckerRegistration:
    name: str
    factory: CheckerFactory


class CheckerRegistry:
    """Name-to-factory table consulted when resolving the checkers of a run."""

    def __init__(self) -> None:
        self._registrations: dict[str, CheckerRegistration] = {}

    def register(self, name: str, factory: CheckerFactory) -> None:
        normalized = _as_name(name, "name")
        if not callable(factory):
            _fail("factory", "must be callable")
        if normalized in self._registrations:
            _fail("name", f"checker {normalized!r} is already registered")
        self._registrations[normalized] = CheckerRegistration(name=normalized, factory=factory)

    def contains(self, name: str) -> bool:
        return name in self._registrations

    def create(self, name: str) -> Checker:
        registration = self._registrations.get(name)
        if registration is None:
            known = ", ".join(self.registered_names())
            _fail("name", f"unknown checker {name!r}; registered: [{known}]")
        checker = registration.factory()
        if not isinstance(checker, Checker):
            _fail("factory", f"{name!r} factory did not return a Checker")
        if checker.name != name:
            _fail("factory", f"{name!r} factory returned checker named {checker.name!r}")
        return checker

    def registered_names(self) -> tuple[str, ...]:
        return tuple(sorted(self._registrations))

    def unknown_names(self, names: Iterable[str]) -> tuple[str, ...]:
        return tuple(sorted({name for name in names if name not in self._registrations}))

    def select(
        self,
        allow_list: Iterable[str] = (),
        block_list: Iterable[str] = (),
    ) -> tuple[str, ...]:
        """Names of the checkers to run.

        A non-empty allow-list wins: exactly its registered members are
        selected and the block-list is ignored. Unknown allow-list names are
        dropped. Otherwise every registered checker outside the block-list is
        selected.
        """

        allowed = {name.strip() for name in allow_list if name.strip()}
        blocked = {name.strip() for name in block_list if name.strip()}
        if allowed:
            unknown = self.unknown_names(allowed)
            if unknown:
                logger.warning("unknown_checkers_ignored", names=list(unknown))
            return tuple(name for name in self.registered_names() if name in allowed)
        return tuple(name for name in self.registered_names() if name not in blocked)

    def resolve(
        self,
        allow_list: Iterable[str] = (),
        block_list: Iterable[str] = (),
    ) -> tuple[Checker, ...]:
        """Fresh checker instances for ``select(allow_list, block_list)``, sorted by name."""

        return tuple(self.create(name) for name in self.select(allow_list, block_list))


def _as_name(value: object, path: str) -> str:
    if not isinstance(value, str) or not value.strip():
        _fail(path, "must be a non-empty string")
    return value.strip()


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


__all__ = [
    "Checker",
    "CheckerContext",
    "CheckerFactory",
    "CheckerRegistration",
    "CheckerRegistry",
    "run_checker",
]
