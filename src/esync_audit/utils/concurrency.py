"""Concurrency primitives bridging asyncio scheduling and blocking worker threads."""

from __future__ import annotations

import asyncio
import contextvars
import itertools
import threading
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, ParamSpec, TypeVar

import structlog

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

T = TypeVar("T")
P = ParamSpec("P")

logger = structlog.get_logger(__name__)


class OperationCancelled(RuntimeError):
    """Raised at a cooperative checkpoint once cancellation was requested."""


class CancellationToken:
    """Cooperative cancellation flag, safe to set from the event loop and poll from threads."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled("operation cancelled")


class BoundedSemaphore:
    """Small wrapper over ``asyncio.Semaphore`` with usage diagnostics."""

    def __init__(self, limit: int) -> None:
        if limit <= 0:
            raise ValueError("limit must be > 0")
        self._limit = limit
        self._semaphore = asyncio.Semaphore(limit)
        self._in_use = 0

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def in_use(self) -> int:
        return self._in_use

    @property
    def available(self) -> int:
        return self._limit - self._in_use

    async def acquire(self) -> None:
        # Cancellation while waiting here does not acquire a permit.
        await self._semaphore.acquire()
        self._in_use += 1

    def release(self) -> None:
        if self._in_use <= 0:
            raise RuntimeError("release called more times than acquire")
        self._in_use -= 1
        self._semaphore.release()

    @asynccontextmanager
    async def permit(self) -> AsyncIterator[None]:
        await self.acquire()
        try:
            yield
        finally:
            self.release()

    def snapshot(self) -> dict[str, int]:
        return {"limit": self._limit, "in_use": self._in_use, "available": self.available}


class DaemonThreadRunner:
    """Runs blocking callables on fresh daemon threads, awaited from asyncio.

    Cancelling the awaiting task abandons the thread: it keeps running until
    the callable returns, but being a daemon it never holds up interpreter
    exit. The caller bounds concurrency, typically with ``BoundedSemaphore``.
    Each call carries the caller's contextvars into its thread.
    """

    def __init__(self, *, thread_name_prefix: str = "worker") -> None:
        self._thread_name_prefix = thread_name_prefix
        self._counter = itertools.count(1)

    async def run(self, func: Callable[P, T], /, *args: P.args, **kwargs: P.kwargs) -> T:
        loop = asyncio.get_running_loop()
        future: asyncio.Future[T] = loop.create_future()
        context = contextvars.copy_context()

        def settle(setter: Callable[[Any], object], value: object) -> None:
            if not future.done():
                setter(value)

        def target() -> None:
            try:
                result = context.run(func, *args, **kwargs)
            except Exception as exc:  # noqa: BLE001 - handed to the awaiting task.
                _deliver(loop, settle, future.set_exception, exc)
            else:
                _deliver(loop, settle, future.set_result, result)

        thread = threading.Thread(
            target=target,
            name=f"{self._thread_name_prefix}-{next(self._counter)}",
            daemon=True,
        )
        thread.start()
        return await future


def _deliver(
    loop: asyncio.AbstractEventLoop,
    settle: Callable[[Callable[[Any], object], object], None],
    setter: Callable[[Any], object],
    value: object,
) -> None:
    try:
        loop.call_soon_threadsafe(settle, setter, value)
    except RuntimeError:
        # The loop closed after the task was abandoned.
        logger.debug("abandoned_thread_result_dropped", thread=threading.current_thread().name)


__all__ = [
    "BoundedSemaphore",
    "CancellationToken",
    "DaemonThreadRunner",
    "OperationCancelled",
]
