"""
esync-audit — unit tests for concurrency primitives

Purpose
- Validate the cancellation token, the bounded semaphore and the daemon thread runner.
"""

from __future__ import annotations

import asyncio
import contextvars
import threading

import pytest

from esync_audit.utils.concurrency import (
    BoundedSemaphore,
    CancellationToken,
    DaemonThreadRunner,
    OperationCancelled,
)

_MARKER: contextvars.ContextVar[str] = contextvars.ContextVar("marker", default="unset")


def test_cancellation_token_checkpoint() -> None:
    token = CancellationToken()
    token.raise_if_cancelled()
    assert token.wait(0) is False

    token.cancel()

    assert token.is_cancelled
    assert token.wait(0) is True
    with pytest.raises(OperationCancelled):
        token.raise_if_cancelled()


def test_cancellation_wakes_waiting_thread() -> None:
    token = CancellationToken()
    woke: list[bool] = []
    waiter = threading.Thread(target=lambda: woke.append(token.wait(5)))
    waiter.start()
    token.cancel()
    waiter.join(timeout=5)
    assert woke == [True]


def test_bounded_semaphore_rejects_bad_limit() -> None:
    with pytest.raises(ValueError, match="limit must be > 0"):
        BoundedSemaphore(0)


@pytest.mark.asyncio
async def test_bounded_semaphore_limits_concurrency() -> None:
    semaphore = BoundedSemaphore(2)
    peak = 0
    active = 0

    async def task() -> None:
        nonlocal peak, active
        async with semaphore.permit():
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1

    await asyncio.gather(*(task() for _ in range(6)))

    assert peak == 2
    assert semaphore.snapshot() == {"limit": 2, "in_use": 0, "available": 2}


@pytest.mark.asyncio
async def test_release_without_acquire_raises() -> None:
    semaphore = BoundedSemaphore(1)
    with pytest.raises(RuntimeError, match="release called more times"):
        semaphore.release()


@pytest.mark.asyncio
async def test_daemon_runner_propagates_contextvars_and_results() -> None:
    runner = DaemonThreadRunner(thread_name_prefix="unit")
    token = _MARKER.set("bound")
    try:
        value = await runner.run(_MARKER.get)
        total = await runner.run(sum, [1, 2, 3])
        thread = await runner.run(threading.current_thread)
    finally:
        _MARKER.reset(token)

    assert value == "bound"
    assert total == 6
    assert thread.daemon is True
    assert thread.name.startswith("unit-")


@pytest.mark.asyncio
async def test_daemon_runner_propagates_exceptions() -> None:
    def _boom() -> None:
        raise ValueError("bad row")

    with pytest.raises(ValueError, match="bad row"):
        await DaemonThreadRunner().run(_boom)


@pytest.mark.asyncio
async def test_cancelled_await_abandons_the_thread() -> None:
    release = threading.Event()
    runner = DaemonThreadRunner()
    task = asyncio.create_task(runner.run(release.wait, 5))
    await asyncio.sleep(0.05)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    release.set()
