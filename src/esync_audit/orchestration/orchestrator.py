"""Concurrent execution of a batch of checkers under one deadline.

Each checker runs as a single blocking unit on its own daemon thread, at most
``pool_size`` at a time, scheduled from one asyncio task per checker. A
supervisor waits for all tasks with a single wall-clock deadline and collects
one ``CheckerOutcome`` per checker; nothing else is shared between units except
the event sink.

A failing checker is logged with its stack, reported on the sink as an
informational message, and recorded as ``failed``; its siblings are not
affected. When the deadline expires the outstanding checkers get their
cancellation flag set and are recorded as ``timed_out``. Their worker threads
are abandoned and stop at their next cancellation checkpoint; a checker that
never reaches one cannot keep the process alive. Findings posted before the
deadline stay valid.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Final

import structlog

from esync_audit.checkers.base import Checker, CheckerContext, run_checker
from esync_audit.constants import (
    DEFAULT_POOL_SIZE,
    DEFAULT_TIMEOUT_MINUTES,
    METRIC_CHECKER_DURATION,
    METRIC_CHECKERS_RUNNING,
    METRIC_FINDINGS,
)
from esync_audit.domain.documents import JSONValue
from esync_audit.domain.errors import CheckerError, TimeoutExceeded
from esync_audit.observability.events import EventSink
from esync_audit.observability.logging import correlation_scope
from esync_audit.observability.metrics import MetricsRegistry
from esync_audit.stores.base import SearchIndex, SourceStore
from esync_audit.utils.concurrency import BoundedSemaphore, DaemonThreadRunner

logger = structlog.get_logger(__name__)


class CheckerStatus(StrEnum):
    CLEAN = "clean"
    FINDINGS = "findings"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class AuditOutcome(StrEnum):
    """Batch-level result: every checker clean, some findings, or not all completed."""

    CLEAN = "clean"
    FINDINGS = "findings"
    INCOMPLETE = "incomplete"


_EXIT_CODES: Final[dict[AuditOutcome, int]] = {
    AuditOutcome.CLEAN: 0,
    AuditOutcome.FINDINGS: 1,
    AuditOutcome.INCOMPLETE: 3,
}


@dataclass(frozen=True, slots=True)
class CheckerOutcome:
    name: str
    status: CheckerStatus
    finding_count: int
    duration_ms: float
    error_type: str | None = None
    error: str | None = None

    @property
    def completed(self) -> bool:
        return self.status in (CheckerStatus.CLEAN, CheckerStatus.FINDINGS)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "name": self.name,
            "status": self.status.value,
            "finding_count": self.finding_count,
            "duration_ms": round(self.duration_ms, 3),
            "error_type": self.error_type,
            "error": self.error,
        }


@dataclass(frozen=True, slots=True)
class AuditReport:
    """Outcome of one batch, outcomes sorted by checker name."""

    outcomes: tuple[CheckerOutcome, ...]
    timeout_seconds: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "outcomes", tuple(sorted(self.outcomes, key=lambda o: o.name)))

    @property
    def total_findings(self) -> int:
        return sum(outcome.finding_count for outcome in self.outcomes)

    @property
    def failed(self) -> tuple[str, ...]:
        return self._names_with(CheckerStatus.FAILED)

    @property
    def timed_out(self) -> tuple[str, ...]:
        return self._names_with(CheckerStatus.TIMED_OUT)

    @property
    def outcome(self) -> AuditOutcome:
        if any(not outcome.completed for outcome in self.outcomes):
            return AuditOutcome.INCOMPLETE
        if self.total_findings:
            return AuditOutcome.FINDINGS
        return AuditOutcome.CLEAN

    @property
    def exit_code(self) -> int:
        return _EXIT_CODES[self.outcome]

    def outcome_for(self, name: str) -> CheckerOutcome:
        for outcome in self.outcomes:
            if outcome.name == name:
                return outcome
        raise KeyError(name)

    def timeout_error(self) -> TimeoutExceeded | None:
        if not self.timed_out:
            return None
        return TimeoutExceeded(self.timed_out, self.timeout_seconds)

    def summary(self) -> str:
        total = len(self.outcomes)
        incomplete = [outcome for outcome in self.outcomes if not outcome.completed]
        if not incomplete:
            return f"all {total} checkers completed, {self.total_findings} findings"
        names = ", ".join(
            f"{outcome.name} ({outcome.status.value.replace('_', ' ')})" for outcome in incomplete
        )
        return (
            f"{len(incomplete)} of {total} checkers failed/timed out: {names}; "
            f"{self.total_findings} findings"
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "outcome": self.outcome.value,
            "exit_code": self.exit_code,
            "summary": self.summary(),
            "total_findings": self.total_findings,
            "failed": list(self.failed),
            "timed_out": list(self.timed_out),
            "checkers": [outcome.to_dict() for outcome in self.outcomes],
        }

    def _names_with(self, status: CheckerStatus) -> tuple[str, ...]:
        return tuple(outcome.name for outcome in self.outcomes if outcome.status is status)


class AuditOrchestrator:
    """Runs checkers with bounded parallelism and a batch deadline."""

    def __init__(
        self,
        *,
        pool_size: int = DEFAULT_POOL_SIZE,
        timeout_seconds: float = DEFAULT_TIMEOUT_MINUTES * 60.0,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        if isinstance(pool_size, bool) or not isinstance(pool_size, int) or pool_size <= 0:
            raise ValueError("pool_size must be a positive integer")
        if isinstance(timeout_seconds, bool) or not isinstance(timeout_seconds, (int, float)):
            raise ValueError("timeout_seconds must be numeric")
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self.pool_size = pool_size
        self.timeout_seconds = float(timeout_seconds)
        self.metrics = metrics if metrics is not None else MetricsRegistry()

    def run_sync(
        self,
        checkers: Sequence[Checker],
        *,
        source: SourceStore,
        index: SearchIndex,
        sink: EventSink,
    ) -> AuditReport:
        return asyncio.run(self.run(checkers, source=source, index=index, sink=sink))

    async def run(
        self,
        checkers: Sequence[Checker],
        *,
        source: SourceStore,
        index: SearchIndex,
        sink: EventSink,
    ) -> AuditReport:
        names = [checker.name for checker in checkers]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"duplicate checker names: {duplicates}")

        contexts = {
            checker.name: CheckerContext(name=checker.name, source=source, index=index, sink=sink)
            for checker in checkers
        }
        started_at: dict[str, float] = {}
        semaphore = BoundedSemaphore(self.pool_size)
        runner = DaemonThreadRunner(thread_name_prefix="esync-checker")
        logger.info(
            "audit_started",
            checkers=names,
            pool_size=self.pool_size,
            timeout_seconds=self.timeout_seconds,
        )

        tasks: dict[asyncio.Task[CheckerOutcome], str] = {
            asyncio.create_task(
                self._run_one(checker, contexts[checker.name], runner, semaphore, started_at),
                name=f"checker:{checker.name}",
            ): checker.name
            for checker in checkers
        }

        outcomes: list[CheckerOutcome] = []
        if tasks:
            done, pending = await asyncio.wait(tasks, timeout=self.timeout_seconds)
        else:
            done, pending = set(), set()
        outcomes.extend(task.result() for task in done)

        if pending:
            pending_names = sorted(tasks[task] for task in pending)
            logger.error(
                "audit_timed_out",
                pending=pending_names,
                timeout_seconds=self.timeout_seconds,
            )
            now = time.perf_counter()
            for task in pending:
                name = tasks[task]
                contexts[name].token.cancel()
                task.cancel()
                started = started_at.get(name)
                outcomes.append(
                    CheckerOutcome(
                        name=name,
                        status=CheckerStatus.TIMED_OUT,
                        finding_count=contexts[name].finding_count,
                        duration_ms=(now - started) * 1000.0 if started is not None else 0.0,
                        error_type=TimeoutExceeded.__name__,
                        error=f"not finished after {self.timeout_seconds:.0f}s",
                    )
                )
            await asyncio.gather(*pending, return_exceptions=True)

        report = AuditReport(outcomes=tuple(outcomes), timeout_seconds=self.timeout_seconds)
        logger.info(
            "audit_finished",
            outcome=report.outcome.value,
            total_findings=report.total_findings,
            failed=list(report.failed),
            timed_out=list(report.timed_out),
        )
        return report

    async def _run_one(
        self,
        checker: Checker,
        context: CheckerContext,
        runner: DaemonThreadRunner,
        semaphore: BoundedSemaphore,
        started_at: dict[str, float],
    ) -> CheckerOutcome:
        name = checker.name
        async with semaphore.permit():
            self.metrics.set_gauge(METRIC_CHECKERS_RUNNING, semaphore.in_use)
            started = time.perf_counter()
            started_at[name] = started
            with correlation_scope(checker=name):
                logger.info("checker_started", checker=name)
                try:
                    await runner.run(run_checker, checker, context)
                except CheckerError as exc:
                    outcome = self._failed(context, exc, started)
                else:
                    duration_ms = (time.perf_counter() - started) * 1000.0
                    count = context.finding_count
                    outcome = CheckerOutcome(
                        name=name,
                        status=CheckerStatus.FINDINGS if count else CheckerStatus.CLEAN,
                        finding_count=count,
                        duration_ms=duration_ms,
                    )
                    logger.info(
                        "checker_finished",
                        checker=name,
                        status=outcome.status.value,
                        finding_count=count,
                        duration_ms=round(duration_ms, 3),
                    )
                finally:
                    self.metrics.set_gauge(METRIC_CHECKERS_RUNNING, semaphore.in_use - 1)

        labels = {"checker": name}
        self.metrics.observe(METRIC_CHECKER_DURATION, outcome.duration_ms, labels=labels)
        self.metrics.inc(METRIC_FINDINGS, outcome.finding_count, labels=labels)
        return outcome

    def _failed(
        self,
        context: CheckerContext,
        exc: CheckerError,
        started: float,
    ) -> CheckerOutcome:
        duration_ms = (time.perf_counter() - started) * 1000.0
        cause = exc.cause
        logger.error(
            "checker_failed",
            checker=context.name,
            error_type=type(cause).__name__,
            error=str(cause),
            exc_info=exc,
        )
        context.sink.post_message(
            f"checker failed: {type(cause).__name__}: {cause}", checker=context.name
        )
        return CheckerOutcome(
            name=context.name,
            status=CheckerStatus.FAILED,
            finding_count=context.finding_count,
            duration_ms=duration_ms,
            error_type=type(cause).__name__,
            error=str(cause),
        )


__all__ = [
    "AuditOrchestrator",
    "AuditOutcome",
    "AuditReport",
    "CheckerOutcome",
    "CheckerStatus",
]
