"""Run metrics: counters, gauges and millisecond timings, written to ``metrics.json``.

One ``MetricsRegistry`` is built per run and passed explicitly to the SQL store
and the orchestrator; there is no global registry. A metric is addressed by
name plus optional labels and exported as ``name{label=value,...}``.
"""

from __future__ import annotations

import json
import math
import threading
import time
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from esync_audit.domain.documents import JSONValue

Labels = Mapping[str, str]


@dataclass(slots=True)
class _Timing:
    count: int = 0
    total: float = 0.0
    low: float = math.inf
    high: float = -math.inf

    def add(self, sample: float) -> None:
        self.count += 1
        self.total += sample
        self.low = min(self.low, sample)
        self.high = max(self.high, sample)

    def summary(self) -> dict[str, JSONValue]:
        return {
            "count": self.count,
            "sum": self.total,
            "min": self.low,
            "max": self.high,
            "avg": self.total / self.count,
        }


class MetricsRegistry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._started = datetime.now(tz=UTC)
        self._counters: dict[str, float] = {}
        self._gauges: dict[str, float] = {}
        self._timings: dict[str, _Timing] = {}

    def inc(self, name: str, amount: float = 1.0, *, labels: Labels | None = None) -> None:
        step = _finite(amount, "amount")
        if step < 0:
            raise ValueError("counter increment amount must be >= 0")
        key = _series(name, labels)
        with self._lock:
            self._counters[key] = self._counters.get(key, 0.0) + step

    def set_gauge(self, name: str, value: float, *, labels: Labels | None = None) -> None:
        key = _series(name, labels)
        reading = _finite(value, "value")
        with self._lock:
            self._gauges[key] = reading

    def observe(self, name: str, value: float, *, labels: Labels | None = None) -> None:
        key = _series(name, labels)
        sample = _finite(value, "value")
        with self._lock:
            self._timings.setdefault(key, _Timing()).add(sample)

    @contextmanager
    def timer(self, name: str, *, labels: Labels | None = None) -> Iterator[None]:
        """Observe the block's wall-clock time in milliseconds, even if it raises."""
        _series(name, labels)
        started = time.perf_counter()
        try:
            yield
        finally:
            self.observe(name, (time.perf_counter() - started) * 1000.0, labels=labels)

    def get_counter(self, name: str, *, labels: Labels | None = None) -> float:
        key = _series(name, labels)
        with self._lock:
            return self._counters.get(key, 0.0)

    def get_distribution(
        self, name: str, *, labels: Labels | None = None
    ) -> dict[str, JSONValue] | None:
        key = _series(name, labels)
        with self._lock:
            timing = self._timings.get(key)
            return None if timing is None else timing.summary()

    def snapshot(self) -> dict[str, JSONValue]:
        with self._lock:
            counters = dict(sorted(self._counters.items()))
            gauges = dict(sorted(self._gauges.items()))
            timers = {key: self._timings[key].summary() for key in sorted(self._timings)}
        now = datetime.now(tz=UTC)
        return {
            "metadata": {
                "created_at": _iso(self._started),
                "snapshot_at": _iso(now),
                "uptime_seconds": max(0.0, (now - self._started).total_seconds()),
            },
            "counters": counters,
            "gauges": gauges,
            "timers": timers,
        }

    def export_json(self, path: str | Path) -> Path:
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(
            json.dumps(self.snapshot(), sort_keys=True, indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
        return target


def _series(name: str, labels: Labels | None) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValueError("metric name must not be empty")
    if not labels:
        return name.strip()
    parts = []
    for key, value in sorted(labels.items()):
        if not isinstance(value, str) or not value.strip():
            raise ValueError(f"label value for {key!r} must be a non-empty string")
        parts.append(f"{key.strip()}={value.strip()}")
    return f"{name.strip()}{{{','.join(parts)}}}"


def _finite(value: float, what: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{what} must be numeric, got {type(value).__name__}")
    if not math.isfinite(value):
        raise ValueError(f"{what} must be finite")
    return float(value)


def _iso(value: datetime) -> str:
    return value.isoformat(timespec="seconds").replace("+00:00", "Z")


__all__ = ["MetricsRegistry"]
