"""Per-run JSON-lines logging behind structlog.

Components log with ``structlog.get_logger(__name__)``: an event name plus
key/value fields. ``configure_structlog`` hands those calls to stdlib logging,
and ``setup_logging`` attaches a queue handler that writes one JSON object per
line to ``<log_dir>/<run_id>/audit.jsonl`` from a listener thread.

Records are rendered in the emitting thread, so the ``checker`` bound by
``correlation_scope`` (a contextvar) is seen even though the file is written
elsewhere. Credential-looking keys and inline secrets are masked unless
``redact_secrets`` is off.
"""

from __future__ import annotations

import atexit
import contextvars
import json
import logging
import logging.handlers
import math
import queue
import re
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Final

import structlog

from esync_audit.domain.documents import JSONValue

LOG_FILENAME: Final[str] = "audit.jsonl"
ROOT_LOGGER_NAME: Final[str] = "esync_audit"

REDACTED: Final[str] = "***REDACTED***"

_SECRET_KEY_PARTS: Final[tuple[str, ...]] = (
    "secret",
    "token",
    "password",
    "passwd",
    "authorization",
    "credential",
)
_INLINE_SECRET: Final[re.Pattern[str]] = re.compile(
    r"(?i)\b(password|passwd|pwd|token|secret|authorization)\b\s*([:=])\s*([^\s,;&]+)"
)
_URL_USERINFO: Final[re.Pattern[str]] = re.compile(
    r"(?i)\b([a-z][a-z0-9+.-]*://[^:/\s@]+):([^@\s]+)@"
)

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RECORD_ATTRIBUTES: Final[frozenset[str]] = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime"}

_CORRELATION_KEYS: Final[tuple[str, ...]] = ("run_id", "checker")

_CORRELATION: contextvars.ContextVar[Mapping[str, str]] = contextvars.ContextVar(
    "esync_audit_correlation", default={}
)

_active_lock = threading.Lock()
_active: RunLogHandle | None = None
_atexit_registered = False


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    run_id: str
    base_log_dir: Path | str = Path("logs")
    logger_name: str = ROOT_LOGGER_NAME
    level: int | str = "INFO"
    log_to_stdout: bool = False
    redact_secrets: bool = True


def configure_structlog() -> None:
    """Route structlog through stdlib logging; key/value pairs become ``extra``."""

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


class JsonLineFormatter(logging.Formatter):
    def __init__(self, *, run_id: str, redact: bool = True) -> None:
        super().__init__()
        self._run_id = run_id
        self._redact = redact

    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, JSONValue] = {
            "timestamp": _utc_timestamp(record.created),
            "level": record.levelname,
            "logger": record.name,
            "event": self._clean(record.getMessage()),
            "run_id": self._run_id,
        }
        line.update(get_correlation_context())

        fields = {
            key: _to_json(value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRIBUTES and not key.startswith("_")
        }
        for key in _CORRELATION_KEYS:
            value = fields.pop(key, None)
            if isinstance(value, str) and value:
                line[key] = value
        if fields:
            line["fields"] = self._clean(fields)
        if record.exc_info:
            line["exception"] = self._clean(self.formatException(record.exc_info))
        if record.stack_info:
            line["stack"] = self._clean(record.stack_info)
        return json.dumps(line, sort_keys=True, separators=(",", ":"), ensure_ascii=False)

    def _clean(self, value: JSONValue) -> JSONValue:
        return redact(value) if self._redact else value


class _RenderedLine(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        return record.getMessage()


class RunLogHandle:
    """The logging installed for one audit run; ``shutdown`` drains and closes it."""

    def __init__(
        self,
        *,
        run_id: str,
        log_path: Path,
        logger: logging.Logger,
        queue_handler: logging.handlers.QueueHandler,
        listener: logging.handlers.QueueListener,
        sinks: tuple[logging.Handler, ...],
    ) -> None:
        self.run_id = run_id
        self.log_path = log_path
        self._logger = logger
        self._queue_handler = queue_handler
        self._listener = listener
        self._sinks = sinks
        self._lock = threading.Lock()
        self._closed = False

    @property
    def is_shutdown(self) -> bool:
        return self._closed

    def shutdown(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._logger.removeHandler(self._queue_handler)
            # stop() enqueues a sentinel and joins, so every queued line is written.
            self._listener.stop()
            for sink in self._sinks:
                sink.flush()
                sink.close()


def setup_logging(
    observability: Mapping[str, object] | None = None,
    *,
    run_id: str,
    log_dir: Path | str | None = None,
    logger_name: str = ROOT_LOGGER_NAME,
) -> RunLogHandle:
    """Install run logging from an ``[observability]`` config section."""

    section = dict(observability or {})
    level = section.get("log_level", "INFO")
    base_dir = log_dir if log_dir is not None else section.get("log_dir", "logs")
    return setup_structured_logging(
        LoggingConfig(
            run_id=run_id,
            base_log_dir=base_dir if isinstance(base_dir, (str, Path)) else "logs",
            logger_name=logger_name,
            level=level if isinstance(level, (int, str)) else "INFO",
            log_to_stdout=bool(section.get("log_to_stdout", False)),
            redact_secrets=bool(section.get("redact_secrets", True)),
        )
    )


def setup_structured_logging(config: LoggingConfig) -> RunLogHandle:
    """Install run logging, replacing whatever run logging was active."""

    global _active, _atexit_registered

    run_id = config.run_id.strip()
    if not run_id:
        raise ValueError("run_id must not be empty")
    level = _parse_level(config.level)

    shutdown_logging()
    configure_structlog()

    run_dir = Path(config.base_log_dir) / run_id
    run_dir.mkdir(parents=True, exist_ok=True)
    log_path = run_dir / LOG_FILENAME

    # Lines arrive fully rendered; sinks only write them out.
    passthrough = _RenderedLine()
    sinks: list[logging.Handler] = [logging.FileHandler(log_path, encoding="utf-8")]
    if config.log_to_stdout:
        sinks.append(logging.StreamHandler())
    for sink in sinks:
        sink.setFormatter(passthrough)

    log_queue: queue.SimpleQueue[logging.LogRecord] = queue.SimpleQueue()
    queue_handler = logging.handlers.QueueHandler(log_queue)
    queue_handler.setFormatter(JsonLineFormatter(run_id=run_id, redact=config.redact_secrets))
    listener = logging.handlers.QueueListener(log_queue, *sinks)

    logger = logging.getLogger(config.logger_name)
    logger.setLevel(level)
    logger.propagate = False
    for stale in list(logger.handlers):
        logger.removeHandler(stale)
        stale.close()
    listener.start()
    logger.addHandler(queue_handler)

    handle = RunLogHandle(
        run_id=run_id,
        log_path=log_path,
        logger=logger,
        queue_handler=queue_handler,
        listener=listener,
        sinks=tuple(sinks),
    )
    with _active_lock:
        _active = handle
        if not _atexit_registered:
            atexit.register(shutdown_logging)
            _atexit_registered = True
    return handle


def shutdown_logging() -> None:
    """Stop the active run logging, if any. Safe to call repeatedly."""

    global _active
    with _active_lock:
        handle, _active = _active, None
    if handle is not None:
        handle.shutdown()


def get_correlation_context() -> dict[str, str]:
    return dict(_CORRELATION.get())


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Bind correlation fields (``run_id``, ``checker``) for records logged in scope.

    A ``None`` value unbinds the field. Threads inherit the binding only when
    started with a copied context.
    """

    merged = get_correlation_context()
    for key, value in fields.items():
        if value is None:
            merged.pop(key, None)
        elif value.strip():
            merged[key] = value.strip()
        else:
            raise ValueError(f"correlation field {key!r} must not be blank")
    token = _CORRELATION.set(merged)
    try:
        yield
    finally:
        _CORRELATION.reset(token)


def redact(value: JSONValue, *, key: str | None = None) -> JSONValue:
    """Mask values under secret-looking keys and secrets embedded in strings."""

    if key is not None and any(part in key.lower() for part in _SECRET_KEY_PARTS):
        return REDACTED
    if isinstance(value, str):
        masked = _INLINE_SECRET.sub(lambda m: f"{m.group(1)}{m.group(2)}{REDACTED}", value)
        return _URL_USERINFO.sub(lambda m: f"{m.group(1)}:{REDACTED}@", masked)
    if isinstance(value, list):
        return [redact(item) for item in value]
    if isinstance(value, dict):
        return {name: redact(item, key=name) for name, item in value.items()}
    return value


def _parse_level(value: int | str) -> int:
    if isinstance(value, int):
        return value
    level = logging.getLevelName(value.strip().upper())
    if not isinstance(level, int):
        raise ValueError(f"unsupported logging level {value!r}")
    return level


def _utc_timestamp(created: float) -> str:
    stamp = datetime.fromtimestamp(created, tz=UTC).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z")


def _to_json(value: object) -> JSONValue:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else str(value)
    if isinstance(value, Mapping):
        return {str(key): _to_json(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_json(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return sorted((_to_json(item) for item in value), key=repr)
    if isinstance(value, Path):
        return value.as_posix()
    return str(value)


__all__ = [
    "LOG_FILENAME",
    "LoggingConfig",
    "RunLogHandle",
    "configure_structlog",
    "correlation_scope",
    "get_correlation_context",
    "redact",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]
