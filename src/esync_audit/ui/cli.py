"""Command-line interface router for esync-audit."""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

import structlog

from esync_audit.checkers import DEFAULT_CHECKER_REGISTRY, Checker, CheckerRegistry
from esync_audit.config import (
    ConfigLoadError,
    ConfigValidationError,
    effective_config,
    load_config,
)
from esync_audit.domain.errors import AuditError
from esync_audit.domain.ids import generate_run_id
from esync_audit.observability.events import EventSink
from esync_audit.observability.listeners import FindingCollector, LoggingListener
from esync_audit.observability.logging import correlation_scope, setup_logging
from esync_audit.observability.metrics import MetricsRegistry
from esync_audit.orchestration.orchestrator import AuditOrchestrator, AuditReport
from esync_audit.stores.memory import InMemorySearchIndex
from esync_audit.stores.sql_store import SqlDialect, SqlSourceStore, get_dialect
from esync_audit.ui.render import CLIRenderer, create_renderer

METRICS_FILENAME: Final[str] = "metrics.json"

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router."""

    parser = argparse.ArgumentParser(
        prog="esync-audit",
        description=(
            "esync-audit: compare the ACLs and cardinalities of a system-of-record\n"
            "with its search index and report every divergence.\n\n"
            "Common workflows:\n"
            "  esync-audit run                       Run every registered checker\n"
            "  esync-audit run --checker AclChecker  Run a single checker\n"
            "  esync-audit checkers                  Show which checkers would run\n"
            "  esync-audit config                    Print the effective config\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to the TOML config (default: ./esync.toml if present).",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Show detailed output.",
    )
    common.add_argument("--json", action="store_true", help="Emit deterministic JSON output")

    selection = argparse.ArgumentParser(add_help=False)
    selection.add_argument(
        "--checker",
        dest="checkers",
        action="append",
        default=None,
        metavar="NAME",
        help="Run only this checker (repeatable). Overrides checker.list and the block-list.",
    )
    selection.add_argument(
        "--block",
        dest="blocked",
        action="append",
        default=None,
        metavar="NAME",
        help="Skip this checker (repeatable). Overrides checker.block_list.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # run -----------------------------------------------------------------
    run_parser = subparsers.add_parser(
        "run",
        parents=[common, selection],
        help="Run the selected checkers",
        description=(
            "Run the selected checkers concurrently and report findings.\n\n"
            "Exit status: 0 clean, 1 findings, 2 config error,\n"
            "3 some checkers failed or timed out, 4 internal error.\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    run_parser.add_argument("--pool-size", type=int, default=None, help="Worker threads")
    run_parser.add_argument(
        "--timeout-minutes", type=int, default=None, help="Deadline for the whole batch"
    )
    run_parser.set_defaults(handler=_cmd_run)

    # checkers ------------------------------------------------------------
    checkers_parser = subparsers.add_parser(
        "checkers",
        parents=[common, selection],
        help="List registered checkers and the current selection",
    )
    checkers_parser.set_defaults(handler=_cmd_checkers)

    # config --------------------------------------------------------------
    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Print the redacted effective config",
    )
    config_parser.set_defaults(handler=_cmd_config)

    return parser


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_run(args: argparse.Namespace) -> int:
    config = _load_effective_config(args, _cli_overrides(args))
    checker_cfg = config["checker"]
    registry = _registry()
    checkers = registry.resolve(checker_cfg["list"], checker_cfg["block_list"])
    if not checkers:
        raise CLIError("no checker selected", exit_code=2)
    try:
        dialect = get_dialect(config["source"]["dialect"])
    except ValueError as exc:
        raise CLIError(str(exc), exit_code=2) from exc

    run_id = generate_run_id()
    handle = setup_logging(config["observability"], run_id=run_id)
    metrics = MetricsRegistry()
    try:
        with correlation_scope(run_id=run_id):
            logger.info("config_loaded", config=effective_config(config))
            report, collector = _run_audit(config, checkers, dialect=dialect, metrics=metrics)
        metrics_path = metrics.export_json(handle.log_path.parent / METRICS_FILENAME)
    finally:
        handle.shutdown()

    if args.json:
        _emit_json(
            {
                "command": "run",
                "run_id": run_id,
                "report": report.to_dict(),
                "events": collector.to_dict(),
                "log_path": handle.log_path.as_posix(),
                "metrics_path": metrics_path.as_posix(),
            }
        )
        return report.exit_code

    renderer = _get_renderer(args)
    renderer.kv("Run ID", run_id)
    renderer.kv("Log", handle.log_path.as_posix())
    if renderer.verbose:
        renderer.section("Events:")
        renderer.items([message.render() for message in collector.messages])
        renderer.items([finding.render() for finding in collector.findings])
    renderer.report(report)
    return report.exit_code


def _run_audit(
    config: Mapping[str, Any],
    checkers: Sequence[Checker],
    *,
    dialect: SqlDialect,
    metrics: MetricsRegistry,
) -> tuple[AuditReport, FindingCollector]:
    index_cfg = config["index"]
    checker_cfg = config["checker"]
    try:
        index = InMemorySearchIndex.from_json_file(
            index_cfg["snapshot_path"],
            max_results=index_cfg["max_results"],
            scroll_size=index_cfg["scroll_size"],
        )
    except AuditError as exc:
        logger.error("index_unavailable", error=str(exc))
        raise CLIError(str(exc), exit_code=3) from exc

    sink = EventSink()
    LoggingListener().attach(sink)
    collector = FindingCollector()
    collector.attach(sink)

    orchestrator = AuditOrchestrator(
        pool_size=checker_cfg["pool_size"],
        timeout_seconds=checker_cfg["timeout_minutes"] * 60.0,
        metrics=metrics,
    )
    with SqlSourceStore(config["source"]["db_path"], dialect=dialect, metrics=metrics) as source:
        try:
            report = orchestrator.run_sync(checkers, source=source, index=index, sink=sink)
        finally:
            index.close()
    return report, collector


def _cmd_checkers(args: argparse.Namespace) -> int:
    config = _load_effective_config(args, _cli_overrides(args))
    checker_cfg = config["checker"]
    registry = _registry()
    registered = registry.registered_names()
    selected = registry.select(checker_cfg["list"], checker_cfg["block_list"])
    unknown = registry.unknown_names(checker_cfg["list"])

    if args.json:
        _emit_json(
            {
                "command": "checkers",
                "registered": list(registered),
                "selected": list(selected),
                "unknown": list(unknown),
            }
        )
        return 0

    renderer = _get_renderer(args)
    renderer.table(
        ("checker", "selected"),
        [(name, "yes" if name in selected else "no") for name in registered],
        title="Checkers:",
    )
    for name in unknown:
        renderer.warning(f"unknown checker {name!r} ignored")
    return 0


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load_effective_config(args, {})
    redacted = effective_config(config)

    if args.json:
        _emit_json({"command": "config", "config": redacted})
        return 0

    renderer = _get_renderer(args)
    renderer.text(json.dumps(redacted, indent=2, sort_keys=True, ensure_ascii=False))
    return 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _registry() -> CheckerRegistry:
    return DEFAULT_CHECKER_REGISTRY


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    return create_renderer(verbose=bool(getattr(args, "verbose", False)))


def _cli_overrides(args: argparse.Namespace) -> dict[str, object]:
    overrides: dict[str, object] = {
        "checker.list": _string_list(getattr(args, "checkers", None)),
        "checker.block_list": _string_list(getattr(args, "blocked", None)),
        "checker.pool_size": getattr(args, "pool_size", None),
        "checker.timeout_minutes": getattr(args, "timeout_minutes", None),
    }
    return {key: value for key, value in overrides.items() if value is not None}


def _load_effective_config(
    args: argparse.Namespace, overrides: Mapping[str, object]
) -> dict[str, Any]:
    config_path = _optional_str(getattr(args, "config_path", None))
    try:
        return load_config(Path(config_path) if config_path else None, cli_overrides=overrides)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise CLIError("invalid optional string argument", exit_code=2)
    cleaned = value.strip()
    return cleaned or None


def _string_list(value: object) -> list[str] | None:
    if value is None:
        return None
    if isinstance(value, str) or not isinstance(value, Sequence):
        raise CLIError("invalid sequence argument", exit_code=2)
    parsed: list[str] = []
    for item in value:
        for part in str(item).split(","):
            cleaned = part.strip()
            if cleaned and cleaned not in parsed:
                parsed.append(cleaned)
    return parsed


__all__ = [
    "CLIError",
    "build_parser",
    "run_cli",
]
