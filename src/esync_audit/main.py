"""Process entrypoint: runs the CLI and turns every outcome into an exit code.

0 clean, 1 findings, 2 config error, 3 incomplete run (a store could not be
reached, a checker failed or timed out), 4 anything unexpected.
"""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence


class ExitCode(IntEnum):
    CLEAN = 0
    FINDINGS = 1
    CONFIG_ERROR = 2
    INCOMPLETE = 3
    INTERNAL_ERROR = 4


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Console-script and ``python -m esync_audit`` entrypoint. Never raises."""

    # Imported here so import errors are routed like any other failure.
    try:
        from esync_audit.ui.cli import run_cli

        return _as_exit_code(run_cli(argv))
    except SystemExit as exc:
        # argparse exits with 0 for --help and 2 for usage errors.
        return _as_exit_code(exc.code)
    except Exception as exc:  # noqa: BLE001 - last line before the process exits.
        code = _classify(exc)
        if code is ExitCode.INTERNAL_ERROR:
            traceback.print_exception(exc, file=sys.stderr)
        else:
            print(str(exc).strip() or type(exc).__name__, file=sys.stderr)
        return int(code)


def _as_exit_code(value: object) -> int:
    if value is None:
        return ExitCode.CLEAN
    if isinstance(value, int) and value in ExitCode.__members__.values():
        return value
    if isinstance(value, str) and value.strip():
        print(value.strip(), file=sys.stderr)
    return ExitCode.INTERNAL_ERROR


def _classify(exc: BaseException) -> ExitCode:
    from esync_audit.config import ConfigLoadError, ConfigValidationError
    from esync_audit.domain.errors import AuditError

    for link in _causes(exc):
        if isinstance(link, (ConfigLoadError, ConfigValidationError)):
            return ExitCode.CONFIG_ERROR
        if isinstance(link, AuditError):
            return ExitCode.INCOMPLETE
    return ExitCode.INTERNAL_ERROR


def _causes(exc: BaseException) -> Iterator[BaseException]:
    """``exc`` and the exceptions it was raised from or during, innermost last."""
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or (
            None if current.__suppress_context__ else current.__context__
        )


__all__ = ["ExitCode", "cli_entrypoint"]
