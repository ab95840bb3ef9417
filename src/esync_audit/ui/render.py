"""Plain-text output for ``esync-audit``.

No color and no terminal detection: the same run prints the same bytes, so
scheduled runs can be diffed and grepped.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, TextIO

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from esync_audit.orchestration.orchestrator import AuditReport

_INDENT = "  "
_GAP = "  "


class CLIRenderer:
    def __init__(self, *, verbose: bool = False, stream: TextIO | None = None) -> None:
        self.verbose = verbose
        # None writes to whatever sys.stdout is at print time.
        self._stream = stream

    def _line(self, text: str = "") -> None:
        print(text, file=self._stream)

    def text(self, line: str) -> None:
        self._line(line)

    def kv(self, key: str, value: object) -> None:
        self._line(f"{key}: {value}")

    def section(self, title: str) -> None:
        self._line()
        self._line(title)

    def warning(self, text: str) -> None:
        self._line(f"{_INDENT}Warning: {text}")

    def items(self, entries: Iterable[str], *, bullet: str = "- ") -> None:
        for entry in entries:
            self._line(f"{_INDENT}{bullet}{entry}")

    def table(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[object]],
        *,
        title: str | None = None,
    ) -> None:
        """Left-aligned columns sized to their widest cell; prints nothing without rows."""
        if not rows:
            return
        cells = [[str(value) for value in row[: len(headers)]] for row in rows]
        widths = [
            max([len(header), *(len(row[col]) for row in cells if col < len(row))])
            for col, header in enumerate(headers)
        ]

        def layout(values: Sequence[str]) -> str:
            padded = [
                (values[col] if col < len(values) else "").ljust(width)
                for col, width in enumerate(widths)
            ]
            return _INDENT + _GAP.join(padded).rstrip()

        if title:
            self.section(title)
        self._line(layout(headers))
        self._line(layout(["-" * width for width in widths]))
        for row in cells:
            self._line(layout(row))

    def report(self, report: AuditReport) -> None:
        """One row per checker, then the overall outcome and its summary line."""
        self.table(
            ("checker", "status", "findings", "ms", "error"),
            [
                (o.name, o.status.value, o.finding_count, f"{o.duration_ms:.0f}", o.error or "")
                for o in report.outcomes
            ],
            title="Checkers:",
        )
        self.section(f"Outcome: {report.outcome.value}")
        self.text(report.summary())


def create_renderer(*, verbose: bool = False) -> CLIRenderer:
    return CLIRenderer(verbose=verbose)


__all__ = ["CLIRenderer", "create_renderer"]
