"""UI package exports for the CLI and its plain-text renderer."""

from esync_audit.ui.cli import CLIError, build_parser, run_cli
from esync_audit.ui.render import CLIRenderer, create_renderer

__all__ = [
    "CLIError",
    "CLIRenderer",
    "build_parser",
    "create_renderer",
    "run_cli",
]
