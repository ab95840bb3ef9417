"""Shared pytest configuration: structlog routed through stdlib logging."""

from __future__ import annotations

import pytest

from esync_audit.observability.logging import configure_structlog


@pytest.fixture(autouse=True, scope="session")
def _structlog_via_stdlib() -> None:
    configure_structlog()
