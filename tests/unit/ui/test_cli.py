"""
esync-audit — unit tests for the CLI router and process entrypoint

Purpose
- Drive ``esync-audit`` end to end against a throwaway SQLite system-of-record
  and a JSON index snapshot.

What this test file should cover
- ``run`` exit codes: 0 clean, 1 findings, 2 config error, 3 incomplete.
- ``--json`` payloads for ``run``, ``checkers`` and ``config``.
- Run artifacts: JSON-lines log and ``metrics.json`` under ``<log_dir>/<run_id>/``.
- Exception routing in ``cli_entrypoint``.
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest

from esync_audit.config import ConfigLoadError
from esync_audit.domain.errors import ConnectivityError
from esync_audit.domain.ids import CROCKFORD_BASE32_ALPHABET
from esync_audit.main import ExitCode, cli_entrypoint
from esync_audit.observability.logging import shutdown_logging
from esync_audit.ui import cli as cli_module
from esync_audit.ui.cli import run_cli

CLEAN_INDEX: list[dict[str, Any]] = [
    {"id": "root", "path": "/", "acl": [], "fields": {"type": "Root"}},
    {
        "id": "ws",
        "path": "/ws",
        "acl": ["Administrator", "members"],
        "fields": {"type": "Workspace"},
    },
    {
        "id": "f1",
        "path": "/ws/f1",
        "acl": ["Administrator", "members"],
        "fields": {"type": "File"},
    },
]


@pytest.fixture(autouse=True)
def _stop_logging() -> Iterator[None]:
    yield
    shutdown_logging()


def _make_db(path: Path) -> None:
    conn = sqlite3.connect(path)
    try:
        conn.executescript(
            """
            CREATE TABLE hierarchy (id TEXT PRIMARY KEY, primarytype TEXT, isproperty INTEGER);
            CREATE TABLE acls (id TEXT, acl TEXT);
            INSERT INTO hierarchy VALUES ('root', 'Root', 0);
            INSERT INTO hierarchy VALUES ('ws', 'Workspace', 0);
            INSERT INTO hierarchy VALUES ('f1', 'File', 0);
            INSERT INTO acls VALUES ('ws', 'Administrator,members,-Everyone');
            """
        )
        conn.commit()
    finally:
        conn.close()


def _workspace(tmp_path: Path, index_docs: list[dict[str, Any]] | None = None) -> Path:
    _make_db(tmp_path / "nuxeo.sqlite")
    snapshot = {"documents": CLEAN_INDEX if index_docs is None else index_docs}
    (tmp_path / "index.json").write_text(json.dumps(snapshot), encoding="utf-8")
    config_path = tmp_path / "esync.toml"
    config_path.write_text(
        "[source]\n"
        "db_path = 'nuxeo.sqlite'\n"
        "[index]\n"
        "snapshot_path = 'index.json'\n"
        "[checker]\n"
        "pool_size = 2\n"
        "[observability]\n"
        "log_dir = 'logs'\n",
        encoding="utf-8",
    )
    return config_path


def _run_json(capsys: pytest.CaptureFixture[str], *argv: str) -> tuple[int, dict[str, Any]]:
    code = run_cli([*argv, "--json"])
    out = capsys.readouterr().out
    return code, json.loads(out)


def test_run_clean_workspace(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    config_path = _workspace(tmp_path)

    code, payload = _run_json(capsys, "run", "--config", str(config_path))

    assert code == 0
    assert payload["command"] == "run"
    run_id = payload["run_id"]
    assert run_id.startswith("audit-")
    assert set(run_id.removeprefix("audit-")) <= set(CROCKFORD_BASE32_ALPHABET)
    report = payload["report"]
    assert report["exit_code"] == 0
    assert report["total_findings"] == 0
    assert [item["name"] for item in report["checkers"]] == [
        "AclChecker",
        "CardinalityChecker",
        "TypeCardinalityChecker",
        "TypeDocumentChecker",
    ]
    assert "[CardinalityChecker] Found 3 documents in db and 3 in index" in payload["events"][
        "message"
    ]

    log_path = Path(payload["log_path"])
    assert log_path.parent.name == payload["run_id"]
    assert log_path.parent.parent == (tmp_path / "logs").resolve()
    lines = [json.loads(line) for line in log_path.read_text(encoding="utf-8").splitlines()]
    assert lines
    assert all(line["run_id"] == payload["run_id"] for line in lines)
    assert any(line.get("checker") == "AclChecker" for line in lines)

    metrics = json.loads(Path(payload["metrics_path"]).read_text(encoding="utf-8"))
    assert "esync.checker.duration_ms{checker=AclChecker}" in metrics["timers"]


def test_run_reports_inheritance_findings(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    index_docs = [dict(item) for item in CLEAN_INDEX]
    index_docs[2] = {**index_docs[2], "acl": ["Everyone"]}
    config_path = _workspace(tmp_path, index_docs)

    code, payload = _run_json(capsys, "run", "--config", str(config_path))

    assert code == 1
    (diff,) = payload["events"]["diff"]
    assert diff["message"] == "Invalid ACL found"
    assert diff["left"]["acl"] == ["Administrator", "members"]
    assert diff["right"]["id"] == "f1"
    acl_outcome = next(o for o in payload["report"]["checkers"] if o["name"] == "AclChecker")
    assert acl_outcome["status"] == "findings"


def test_run_single_checker_text_output(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    config_path = _workspace(tmp_path, CLEAN_INDEX[:2])

    code = run_cli(["run", "--config", str(config_path), "--checker", "CardinalityChecker"])
    out = capsys.readouterr().out

    assert code == 1
    assert "Run ID: audit-" in out
    assert "CardinalityChecker  findings" in out
    assert "AclChecker" not in out
    assert "Outcome: findings" in out
    assert "all 1 checkers completed, 1 findings" in out


def test_run_with_missing_database_is_incomplete(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    config_path = _workspace(tmp_path)
    (tmp_path / "nuxeo.sqlite").unlink()

    code, payload = _run_json(capsys, "run", "--config", str(config_path))

    assert code == 3
    assert payload["report"]["failed"] == [
        "AclChecker",
        "CardinalityChecker",
        "TypeCardinalityChecker",
        "TypeDocumentChecker",
    ]


def test_run_with_missing_snapshot_exits_3(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    config_path = _workspace(tmp_path)
    (tmp_path / "index.json").unlink()

    code = run_cli(["run", "--config", str(config_path)])

    assert code == 3
    assert "cannot read index snapshot" in capsys.readouterr().err


def test_run_config_errors_exit_2(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    config_path = _workspace(tmp_path)

    assert run_cli(["run", "--config", str(tmp_path / "absent.toml")]) == 2
    assert "config file not found" in capsys.readouterr().err

    assert run_cli(["run", "--config", str(config_path), "--checker", "Nope"]) == 2
    assert "no checker selected" in capsys.readouterr().err

    assert run_cli(["run", "--config", str(config_path), "--pool-size", "0"]) == 2
    assert "checker.pool_size: must be >= 1" in capsys.readouterr().err


def test_checkers_command_json(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    config_path = _workspace(tmp_path)

    code, payload = _run_json(
        capsys,
        "checkers",
        "--config",
        str(config_path),
        "--block",
        "TypeDocumentChecker,AclChecker",
    )
    assert code == 0
    assert payload["selected"] == ["CardinalityChecker", "TypeCardinalityChecker"]
    assert payload["unknown"] == []

    code, payload = _run_json(
        capsys, "checkers", "--config", str(config_path), "--checker", "AclChecker,Nope"
    )
    assert payload["selected"] == ["AclChecker"]
    assert payload["unknown"] == ["Nope"]


def test_checkers_command_text(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    config_path = _workspace(tmp_path)

    assert run_cli(["checkers", "--config", str(config_path), "--checker", "Nope"]) == 0
    out = capsys.readouterr().out

    assert "AclChecker" + " " * 14 + "no" in out
    assert "Warning: unknown checker 'Nope' ignored" in out


def test_config_command_json(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    config_path = _workspace(tmp_path)

    code, payload = _run_json(capsys, "config", "--config", str(config_path))

    assert code == 0
    config = payload["config"]
    assert config["checker"]["pool_size"] == 2
    assert config["source"]["db_path"] == (tmp_path / "nuxeo.sqlite").resolve().as_posix()


def test_entrypoint_normalizes_argparse_exit(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli_entrypoint(["no-such-command"]) == ExitCode.CONFIG_ERROR
    assert cli_entrypoint(["--help"]) == ExitCode.CLEAN
    capsys.readouterr()


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (ConfigLoadError("bad config"), ExitCode.CONFIG_ERROR),
        (ConnectivityError("db down"), ExitCode.INCOMPLETE),
        (RuntimeError("bug"), ExitCode.INTERNAL_ERROR),
    ],
)
def test_entrypoint_routes_exceptions(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
    error: Exception,
    expected: ExitCode,
) -> None:
    def _raise(argv: object) -> int:
        raise error

    monkeypatch.setattr(cli_module, "run_cli", _raise)

    assert cli_entrypoint(["run"]) == expected
    assert str(error) in capsys.readouterr().err
