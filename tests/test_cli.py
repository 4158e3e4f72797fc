import csv
import json
import logging
from pathlib import Path

import pytest

from graph_er.cli import EXIT_CONFIG, EXIT_FAILED, EXIT_SUCCESS, main
from graph_er.logging import ROOT_LOGGER_NAME
from graph_er.storage import Database


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    logging.getLogger(ROOT_LOGGER_NAME).handlers.clear()


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'cli.db'}"


def _run(capsys, argv: list[str]) -> tuple[int, str]:
    code = main(argv)
    return code, capsys.readouterr().out


def _run_with_stderr(capsys, argv: list[str]) -> tuple[int, str]:
    code = main(argv)
    return code, capsys.readouterr().err


def test_process_then_report_and_search(capsys, database_url, write_csv) -> None:
    path = write_csv(["id,name,email", "r1,Ana Lima,ana@example.com", "r2,Ana Lima,ANA@example.com"])

    code, out = _run(capsys, ["--database-url", database_url, "process", str(path), "--batch-id", "cli-1"])
    assert code == EXIT_SUCCESS
    result = json.loads(out)
    assert result["status"] == "completed"
    assert result["goldenRecordsCreated"] == 1

    code, out = _run(capsys, ["--database-url", database_url, "report", "cli-1"])
    assert code == EXIT_SUCCESS
    assert json.loads(out)["golden_records_created"] == 1

    code, out = _run(capsys, ["--database-url", database_url, "golden", "--email", "ana@example.com"])
    assert code == EXIT_SUCCESS
    page = json.loads(out)
    assert page["total"] == 1
    assert page["items"][0]["source_record_ids"] == ["r1", "r2"]

    code, out = _run(capsys, ["--database-url", database_url, "trail", "cli-1"])
    assert [entry["operation"] for entry in json.loads(out)][-1] == "COMPLETE"


def test_failed_batch_exits_non_zero(capsys, database_url, tmp_path: Path) -> None:
    code, out = _run(capsys, ["--database-url", database_url, "process", str(tmp_path / "missing.csv")])

    assert code == EXIT_FAILED
    assert json.loads(out)["status"] == "failed"


def test_report_for_unknown_batch_exits_non_zero(capsys, database_url) -> None:
    code, _ = _run(capsys, ["--database-url", database_url, "report", "nope"])
    assert code == EXIT_FAILED


def test_missing_database_url_exits_with_config_code(capsys, monkeypatch) -> None:
    monkeypatch.delenv("GRAPH_ER_DATABASE_URL", raising=False)

    code, err = _run_with_stderr(capsys, ["batches"])

    assert code == EXIT_CONFIG
    assert "No database URL" in err


def test_export_writes_entries_to_file(capsys, database_url, write_csv, tmp_path: Path) -> None:
    main(["--database-url", database_url, "process", str(write_csv(["name", "Solo Person"])), "--batch-id", "cli-2"])
    output = tmp_path / "out" / "audit.json"

    code, _ = _run(capsys, ["--database-url", database_url, "export", "--start", "2000-01-01", "--output", str(output)])

    assert code == EXIT_SUCCESS
    entries = json.loads(output.read_text(encoding="utf-8"))
    assert {entry["batchId"] for entry in entries} == {"cli-2"}
    assert entries[0]["operation"] == "START"


def test_generate_writes_reference_csv(capsys, tmp_path: Path) -> None:
    output = tmp_path / "reference.csv"

    code, out = _run(capsys, ["generate", "--size", "20", "--seed", "7", "--output", str(output)])

    assert code == EXIT_SUCCESS
    assert json.loads(out)["rows"] == 20
    with output.open(newline="", encoding="utf-8") as handle:
        rows = list(csv.DictReader(handle))
    assert len(rows) == 20
    assert rows[0]["name"]


def test_every_command_disposes_its_database(capsys, database_url, monkeypatch) -> None:
    disposed = []
    dispose = Database.dispose

    def tracking_dispose(self) -> None:
        disposed.append(self)
        dispose(self)

    monkeypatch.setattr(Database, "dispose", tracking_dispose)

    assert _run(capsys, ["--database-url", database_url, "batches"])[0] == EXIT_SUCCESS
    assert _run(capsys, ["--database-url", database_url, "report", "nope"])[0] == EXIT_FAILED
    assert len(disposed) == 2
    assert disposed[0] is not disposed[1]
