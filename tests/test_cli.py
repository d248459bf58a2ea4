# tests/test_cli.py
import json
import logging
import sqlite3
from pathlib import Path

import pytest
from typer.testing import CliRunner

from fileledger.cli import main as cli
from fileledger.cli.main import app
from fileledger.crypto.keys import NotaryKeyPair

runner = CliRunner()

ADMIN = "0xA11CE"
BOB = "0xB0B"


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path: Path):
    monkeypatch.delenv("FILELEDGER_CALLER", raising=False)
    monkeypatch.delenv("FILELEDGER_KEY_FILE", raising=False)
    monkeypatch.setenv("FILELEDGER_DB_PATH", str(tmp_path / "default" / "missing.db"))
    monkeypatch.setattr(cli.console, "width", 200)

    # the CLI callback swaps root handlers onto the runner's stderr
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


@pytest.fixture
def temp_db(tmp_path: Path) -> Path:
    return tmp_path / "test-cli.db"


@pytest.fixture
def ledger_db(temp_db: Path) -> Path:
    """Initialized DB with file 1 granted to BOB."""
    result = runner.invoke(app, ["init", "--admin", ADMIN, "--db", str(temp_db)])
    assert result.exit_code == 0, result.stdout
    db = ["--db", str(temp_db)]
    assert runner.invoke(app, ["add-file", "1", "Qm123", "report.pdf", "--as", ADMIN, *db]).exit_code == 0
    assert runner.invoke(app, ["authorize", "1", BOB, "--as", ADMIN, *db]).exit_code == 0
    return temp_db


def test_admin_no_db():
    result = runner.invoke(app, ["admin"])
    assert result.exit_code == 1
    assert "not found" in result.stdout.lower()
    assert "to get started" in result.stdout.lower()


def test_init_creates_db_and_key(temp_db: Path):
    result = runner.invoke(app, ["init", "--admin", ADMIN, "--db", str(temp_db)])
    assert result.exit_code == 0
    assert "Initialized ledger" in result.stdout
    assert temp_db.exists()
    key = NotaryKeyPair.load(temp_db.with_suffix(".key"))
    assert key.public_key_b64url() in result.stdout


def test_init_twice_refused(ledger_db: Path):
    result = runner.invoke(app, ["init", "--admin", BOB, "--db", str(ledger_db)])
    assert result.exit_code == 1
    assert "already initialized" in result.stdout.lower()


def test_init_null_admin_refused(temp_db: Path):
    result = runner.invoke(app, ["init", "--admin", "0x" + "0" * 40, "--db", str(temp_db)])
    assert result.exit_code == 1
    assert "InvalidArgument" in result.stdout


def test_uninitialized_db(temp_db: Path):
    temp_db.touch()
    result = runner.invoke(app, ["admin", "--db", str(temp_db)])
    assert result.exit_code == 1
    assert "not initialized" in result.stdout.lower()


def test_admin_shows_identity(ledger_db: Path):
    result = runner.invoke(app, ["admin", "--db", str(ledger_db)])
    assert result.exit_code == 0
    assert result.stdout.strip() == ADMIN


def test_access_prints_locator(ledger_db: Path):
    result = runner.invoke(app, ["access", "1", "--as", BOB, "--db", str(ledger_db)])
    assert result.exit_code == 0
    assert result.stdout.strip() == "Qm123"


def test_caller_from_env(ledger_db: Path, monkeypatch):
    monkeypatch.setenv("FILELEDGER_CALLER", BOB)
    result = runner.invoke(app, ["access", "1", "--db", str(ledger_db)])
    assert result.exit_code == 0
    assert "Qm123" in result.stdout


def test_access_unauthorized(ledger_db: Path):
    result = runner.invoke(app, ["access", "1", "--as", "0xCA201", "--db", str(ledger_db)])
    assert result.exit_code == 1
    assert "Unauthorized" in result.stdout


def test_access_missing_file(ledger_db: Path):
    result = runner.invoke(app, ["access", "9", "--as", ADMIN, "--db", str(ledger_db)])
    assert result.exit_code == 1
    assert "NotFound" in result.stdout


def test_log_subfile(ledger_db: Path):
    result = runner.invoke(app, ["log-subfile", "1", "appendix.docx", "--as", BOB, "--db", str(ledger_db)])
    assert result.exit_code == 0
    assert "appendix.docx" in result.stdout


def test_non_admin_cannot_add(ledger_db: Path):
    result = runner.invoke(app, ["add-file", "2", "QmX", "x.txt", "--as", BOB, "--db", str(ledger_db)])
    assert result.exit_code == 1
    assert "Unauthorized" in result.stdout


def test_transfer(ledger_db: Path):
    db = ["--db", str(ledger_db)]
    result = runner.invoke(app, ["transfer", BOB, "--as", ADMIN, *db])
    assert result.exit_code == 0
    assert runner.invoke(app, ["admin", *db]).stdout.strip() == BOB
    assert runner.invoke(app, ["add-file", "2", "QmX", "x.txt", "--as", ADMIN, *db]).exit_code == 1
    assert runner.invoke(app, ["add-file", "2", "QmX", "x.txt", "--as", BOB, *db]).exit_code == 0


def test_events_table(ledger_db: Path):
    db = ["--db", str(ledger_db)]
    runner.invoke(app, ["access", "1", "--as", BOB, *db])
    runner.invoke(app, ["transfer", BOB, "--as", ADMIN, *db])

    result = runner.invoke(app, ["events", *db])
    assert result.exit_code == 0
    assert "Audit Log" in result.stdout
    assert "AccessGranted" in result.stdout
    assert "FileAccessed" in result.stdout
    assert "OwnershipTransferred" in result.stdout

    only_file = runner.invoke(app, ["events", "--file", "1", *db])
    assert "OwnershipTransferred" not in only_file.stdout


def test_verify_valid(ledger_db: Path):
    runner.invoke(app, ["access", "1", "--as", BOB, "--db", str(ledger_db)])
    result = runner.invoke(app, ["verify", "--db", str(ledger_db)])
    assert result.exit_code == 0
    assert "valid (2 events)" in result.stdout


def test_verify_with_untrusted_key(ledger_db: Path):
    stranger = NotaryKeyPair.generate().public_key_b64url()
    result = runner.invoke(app, ["verify", "--public-key", stranger, "--db", str(ledger_db)])
    assert result.exit_code == 1
    assert "signature" in result.stdout


def test_verify_falls_back_to_stored_key(ledger_db: Path):
    ledger_db.with_suffix(".key").unlink()
    result = runner.invoke(app, ["verify", "--db", str(ledger_db)])
    assert result.exit_code == 0
    assert "warning" in result.stdout.lower()


def test_write_without_key_fails(ledger_db: Path):
    ledger_db.with_suffix(".key").unlink()
    result = runner.invoke(app, ["access", "1", "--as", BOB, "--db", str(ledger_db)])
    assert result.exit_code == 1
    assert "notary key" in result.stdout.lower()


def test_export_creates_jsonl(ledger_db: Path, tmp_path: Path):
    runner.invoke(app, ["access", "1", "--as", BOB, "--db", str(ledger_db)])
    output_file = tmp_path / "export-test.jsonl"

    result = runner.invoke(app, ["export", "--db", str(ledger_db), "--output", str(output_file)])

    assert result.exit_code == 0
    assert "Exported 2 events" in result.stdout

    lines = output_file.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    first, second = (json.loads(line) for line in lines)
    assert first["kind"] == "AccessGranted"
    assert second["kind"] == "FileAccessed"
    assert second["detail"] == "report.pdf"
    assert second["proof"]["proof_value"]


def test_export_empty(temp_db: Path, tmp_path: Path):
    runner.invoke(app, ["init", "--admin", ADMIN, "--db", str(temp_db)])
    result = runner.invoke(app, ["export", "--db", str(temp_db), "-o", str(tmp_path / "x.jsonl")])
    assert result.exit_code == 0
    assert "No audit events" in result.stdout


def test_verify_with_recorded_head(ledger_db: Path, tmp_path: Path):
    db = ["--db", str(ledger_db)]
    runner.invoke(app, ["access", "1", "--as", BOB, *db])
    exported = runner.invoke(app, ["export", *db, "-o", str(tmp_path / "log.jsonl")])
    head = exported.stdout.split("Head (last_hash):")[1].split()[0]

    result = runner.invoke(app, ["verify", "--head", head, "--count", "2", *db])
    assert result.exit_code == 0
    assert head in result.stdout


def test_verify_detects_dropped_events(ledger_db: Path):
    db = ["--db", str(ledger_db)]
    runner.invoke(app, ["access", "1", "--as", BOB, *db])
    before = runner.invoke(app, ["verify", *db])
    head = before.stdout.split("Head:")[1].split()[0]

    conn = sqlite3.connect(ledger_db)
    conn.execute("DROP TRIGGER events_no_delete")
    conn.execute("DELETE FROM events WHERE sequence >= 1")
    conn.commit()
    conn.close()

    result = runner.invoke(app, ["verify", "--head", head, *db])
    assert result.exit_code == 1
    assert "truncation" in result.stdout


def test_verify_after_key_rotation(ledger_db: Path, tmp_path: Path):
    rotated = tmp_path / "rotated.key"
    NotaryKeyPair.generate().save(rotated)
    db = ["--db", str(ledger_db)]

    result = runner.invoke(app, ["access", "1", "--as", BOB, "--key-file", str(rotated), *db])
    assert result.exit_code == 0

    # original key file plus the rotated key recorded in the database
    verified = runner.invoke(app, ["verify", *db])
    assert verified.exit_code == 0, verified.stdout
    assert "warning" in verified.stdout.lower()
