# fileledger/cli/main.py
"""
CLI for operating and auditing a fileledger database.
"""

import os
import json
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from fileledger.core.canon import event_hash
from fileledger.core.errors import FileLedgerError
from fileledger.crypto.keys import NotaryKeyPair
from fileledger.logging import configure_logging
from fileledger.registry.ledger import FileLedger
from fileledger.storage import SQLiteStorage
from fileledger.verify.verifier import AuditVerifier

app = typer.Typer(
    name="fileledger",
    help="Access-controlled file registry with a tamper-evident audit trail",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()

DbOption = typer.Option(None, "--db", help="Path to SQLite database (overrides FILELEDGER_DB_PATH)")
KeyOption = typer.Option(None, "--key-file", help="Notary private key (overrides FILELEDGER_KEY_FILE)")
CallerOption = typer.Option(..., "--as", envvar="FILELEDGER_CALLER", help="Pre-authenticated caller identity")


def get_db_path(db_flag: Optional[Path] = None) -> Path:
    """Resolve DB path in this order:
    1. --db flag
    2. FILELEDGER_DB_PATH environment variable
    3. Default: ~/.fileledger/fileledger.db
    """
    if db_flag:
        path = db_flag.resolve()
    else:
        env_path = os.environ.get("FILELEDGER_DB_PATH")
        if env_path:
            path = Path(env_path).resolve()
        else:
            path = Path.home() / ".fileledger" / "fileledger.db"

    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def get_key_path(db_path: Path, key_flag: Optional[Path] = None) -> Path:
    """--key-file, then FILELEDGER_KEY_FILE, then <db>.key beside the database."""
    if key_flag:
        return key_flag.resolve()
    env_path = os.environ.get("FILELEDGER_KEY_FILE")
    if env_path:
        return Path(env_path).resolve()
    return db_path.with_suffix(".key")


def _open_storage(db_path: Path) -> SQLiteStorage:
    if not db_path.exists():
        console.print(f"[red]Database file not found: {db_path}[/]")
        console.print("[yellow]To get started:[/]")
        console.print("  • fileledger init --admin <identity> --db /path/to/ledger.db")
        console.print("  • Or set env var: export FILELEDGER_DB_PATH=/path/to/ledger.db")
        raise typer.Exit(1)
    try:
        storage = SQLiteStorage(db_path)
    except Exception as e:
        console.print(f"[red]Failed to open database: {e}[/]")
        raise typer.Exit(1)
    if storage.get_administrator() is None:
        storage.close()
        console.print(f"[red]Database is not initialized: {db_path}[/]")
        console.print("  Run: fileledger init --admin <identity>")
        raise typer.Exit(1)
    return storage


def _open_ledger(db: Optional[Path], key_file: Optional[Path]) -> FileLedger:
    db_path = get_db_path(db)
    storage = _open_storage(db_path)
    key_path = get_key_path(db_path, key_file)
    try:
        notary = NotaryKeyPair.load(key_path)
    except (OSError, ValueError) as e:
        storage.close()
        console.print(f"[red]Cannot load notary key from {key_path}: {e}[/]")
        raise typer.Exit(1)
    return FileLedger(storage, notary)


def _fail(e: FileLedgerError) -> None:
    console.print(f"[red]✗ {type(e).__name__}: {e}[/]")
    raise typer.Exit(1)


@app.callback()
def main(
    log_level: str = typer.Option("WARNING", "--log-level", help="DEBUG, INFO, WARNING or ERROR"),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit log lines as JSON on stderr"),
):
    """Manage an access-controlled file ledger."""
    configure_logging(json_output=json_logs, level=log_level)


@app.command()
def init(
    admin: str = typer.Option(..., "--admin", help="Identity of the first administrator"),
    db: Optional[Path] = DbOption,
    key_file: Optional[Path] = KeyOption,
):
    """Create a ledger database and its notary key."""
    db_path = get_db_path(db)
    key_path = get_key_path(db_path, key_file)

    storage = SQLiteStorage(db_path)
    if storage.get_administrator() is not None:
        console.print(f"[yellow]Ledger already initialized (administrator: {storage.get_administrator()})[/]")
        storage.close()
        raise typer.Exit(1)

    if key_path.exists():
        notary = NotaryKeyPair.load(key_path)
        console.print(f"Using existing notary key {key_path}")
    else:
        notary = NotaryKeyPair.generate()
        notary.save(key_path)
        console.print(f"Wrote notary key to {key_path}")

    try:
        ledger = FileLedger(storage, notary, deployer=admin)
    except FileLedgerError as e:
        storage.close()
        _fail(e)
    ledger.close()

    console.print(f"[green]✓ Initialized ledger at {db_path}[/]")
    console.print(f"  Administrator: {admin}")
    console.print(f"  Notary public key: {notary.public_key_b64url()}")


@app.command()
def admin(db: Optional[Path] = DbOption):
    """Show the current administrator."""
    storage = _open_storage(get_db_path(db))
    console.print(storage.get_administrator())
    storage.close()


@app.command("add-file")
def add_file(
    file_id: int = typer.Argument(..., help="Caller-chosen numeric file id"),
    locator: str = typer.Argument(..., help="Content fingerprint, e.g. an IPFS CID"),
    name: str = typer.Argument(..., help="Display name"),
    caller: str = CallerOption,
    db: Optional[Path] = DbOption,
    key_file: Optional[Path] = KeyOption,
):
    """Register a file (administrator only). An existing id is overwritten."""
    with _open_ledger(db, key_file) as ledger:
        try:
            ledger.add_file(caller, file_id, locator, name)
        except FileLedgerError as e:
            _fail(e)
    console.print(f"[green]✓ File {file_id} registered as '{name}'[/]")


@app.command()
def authorize(
    file_id: int = typer.Argument(...),
    identity: str = typer.Argument(..., help="Identity to grant read access"),
    caller: str = CallerOption,
    db: Optional[Path] = DbOption,
    key_file: Optional[Path] = KeyOption,
):
    """Grant an identity read access to a file (administrator only)."""
    with _open_ledger(db, key_file) as ledger:
        try:
            event = ledger.authorize_user(caller, file_id, identity)
        except FileLedgerError as e:
            _fail(e)
    console.print(f"[green]✓ Granted '{identity}' access to file {file_id} (event #{event.sequence})[/]")


@app.command()
def access(
    file_id: int = typer.Argument(...),
    caller: str = CallerOption,
    db: Optional[Path] = DbOption,
    key_file: Optional[Path] = KeyOption,
):
    """Record an access and print the file's locator."""
    with _open_ledger(db, key_file) as ledger:
        try:
            locator = ledger.access_file(caller, file_id)
        except FileLedgerError as e:
            _fail(e)
    console.print(locator, highlight=False, markup=False)


@app.command("log-subfile")
def log_subfile(
    file_id: int = typer.Argument(...),
    sub_name: str = typer.Argument(..., help="Name of the item inside the container"),
    caller: str = CallerOption,
    db: Optional[Path] = DbOption,
    key_file: Optional[Path] = KeyOption,
):
    """Record access to an item inside a container file."""
    with _open_ledger(db, key_file) as ledger:
        try:
            event = ledger.log_sub_file(caller, file_id, sub_name)
        except FileLedgerError as e:
            _fail(e)
    console.print(f"[green]✓ Logged '{sub_name}' (event #{event.sequence})[/]")


@app.command()
def transfer(
    new_admin: str = typer.Argument(..., help="Identity of the new administrator"),
    caller: str = CallerOption,
    db: Optional[Path] = DbOption,
    key_file: Optional[Path] = KeyOption,
):
    """Hand administration to another identity. Takes effect immediately."""
    with _open_ledger(db, key_file) as ledger:
        try:
            ledger.transfer_ownership(caller, new_admin)
        except FileLedgerError as e:
            _fail(e)
    console.print(f"[green]✓ Administrator is now '{new_admin}'[/]")


@app.command()
def events(
    file_id: Optional[int] = typer.Option(None, "--file", "-f", help="Only events for this file"),
    limit: int = typer.Option(50, "--limit", "-n", help="Number of recent events to show"),
    db: Optional[Path] = DbOption,
):
    """Show recent audit events."""
    storage = _open_storage(get_db_path(db))
    if file_id is None:
        evts = storage.query_events(limit=limit)
    else:
        evts = storage.load_events(file_id)[-limit:]
    storage.close()

    if not evts:
        console.print("[yellow]No audit events recorded yet.[/]")
        return

    table = Table(title="Audit Log")
    table.add_column("#", justify="right")
    table.add_column("Timestamp")
    table.add_column("Event")
    table.add_column("File")
    table.add_column("Detail")
    table.add_column("Actor")

    for e in evts:
        detail = e.detail
        if e.previous_admin:
            detail = f"{e.previous_admin} → {e.detail}"
        table.add_row(
            str(e.sequence), e.timestamp, e.kind.value,
            "—" if e.file_id is None else str(e.file_id), detail, e.actor,
        )

    console.print(table)


@app.command()
def verify(
    public_key: Optional[List[str]] = typer.Option(
        None, "--public-key", "-k", help="Trusted notary public key (base64url); repeatable"
    ),
    head: Optional[str] = typer.Option(
        None, "--head", help="last_hash recorded earlier (e.g. from export); detects dropped events"
    ),
    expected_count: Optional[int] = typer.Option(None, "--count", help="Number of events expected in the log"),
    db: Optional[Path] = DbOption,
    key_file: Optional[Path] = KeyOption,
):
    """Verify the audit log (sequence, hash chain, signatures, handovers, head)."""
    db_path = get_db_path(db)
    storage = _open_storage(db_path)

    trusted = list(public_key or [])
    if not trusted:
        key_path = get_key_path(db_path, key_file)
        if key_path.exists():
            trusted.append(NotaryKeyPair.load(key_path).public_key_b64url())
        recorded = [k for k in storage.notary_keys() if k not in trusted]
        if recorded:
            console.print(f"[yellow]Warning: trusting {len(recorded)} notary key(s) recorded in the database itself.[/]")
            console.print("  Pass --public-key for an independent trust anchor.")
            trusted.extend(recorded)
        if not trusted:
            storage.close()
            console.print("[red]No trusted notary key available[/]")
            raise typer.Exit(1)

    result = AuditVerifier(trusted_keys=trusted).verify_from_storage(
        storage, expected_head=head, expected_count=expected_count
    )
    count = storage.event_count()
    last = storage.last_event_hash() or ""
    storage.close()

    if result.is_valid:
        console.print(f"[green]✓ Audit log is valid ({count} events)[/]")
        console.print(f"  Head: {last or '(empty)'}")
        if head is None:
            console.print("  Record the head outside the database and pass --head next time.")
    else:
        console.print("[red]✗ Audit log verification failed[/]")
        for failure in result.failures:
            console.print(f"  • [{failure.index}] {failure.category}: {failure.message}")
        raise typer.Exit(1)


@app.command()
def export(
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file (default: audit-log.jsonl)"),
    db: Optional[Path] = DbOption,
):
    """Export the audit log as JSONL (one signed event per line)."""
    storage = _open_storage(get_db_path(db))
    try:
        evts = storage.load_events()
    except Exception as e:
        console.print(f"[red]Failed to load audit log: {e}[/]")
        raise typer.Exit(1)
    finally:
        storage.close()

    if not evts:
        console.print("[yellow]No audit events to export[/]")
        raise typer.Exit(0)

    out_path = output or Path("audit-log.jsonl")
    with open(out_path, "w", encoding="utf-8") as f:
        for e in evts:
            json.dump(e.to_dict(), f, separators=(",", ":"), ensure_ascii=False)
            f.write("\n")

    console.print(f"[green]Exported {len(evts)} events to {out_path}[/]")
    console.print(f"Head (last_hash): {event_hash(evts[-1])}")


if __name__ == "__main__":
    app()
