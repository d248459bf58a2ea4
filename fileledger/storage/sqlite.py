# fileledger/storage/sqlite.py
import os
import json
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import asdict
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from fileledger.core.types import AuditEvent, FileRecord, Proof
from fileledger.core.canon import canonical_json, event_hash
from . import StorageBackend

MEMORY = ":memory:"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS meta (
    key     TEXT PRIMARY KEY,
    value   TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS notary_keys (
    public_key  TEXT PRIMARY KEY,
    first_used  INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS files (
    file_id         INTEGER PRIMARY KEY,
    locator         TEXT    NOT NULL,
    display_name    TEXT    NOT NULL,
    present         INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS acl (
    file_id     INTEGER NOT NULL REFERENCES files(file_id),
    identity    TEXT    NOT NULL,
    PRIMARY KEY (file_id, identity)
);

CREATE TABLE IF NOT EXISTS events (
    sequence        INTEGER PRIMARY KEY,
    kind            TEXT    NOT NULL,
    file_id         INTEGER,
    actor           TEXT    NOT NULL,
    timestamp       TEXT    NOT NULL,
    prev_hash       TEXT    NOT NULL,
    event_hash      TEXT    NOT NULL,
    canonical_json  TEXT    NOT NULL,
    proof_json      TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_events_file  ON events(file_id, sequence);
CREATE INDEX IF NOT EXISTS idx_events_actor ON events(actor);

CREATE TRIGGER IF NOT EXISTS events_no_update BEFORE UPDATE ON events
BEGIN SELECT RAISE(ABORT, 'audit events are append-only'); END;

CREATE TRIGGER IF NOT EXISTS events_no_delete BEFORE DELETE ON events
BEGIN SELECT RAISE(ABORT, 'audit events are append-only'); END;

CREATE TRIGGER IF NOT EXISTS acl_no_delete BEFORE DELETE ON acl
BEGIN SELECT RAISE(ABORT, 'grants cannot be revoked'); END;

CREATE TRIGGER IF NOT EXISTS notary_keys_no_delete BEFORE DELETE ON notary_keys
BEGIN SELECT RAISE(ABORT, 'notary keys are kept for verification'); END;

CREATE TRIGGER IF NOT EXISTS files_no_delete BEFORE DELETE ON files
BEGIN SELECT RAISE(ABORT, 'file records cannot be deleted'); END;
"""


class SQLiteStorage(StorageBackend):
    """SQLite persistent storage for the registry and its audit chain."""

    def __init__(self, db_path: str | Path | None = None):
        if db_path is None:
            env_path = os.environ.get("FILELEDGER_DB_PATH")
            db_path = env_path if env_path else Path.cwd() / "fileledger.db"

        if str(db_path) == MEMORY:
            self.db_path = MEMORY
        else:
            self.db_path = Path(db_path)
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self.db_path = self.db_path.resolve()

        self._lock = threading.RLock()
        self._depth = 0
        self._conn: Optional[sqlite3.Connection] = None
        self._connect()

    def _connect(self):
        # Autocommit mode; transaction() issues BEGIN/COMMIT itself.
        self._conn = sqlite3.connect(str(self.db_path), isolation_level=None, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.executescript(_SCHEMA)

    def _query(self, sql: str, params: tuple = ()) -> list:
        with self._lock:
            return self.conn.execute(sql, params).fetchall()

    def _write(self, sql: str, params: tuple = ()) -> None:
        with self._lock:
            self.conn.execute(sql, params)

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Storage connection is closed")
        return self._conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Serialized, all-or-nothing unit of work. Re-entrant; only the outermost block commits."""
        with self._lock:
            conn = self.conn
            if self._depth:
                self._depth += 1
                try:
                    yield conn
                finally:
                    self._depth -= 1
                return

            conn.execute("BEGIN IMMEDIATE")
            self._depth = 1
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            else:
                conn.execute("COMMIT")
            finally:
                self._depth = 0

    # ── meta

    def _get_meta(self, key: str) -> Optional[str]:
        rows = self._query("SELECT value FROM meta WHERE key = ?", (key,))
        return rows[0][0] if rows else None

    def _set_meta(self, key: str, value: str) -> None:
        self._write(
            "INSERT INTO meta (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            (key, value),
        )

    def get_administrator(self) -> Optional[str]:
        return self._get_meta("administrator")

    def set_administrator(self, identity: str) -> None:
        self._set_meta("administrator", identity)

    def add_notary_key(self, public_b64url: str) -> None:
        # first_used is the sequence the key will sign first; rotation keeps old keys
        self._write(
            "INSERT OR IGNORE INTO notary_keys (public_key, first_used) "
            "VALUES (?, (SELECT COUNT(*) FROM events))",
            (public_b64url,),
        )

    def notary_keys(self) -> List[str]:
        rows = self._query("SELECT public_key FROM notary_keys ORDER BY first_used, rowid")
        return [row[0] for row in rows]

    # ── registry

    def get_file(self, file_id: int) -> Optional[FileRecord]:
        rows = self._query(
            "SELECT file_id, locator, display_name, present FROM files WHERE file_id = ?",
            (file_id,),
        )
        if not rows:
            return None
        fid, locator, name, present = rows[0]
        return FileRecord(file_id=fid, locator=locator, display_name=name, present=bool(present))

    def put_file(self, record: FileRecord) -> None:
        # present is sticky: an overwrite can never clear it
        self._write("""
            INSERT INTO files (file_id, locator, display_name, present)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(file_id) DO UPDATE SET
                locator      = excluded.locator,
                display_name = excluded.display_name,
                present      = MAX(files.present, excluded.present)
        """, (record.file_id, record.locator, record.display_name, int(record.present)))

    # ── acl

    def is_granted(self, file_id: int, identity: str) -> bool:
        rows = self._query(
            "SELECT 1 FROM acl WHERE file_id = ? AND identity = ?",
            (file_id, identity),
        )
        return bool(rows)

    def grant(self, file_id: int, identity: str) -> None:
        self._write(
            "INSERT OR IGNORE INTO acl (file_id, identity) VALUES (?, ?)",
            (file_id, identity),
        )

    def list_grants(self, file_id: int) -> List[str]:
        rows = self._query("SELECT identity FROM acl WHERE file_id = ? ORDER BY identity", (file_id,))
        return [row[0] for row in rows]

    # ── audit log

    def append_event(self, event: AuditEvent) -> None:
        if event.proof is None:
            raise ValueError("Cannot persist unsigned event")

        canon_str = canonical_json(event.payload()).decode("utf-8")
        proof_str = json.dumps(asdict(event.proof), sort_keys=True, separators=(",", ":"))

        self._write("""
            INSERT INTO events
            (sequence, kind, file_id, actor, timestamp, prev_hash,
             event_hash, canonical_json, proof_json)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            event.sequence, event.kind.value, event.file_id, event.actor,
            event.timestamp, event.prev_hash, event_hash(event), canon_str, proof_str
        ))

    @staticmethod
    def _rows_to_events(rows: list) -> List[AuditEvent]:
        loaded = []
        for cjson, pjson in rows:
            payload = json.loads(cjson)
            payload["proof"] = json.loads(pjson)
            loaded.append(AuditEvent.from_dict(payload))
        return loaded

    def load_events(self, file_id: Optional[int] = None) -> List[AuditEvent]:
        if file_id is None:
            rows = self._query("SELECT canonical_json, proof_json FROM events ORDER BY sequence ASC")
        else:
            rows = self._query(
                "SELECT canonical_json, proof_json FROM events WHERE file_id = ? ORDER BY sequence ASC",
                (file_id,),
            )
        return self._rows_to_events(rows)

    def query_events(self, limit: int = 50) -> List[AuditEvent]:
        """Most recent events, oldest first."""
        rows = self._query("""
            SELECT canonical_json, proof_json FROM events
            ORDER BY sequence DESC
            LIMIT ?
        """, (limit,))
        loaded = self._rows_to_events(rows)
        loaded.reverse()
        return loaded

    def stored_hashes(self) -> Dict[int, str]:
        rows = self._query("SELECT sequence, event_hash FROM events ORDER BY sequence")
        return {seq: h for seq, h in rows}

    def last_event_hash(self) -> Optional[str]:
        rows = self._query("SELECT event_hash FROM events ORDER BY sequence DESC LIMIT 1")
        return rows[0][0] if rows else None

    def event_count(self) -> int:
        return self._query("SELECT COUNT(*) FROM events")[0][0]

    def close(self) -> None:
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
