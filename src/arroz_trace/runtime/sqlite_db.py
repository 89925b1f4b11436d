# src/arroz_trace/runtime/sqlite_db.py
from __future__ import annotations

import json
import logging
import os
import random
import sqlite3
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from arroz_trace.ledger.constants import DOC_TYPE_FIELD
from arroz_trace.ledger.selectors import parse_selector_query, selector_matches
from arroz_trace.runtime.errors import QueryError, StoreError
from arroz_trace.runtime.state_store import KV, ChaincodeEvent, ResultsIterator
from arroz_trace.util.structured_logging import log_event

Json = Dict[str, Any]

_log = logging.getLogger("arroz_trace.store")


def _now_ms() -> int:
    return int(time.time() * 1000)


def _env_int(name: str, default: int) -> int:
    try:
        raw = str(os.environ.get(name, "")).strip()
        return int(raw) if raw else int(default)
    except ValueError:
        return int(default)


def _doc_type_of(value: bytes) -> Optional[str]:
    try:
        doc = json.loads(value)
    except ValueError:
        return None
    if not isinstance(doc, dict):
        return None
    dt = doc.get(DOC_TYPE_FIELD)
    return dt if isinstance(dt, str) else None


class SqliteDB:
    """SQLite manager for the record store.

    Design goals:
      - single durable DB file for world state, history and events
      - cross-process safe (SQLite locks)
      - cross-thread safe by never sharing connections

    SQLite allows only one writer at a time. Under multi-process workloads,
    BEGIN IMMEDIATE can transiently fail with "database is locked", so
    write_tx() retries with a bounded deadline.
    """

    SCHEMA_VERSION = 1

    def __init__(self, *, path: str, mode: Optional[str] = None) -> None:
        self.path = str(path)
        # Falls back to ARROZ_MODE when the caller has no TraceConfig.
        self.mode = mode

    def _sqlite_synchronous_pragma(self) -> str:
        """Return a safe PRAGMA synchronous value.

        Defaults:
          - prod     -> FULL
          - dev/test -> NORMAL

        Mode is the one passed to the constructor, else ARROZ_MODE.
        Override with ARROZ_SQLITE_SYNCHRONOUS in {OFF,NORMAL,FULL,EXTRA}.
        """
        mode = (self.mode or os.environ.get("ARROZ_MODE") or "prod").strip().lower()
        default = "FULL" if mode == "prod" else "NORMAL"
        raw = (os.environ.get("ARROZ_SQLITE_SYNCHRONOUS") or default).strip().upper()

        allowed = {"OFF", "NORMAL", "FULL", "EXTRA"}
        if raw not in allowed:
            raw = default
        return raw

    def ensure_parent_dir(self) -> None:
        p = Path(self.path)
        p.parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        self.ensure_parent_dir()

        connect_timeout_s = float(_env_int("ARROZ_SQLITE_CONNECT_TIMEOUT_MS", 30_000)) / 1000.0

        con = sqlite3.connect(
            self.path,
            timeout=connect_timeout_s,
            isolation_level=None,  # we manage BEGIN/COMMIT ourselves
            check_same_thread=False,
        )
        con.row_factory = sqlite3.Row

        allow_non_wal = (os.environ.get("ARROZ_SQLITE_ALLOW_NON_WAL") or "").strip() in {"1", "true", "TRUE"}
        row = con.execute("PRAGMA journal_mode=WAL;").fetchone()
        mode = str(row[0]).strip().lower() if row is not None else ""
        if mode and mode != "wal" and not allow_non_wal:
            con.close()
            raise RuntimeError(f"sqlite journal_mode is '{mode}', expected 'wal'")

        con.execute(f"PRAGMA synchronous={self._sqlite_synchronous_pragma()};")
        con.execute("PRAGMA foreign_keys=ON;")
        con.execute("PRAGMA temp_store=MEMORY;")

        busy_ms = _env_int("ARROZ_SQLITE_BUSY_TIMEOUT_MS", int(connect_timeout_s * 1000))
        con.execute(f"PRAGMA busy_timeout={max(0, int(busy_ms))};")

        return con

    def init_schema(self) -> None:
        with self.write_tx() as con:
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS meta (
                  key TEXT PRIMARY KEY,
                  value TEXT NOT NULL
                );
                """
            )

            con.execute(
                """
                CREATE TABLE IF NOT EXISTS world_state (
                  key TEXT PRIMARY KEY,
                  value BLOB NOT NULL,
                  doc_type TEXT,
                  version INTEGER NOT NULL,
                  seq INTEGER NOT NULL,
                  updated_ts_ms INTEGER NOT NULL
                );
                """
            )
            con.execute("CREATE INDEX IF NOT EXISTS idx_world_state_doc_type ON world_state(doc_type, seq);")

            con.execute(
                """
                CREATE TABLE IF NOT EXISTS state_history (
                  key TEXT NOT NULL,
                  version INTEGER NOT NULL,
                  value BLOB,
                  is_delete INTEGER NOT NULL,
                  ts_ms INTEGER NOT NULL,
                  PRIMARY KEY (key, version)
                );
                """
            )

            con.execute(
                """
                CREATE TABLE IF NOT EXISTS events (
                  id INTEGER PRIMARY KEY AUTOINCREMENT,
                  name TEXT NOT NULL,
                  payload BLOB NOT NULL,
                  ts_ms INTEGER NOT NULL
                );
                """
            )

            row = con.execute("SELECT value FROM meta WHERE key='schema_version' LIMIT 1;").fetchone()
            if row is None:
                con.execute("INSERT INTO meta(key, value) VALUES('schema_version', ?);", (str(self.SCHEMA_VERSION),))
            else:
                try:
                    v = int(str(row["value"]))
                except ValueError:
                    v = 0
                if v != self.SCHEMA_VERSION:
                    raise RuntimeError(
                        f"sqlite schema_version mismatch: have={v} want={self.SCHEMA_VERSION}. "
                        "Refuse to start to avoid corrupting data."
                    )

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        con = self._connect()
        try:
            yield con
        finally:
            con.close()

    @staticmethod
    def _is_locked_error(e: Exception) -> bool:
        msg = str(e).lower()
        return ("database is locked" in msg) or ("database is busy" in msg) or ("locked" in msg and "database" in msg)

    def _backoff(self, attempt: int) -> None:
        base_sleep = max(0.001, float(_env_int("ARROZ_SQLITE_WRITE_BACKOFF_BASE_MS", 5)) / 1000.0)
        max_sleep = max(base_sleep, float(_env_int("ARROZ_SQLITE_WRITE_BACKOFF_MAX_MS", 250)) / 1000.0)
        sleep_s = min(max_sleep, base_sleep * (2.0 ** min(attempt, 8)))
        time.sleep(sleep_s * (0.5 + random.random()))

    @contextmanager
    def write_tx(self) -> Iterator[sqlite3.Connection]:
        """Open a write transaction with bounded retry on writer-lock contention.

        Policy:
          - retry BEGIN IMMEDIATE / COMMIT until a deadline
          - exponential backoff with jitter
          - then raise (fail closed)
        """
        deadline_ms = max(250, _env_int("ARROZ_SQLITE_WRITE_DEADLINE_MS", 30_000))
        deadline_ts = _now_ms() + deadline_ms

        with self.connection() as con:
            attempt = 0
            while True:
                try:
                    con.execute("BEGIN IMMEDIATE;")
                    break
                except sqlite3.OperationalError as e:
                    if not self._is_locked_error(e) or _now_ms() >= deadline_ts:
                        raise
                    self._backoff(attempt)
                    attempt += 1

            try:
                yield con

                c_attempt = 0
                while True:
                    try:
                        con.execute("COMMIT;")
                        break
                    except sqlite3.OperationalError as e:
                        if not self._is_locked_error(e) or _now_ms() >= deadline_ts:
                            raise
                        self._backoff(c_attempt)
                        c_attempt += 1
            except BaseException:
                con.execute("ROLLBACK;")
                raise


class SqliteStateStore:
    """World state persisted in SQLite.

    Each invocation is one write transaction on a thread-local connection, so
    a record operation commits or rolls back as a whole. Every put/delete
    appends a row to state_history; the latest value lives in world_state.
    Events set during an invocation are stored in the same transaction.
    """

    def __init__(self, *, db: SqliteDB) -> None:
        self._db = db
        self._db.init_schema()
        self._local = threading.local()

    def _con(self) -> Optional[sqlite3.Connection]:
        return getattr(self._local, "con", None)

    @contextmanager
    def invocation(self) -> Iterator[sqlite3.Connection]:
        outer = self._con()
        if outer is not None:
            yield outer
            return

        try:
            tx = self._db.write_tx()
            con = tx.__enter__()
        except sqlite3.Error as e:
            raise StoreError("begin_failed", str(e)) from e

        self._local.con = con
        self._local.event = None
        try:
            yield con
            ev = self._local.event
            if ev is not None:
                con.execute("INSERT INTO events(name, payload, ts_ms) VALUES(?, ?, ?);", (ev[0], ev[1], _now_ms()))
        except BaseException as e:
            self._local.con = None
            log_event(_log, "invocation_rolled_back", backend="sqlite", error=str(e))
            if not tx.__exit__(type(e), e, e.__traceback__):
                raise
        else:
            self._local.con = None
            try:
                tx.__exit__(None, None, None)
            except sqlite3.Error as e:
                raise StoreError("commit_failed", str(e)) from e

    # ------------------------------------------------------------------
    # Key/value
    # ------------------------------------------------------------------

    def get_state(self, key: str) -> Optional[bytes]:
        with self.invocation() as con:
            try:
                row = con.execute("SELECT value FROM world_state WHERE key=?;", (key,)).fetchone()
            except sqlite3.Error as e:
                raise StoreError("read_failed", {"key": key, "error": str(e)}) from e
        return bytes(row["value"]) if row is not None else None

    def _next_version(self, con: sqlite3.Connection, key: str) -> int:
        row = con.execute("SELECT MAX(version) AS v FROM state_history WHERE key=?;", (key,)).fetchone()
        return int(row["v"] or 0) + 1

    def put_state(self, key: str, value: bytes) -> None:
        if not isinstance(value, (bytes, bytearray)):
            raise TypeError("put_state expects bytes")
        value = bytes(value)
        now = _now_ms()
        with self.invocation() as con:
            try:
                version = self._next_version(con, key)
                seq_row = con.execute("SELECT COALESCE(MAX(seq), 0) + 1 AS s FROM world_state;").fetchone()
                con.execute(
                    """
                    INSERT INTO world_state(key, value, doc_type, version, seq, updated_ts_ms)
                    VALUES(?, ?, ?, ?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                      value=excluded.value,
                      doc_type=excluded.doc_type,
                      version=excluded.version,
                      updated_ts_ms=excluded.updated_ts_ms;
                    """,
                    (key, value, _doc_type_of(value), version, int(seq_row["s"]), now),
                )
                con.execute(
                    "INSERT INTO state_history(key, version, value, is_delete, ts_ms) VALUES(?, ?, ?, 0, ?);",
                    (key, version, value, now),
                )
            except sqlite3.Error as e:
                raise StoreError("write_failed", {"key": key, "error": str(e)}) from e

    def del_state(self, key: str) -> None:
        with self.invocation() as con:
            try:
                version = self._next_version(con, key)
                con.execute("DELETE FROM world_state WHERE key=?;", (key,))
                con.execute(
                    "INSERT INTO state_history(key, version, value, is_delete, ts_ms) VALUES(?, ?, NULL, 1, ?);",
                    (key, version, _now_ms()),
                )
            except sqlite3.Error as e:
                raise StoreError("delete_failed", {"key": key, "error": str(e)}) from e

    def set_event(self, name: str, payload: bytes) -> None:
        # One event per invocation; a later call replaces the earlier one.
        with self.invocation():
            self._local.event = (str(name), bytes(payload))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _rows(self, con: sqlite3.Connection, sql: str, params: tuple) -> Iterator[sqlite3.Row]:
        try:
            cur = con.execute(sql, params)
            for row in cur:
                yield row
        except sqlite3.Error as e:
            raise QueryError("iterator_failed", str(e)) from e

    def get_state_by_range(self, start_key: str, end_key: str) -> ResultsIterator:
        sql = "SELECT key, value FROM world_state WHERE key >= ? AND key < ? ORDER BY key;"
        with self.invocation() as con:
            rows = [KV(str(r["key"]), bytes(r["value"])) for r in self._rows(con, sql, (start_key, end_key))]
        return ResultsIterator(rows)

    def get_query_result(self, query: str) -> ResultsIterator:
        selector = parse_selector_query(query)
        doc_type = selector.get(DOC_TYPE_FIELD)
        if isinstance(doc_type, str):
            sql = "SELECT key, value FROM world_state WHERE doc_type = ? ORDER BY seq;"
            params: tuple = (doc_type,)
        else:
            sql = "SELECT key, value FROM world_state ORDER BY seq;"
            params = ()

        out: List[KV] = []
        with self.invocation() as con:
            for r in self._rows(con, sql, params):
                value = bytes(r["value"])
                try:
                    doc = json.loads(value)
                except ValueError:
                    continue
                if isinstance(doc, dict) and selector_matches(selector, doc):
                    out.append(KV(str(r["key"]), value))
        return ResultsIterator(out)

    # ------------------------------------------------------------------
    # Platform-side history (not part of the record operations)
    # ------------------------------------------------------------------

    def history(self, key: str) -> List[Json]:
        sql = "SELECT version, value, is_delete, ts_ms FROM state_history WHERE key=? ORDER BY version;"
        with self.invocation() as con:
            rows = list(self._rows(con, sql, (key,)))
        return [
            {
                "version": int(r["version"]),
                "value": bytes(r["value"]) if r["value"] is not None else None,
                "is_delete": bool(r["is_delete"]),
                "ts_ms": int(r["ts_ms"]),
            }
            for r in rows
        ]

    def events(self, limit: Optional[int] = None) -> List[ChaincodeEvent]:
        """Events of committed invocations, oldest first.

        With `limit`, only the most recent `limit` events are returned.
        """
        if limit is not None and limit > 0:
            sql = "SELECT * FROM (SELECT id, name, payload, ts_ms FROM events ORDER BY id DESC LIMIT ?) ORDER BY id;"
            params: tuple = (int(limit),)
        else:
            sql = "SELECT id, name, payload, ts_ms FROM events ORDER BY id;"
            params = ()
        with self.invocation() as con:
            rows = list(self._rows(con, sql, params))
        return [ChaincodeEvent(name=str(r["name"]), payload=bytes(r["payload"]), ts_ms=int(r["ts_ms"])) for r in rows]
