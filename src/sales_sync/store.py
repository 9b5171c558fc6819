"""Local store backends for the sales ledger.

Two backends share one small surface: ``fetch_reps``, ``upsert_sales``,
``delete_sales``, ``insert_log``, ``recent_log`` and ``last_sync_at``.

* :class:`SqliteStore` keeps everything in a SQLite file.
* :class:`RestStore` talks to a hosted PostgREST endpoint (Supabase) with
  ``requests``; its tables keep the billing platform's column names.

Backends raise their native errors; callers translate them.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import closing, contextmanager
from datetime import datetime, timezone
from typing import Any, Iterable, Iterator, Protocol

import requests

from sales_sync.config import SyncConfig
from sales_sync.model import Rep, SyncLogEntry

logger = logging.getLogger(__name__)

# What a backend raises when the database or the REST endpoint fails
STORE_ERRORS = (sqlite3.Error, requests.RequestException)

SALE_COLUMNS = (
    "external_id",
    "sale_date",
    "client_name",
    "amount",
    "quote_number",
    "rep_id",
    "department",
    "raw_department_label",
    "office",
    "status",
    "week_start",
    "week_end",
)

SCHEMA = """
CREATE TABLE IF NOT EXISTS reps (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    office TEXT,
    is_active INTEGER NOT NULL DEFAULT 1
);
CREATE TABLE IF NOT EXISTS sales (
    external_id TEXT PRIMARY KEY,
    sale_date TEXT NOT NULL,
    client_name TEXT,
    amount REAL NOT NULL CHECK (amount >= 0),
    quote_number TEXT,
    rep_id TEXT NOT NULL REFERENCES reps(id),
    department TEXT NOT NULL,
    raw_department_label TEXT,
    office TEXT NOT NULL,
    status TEXT NOT NULL CHECK (status IN ('accepted', 'invoiced')),
    week_start TEXT,
    week_end TEXT
);
CREATE TABLE IF NOT EXISTS sync_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    received_at TEXT NOT NULL,
    action TEXT NOT NULL,
    status_code INTEGER NOT NULL,
    external_id TEXT,
    error_message TEXT,
    payload TEXT
);
"""


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class Store(Protocol):
    def fetch_reps(self) -> list[Rep]: ...

    def upsert_sales(self, rows: list[dict[str, Any]]) -> None: ...

    def delete_sales(self, external_ids: list[str]) -> int: ...

    def insert_log(self, entry: SyncLogEntry) -> None: ...

    def recent_log(self, limit: int = 20) -> list[SyncLogEntry]: ...

    def last_sync_at(self) -> str | None: ...


class SqliteStore:
    """SQLite-backed ledger. Each call opens its own connection and transaction."""

    def __init__(self, path: str) -> None:
        self.path = path
        with self._transaction() as conn:
            conn.executescript(SCHEMA)

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with closing(sqlite3.connect(self.path)) as conn:
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            with conn:  # Commit on success, roll back on error
                yield conn

    # -- reps -------------------------------------------------------------

    def fetch_reps(self) -> list[Rep]:
        with self._transaction() as conn:
            rows = conn.execute("SELECT id, name, office, is_active FROM reps").fetchall()
        return [
            Rep(id=r["id"], name=r["name"], office=r["office"], active=bool(r["is_active"]))
            for r in rows
        ]

    def save_reps(self, reps: Iterable[Rep]) -> int:
        """Insert or update reps by id. Used to seed the directory."""
        rows = [(r.id, r.name.strip(), r.office, int(r.active)) for r in reps]
        with self._transaction() as conn:
            conn.executemany(
                "INSERT INTO reps (id, name, office, is_active) VALUES (?, ?, ?, ?) "
                "ON CONFLICT(id) DO UPDATE SET name = excluded.name, "
                "office = excluded.office, is_active = excluded.is_active",
                rows,
            )
        return len(rows)

    # -- sales ------------------------------------------------------------

    def upsert_sales(self, rows: list[dict[str, Any]]) -> None:
        if not rows:
            return
        placeholders = ", ".join("?" for _ in SALE_COLUMNS)
        updates = ", ".join(
            f"{col} = excluded.{col}" for col in SALE_COLUMNS if col != "external_id"
        )
        sql = (
            f"INSERT INTO sales ({', '.join(SALE_COLUMNS)}) VALUES ({placeholders}) "
            f"ON CONFLICT(external_id) DO UPDATE SET {updates}"
        )
        with self._transaction() as conn:
            conn.executemany(sql, [tuple(row.get(c) for c in SALE_COLUMNS) for row in rows])

    def delete_sales(self, external_ids: list[str]) -> int:
        if not external_ids:
            return 0
        placeholders = ", ".join("?" for _ in external_ids)
        with self._transaction() as conn:
            cursor = conn.execute(
                f"DELETE FROM sales WHERE external_id IN ({placeholders})",
                list(external_ids),
            )
            return cursor.rowcount

    def get_sale(self, external_id: str) -> dict[str, Any] | None:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM sales WHERE external_id = ?", (external_id,)
            ).fetchone()
        return dict(row) if row else None

    def list_sales(self) -> list[dict[str, Any]]:
        with self._transaction() as conn:
            rows = conn.execute("SELECT * FROM sales ORDER BY external_id").fetchall()
        return [dict(r) for r in rows]

    # -- audit ------------------------------------------------------------

    def insert_log(self, entry: SyncLogEntry) -> None:
        payload = json.dumps(entry.payload) if entry.payload is not None else None
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO sync_log (received_at, action, status_code, external_id, "
                "error_message, payload) VALUES (?, ?, ?, ?, ?, ?)",
                (
                    entry.received_at or utc_now(),
                    entry.action,
                    entry.status_code,
                    entry.external_id,
                    entry.error_message,
                    payload,
                ),
            )

    def recent_log(self, limit: int = 20) -> list[SyncLogEntry]:
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM sync_log ORDER BY id DESC LIMIT ?", (limit,)
            ).fetchall()
        return [
            SyncLogEntry(
                action=r["action"],
                status_code=r["status_code"],
                external_id=r["external_id"],
                error_message=r["error_message"],
                payload=json.loads(r["payload"]) if r["payload"] else None,
                received_at=r["received_at"],
            )
            for r in rows
        ]

    def last_sync_at(self) -> str | None:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT received_at FROM sync_log WHERE action LIKE 'sync%' "
                "ORDER BY id DESC LIMIT 1"
            ).fetchone()
        return row["received_at"] if row else None


class RestStore:
    """PostgREST-backed ledger (hosted Postgres behind a REST gateway)."""

    # Local field name -> column name in the hosted tables
    COLUMN_MAP = {
        "external_id": "zoho_id",
        "raw_department_label": "zoho_department_label",
    }
    # Computed by a database trigger on the hosted side
    SERVER_COLUMNS = {"week_start", "week_end"}

    def __init__(self, base_url: str, service_key: str, *, timeout: float = 30.0) -> None:
        self.base_url = base_url.rstrip("/") + "/rest/v1"
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update(
            {
                "apikey": service_key,
                "Authorization": f"Bearer {service_key}",
                "Content-Type": "application/json",
            }
        )

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        resp = self.session.request(
            method, f"{self.base_url}/{path}", timeout=self.timeout, **kwargs
        )
        if not resp.ok:
            raise requests.HTTPError(
                f"{method} {path} failed ({resp.status_code}): {resp.text}", response=resp
            )
        return resp

    def _to_remote(self, row: dict[str, Any]) -> dict[str, Any]:
        return {
            self.COLUMN_MAP.get(key, key): value
            for key, value in row.items()
            if key not in self.SERVER_COLUMNS
        }

    def fetch_reps(self) -> list[Rep]:
        data = self._request("GET", "reps", params={"select": "id,name,office,is_active"}).json()
        return [
            Rep(
                id=str(r["id"]),
                name=r["name"],
                office=r.get("office"),
                active=r.get("is_active", True),
            )
            for r in data
        ]

    def upsert_sales(self, rows: list[dict[str, Any]]) -> None:
        if not rows:
            return
        self._request(
            "POST",
            "sales",
            params={"on_conflict": self.COLUMN_MAP["external_id"]},
            headers={"Prefer": "resolution=merge-duplicates"},
            data=json.dumps([self._to_remote(r) for r in rows]),
        )

    def delete_sales(self, external_ids: list[str]) -> int:
        if not external_ids:
            return 0
        quoted = ",".join(json.dumps(str(i)) for i in external_ids)
        resp = self._request(
            "DELETE",
            "sales",
            params={self.COLUMN_MAP["external_id"]: f"in.({quoted})"},
            headers={"Prefer": "return=representation"},
        )
        return len(resp.json() or [])

    def insert_log(self, entry: SyncLogEntry) -> None:
        body = {
            "action": entry.action,
            "status_code": entry.status_code,
            "zoho_id": entry.external_id,
            "error_message": entry.error_message,
            "payload": entry.payload,
        }
        if entry.received_at:
            body["received_at"] = entry.received_at
        self._request("POST", "webhook_log", data=json.dumps(body))

    def recent_log(self, limit: int = 20) -> list[SyncLogEntry]:
        data = self._request(
            "GET",
            "webhook_log",
            params={"select": "*", "order": "received_at.desc", "limit": str(limit)},
        ).json()
        return [
            SyncLogEntry(
                action=r["action"],
                status_code=r["status_code"],
                external_id=r.get("zoho_id"),
                error_message=r.get("error_message"),
                payload=r.get("payload"),
                received_at=r.get("received_at"),
            )
            for r in data
        ]

    def last_sync_at(self) -> str | None:
        data = self._request(
            "GET",
            "webhook_log",
            params={
                "select": "received_at",
                "action": "like.sync*",
                "order": "received_at.desc",
                "limit": "1",
            },
        ).json()
        return data[0]["received_at"] if data else None


def open_store(config: SyncConfig) -> Store:
    """Pick the hosted store when its credentials are configured, else SQLite."""
    if config.supabase_url and config.supabase_key:
        logger.debug("Using REST store at %s", config.supabase_url)
        return RestStore(config.supabase_url, config.supabase_key, timeout=config.request_timeout)
    logger.debug("Using SQLite store at %s", config.db_path)
    return SqliteStore(config.db_path)


__all__ = ["STORE_ERRORS", "RestStore", "SqliteStore", "Store", "open_store"]
