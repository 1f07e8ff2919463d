# outcome_db.py
# -----------------------------------------------------------------------------
# Persistence for aggregated outcomes and per-month ingestion markers.
#
# The backend is picked once from DATABASE_URL:
#   sqlite:<path>                          -> SqliteStore (sqlite3)
#   postgres://... / postgresql://...      -> PostgresStore (psycopg)
# Both expose the same operations; callers never branch on the backend.
#
# Upserts replace the counters of an existing key: a month is always written
# whole, after its aggregation finished.
# -----------------------------------------------------------------------------

from __future__ import annotations

import enum
import sqlite3
from pathlib import Path
from typing import Any, List, Sequence, Set, Tuple

from outcome_model import AggMap, sorted_items

STATUS_STARTED = "started"
STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"


class StoreError(RuntimeError):
    pass


class Backend(enum.Enum):
    SQLITE = "sqlite"
    POSTGRES = "postgres"


def detect_backend(url: str) -> Backend:
    lower = url.strip().lower()
    if lower.startswith("postgres://") or lower.startswith("postgresql://"):
        return Backend.POSTGRES
    if lower.startswith("sqlite:"):
        return Backend.SQLITE
    raise StoreError(f"Unsupported DATABASE_URL scheme: {url}")


def sqlite_path_from_url(url: str) -> str:
    """'sqlite:data/x.db', 'sqlite://data/x.db', 'sqlite:///abs/x.db', 'sqlite::memory:'."""
    rest = url.strip()[len("sqlite:"):]
    if rest.startswith("//"):
        rest = rest[2:]
    rest = rest.split("?", 1)[0]
    if not rest:
        raise StoreError(f"Missing SQLite path in DATABASE_URL: {url}")
    return rest


def aggregate_rows(agg: AggMap) -> List[Tuple[str, str, int, int, int, int, int, int]]:
    return [
        (k.month, k.opening, k.white_bucket, k.black_bucket,
         c.games, c.white_wins, c.black_wins, c.draws)
        for k, c in sorted_items(agg)
    ]


# ----------------------------
# Stores
# ----------------------------

class OutcomeStore:
    """Common operations; subclasses provide the SQL dialect and connection."""

    backend: Backend
    schema: Sequence[str] = ()
    upsert_sql: str = ""
    mark_start_sql: str = ""
    mark_finish_sql: str = ""
    done_months_sql = "SELECT month FROM ingestions WHERE status = 'success'"

    def migrate(self) -> None:
        for stmt in self.schema:
            self._execute(stmt, ())

    def done_months(self) -> Set[str]:
        return {row[0] for row in self._fetchall(self.done_months_sql)}

    def mark_start(self, month: str, url: str, started_iso: str) -> None:
        self._execute(self.mark_start_sql, (month, url, started_iso, STATUS_STARTED))

    def mark_finish(
        self, month: str, games: int, duration_ms: int, status: str, finished_iso: str
    ) -> None:
        self._execute(self.mark_finish_sql, (games, duration_ms, status, finished_iso, month))

    def upsert_aggregates(self, agg: AggMap) -> int:
        rows = aggregate_rows(agg)
        if rows:
            self._executemany(self.upsert_sql, rows)
        return len(rows)

    def close(self) -> None:
        raise NotImplementedError

    def __enter__(self) -> OutcomeStore:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _execute(self, sql: str, params: Sequence[Any]) -> None:
        raise NotImplementedError

    def _executemany(self, sql: str, rows: Sequence[Sequence[Any]]) -> None:
        raise NotImplementedError

    def _fetchall(self, sql: str) -> List[Tuple[Any, ...]]:
        raise NotImplementedError


class SqliteStore(OutcomeStore):
    backend = Backend.SQLITE
    schema = (
        """CREATE TABLE IF NOT EXISTS aggregates (
             month         TEXT NOT NULL,
             opening_label TEXT NOT NULL,
             white_bucket  INTEGER NOT NULL,
             black_bucket  INTEGER NOT NULL,
             games         INTEGER NOT NULL,
             white_wins    INTEGER NOT NULL,
             black_wins    INTEGER NOT NULL,
             draws         INTEGER NOT NULL,
             PRIMARY KEY (month, opening_label, white_bucket, black_bucket)
           )""",
        """CREATE TABLE IF NOT EXISTS ingestions (
             month       TEXT PRIMARY KEY,
             url         TEXT NOT NULL,
             started_at  TEXT,
             finished_at TEXT,
             games       INTEGER DEFAULT 0,
             duration_ms INTEGER DEFAULT 0,
             status      TEXT NOT NULL
           )""",
    )
    upsert_sql = (
        "INSERT OR REPLACE INTO aggregates "
        "(month, opening_label, white_bucket, black_bucket, games, white_wins, black_wins, draws) "
        "VALUES (?, ?, ?, ?, ?, ?, ?, ?)"
    )
    mark_start_sql = (
        "INSERT INTO ingestions (month, url, started_at, status) VALUES (?, ?, ?, ?) "
        "ON CONFLICT(month) DO UPDATE SET "
        "url = excluded.url, started_at = excluded.started_at, status = excluded.status"
    )
    mark_finish_sql = (
        "UPDATE ingestions SET games = ?, duration_ms = ?, status = ?, finished_at = ? "
        "WHERE month = ?"
    )

    def __init__(self, path: str) -> None:
        if path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self.path = path
        self.conn = sqlite3.connect(path)

    def close(self) -> None:
        self.conn.close()

    def _execute(self, sql: str, params: Sequence[Any]) -> None:
        with self.conn:
            self.conn.execute(sql, params)

    def _executemany(self, sql: str, rows: Sequence[Sequence[Any]]) -> None:
        with self.conn:
            self.conn.executemany(sql, rows)

    def _fetchall(self, sql: str) -> List[Tuple[Any, ...]]:
        return self.conn.execute(sql).fetchall()


class PostgresStore(OutcomeStore):
    backend = Backend.POSTGRES
    schema = (
        """CREATE TABLE IF NOT EXISTS aggregates (
             month         VARCHAR(7)   NOT NULL,
             opening_label VARCHAR(255) NOT NULL,
             white_bucket  INTEGER      NOT NULL,
             black_bucket  INTEGER      NOT NULL,
             games         BIGINT       NOT NULL,
             white_wins    BIGINT       NOT NULL,
             black_wins    BIGINT       NOT NULL,
             draws         BIGINT       NOT NULL,
             PRIMARY KEY (month, opening_label, white_bucket, black_bucket)
           )""",
        """CREATE TABLE IF NOT EXISTS ingestions (
             month       VARCHAR(7)  PRIMARY KEY,
             url         TEXT        NOT NULL,
             started_at  TEXT,
             finished_at TEXT,
             games       BIGINT      DEFAULT 0,
             duration_ms BIGINT      DEFAULT 0,
             status      VARCHAR(16) NOT NULL
           )""",
    )
    upsert_sql = (
        "INSERT INTO aggregates "
        "(month, opening_label, white_bucket, black_bucket, games, white_wins, black_wins, draws) "
        "VALUES (%s, %s, %s, %s, %s, %s, %s, %s) "
        "ON CONFLICT (month, opening_label, white_bucket, black_bucket) DO UPDATE SET "
        "games = EXCLUDED.games, white_wins = EXCLUDED.white_wins, "
        "black_wins = EXCLUDED.black_wins, draws = EXCLUDED.draws"
    )
    mark_start_sql = (
        "INSERT INTO ingestions (month, url, started_at, status) VALUES (%s, %s, %s, %s) "
        "ON CONFLICT (month) DO UPDATE SET "
        "url = EXCLUDED.url, started_at = EXCLUDED.started_at, status = EXCLUDED.status"
    )
    mark_finish_sql = (
        "UPDATE ingestions SET games = %s, duration_ms = %s, status = %s, finished_at = %s "
        "WHERE month = %s"
    )

    def __init__(self, url: str) -> None:
        # Imported here so SQLite-only installs do not need the driver.
        import psycopg

        self.conn = psycopg.connect(url, autocommit=True)

    def close(self) -> None:
        self.conn.close()

    def _execute(self, sql: str, params: Sequence[Any]) -> None:
        with self.conn.transaction(), self.conn.cursor() as cur:
            cur.execute(sql, params)

    def _executemany(self, sql: str, rows: Sequence[Sequence[Any]]) -> None:
        with self.conn.transaction(), self.conn.cursor() as cur:
            cur.executemany(sql, rows)

    def _fetchall(self, sql: str) -> List[Tuple[Any, ...]]:
        with self.conn.cursor() as cur:
            cur.execute(sql)
            return cur.fetchall()


def connect(url: str) -> OutcomeStore:
    if not url:
        raise StoreError("DATABASE_URL not set")
    backend = detect_backend(url)
    if backend is Backend.POSTGRES:
        return PostgresStore(url)
    return SqliteStore(sqlite_path_from_url(url))
