"""Storage access for users and posts.

Every request opens its own short-lived connection with `connect()`; the
block commits on success and rolls back on any exception, so multi-statement
writes (post insert + owner index append) are all-or-nothing.

SQLite is the default. A `postgres://` / `postgresql://` DSN switches to
psycopg2, wrapped so callers keep writing `?` placeholders and reading rows
as mappings either way.
"""

from __future__ import annotations

import re
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Sequence, Set, Tuple
from urllib.parse import urlparse

from minimal_blog.schema import get_schema_sql


def _debug(msg: str) -> None:
    print(f"[db] {msg}")


def _detect_dialect(dsn: str) -> str:
    """Return 'postgres' or 'sqlite'. Anything that isn't a Postgres URL is a SQLite path."""
    scheme = urlparse((dsn or "").strip()).scheme.lower()
    return "postgres" if scheme in ("postgres", "postgresql") else "sqlite"


# Quoted literals are kept intact so a '?' inside a string is not a placeholder.
_LITERAL_RE = re.compile(r"""('(?:[^']|'')*'|"(?:[^"]|"")*")""")


def _qmark_to_pct(sql: str) -> str:
    """Rewrite sqlite `?` placeholders as psycopg2 `%s`."""
    parts = _LITERAL_RE.split(sql)
    # split() with one capture group puts literals at the odd indices.
    return "".join(p if i % 2 else p.replace("?", "%s") for i, p in enumerate(parts))


class PGConnection:
    """psycopg2 connection exposing the subset of the sqlite3 API used here."""

    dialect = "postgres"

    def __init__(self, conn: Any):
        self._conn = conn

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> Any:
        cur = self._conn.cursor()
        cur.execute(_qmark_to_pct(sql), tuple(params or ()))
        return cur

    def commit(self) -> None:
        self._conn.commit()

    def rollback(self) -> None:
        self._conn.rollback()

    def close(self) -> None:
        self._conn.close()


def _open(dsn: str) -> Any:
    if _detect_dialect(dsn) == "postgres":
        try:
            import psycopg2
            import psycopg2.extras
        except Exception as e:
            raise RuntimeError(
                "Postgres DSN configured but psycopg2 is not installed "
                "(pip install 'minimal-blog[postgres]')."
            ) from e
        # RealDictCursor: rows support row["col"] like sqlite3.Row.
        return PGConnection(psycopg2.connect(dsn, cursor_factory=psycopg2.extras.RealDictCursor))

    if dsn.lower().startswith("sqlite:///"):
        dsn = dsn[len("sqlite:///") :]
    Path(dsn).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(dsn, timeout=30, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    # WAL lets readers proceed while one uvicorn worker writes.
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA busy_timeout=5000;")
    conn.execute("PRAGMA foreign_keys=ON;")
    return conn


@contextmanager
def connect(db_dsn: str) -> Iterator[Any]:
    """One transaction: commit when the block exits cleanly, roll back otherwise."""
    conn = _open((db_dsn or "").strip())
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def integrity_errors() -> Tuple[type, ...]:
    """Constraint-violation exception types for the drivers available."""
    errors: list[type] = [sqlite3.IntegrityError]
    try:
        import psycopg2
    except ImportError:
        return tuple(errors)
    errors.append(psycopg2.IntegrityError)
    return tuple(errors)


def init_db(db_dsn: str) -> None:
    """Create the users/posts/user_posts tables if missing."""
    dialect = _detect_dialect(db_dsn)
    _debug(f"creating schema ({dialect}) at {db_dsn}")
    ddl = get_schema_sql(dialect)
    with connect(db_dsn) as conn:
        if dialect == "sqlite":
            conn.executescript(ddl)
            return
        # Several API processes may start at once; serialize DDL on an advisory lock.
        conn.execute("SELECT pg_advisory_lock(2147483646);")
        try:
            for stmt in (s.strip() for s in ddl.split(";")):
                if stmt:
                    conn.execute(stmt)
        finally:
            conn.execute("SELECT pg_advisory_unlock(2147483646);")


_INIT_LOCK = threading.Lock()
_INITIALIZED: Set[str] = set()


def ensure_db(db_dsn: str) -> None:
    """Run `init_db` once per process for a DSN.

    Concurrent first requests block on the lock; later calls return immediately.
    """
    dsn = (db_dsn or "").strip()
    if dsn in _INITIALIZED:
        return
    with _INIT_LOCK:
        if dsn in _INITIALIZED:
            return
        init_db(dsn)
        _INITIALIZED.add(dsn)
