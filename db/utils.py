"""Engine construction and connection access for the catalog database."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator

from flask import g, has_app_context
from sqlalchemy import create_engine, event
from sqlalchemy.engine import URL, Connection, Engine, make_url


class DatabaseEngine:
    """Thin wrapper handing out SQLAlchemy connections and transactions."""

    def __init__(self, engine: Engine):
        self._engine = engine

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def dialect(self) -> str:
        return self._engine.dialect.name

    @contextmanager
    def sa_connection(self) -> Iterator[Connection]:
        """Yield a plain connection for reads."""

        with self._engine.connect() as conn:
            yield conn

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        """Yield a connection whose work commits on exit or rolls back on error."""

        with self._engine.begin() as conn:
            yield conn

    def dispose(self) -> None:
        self._engine.dispose()


_fallback_engine: DatabaseEngine | None = None


def set_fallback_connection(engine: DatabaseEngine | None) -> None:
    """Set the engine used outside a Flask app context (``None`` clears it)."""

    global _fallback_engine
    _fallback_engine = engine


def _sqlite_pragmas(busy_timeout: float) -> tuple[str, ...]:
    pragmas = ["PRAGMA foreign_keys=ON", "PRAGMA journal_mode=WAL"]
    milliseconds = int(busy_timeout * 1000)
    if milliseconds > 0:
        pragmas.append(f"PRAGMA busy_timeout={milliseconds}")
    return tuple(pragmas)


def _apply_sqlite_pragmas(dbapi_conn: Any, busy_timeout: float) -> None:
    # Join rows rely on foreign keys, which SQLite leaves off per connection.
    if not isinstance(dbapi_conn, sqlite3.Connection):
        return
    for statement in _sqlite_pragmas(busy_timeout):
        try:
            dbapi_conn.execute(statement).fetchall()
        except sqlite3.OperationalError:  # pragma: no cover - e.g. WAL on read-only media
            continue


def _apply_mariadb_session(dbapi_conn: Any, lock_timeout: float) -> None:
    cursor = dbapi_conn.cursor()
    try:
        cursor.execute(
            "SET SESSION innodb_lock_wait_timeout = %s", (max(int(lock_timeout), 1),)
        )
    finally:
        cursor.close()


def _absolute_sqlite_url(url: URL) -> URL:
    if not url.database or url.database == ":memory:":
        raise ValueError("SQLite DSN must point at a database file")
    path = Path(url.database).expanduser()
    if not path.is_absolute():
        path = path.resolve()
    return url.set(database=path.as_posix())


def build_engine_from_dsn(
    dsn: str,
    *,
    timeout: float | None = None,
    pool_size: int = 5,
    pool_recycle: int = 1_800,
) -> DatabaseEngine:
    """Return a :class:`DatabaseEngine` for ``dsn`` with per-connection setup."""

    url = make_url(dsn)
    backend = url.get_backend_name()
    effective_timeout = 5.0 if timeout is None else float(timeout)
    connect_args: dict[str, Any] = {}

    if backend == "sqlite":
        url = _absolute_sqlite_url(url)
        connect_args["check_same_thread"] = False

    engine = create_engine(
        url,
        pool_size=pool_size,
        pool_recycle=pool_recycle,
        pool_pre_ping=True,
        connect_args=connect_args,
    )

    if backend == "sqlite":
        event.listen(
            engine,
            "connect",
            lambda dbapi_conn, _record: _apply_sqlite_pragmas(dbapi_conn, effective_timeout),
        )
    elif backend in {"mysql", "mariadb"}:
        event.listen(
            engine,
            "connect",
            lambda dbapi_conn, _record: _apply_mariadb_session(dbapi_conn, effective_timeout),
        )

    return DatabaseEngine(engine)


def get_db(
    connection_factory: Callable[[], DatabaseEngine] | None = None,
    *,
    context_key: str = "db",
) -> DatabaseEngine:
    """Return the request's engine inside an app context, else the process fallback."""

    global _fallback_engine

    if has_app_context():
        engine = g.get(context_key)
        if engine is None:
            engine = _fallback_engine or (connection_factory and connection_factory())
            if engine is None:
                raise RuntimeError("Database connection is not configured")
            setattr(g, context_key, engine)
        if not isinstance(engine, DatabaseEngine):
            raise RuntimeError("Database connection is not configured correctly")
        return engine

    if _fallback_engine is None:
        if connection_factory is None:
            raise RuntimeError("Database connection is not configured")
        _fallback_engine = connection_factory()
    return _fallback_engine


__all__ = [
    "DatabaseEngine",
    "build_engine_from_dsn",
    "get_db",
    "set_fallback_connection",
]
