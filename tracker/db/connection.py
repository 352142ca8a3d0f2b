from __future__ import annotations

from typing import Callable, Optional

import psycopg

from tracker.db.config import DbConfig, build_postgres_dsn, load_db_config


class DatabaseNotConfigured(Exception):
    """No Postgres DSN could be built from the environment."""


ConnectionFactory = Callable[[], psycopg.Connection]


def make_connection_factory(cfg: Optional[DbConfig] = None) -> ConnectionFactory:
    """
    Build a callable returning a new Postgres connection.

    The DSN is resolved on every call so a missing configuration surfaces as a
    per-request error instead of preventing the app from starting.
    """
    def connect() -> psycopg.Connection:
        c = cfg or load_db_config()
        dsn = build_postgres_dsn(c)
        if not dsn:
            raise DatabaseNotConfigured("Postgres not configured (set POSTGRES_DSN or POSTGRES_* env vars)")
        return psycopg.connect(dsn, connect_timeout=c.connect_timeout_seconds)

    return connect
