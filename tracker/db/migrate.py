"""
Schema migrations for the tracker database.

Migrations are the `NNNN_name.sql` files in `migrations/`, applied in file-name order,
each in its own transaction. A checksum of every applied file is recorded; editing a
file after it ran is an error, add a new one instead.
"""
from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from tracker.db.config import DbConfig, load_db_config
from tracker.db.connection import ConnectionFactory, DatabaseNotConfigured, make_connection_factory

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

# pg_advisory_lock key; serializes concurrent runners (several app replicas starting at once).
MIGRATION_LOCK_KEY = 7_245_110_301


class MigrationError(Exception):
    pass


@dataclass(frozen=True)
class Migration:
    version: str
    checksum: str
    sql: str

    @classmethod
    def from_file(cls, path: Path) -> "Migration":
        raw = path.read_bytes()
        return cls(version=path.stem, checksum=hashlib.sha256(raw).hexdigest(), sql=raw.decode("utf-8"))


def load_migrations(directory: Path = MIGRATIONS_DIR) -> List[Migration]:
    return [Migration.from_file(p) for p in sorted(directory.glob("*.sql"))]


def pending_migrations(conn, migrations: Sequence[Migration]) -> List[Migration]:  # type: ignore[no-untyped-def]
    """Return the migrations not yet recorded in `schema_migrations`, creating it if needed."""
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
          version text PRIMARY KEY,
          checksum text NOT NULL,
          applied_at timestamptz NOT NULL DEFAULT now()
        );
        """
    )
    recorded = {str(v): str(c) for v, c in conn.execute("SELECT version, checksum FROM schema_migrations;").fetchall()}

    pending: List[Migration] = []
    for m in migrations:
        checksum = recorded.get(m.version)
        if checksum is None:
            pending.append(m)
        elif checksum != m.checksum:
            raise MigrationError(f"{m.version} was edited after it was applied")
    return pending


def migrate(connect: ConnectionFactory, migrations: Optional[Sequence[Migration]] = None) -> List[str]:
    """Apply pending migrations; returns the versions applied."""
    migs = list(migrations) if migrations is not None else load_migrations()
    applied: List[str] = []

    with connect() as conn:
        conn.execute("SELECT pg_advisory_lock(%s);", (MIGRATION_LOCK_KEY,))
        try:
            for m in pending_migrations(conn, migs):
                with conn.transaction():
                    conn.execute(m.sql)
                    conn.execute(
                        "INSERT INTO schema_migrations (version, checksum) VALUES (%s, %s);",
                        (m.version, m.checksum),
                    )
                logger.info("Applied migration %s", m.version)
                applied.append(m.version)
        finally:
            conn.execute("SELECT pg_advisory_unlock(%s);", (MIGRATION_LOCK_KEY,))
    return applied


def migrate_on_startup(cfg: Optional[DbConfig] = None) -> None:
    """Run migrations when DB_AUTO_MIGRATE is set. Failures are logged; the app still starts."""
    cfg = cfg or load_db_config()
    if not cfg.db_auto_migrate:
        return
    try:
        applied = migrate(make_connection_factory(cfg))
    except DatabaseNotConfigured:
        logger.warning("DB_AUTO_MIGRATE is set but Postgres is not configured; skipping migrations")
        return
    except Exception:
        logger.exception("Database migration failed")
        return
    if not applied:
        logger.info("Database schema is up to date")


def main() -> int:
    try:
        applied = migrate(make_connection_factory())
    except DatabaseNotConfigured as e:
        logger.error("%s", e)
        return 2
    if not applied:
        logger.info("No pending migrations")
    return 0
