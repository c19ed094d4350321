"""Apply pending SQL migrations for the blocked URL cache."""

from __future__ import annotations

import logging
import os
import pathlib
import time

import psycopg2

from chatguard.obs.logging import configure_logging
from chatguard.settings import settings

logger = logging.getLogger("chatguard.migrations")

MIGRATIONS_DIR = pathlib.Path(__file__).resolve().parent.parent / "chatguard" / "infra" / "migrations"


def _with_sslmode_require(dsn: str) -> str:
    if "sslmode=" in dsn:
        return dsn
    joiner = "&" if "?" in dsn else "?"
    return f"{dsn}{joiner}sslmode=require"


def _dsn() -> str:
    dsn = settings.postgres_url
    if not dsn:
        raise SystemExit("POSTGRES_URL is not set")
    if os.environ.get("POSTGRES_SSL", "").strip().lower() in {"1", "true", "yes", "on"}:
        dsn = _with_sslmode_require(dsn)
    return dsn


def wait_for_db(dsn: str, retries: int = 30, delay: int = 2) -> psycopg2.extensions.connection:
    for attempt in range(retries):
        try:
            return psycopg2.connect(dsn)
        except psycopg2.OperationalError as exc:
            if "starting up" in str(exc) or "Connection refused" in str(exc):
                logger.info("database not ready; retrying in %ss (%d/%d)", delay, attempt + 1, retries)
                time.sleep(delay)
            else:
                raise
    raise SystemExit("Could not connect to database after multiple retries")


def main() -> None:
    configure_logging()
    paths = sorted(MIGRATIONS_DIR.glob("*.sql"))
    if not paths:
        raise SystemExit("no migration files found")

    with wait_for_db(_dsn()) as conn:
        conn.autocommit = True
        with conn.cursor() as cur:
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_migrations (
                    version TEXT PRIMARY KEY,
                    applied_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
                )
                """
            )
            cur.execute("SELECT version FROM schema_migrations")
            applied = {row[0] for row in cur.fetchall()}

            for path in paths:
                version = path.name.split("_", 1)[0]
                if version in applied:
                    continue
                try:
                    cur.execute(path.read_text(encoding="utf-8"))
                    cur.execute(
                        """
                        INSERT INTO schema_migrations (version)
                        VALUES (%s)
                        ON CONFLICT (version) DO UPDATE SET applied_at = NOW()
                        """,
                        (version,),
                    )
                except psycopg2.Error:
                    logger.exception("failed applying %s", path.name)
                    raise
                logger.info("applied %s", path.name)


if __name__ == "__main__":
    main()
