"""Database helpers for the check-then-insert download catalog."""
from __future__ import annotations

import logging
import os

import psycopg2
from psycopg2.extensions import connection as PGConnection

from catalog_etl.errors import StoreInsertError, StoreLookupError
from catalog_etl.models import DownloadRecord

LOGGER = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS downloads (
    id SERIAL PRIMARY KEY,
    external_id VARCHAR(32) NOT NULL,
    source_id BIGINT NOT NULL,
    title TEXT NOT NULL,
    created_at TIMESTAMPTZ DEFAULT NOW(),

    CONSTRAINT uq_downloads_source UNIQUE (source_id)
);
"""


def get_db_connection() -> PGConnection:
    """Return a psycopg2 connection.

    Uses ``PG_DSN`` when set, otherwise builds the DSN from ``PG_USER``,
    ``PG_PASS``, ``PG_HOST``, ``PG_PORT`` and ``PG_DB``.
    """
    dsn = os.getenv("PG_DSN")
    if not dsn:
        user = os.getenv("PG_USER")
        password = os.getenv("PG_PASS")
        host = os.getenv("PG_HOST", "localhost")
        port = os.getenv("PG_PORT", "5432")
        database = os.getenv("PG_DB")
        if not all([user, password, database]):
            raise RuntimeError(
                "Database credentials not configured. "
                "Set PG_DSN or (PG_USER, PG_PASS, PG_DB) environment variables."
            )
        dsn = f"postgresql://{user}:{password}@{host}:{port}/{database}"
    return psycopg2.connect(dsn)


def ensure_schema(conn: PGConnection) -> None:
    with conn.cursor() as cur:
        cur.execute(SCHEMA_SQL)
    conn.commit()


def download_exists(conn: PGConnection, source_id: int) -> bool:
    with conn.cursor() as cur:
        cur.execute("SELECT 1 FROM downloads WHERE source_id = %s;", (source_id,))
        return cur.fetchone() is not None


def count_downloads(conn: PGConnection) -> int:
    with conn.cursor() as cur:
        cur.execute("SELECT COUNT(*) FROM downloads;")
        row = cur.fetchone()
    conn.commit()
    return int(row[0]) if row else 0


def insert_download_if_absent(conn: PGConnection, record: DownloadRecord) -> bool:
    """Insert ``record`` unless its source id is already stored.

    The existence check and the insert share one transaction, which also
    holds a transaction-scoped advisory lock on the source id so concurrent
    writers serialize per id.

    Returns True if a new row was inserted.

    Raises
    ------
    StoreLookupError
        The lock or existence check failed; dedup state is unknown.
    StoreInsertError
        The insert or commit failed; the transaction was rolled back.
    """
    try:
        with conn.cursor() as cur:
            cur.execute("SELECT pg_advisory_xact_lock(%s);", (record.source_id,))
        exists = download_exists(conn, record.source_id)
    except psycopg2.Error as exc:
        conn.rollback()
        raise StoreLookupError(f"lookup of source_id={record.source_id} failed: {exc}") from exc

    if exists:
        conn.rollback()
        return False

    try:
        with conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO downloads (external_id, source_id, title)
                VALUES (%(external_id)s, %(source_id)s, %(title)s)
                ON CONFLICT (source_id) DO NOTHING;
                """,
                {
                    "external_id": record.external_id,
                    "source_id": record.source_id,
                    "title": record.title,
                },
            )
            inserted = cur.rowcount > 0
        conn.commit()
    except psycopg2.Error as exc:
        conn.rollback()
        raise StoreInsertError(f"insert of {record.external_id} failed: {exc}") from exc
    return inserted
