"""PostgreSQL cache store implementation for cross-run persistence."""
import logging
from typing import Any, Optional
import psycopg2
from psycopg2.extras import Json
from repo_aggregator.domain.cache_interface import ICacheStore
from repo_aggregator.domain.models import CacheEntry


logger = logging.getLogger(__name__)


class PostgresCacheStore(ICacheStore):
    """PostgreSQL implementation of the cache store.

    Entries live in the ``cache_entries`` table created by setup_postgres.py.
    Every database error degrades to "no cache": reads return None and
    writes are rolled back and reported as dropped.
    """

    def __init__(self, connection_string: str):
        """Initialize PostgreSQL store. The connection is opened lazily.

        Args:
            connection_string: PostgreSQL connection string
        """
        self._connection_string = connection_string
        self._conn = None
        self._unavailable = False

    def _connection(self):
        if self._conn is None and not self._unavailable:
            try:
                self._conn = psycopg2.connect(self._connection_string)
                self._conn.autocommit = False
                logger.info("Connected to PostgreSQL cache")
            except psycopg2.Error as e:
                # Don't retry a dead database on every key
                self._unavailable = True
                logger.warning(f"PostgreSQL cache unavailable, continuing without cache: {e}")
        return self._conn

    def get(self, key: str) -> Optional[CacheEntry]:
        conn = self._connection()
        if conn is None:
            return None

        try:
            with conn.cursor() as cursor:
                cursor.execute(
                    "SELECT stored_at, payload FROM cache_entries WHERE key = %s",
                    (key,)
                )
                row = cursor.fetchone()
            conn.rollback()
        except psycopg2.Error as e:
            logger.warning(f"Error reading cache entry {key}: {e}")
            self._reset(conn)
            return None

        if row is None:
            return None
        return CacheEntry(key=key, stored_at=int(row[0]), payload=row[1])

    def set(self, key: str, payload: Any, stored_at: int) -> bool:
        """Overwrite an entry using an UPSERT."""
        conn = self._connection()
        if conn is None:
            return False

        try:
            with conn.cursor() as cursor:
                cursor.execute(
                    """
                    INSERT INTO cache_entries (key, stored_at, payload)
                    VALUES (%s, %s, %s)
                    ON CONFLICT (key)
                    DO UPDATE SET
                        stored_at = EXCLUDED.stored_at,
                        payload = EXCLUDED.payload
                    """,
                    (key, stored_at, Json(payload))
                )
            conn.commit()
            return True
        except (psycopg2.Error, TypeError) as e:
            logger.warning(f"Dropping cache write for {key}: {e}")
            self._reset(conn)
            return False

    def _reset(self, conn) -> None:
        try:
            conn.rollback()
        except psycopg2.Error:
            self._conn = None

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
            logger.info("Closed PostgreSQL connection")
