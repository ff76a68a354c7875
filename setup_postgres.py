"""Database initialization script.

Creates the cache table used when CACHE_BACKEND=postgres.
"""
import sys
import psycopg2
import logging
from dotenv import load_dotenv
from repo_aggregator.config import get_connection_string

# Load environment variables from .env or env file
load_dotenv('.env') or load_dotenv('env')


logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def create_schema(conn) -> None:
    """Create database schema.

    Schema design considerations:
    - one row per cache key, keys are namespaced by source
      (``org-repos:<org>``, ``repo-topics:<owner>/<name>``, ...)
    - stored_at is epoch milliseconds, compared against per-source TTLs
      in the application; stale rows are kept as a fallback, never purged here
    - payload is the raw JSON document returned by the API
    """
    cursor = conn.cursor()

    try:
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS cache_entries (
                key VARCHAR(1024) PRIMARY KEY,
                stored_at BIGINT NOT NULL,
                payload JSONB
            )
        """)

        # Index for inspecting the oldest entries
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_cache_entries_stored_at
            ON cache_entries(stored_at)
        """)

        conn.commit()
        logger.info("Database schema created successfully")

    except Exception as e:
        conn.rollback()
        logger.error(f"Error creating schema: {e}")
        raise
    finally:
        cursor.close()


def main():
    """Initialize the database."""
    try:
        conn_string = get_connection_string()
        logger.info(f"Connecting to database...")

        conn = psycopg2.connect(conn_string)
        conn.autocommit = False

        create_schema(conn)

        conn.close()
        logger.info("Database initialization completed successfully")

    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
