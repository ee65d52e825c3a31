"""
PostgreSQL connection helpers

psycopg2 connections used by the persistent key-value store. Connection
attempts are retried with exponential backoff so a briefly unavailable
database does not fail a catalog or basket write on the first hiccup.
"""
import time
import logging
from typing import Optional

import psycopg2

from .config import settings

logger = logging.getLogger(__name__)

CONNECTION_TIMEOUT = 10  # seconds


def _resolve_database_url(database_url: Optional[str]) -> str:
    url = database_url or settings.DATABASE_URL
    if not url:
        raise ValueError("DATABASE_URL not configured")
    return url


def get_db_connection_with_retry(
    database_url: Optional[str] = None,
    max_retries: Optional[int] = None,
    retry_delay: Optional[float] = None,
):
    """
    Get a psycopg2 connection with automatic retry on connection failures

    Args:
        database_url: Connection string, defaults to settings.DATABASE_URL
        max_retries: Maximum number of connection attempts (default: settings.DB_MAX_RETRIES)
        retry_delay: Initial delay between retries in seconds (default: settings.DB_RETRY_DELAY_SECONDS)

    Returns:
        psycopg2 connection object

    Raises:
        psycopg2.OperationalError: If all retry attempts fail

    Example:
        conn = get_db_connection_with_retry()
        cursor = conn.cursor()
        cursor.execute("SELECT payload FROM pos_kv_store")
        rows = cursor.fetchall()
        cursor.close()
        conn.close()
    """
    url = _resolve_database_url(database_url)
    max_retries = max_retries if max_retries is not None else settings.DB_MAX_RETRIES
    retry_delay = retry_delay if retry_delay is not None else settings.DB_RETRY_DELAY_SECONDS

    last_error = None

    for attempt in range(1, max_retries + 1):
        try:
            logger.debug(f"Database connection attempt {attempt}/{max_retries}")
            conn = psycopg2.connect(url, connect_timeout=CONNECTION_TIMEOUT)
            logger.debug(f"Database connection successful on attempt {attempt}")
            return conn

        except psycopg2.OperationalError as e:
            last_error = e
            logger.warning(f"Connection error on attempt {attempt}/{max_retries}: {e}")

            if attempt < max_retries:
                delay = retry_delay * (2 ** (attempt - 1))
                logger.info(f"Retrying in {delay:.2f} seconds...")
                time.sleep(delay)
            else:
                logger.error(f"All {max_retries} connection attempts failed")

    raise last_error if last_error else psycopg2.OperationalError("Connection failed after all retries")
