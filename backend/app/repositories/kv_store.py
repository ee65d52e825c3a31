"""
Key-Value Store - persistence collaborator for catalog and basket

Each namespace holds one JSON array of records. Reads of an absent
namespace return an empty list, and writes always replace the whole
collection. Repositories read, mutate in memory, and write back.
"""
import json
import logging
from typing import Any, Dict, List, Optional

import psycopg2
from psycopg2.extras import Json

from app.core.config import settings
from app.core.database import get_db_connection_with_retry
from app.domain.errors import StorageError

logger = logging.getLogger(__name__)

ITEMS_KEY = "items"
CATEGORIES_KEY = "categories"
BASKET_KEY = "basket"

Records = List[Dict[str, Any]]


class KeyValueStore:
    """Interface shared by the storage backends"""

    def read(self, namespace: str) -> Records:
        raise NotImplementedError

    def write(self, namespace: str, records: Records) -> None:
        self.write_many({namespace: records})

    def write_many(self, collections: Dict[str, Records]) -> None:
        """Replace several namespaces as one all-or-nothing write"""
        raise NotImplementedError


class InMemoryKeyValueStore(KeyValueStore):
    """
    Process-local store for development and tests

    Collections are kept as JSON text so callers never share mutable
    records with the store, matching what a real backend returns.
    """

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    def read(self, namespace: str) -> Records:
        raw = self._data.get(namespace)
        return json.loads(raw) if raw else []

    def write_many(self, collections: Dict[str, Records]) -> None:
        # Encode everything first so a bad record leaves the store untouched
        encoded = {ns: json.dumps(records) for ns, records in collections.items()}
        self._data.update(encoded)


class PostgresKeyValueStore(KeyValueStore):
    """
    PostgreSQL-backed store - survives process restarts

    Table:
        pos_kv_store(namespace TEXT PRIMARY KEY, payload JSONB, updated_at TIMESTAMPTZ)
    """

    TABLE_NAME = "pos_kv_store"

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url
        self._schema_ready = False

    def _get_connection(self):
        return get_db_connection_with_retry(self.database_url)

    def ensure_schema(self) -> None:
        """Create the backing table on first use"""
        if self._schema_ready:
            return

        try:
            conn = self._get_connection()
        except psycopg2.Error as e:
            raise StorageError(f"Could not connect to key-value store: {e}") from e

        cursor = conn.cursor()
        try:
            cursor.execute(f"""
                CREATE TABLE IF NOT EXISTS {self.TABLE_NAME} (
                    namespace TEXT PRIMARY KEY,
                    payload JSONB NOT NULL DEFAULT '[]'::jsonb,
                    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
                )
            """)
            conn.commit()
            self._schema_ready = True
        except psycopg2.Error as e:
            conn.rollback()
            raise StorageError(f"Could not create {self.TABLE_NAME}: {e}") from e
        finally:
            cursor.close()
            conn.close()

    def read(self, namespace: str) -> Records:
        self.ensure_schema()

        try:
            conn = self._get_connection()
        except psycopg2.Error as e:
            raise StorageError(f"Could not connect to key-value store: {e}") from e

        cursor = conn.cursor()
        try:
            cursor.execute(f"""
                SELECT payload
                FROM {self.TABLE_NAME}
                WHERE namespace = %s
            """, (namespace,))

            row = cursor.fetchone()
            if not row or row[0] is None:
                return []
            return list(row[0])

        except psycopg2.Error as e:
            raise StorageError(f"Could not read '{namespace}': {e}") from e
        finally:
            cursor.close()
            conn.close()

    def write_many(self, collections: Dict[str, Records]) -> None:
        if not collections:
            return
        self.ensure_schema()

        try:
            conn = self._get_connection()
        except psycopg2.Error as e:
            raise StorageError(f"Could not connect to key-value store: {e}") from e

        cursor = conn.cursor()
        try:
            for namespace, records in collections.items():
                cursor.execute(f"""
                    INSERT INTO {self.TABLE_NAME} (namespace, payload, updated_at)
                    VALUES (%s, %s, NOW())
                    ON CONFLICT (namespace)
                    DO UPDATE SET payload = EXCLUDED.payload, updated_at = NOW()
                """, (namespace, Json(records)))

            conn.commit()
            logger.debug(f"Wrote namespaces {sorted(collections)} to {self.TABLE_NAME}")

        except psycopg2.Error as e:
            conn.rollback()
            raise StorageError(f"Could not write {sorted(collections)}: {e}") from e
        finally:
            cursor.close()
            conn.close()


def build_kv_store(settings) -> KeyValueStore:
    """Create the store selected by settings.STORAGE_BACKEND"""
    backend = settings.STORAGE_BACKEND.strip().lower()
    if backend == "postgres":
        return PostgresKeyValueStore(settings.DATABASE_URL)
    if backend == "memory":
        logger.warning("Using in-memory storage; catalog and basket are lost on restart")
        return InMemoryKeyValueStore()
    raise ValueError(f"Unknown STORAGE_BACKEND: {settings.STORAGE_BACKEND}")


# Singleton instance shared by the repositories
_kv_store: Optional[KeyValueStore] = None


def get_kv_store() -> KeyValueStore:
    """Get the process-wide store built from settings"""
    global _kv_store
    if _kv_store is None:
        _kv_store = build_kv_store(settings)
    return _kv_store
