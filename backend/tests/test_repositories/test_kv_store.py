"""
Unit tests for the key-value stores

The PostgreSQL store is tested against a mocked psycopg2 connection, so no
database is needed.
"""
import pytest
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import psycopg2

from app.domain.errors import StorageError
from app.repositories.kv_store import (
    InMemoryKeyValueStore,
    PostgresKeyValueStore,
    build_kv_store,
)


class TestInMemoryKeyValueStore:
    """Test InMemoryKeyValueStore behaviour"""

    def test_absent_namespace_reads_empty_list(self):
        """Test reading a namespace that was never written returns []"""
        store = InMemoryKeyValueStore()

        assert store.read("items") == []

    def test_write_replaces_whole_collection(self):
        """Test a write replaces the previous collection"""
        # Arrange
        store = InMemoryKeyValueStore()
        store.write("items", [{"id": "a"}, {"id": "b"}])

        # Act
        store.write("items", [{"id": "c"}])

        # Assert
        assert store.read("items") == [{"id": "c"}]

    def test_read_returns_independent_copies(self):
        """Test mutating a read result does not change the store"""
        # Arrange
        store = InMemoryKeyValueStore()
        store.write("basket", [{"id": "a", "quantity": 1}])

        # Act
        records = store.read("basket")
        records[0]["quantity"] = 99

        # Assert
        assert store.read("basket") == [{"id": "a", "quantity": 1}]

    def test_write_many_is_all_or_nothing(self):
        """Test a collection that cannot be encoded leaves every namespace untouched"""
        # Arrange
        store = InMemoryKeyValueStore()
        store.write("items", [{"id": "a"}])
        store.write("categories", [{"id": "c"}])

        # Act
        with pytest.raises(TypeError):
            store.write_many({
                "items": [],
                "categories": [{"id": object()}],
            })

        # Assert
        assert store.read("items") == [{"id": "a"}]
        assert store.read("categories") == [{"id": "c"}]


class TestPostgresKeyValueStore:
    """Test PostgresKeyValueStore SQL handling with a mocked connection"""

    @staticmethod
    def _mock_connection(mock_get_conn):
        mock_conn = MagicMock()
        mock_cursor = MagicMock()
        mock_get_conn.return_value = mock_conn
        mock_conn.cursor.return_value = mock_cursor
        return mock_conn, mock_cursor

    @patch('app.repositories.kv_store.get_db_connection_with_retry')
    def test_read_returns_payload(self, mock_get_conn):
        """Test read returns the decoded JSONB payload"""
        # Arrange
        mock_conn, mock_cursor = self._mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = ([{"id": "coffee", "price": 500}],)

        # Act
        store = PostgresKeyValueStore("postgresql://test")
        records = store.read("items")

        # Assert
        assert records == [{"id": "coffee", "price": 500}]
        select_call = mock_cursor.execute.call_args_list[-1]
        assert "SELECT payload" in select_call.args[0]
        assert select_call.args[1] == ("items",)
        mock_cursor.close.assert_called()
        mock_conn.close.assert_called()

    @patch('app.repositories.kv_store.get_db_connection_with_retry')
    def test_read_absent_namespace_returns_empty_list(self, mock_get_conn):
        """Test a missing row reads as an empty collection"""
        # Arrange
        _, mock_cursor = self._mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = None

        # Act
        store = PostgresKeyValueStore("postgresql://test")

        # Assert
        assert store.read("basket") == []

    @patch('app.repositories.kv_store.get_db_connection_with_retry')
    def test_schema_created_once(self, mock_get_conn):
        """Test the table is created on first use only"""
        # Arrange
        _, mock_cursor = self._mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = None
        store = PostgresKeyValueStore("postgresql://test")

        # Act
        store.read("items")
        store.read("items")

        # Assert
        statements = [c.args[0] for c in mock_cursor.execute.call_args_list]
        assert sum("CREATE TABLE IF NOT EXISTS" in s for s in statements) == 1

    @patch('app.repositories.kv_store.get_db_connection_with_retry')
    def test_write_many_commits_once(self, mock_get_conn):
        """Test write_many upserts every namespace in one transaction"""
        # Arrange
        mock_conn, mock_cursor = self._mock_connection(mock_get_conn)
        store = PostgresKeyValueStore("postgresql://test")
        store._schema_ready = True

        # Act
        store.write_many({"items": [{"id": "a"}], "categories": []})

        # Assert
        upserts = [c for c in mock_cursor.execute.call_args_list if "ON CONFLICT" in c.args[0]]
        assert len(upserts) == 2
        assert [c.args[1][0] for c in upserts] == ["items", "categories"]
        mock_conn.commit.assert_called_once()
        mock_conn.rollback.assert_not_called()

    @patch('app.repositories.kv_store.get_db_connection_with_retry')
    def test_write_failure_rolls_back_and_raises_storage_error(self, mock_get_conn):
        """Test a failed statement rolls back and surfaces StorageError"""
        # Arrange
        mock_conn, mock_cursor = self._mock_connection(mock_get_conn)
        mock_cursor.execute.side_effect = [None, psycopg2.DatabaseError("disk full")]
        store = PostgresKeyValueStore("postgresql://test")
        store._schema_ready = True

        # Act & Assert
        with pytest.raises(StorageError):
            store.write_many({"items": [], "categories": []})

        mock_conn.commit.assert_not_called()
        mock_conn.rollback.assert_called_once()
        mock_conn.close.assert_called_once()

    @patch('app.repositories.kv_store.get_db_connection_with_retry')
    def test_connection_failure_raises_storage_error(self, mock_get_conn):
        """Test an unreachable database surfaces StorageError"""
        # Arrange
        mock_get_conn.side_effect = psycopg2.OperationalError("connection refused")

        # Act & Assert
        with pytest.raises(StorageError):
            PostgresKeyValueStore("postgresql://test").read("items")


class TestBuildKeyValueStore:
    """Test store selection from settings"""

    def test_memory_backend(self):
        """Test STORAGE_BACKEND=memory builds the in-memory store"""
        store = build_kv_store(SimpleNamespace(STORAGE_BACKEND="memory", DATABASE_URL=None))

        assert isinstance(store, InMemoryKeyValueStore)

    def test_postgres_backend(self):
        """Test STORAGE_BACKEND=postgres builds the PostgreSQL store"""
        store = build_kv_store(SimpleNamespace(STORAGE_BACKEND="postgres", DATABASE_URL="postgresql://x"))

        assert isinstance(store, PostgresKeyValueStore)
        assert store.database_url == "postgresql://x"

    def test_unknown_backend_rejected(self):
        """Test an unknown backend name raises ValueError"""
        with pytest.raises(ValueError):
            build_kv_store(SimpleNamespace(STORAGE_BACKEND="redis", DATABASE_URL=None))
