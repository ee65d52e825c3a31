"""
Unit tests for database connection helpers
"""
import pytest
from unittest.mock import MagicMock, patch

import psycopg2

from app.core.database import get_db_connection_with_retry


class TestConnectionRetry:
    """Test get_db_connection_with_retry"""

    @patch('app.core.database.time.sleep')
    @patch('app.core.database.psycopg2.connect')
    def test_retries_with_backoff_then_succeeds(self, mock_connect, mock_sleep):
        """Test transient failures are retried with doubling delays"""
        # Arrange
        conn = MagicMock()
        mock_connect.side_effect = [
            psycopg2.OperationalError("timeout"),
            psycopg2.OperationalError("timeout"),
            conn,
        ]

        # Act
        result = get_db_connection_with_retry("postgresql://test", max_retries=3, retry_delay=0.5)

        # Assert
        assert result is conn
        assert mock_connect.call_count == 3
        assert [c.args[0] for c in mock_sleep.call_args_list] == [0.5, 1.0]

    @patch('app.core.database.time.sleep')
    @patch('app.core.database.psycopg2.connect')
    def test_raises_last_error_after_all_attempts(self, mock_connect, mock_sleep):
        """Test the last OperationalError is raised once retries run out"""
        mock_connect.side_effect = psycopg2.OperationalError("down")

        with pytest.raises(psycopg2.OperationalError):
            get_db_connection_with_retry("postgresql://test", max_retries=2, retry_delay=0.1)

        assert mock_connect.call_count == 2

    def test_missing_database_url(self):
        """Test a missing DATABASE_URL is reported as a configuration error"""
        with patch('app.core.database.settings') as mock_settings:
            mock_settings.DATABASE_URL = None

            with pytest.raises(ValueError):
                get_db_connection_with_retry()
