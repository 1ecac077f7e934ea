from unittest.mock import MagicMock

import pytest

from pgsession.config import ConnectionConfig, RetryPolicy
from pgsession.db import ConnectionDescriptor, ConnectionManager


@pytest.fixture
def pg_connection():
    """A mocked psycopg2 connection and the cursor its cursor() yields."""
    conn = MagicMock()
    conn.notices = []
    cursor = MagicMock()
    conn.cursor.return_value.__enter__.return_value = cursor
    return conn, cursor


@pytest.fixture
def descriptor():
    return ConnectionDescriptor(
        user="loader",
        password="secret",
        host="db.example.com",
        port=5432,
        dbname="warehouse",
        table_name="public.orders",
    )


@pytest.fixture
def config():
    return ConnectionConfig(retry=RetryPolicy(max_attempts=3, delay_seconds=0.25))


@pytest.fixture
def session(pg_connection, descriptor, config):
    """A ConnectionManager already holding the mocked connection."""
    conn, _ = pg_connection
    manager = ConnectionManager(descriptor, config=config)
    manager.handle = conn
    return manager
