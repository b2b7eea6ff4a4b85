"""Shared fixtures: a mocked MySQL connection and a Remote built on it."""

from unittest.mock import MagicMock

import pytest

from mysql_admin.remote import Remote


@pytest.fixture
def mock_connection():
    """Connection whose cursors all share one mock cursor."""
    connection = MagicMock()
    cursor = MagicMock()
    connection.cursor.return_value.__enter__.return_value = cursor
    return connection


@pytest.fixture
def mock_cursor(mock_connection):
    return mock_connection.cursor.return_value.__enter__.return_value


@pytest.fixture
def dump_tool():
    return MagicMock()


@pytest.fixture
def remote(mock_connection, dump_tool):
    return Remote(mock_connection, "root", "secret", "127.0.0.1", 3306, dump_tool=dump_tool)


@pytest.fixture
def executed(mock_cursor):
    """Return the statements passed to the mock cursor so far, in order."""
    return lambda: [call.args[0] for call in mock_cursor.execute.call_args_list]
