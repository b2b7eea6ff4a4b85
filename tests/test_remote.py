"""Tests for the database and user lifecycle operations."""

import threading
from unittest.mock import patch

import pytest
from mysql.connector import Error

from mysql_admin.errors import DatabaseAlreadyExists, ExecutionTimeout, UserAlreadyExists
from mysql_admin.models import (
    AccessChangeInfo,
    CreateInfo,
    DBInfo,
    DeleteInfo,
    PasswordChangeInfo,
)
from mysql_admin.remote import Remote, new_remote


def fail_on(prefix, error):
    """Side effect raising `error` for statements starting with `prefix`."""
    def execute(statement):
        if statement.startswith(prefix):
            raise error
    return execute


def create_info(**overrides):
    values = dict(
        name="app",
        username="appuser",
        password="pw",
        permission="%",
        version="8.0.32",
        format="utf8mb4",
        timeout=5,
    )
    values.update(overrides)
    return CreateInfo(**values)


class TestCreate:
    """Test database and user creation."""

    def test_create_database_and_user(self, remote, executed):
        """Database, user and grant are created in order."""
        remote.create(create_info())

        assert executed() == [
            "create database `app` default character set utf8mb4 collate utf8mb4_general_ci",
            "create user 'appuser'@'%' identified by 'pw'",
            "grant all privileges on `app`.* to 'appuser'@'%'",
        ]

    def test_create_for_multiple_hosts(self, remote, executed):
        """Each host in the scope gets its own user and grant."""
        remote.create(create_info(permission="10.0.0.1,,10.0.0.2"))

        assert executed()[1:] == [
            "create user 'appuser'@'10.0.0.1' identified by 'pw'",
            "grant all privileges on `app`.* to 'appuser'@'10.0.0.1'",
            "create user 'appuser'@'10.0.0.2' identified by 'pw'",
            "grant all privileges on `app`.* to 'appuser'@'10.0.0.2'",
        ]

    def test_legacy_grant(self, remote, executed):
        """MySQL 5.7 grants carry the password."""
        remote.create(create_info(version="5.7.44", format="gbk"))

        assert executed()[0] == "create database `app` default character set gbk collate gbk_chinese_ci"
        assert executed()[2] == (
            "grant all privileges on `app`.* to 'appuser'@'%' identified by 'pw' with grant option"
        )

    def test_database_exists(self, remote, mock_cursor, executed):
        """Duplicate databases map to DatabaseAlreadyExists and stop the create."""
        mock_cursor.execute.side_effect = fail_on(
            "create database", Error(msg="Can't create database 'app'; database exists", errno=1007)
        )

        with pytest.raises(DatabaseAlreadyExists):
            remote.create(create_info())

        assert len(executed()) == 1

    def test_other_database_error_passes_through(self, remote, mock_cursor):
        error = Error(msg="Access denied", errno=1044)
        mock_cursor.execute.side_effect = fail_on("create database", error)

        with pytest.raises(Error) as exc_info:
            remote.create(create_info())

        assert exc_info.value is error

    def test_unsupported_format(self, remote, executed):
        with pytest.raises(ValueError, match="latin1"):
            remote.create(create_info(format="latin1"))
        assert executed() == []

    def test_user_exists_rolls_back(self, remote, mock_cursor, executed):
        """A duplicate user maps to UserAlreadyExists after a forced cleanup."""
        mock_cursor.execute.side_effect = fail_on(
            "create user", Error(msg="Operation CREATE USER failed", errno=1396)
        )

        with pytest.raises(UserAlreadyExists) as exc_info:
            remote.create(create_info())

        assert "'appuser'@'%'" in str(exc_info.value)
        assert executed()[-2:] == [
            "drop user if exists 'appuser'@'%'",
            "drop database if exists `app`",
        ]

    def test_grant_failure_rolls_back(self, remote, mock_cursor, executed):
        """A failed grant removes the created user and database and re-raises the grant error."""
        grant_error = Error(msg="Access denied for grant", errno=1044)
        mock_cursor.execute.side_effect = fail_on("grant", grant_error)

        with pytest.raises(Error) as exc_info:
            remote.create(create_info())

        assert exc_info.value is grant_error
        assert executed()[-2:] == [
            "drop user if exists 'appuser'@'%'",
            "drop database if exists `app`",
        ]

    def test_cleanup_errors_are_swallowed(self, remote, mock_cursor, executed):
        """Cleanup failures never replace the original error."""
        grant_error = Error(msg="grant failed", errno=1044)

        def execute(statement):
            if statement.startswith("grant"):
                raise grant_error
            if statement.startswith("drop"):
                raise Error(msg="drop failed", errno=1396)

        mock_cursor.execute.side_effect = execute

        with pytest.raises(Error) as exc_info:
            remote.create(create_info(permission="a,b"))

        assert exc_info.value is grant_error
        assert "drop database if exists `app`" in executed()

    def test_timeout_rolls_back(self, remote):
        """Timeouts during user creation also trigger the cleanup."""
        with patch.object(remote.executor, "exec_sql") as exec_sql:
            def execute(statement, timeout):
                if statement.startswith("create user"):
                    raise ExecutionTimeout(timeout)
            exec_sql.side_effect = execute

            with pytest.raises(ExecutionTimeout):
                remote.create(create_info())

            statements = [call.args[0] for call in exec_sql.call_args_list]
            assert statements[-1] == "drop database if exists `app`"


    @patch("mysql_admin.remote.mysql.connector.connect")
    def test_timed_out_create_finishes_before_cleanup(
        self, mock_connect, remote, mock_connection, mock_cursor, executed
    ):
        """The timed out statement is killed and no cleanup statement overlaps it."""
        mock_connection.connection_id = 42
        killed = threading.Event()
        kill_cursor = mock_connect.return_value.__enter__.return_value.cursor.return_value.__enter__.return_value
        kill_cursor.execute.side_effect = lambda statement: killed.set()
        running = []
        overlaps = []

        def execute(statement):
            if running:
                overlaps.append((running[0], statement))
            running.append(statement)
            try:
                if statement.startswith("create user"):
                    killed.wait(5)
                    raise Error(msg="Query execution was interrupted", errno=1317)
            finally:
                running.remove(statement)

        mock_cursor.execute.side_effect = execute

        with pytest.raises(ExecutionTimeout):
            remote.create(create_info(timeout=0.1))

        assert overlaps == []
        kill_cursor.execute.assert_called_once_with("kill query 42")
        assert mock_connect.call_args.kwargs["host"] == "127.0.0.1"
        assert executed()[-2:] == [
            "drop user if exists 'appuser'@'%'",
            "drop database if exists `app`",
        ]


class TestDelete:
    """Test user and database removal."""

    def test_delete_user_and_database(self, remote, executed):
        remote.delete(DeleteInfo(name="app", username="appuser", permission="%", version="8.0.32"))

        assert executed() == [
            "drop user if exists 'appuser'@'%'",
            "drop database if exists `app`",
        ]

    def test_empty_name_keeps_database(self, remote, executed):
        remote.delete(DeleteInfo(username="appuser", permission="a,b", version="8.0.32"))

        assert executed() == [
            "drop user if exists 'appuser'@'a'",
            "drop user if exists 'appuser'@'b'",
        ]

    def test_mysql_56_drops_unconditionally(self, remote, executed):
        remote.delete(DeleteInfo(username="appuser", permission="%", version="5.6.51"))
        assert executed() == ["drop user 'appuser'@'%'"]

    def test_missing_user_fails_on_56(self, remote, mock_cursor, executed):
        """Without force, the first failure aborts the remaining steps."""
        mock_cursor.execute.side_effect = fail_on(
            "drop user", Error(msg="Operation DROP USER failed", errno=1396)
        )

        with pytest.raises(Error, match="DROP USER"):
            remote.delete(DeleteInfo(name="app", username="appuser", permission="a,b", version="5.6.51"))

        assert executed() == ["drop user 'appuser'@'a'"]

    def test_force_continues_after_failures(self, remote, mock_cursor, executed):
        mock_cursor.execute.side_effect = Error(msg="boom", errno=1105)

        remote.delete(DeleteInfo(
            name="app", username="appuser", permission="a,b", version="5.6.51", force_delete=True
        ))

        assert executed() == [
            "drop user 'appuser'@'a'",
            "drop user 'appuser'@'b'",
            "drop database if exists `app`",
        ]

    def test_database_drop_failure_without_force(self, remote, mock_cursor):
        mock_cursor.execute.side_effect = fail_on("drop database", Error(msg="locked", errno=1205))

        with pytest.raises(Error, match="locked"):
            remote.delete(DeleteInfo(name="app", username="appuser", permission="%", version="8.0.32"))


class TestChangePassword:
    """Test password changes."""

    def test_modern_password_change(self, remote, executed):
        remote.change_password(PasswordChangeInfo(
            username="appuser", password="new", permission="a,b", version="8.0.32", timeout=5
        ))

        assert executed() == [
            "alter user 'appuser'@'a' identified with mysql_native_password by 'new'",
            "alter user 'appuser'@'b' identified with mysql_native_password by 'new'",
        ]

    def test_legacy_password_change(self, remote, executed):
        remote.change_password(PasswordChangeInfo(
            username="appuser", password="new", permission="%", version="5.7.44", timeout=5
        ))

        assert executed() == ["set password for 'appuser'@'%' = password('new')"]

    def test_first_failure_aborts(self, remote, mock_cursor, executed):
        mock_cursor.execute.side_effect = Error(msg="no such user", errno=1133)

        with pytest.raises(Error):
            remote.change_password(PasswordChangeInfo(
                username="appuser", password="new", permission="a,b", version="8.0.32"
            ))

        assert len(executed()) == 1

    def test_root_only_changes_wildcard_and_localhost(self, remote, mock_cursor, executed):
        """Root passwords are changed on existing % and localhost accounts only."""
        mock_cursor.fetchall.return_value = [("%",), ("10.0.0.1",), ("localhost",), ("::1",)]

        remote.change_password(PasswordChangeInfo(
            username="root", password="new", permission="10.0.0.1", version="8.0.32"
        ))

        assert executed() == [
            "select host from mysql.user where user='root'",
            "alter user 'root'@'%' identified with mysql_native_password by 'new'",
            "alter user 'root'@'localhost' identified with mysql_native_password by 'new'",
        ]

    def test_root_without_matching_hosts(self, remote, mock_cursor, executed):
        mock_cursor.fetchall.return_value = [("127.0.0.1",)]

        remote.change_password(PasswordChangeInfo(
            username="root", password="new", permission="%", version="5.7.44"
        ))

        assert len(executed()) == 1


class TestChangeAccess:
    """Test host scope changes."""

    def test_moves_user_to_new_scope(self, remote, executed):
        remote.change_access(AccessChangeInfo(
            name="app", username="appuser", password="pw",
            permission="10.0.0.2", old_permission="10.0.0.1", version="8.0.32",
        ))

        assert executed() == [
            "drop user if exists 'appuser'@'10.0.0.1'",
            "create user 'appuser'@'10.0.0.2' identified by 'pw'",
            "grant all privileges on `app`.* to 'appuser'@'10.0.0.2'",
            "flush privileges",
        ]

    def test_root_only_revokes_old_scope(self, remote, executed):
        """Root always uses scope % and database *, and is not re-granted."""
        remote.change_access(AccessChangeInfo(
            name="app", username="root", password="pw",
            permission="localhost", old_permission="10.0.0.1", version="8.0.32",
        ))

        assert executed() == ["drop user if exists 'root'@'%'"]

    def test_root_same_scope_grants_everything(self, remote, executed):
        remote.change_access(AccessChangeInfo(
            name="app", username="root", password="pw",
            permission="%", old_permission="10.0.0.1", version="5.7.44",
        ))

        assert executed() == [
            "create user 'root'@'%' identified by 'pw'",
            "grant all privileges on *.* to 'root'@'%' identified by 'pw' with grant option",
            "flush privileges",
        ]

    def test_failure_keeps_database(self, remote, mock_cursor, executed):
        """A failed re-grant removes the new users but never the database."""
        mock_cursor.execute.side_effect = fail_on("grant", Error(msg="denied", errno=1044))

        with pytest.raises(Error, match="denied"):
            remote.change_access(AccessChangeInfo(
                name="app", username="appuser", password="pw",
                permission="10.0.0.2", old_permission="10.0.0.1", version="8.0.32",
            ))

        assert executed()[-1] == "drop user if exists 'appuser'@'10.0.0.2'"
        assert not any(s.startswith("drop database") for s in executed())


class TestConnection:
    """Test connecting and closing."""

    @patch("mysql_admin.remote.mysql.connector.connect")
    def test_new_remote(self, mock_connect):
        remote = new_remote(DBInfo(address="db", port=3307, username="admin", password="pw", timeout=10))

        mock_connect.assert_called_once_with(
            host="db", port=3307, user="admin", password="pw",
            autocommit=True, connection_timeout=10,
        )
        assert remote.client is mock_connect.return_value
        assert (remote.user, remote.password, remote.address, remote.port) == ("admin", "pw", "db", 3307)

    @patch("mysql_admin.remote.mysql.connector.connect")
    def test_connect_error_passes_through(self, mock_connect):
        mock_connect.side_effect = Error(msg="Can't connect", errno=2003)

        with pytest.raises(Error, match="Can't connect"):
            new_remote(DBInfo(address="db", port=3306, username="admin", password="pw"))

    def test_close(self, remote, mock_connection):
        remote.close()
        mock_connection.close.assert_called_once()

    def test_close_error_is_logged(self, mock_connection, caplog):
        mock_connection.close.side_effect = Error(msg="already closed")

        Remote(mock_connection, "root", "pw", "db", 3306).close()

        assert "already closed" in caplog.text
