"""Administration of a remote MySQL server.

`Remote` wraps a connection owned by the caller and exposes the lifecycle
operations (create, delete, change password, change access) and the
backup/restore pipeline. Multi-statement operations are not transactional on
the server; when a create fails part way through, the objects it may have
created are removed again with a forced delete.

Root accounts are handled by explicit policy rather than the generic paths:

- password changes only touch existing root accounts whose host is one of
  `ROOT_PASSWORD_HOSTS`, whatever scope the caller passed;
- access changes always treat root as `'root'@'%'` on every database, and a
  scope change for root only revokes the old scope.
"""

import logging
import os
from dataclasses import replace
from datetime import datetime
from typing import Any, Optional

import mysql.connector
from mysql.connector import Error as MySQLError
from mysql.connector import errorcode

from .archive import Compression, compress, decompress
from .dialect import create_user_clause, drop_user_clause, grant_clause, password_clause
from .dump import DumpTool, MysqldumpTool, build_dsn
from .errors import AdminError, DatabaseAlreadyExists, UserAlreadyExists
from .executor import SQLExecutor
from .identity import Identity, expand_identities
from .models import (
    CLEANUP_TIMEOUT,
    FORMAT_COLLATIONS,
    AccessChangeInfo,
    BackupInfo,
    CreateInfo,
    DBInfo,
    DeleteInfo,
    PasswordChangeInfo,
    RecoverInfo,
)

logger = logging.getLogger(__name__)

ROOT_USER = "root"
ROOT_SCOPE = "%"
ROOT_PASSWORD_HOSTS = ("%", "localhost")
ALL_DATABASES = "*"
KILL_CONNECT_TIMEOUT = 5


class Remote:
    def __init__(self, client: Any, user: str, password: str, address: str, port: int,
                 dump_tool: Optional[DumpTool] = None):
        self.client = client
        self.user = user
        self.password = password
        self.address = address
        self.port = port
        self.executor = SQLExecutor(client, kill_query=self._kill_query)
        self.dump_tool = dump_tool or MysqldumpTool()

    def _kill_query(self, connection_id: int) -> None:
        """Stop the statement running on `connection_id` from a second session."""
        with mysql.connector.connect(
            host=self.address,
            port=self.port,
            user=self.user,
            password=self.password,
            connection_timeout=KILL_CONNECT_TIMEOUT,
        ) as conn:
            with conn.cursor() as cursor:
                cursor.execute(f"kill query {int(connection_id)}")
        logger.warning(f"Killed timed out statement on connection {connection_id}")

    def exec_sql(self, command: str, timeout: float) -> None:
        self.executor.exec_sql(command, timeout)

    def exec_sql_for_hosts(self, timeout: float) -> list[str]:
        return self.executor.query_root_hosts(timeout)

    def server_version(self, timeout: float) -> str:
        return self.executor.query_version(timeout)

    def create(self, info: CreateInfo) -> None:
        """Create a database and a user with all privileges on it."""
        collation = FORMAT_COLLATIONS.get(info.format)
        if collation is None:
            raise ValueError(f"Unsupported character format: {info.format}")
        create_sql = f"create database `{info.name}` default character set {info.format} collate {collation}"
        try:
            self.exec_sql(create_sql, info.timeout)
        except MySQLError as err:
            if err.errno == errorcode.ER_DB_CREATE_EXISTS:
                raise DatabaseAlreadyExists(info.name) from err
            raise
        logger.info(f"Created database '{info.name}' ({info.format}/{collation})")

        self.create_user(info)

    def create_user(self, info: CreateInfo, drop_database: bool = True) -> None:
        """Create the user for every host in its scope and grant it access.

        Any failure removes the users of the whole scope again, and the
        database too when `drop_database` is set, before re-raising.
        """
        for identity in expand_identities(info.username, info.permission):
            try:
                self.exec_sql(create_user_clause(identity, info.password), info.timeout)
            except (MySQLError, AdminError) as err:
                self._rollback(info, drop_database)
                if isinstance(err, MySQLError) and err.errno == errorcode.ER_CANNOT_USER:
                    raise UserAlreadyExists(str(identity)) from err
                raise

            try:
                self.exec_sql(grant_clause(info.version, info.name, identity, info.password), info.timeout)
            except (MySQLError, AdminError):
                self._rollback(info, drop_database)
                raise
            logger.info(f"Created user {identity} with access to '{info.name}'")

    def _rollback(self, info: CreateInfo, drop_database: bool) -> None:
        logger.warning(f"Creating user '{info.username}' failed, removing partially created objects")
        self.delete(DeleteInfo(
            name=info.name if drop_database else "",
            username=info.username,
            permission=info.permission,
            version=info.version,
            force_delete=True,
            timeout=CLEANUP_TIMEOUT,
        ))

    def delete(self, info: DeleteInfo) -> None:
        """Drop the users of a scope and, if named, the database.

        Without `force_delete` the first failure is raised and the remaining
        steps are skipped. With it every failure is logged and ignored.
        """
        for identity in expand_identities(info.username, info.permission):
            try:
                self.exec_sql(drop_user_clause(info.version, identity), info.timeout)
            except (MySQLError, AdminError) as err:
                if not info.force_delete:
                    raise
                logger.warning(f"Ignoring failure to drop user {identity}: {err}")

        if info.name:
            try:
                self.exec_sql(f"drop database if exists `{info.name}`", info.timeout)
            except (MySQLError, AdminError) as err:
                if not info.force_delete:
                    raise
                logger.warning(f"Ignoring failure to drop database '{info.name}': {err}")

        if not info.force_delete:
            logger.info("execute delete database sql successful, uploads and records are left to the caller")

    def change_password(self, info: PasswordChangeInfo) -> None:
        if info.username != ROOT_USER:
            for identity in expand_identities(info.username, info.permission):
                self.exec_sql(password_clause(info.version, identity, info.password), info.timeout)
            return

        for host in self.exec_sql_for_hosts(info.timeout):
            if host in ROOT_PASSWORD_HOSTS:
                identity = Identity(ROOT_USER, host)
                self.exec_sql(password_clause(info.version, identity, info.password), info.timeout)
                logger.info(f"Changed password for {identity}")

    def change_access(self, info: AccessChangeInfo) -> None:
        """Move a user from its old host scope to a new one."""
        if info.username == ROOT_USER:
            info = replace(info, old_permission=ROOT_SCOPE, name=ALL_DATABASES)

        if info.permission != info.old_permission:
            self.delete(DeleteInfo(
                username=info.username,
                permission=info.old_permission,
                version=info.version,
                force_delete=True,
                timeout=CLEANUP_TIMEOUT,
            ))
            if info.username == ROOT_USER:
                return

        self.create_user(CreateInfo(
            name=info.name,
            username=info.username,
            password=info.password,
            permission=info.permission,
            version=info.version,
            timeout=info.timeout,
        ), drop_database=False)
        self.exec_sql("flush privileges", CLEANUP_TIMEOUT)

    def backup(self, info: BackupInfo) -> str:
        """Dump a database into a timestamped file under `info.target_dir`.

        A gzip copy is written next to the dump. Returns the path of the
        uncompressed `.sql` file.
        """
        os.makedirs(info.target_dir, exist_ok=True)
        file_name = os.path.join(info.target_dir, f"{info.name}_{datetime.now():%Y%m%d%H%M%S}.sql")
        dsn = build_dsn(self.user, self.password, self.address, self.port, info.name, info.format)

        with open(file_name, 'wb') as f:
            self.dump_tool.dump(dsn, f)

        compress(file_name, file_name + ".gz")
        logger.info(f"Backed up database '{info.name}' to {file_name}")
        return file_name

    def recover(self, info: RecoverInfo) -> None:
        """Load a `.sql`, `.sql.gz` or `.tar.gz` backup into a database."""
        file_name = info.source_file
        if file_name.endswith(".sql.gz"):
            file_name = file_name[:-len(".gz")]
            decompress(info.source_file, file_name, Compression.GZ)
        elif file_name.endswith(".tar.gz"):
            file_name = file_name[:-len(".tar.gz")]
            decompress(info.source_file, file_name, Compression.TAR_GZ)

        dsn = build_dsn(self.user, self.password, self.address, self.port, info.name, info.format)
        with open(file_name, 'rb') as f:
            self.dump_tool.source(dsn, f)
        logger.info(f"Restored database '{info.name}' from {info.source_file}")

    def close(self) -> None:
        try:
            self.client.close()
        except MySQLError as err:
            logger.warning(f"Error closing connection to {self.address}:{self.port}: {err}")


def new_remote(info: DBInfo, dump_tool: Optional[DumpTool] = None) -> Remote:
    """Connect to a server and wrap the connection in a `Remote`."""
    client = mysql.connector.connect(
        host=info.address,
        port=info.port,
        user=info.username,
        password=info.password,
        autocommit=True,
        connection_timeout=max(1, int(info.timeout)),
    )
    return Remote(client, info.username, info.password, info.address, info.port, dump_tool)
