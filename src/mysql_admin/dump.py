"""Boundary to the external dump/restore tools.

The rest of the package only deals in a connection string and an open file;
`MysqldumpTool` turns those into `mysqldump`/`mysql` client invocations.
Anything implementing `DumpTool` can replace it.
"""

import logging
import re
import subprocess
from dataclasses import dataclass
from typing import BinaryIO, Protocol
from urllib.parse import parse_qs, quote

from .errors import DumpToolError

logger = logging.getLogger(__name__)

DSN_LOCATION = "Asia/Shanghai"

_DSN_PATTERN = re.compile(
    r"^(?P<user>[^:]*):(?P<password>.*)@tcp\((?P<host>[^)]*):(?P<port>\d+)\)"
    r"/(?P<database>[^?]*)(?:\?(?P<params>.*))?$"
)


@dataclass
class DSN:
    user: str
    password: str
    host: str
    port: int
    database: str
    charset: str = ""


def build_dsn(user: str, password: str, host: str, port: int, database: str, charset: str) -> str:
    """Build the connection string handed to the dump/restore tool."""
    location = quote(DSN_LOCATION, safe="")
    return (
        f"{user}:{password}@tcp({host}:{port})/{database}"
        f"?charset={charset}&parseTime=true&loc={location}"
    )


def parse_dsn(dsn: str) -> DSN:
    match = _DSN_PATTERN.match(dsn)
    if not match:
        raise ValueError(f"Invalid connection string: {dsn!r}")
    params = parse_qs(match.group("params") or "")
    return DSN(
        user=match.group("user"),
        password=match.group("password"),
        host=match.group("host"),
        port=int(match.group("port")),
        database=match.group("database"),
        charset=params.get("charset", [""])[0],
    )


class DumpTool(Protocol):
    def dump(self, dsn: str, writer: BinaryIO) -> None:
        """Write a SQL script of the database, schema and rows, to `writer`."""

    def source(self, dsn: str, reader: BinaryIO) -> None:
        """Apply the SQL script read from `reader` to the database."""


class MysqldumpTool:
    """Dump and restore through the MySQL command line clients."""

    def __init__(self, mysqldump: str = "mysqldump", mysql: str = "mysql"):
        self.mysqldump = mysqldump
        self.mysql = mysql

    @staticmethod
    def _connection_args(conn: DSN) -> list[str]:
        args = [
            '-h', conn.host,
            '-P', str(conn.port),
            '-u', conn.user,
            f'--password={conn.password}' if conn.password else '--no-password',
        ]
        if conn.charset:
            args.append(f'--default-character-set={conn.charset}')
        return args

    @staticmethod
    def _check(tool: str, process: subprocess.CompletedProcess) -> None:
        if process.returncode != 0:
            message = process.stderr.decode('utf-8', errors='ignore').strip()
            logger.error(f"{tool} failed: {message}")
            raise DumpToolError(tool, process.returncode, message)

    def dump(self, dsn: str, writer: BinaryIO) -> None:
        conn = parse_dsn(dsn)
        cmd = [
            self.mysqldump,
            *self._connection_args(conn),
            '--single-transaction',
            '--routines',
            '--triggers',
            '--events',
            conn.database,
        ]
        logger.debug(f"Running {self.mysqldump} for database '{conn.database}' at {conn.host}:{conn.port}")
        process = subprocess.run(cmd, stdout=writer, stderr=subprocess.PIPE)
        self._check(self.mysqldump, process)

    def source(self, dsn: str, reader: BinaryIO) -> None:
        conn = parse_dsn(dsn)
        cmd = [self.mysql, *self._connection_args(conn), conn.database]
        logger.debug(f"Running {self.mysql} for database '{conn.database}' at {conn.host}:{conn.port}")
        process = subprocess.run(cmd, stdin=reader, stdout=subprocess.DEVNULL, stderr=subprocess.PIPE)
        self._check(self.mysql, process)
