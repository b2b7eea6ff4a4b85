"""Deadline-bounded statement execution against a MySQL connection."""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Any, Callable, Optional

from .errors import ExecutionTimeout

logger = logging.getLogger(__name__)

ROOT_HOSTS_QUERY = "select host from mysql.user where user='root'"


class SQLExecutor:
    """Runs single statements on a caller-owned connection.

    Every call gets its own deadline. A call still running when the deadline
    passes, or one that fails after it, raises `ExecutionTimeout`; failures
    before the deadline propagate unchanged.

    When a call overruns, `kill_query` is handed the connection id so the
    statement can be stopped from another session, and the call returns only
    once the statement has finished. The connection is never used by two
    statements at once.
    """

    def __init__(self, connection: Any, kill_query: Optional[Callable[[int], None]] = None):
        self.connection = connection
        self.kill_query = kill_query

    def _cancel(self) -> None:
        if self.kill_query is None:
            return
        try:
            self.kill_query(self.connection.connection_id)
        except Exception as err:
            logger.warning(f"Could not kill timed out statement: {err}")

    def _run(self, func: Callable[[], Any], timeout: float) -> Any:
        started = time.monotonic()
        # Leaving the pool waits for the worker, killed or not.
        with ThreadPoolExecutor(max_workers=1) as pool:
            future = pool.submit(func)
            done, _ = wait([future], timeout=timeout)
            if not done:
                self._cancel()
                wait([future])
                raise ExecutionTimeout(timeout)

        try:
            result = future.result()
        except Exception as err:
            if time.monotonic() - started >= timeout:
                raise ExecutionTimeout(timeout) from err
            raise
        if time.monotonic() - started >= timeout:
            raise ExecutionTimeout(timeout)
        return result

    def exec_sql(self, command: str, timeout: float) -> None:
        """Execute one statement that returns no rows."""
        def execute():
            with self.connection.cursor() as cursor:
                cursor.execute(command)

        self._run(execute, timeout)

    def query_root_hosts(self, timeout: float) -> list[str]:
        """Return the host patterns of every account named root.

        Rows whose host value cannot be decoded are skipped.
        """
        def query():
            with self.connection.cursor() as cursor:
                cursor.execute(ROOT_HOSTS_QUERY)
                return cursor.fetchall()

        hosts = []
        for row in self._run(query, timeout):
            host = row[0] if row else None
            if isinstance(host, (bytes, bytearray)):
                try:
                    host = host.decode("utf-8")
                except UnicodeDecodeError:
                    logger.debug(f"Skipping undecodable root host {host!r}")
                    continue
            if not isinstance(host, str):
                continue
            hosts.append(host)
        return hosts

    def query_version(self, timeout: float) -> str:
        def query():
            with self.connection.cursor() as cursor:
                cursor.execute("select version()")
                return cursor.fetchone()

        row = self._run(query, timeout)
        return str(row[0]) if row else ""
