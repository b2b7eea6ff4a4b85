"""MySQL administration MCP server using FastMCP."""

import logging
import os
from typing import Any, Callable, Optional

from fastmcp import FastMCP
from mysql.connector import Error

from .errors import AdminError
from .models import (
    AccessChangeInfo,
    BackupInfo,
    CreateInfo,
    DBInfo,
    DeleteInfo,
    PasswordChangeInfo,
    RecoverInfo,
)
from .remote import Remote, new_remote

logger = logging.getLogger(__name__)


def get_db_config() -> dict[str, Any]:
    """Get administration settings from environment variables."""
    config = {
        "host": os.getenv("MYSQL_HOST", "localhost"),
        "port": int(os.getenv("MYSQL_PORT", "3306")),
        "user": os.getenv("MYSQL_USER"),
        "password": os.getenv("MYSQL_PASSWORD"),
        "timeout": float(os.getenv("MYSQL_TIMEOUT", "30")),
        "version": os.getenv("MYSQL_VERSION"),
        "backup_dir": os.getenv("MYSQL_BACKUP_DIR", "./backups"),
        "charset": os.getenv("MYSQL_CHARSET", "utf8mb4"),
    }

    if not all([config.get("user"), config.get("password")]):
        raise ValueError(
            "Missing required database configuration. "
            "Please set MYSQL_USER and MYSQL_PASSWORD "
            "environment variables."
        )

    return config


def connect_remote(config: dict[str, Any]) -> Remote:
    return new_remote(DBInfo(
        address=config["host"],
        port=config["port"],
        username=config["user"],
        password=config["password"],
        timeout=config["timeout"],
    ))


def run_with_remote(action: Callable[[Remote, dict[str, Any]], str]) -> str:
    """Open a connection, run one operation and turn failures into text."""
    try:
        config = get_db_config()
        remote = connect_remote(config)
        try:
            return action(remote, config)
        finally:
            remote.close()
    except AdminError as e:
        return f"Error: {str(e)}"
    except Error as e:
        return f"MySQL error: {str(e)}"
    except Exception as e:
        logger.exception("Unexpected error")
        return f"Unexpected error: {str(e)}"


def resolve_version(remote: Remote, config: dict[str, Any], version: Optional[str]) -> str:
    """Use the explicit version, then MYSQL_VERSION, then ask the server."""
    return version or config["version"] or remote.server_version(config["timeout"])


# Create the FastMCP server
mcp = FastMCP(
    name="MySQL Admin Server",
    instructions="""
    This server administers databases and users on a MySQL server.

    Available tools:
    - create_database: Create a database and a user with full access to it
    - delete_database: Drop a user (for each host in its scope) and optionally its database
    - change_password: Change a user's password
    - change_access: Move a user to a new host scope
    - backup_database: Dump a database to a timestamped .sql file (plus .gz copy)
    - recover_database: Load a .sql, .sql.gz or .tar.gz dump into a database

    Available resources:
    - mysql://server: Server version

    Host scopes are comma-separated host patterns, e.g. "%" or "10.0.0.1,10.0.0.2".

    Environment variables required:
    - MYSQL_USER: Administrative MySQL username
    - MYSQL_PASSWORD: Administrative MySQL password

    Optional environment variables:
    - MYSQL_HOST: MySQL server host (default: localhost)
    - MYSQL_PORT: MySQL server port (default: 3306)
    - MYSQL_TIMEOUT: Per-statement timeout in seconds (default: 30)
    - MYSQL_VERSION: Server version override (default: reported by the server)
    - MYSQL_BACKUP_DIR: Backup directory (default: ./backups)
    - MYSQL_CHARSET: Character set (default: utf8mb4)
    """,
)


@mcp.tool
def create_database(
    name: str,
    username: str,
    password: str,
    permission: str = "%",
    charset: Optional[str] = None,
    version: Optional[str] = None,
) -> str:
    """Create a database and a user with all privileges on it.

Args:
        name: Database name, or "*" to only grant on all databases
        username: User to create
        password: Password for the new user
        permission: Comma-separated host patterns the user may connect from
        charset: Character set (utf8, utf8mb4, gbk, big5)
        version: Server version string, detected when omitted

Returns:
        Success message or error description
    """
    def action(remote: Remote, config: dict[str, Any]) -> str:
        remote.create(CreateInfo(
            name=name,
            username=username,
            password=password,
            permission=permission,
            version=resolve_version(remote, config, version),
            format=charset or config["charset"],
            timeout=config["timeout"],
        ))
        return f"Database '{name}' created for user '{username}'@'{permission}'."

    return run_with_remote(action)


@mcp.tool
def delete_database(
    username: str,
    permission: str = "%",
    name: str = "",
    force: bool = False,
    version: Optional[str] = None,
) -> str:
    """Drop a user for every host in its scope, and the database if named.

Args:
        username: User to drop
        permission: Comma-separated host patterns of the user
        name: Database to drop; empty keeps all databases
        force: Ignore failures and continue with the remaining steps
        version: Server version string, detected when omitted

Returns:
        Success message or error description
    """
    def action(remote: Remote, config: dict[str, Any]) -> str:
        remote.delete(DeleteInfo(
            name=name,
            username=username,
            permission=permission,
            version=resolve_version(remote, config, version),
            force_delete=force,
            timeout=config["timeout"],
        ))
        return f"User '{username}' deleted." + (f" Database '{name}' dropped." if name else "")

    return run_with_remote(action)


@mcp.tool
def change_password(
    username: str,
    password: str,
    permission: str = "%",
    version: Optional[str] = None,
) -> str:
    """Change the password of a user.

    For root, only the existing 'root'@'%' and 'root'@'localhost' accounts
    are changed and `permission` is ignored.
    """
    def action(remote: Remote, config: dict[str, Any]) -> str:
        remote.change_password(PasswordChangeInfo(
            username=username,
            password=password,
            permission=permission,
            version=resolve_version(remote, config, version),
            timeout=config["timeout"],
        ))
        return f"Password changed for user '{username}'."

    return run_with_remote(action)


@mcp.tool
def change_access(
    name: str,
    username: str,
    password: str,
    permission: str,
    old_permission: str,
    version: Optional[str] = None,
) -> str:
    """Move a user from its old host scope to a new one.

Args:
        name: Database the user has access to
        username: User to change
        password: Password for the re-created user
        permission: New comma-separated host patterns
        old_permission: Current comma-separated host patterns
        version: Server version string, detected when omitted

Returns:
        Success message or error description
    """
    def action(remote: Remote, config: dict[str, Any]) -> str:
        remote.change_access(AccessChangeInfo(
            name=name,
            username=username,
            password=password,
            permission=permission,
            old_permission=old_permission,
            version=resolve_version(remote, config, version),
            timeout=config["timeout"],
        ))
        return f"Access changed for user '{username}'."

    return run_with_remote(action)


@mcp.tool
def backup_database(name: str, target_dir: Optional[str] = None, charset: Optional[str] = None) -> str:
    """Dump a database to a timestamped .sql file and a .gz copy of it.

Args:
        name: Database to back up
        target_dir: Directory for the backup files (default: MYSQL_BACKUP_DIR)
        charset: Character set used by the dump

Returns:
        Path of the written .sql file or error description
    """
    def action(remote: Remote, config: dict[str, Any]) -> str:
        file_name = remote.backup(BackupInfo(
            name=name,
            target_dir=target_dir or config["backup_dir"],
            format=charset or config["charset"],
        ))
        return f"Backup written to {file_name}"

    return run_with_remote(action)


@mcp.tool
def recover_database(name: str, source_file: str, charset: Optional[str] = None) -> str:
    """Load a .sql, .sql.gz or .tar.gz dump into a database.

Args:
        name: Target database
        source_file: Path of the dump file
        charset: Character set used while loading

Returns:
        Success message or error description
    """
    def action(remote: Remote, config: dict[str, Any]) -> str:
        remote.recover(RecoverInfo(
            name=name,
            source_file=source_file,
            format=charset or config["charset"],
        ))
        return f"Database '{name}' restored from {source_file}"

    return run_with_remote(action)


@mcp.resource("mysql://server")
def server_info() -> str:
    """Report the version of the administered server."""
    def action(remote: Remote, config: dict[str, Any]) -> str:
        version = remote.server_version(config["timeout"])
        return f"Server: {config['host']}:{config['port']}\nVersion: {version}"

    return run_with_remote(action)


def main() -> None:
    """Main entry point for running the MCP server."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )
    try:
        # Test database connection on startup
        config = get_db_config()
        remote = connect_remote(config)
        try:
            version = remote.server_version(config["timeout"])
        finally:
            remote.close()
        logger.info(f"Connected to MySQL {version!s}")

        # Run the FastMCP server
        mcp.run()

    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        exit(1)
    except (Error, AdminError) as e:
        logger.error(f"MySQL connection error: {e}")
        exit(1)
    except KeyboardInterrupt:
        logger.info("Shutting down server...")
    except Exception as e:
        logger.error(f"Unexpected error: {e}")
        exit(1)


if __name__ == "__main__":
    main()
