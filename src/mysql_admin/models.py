"""Request types for the administration operations."""

from dataclasses import dataclass

# Collation used for each supported character format in `create database`.
FORMAT_COLLATIONS = {
    "utf8": "utf8_general_ci",
    "utf8mb4": "utf8mb4_general_ci",
    "gbk": "gbk_chinese_ci",
    "big5": "big5_chinese_ci",
}

# Timeout for compensating deletes and privilege flushes.
CLEANUP_TIMEOUT = 300


@dataclass
class DBInfo:
    """Connection parameters for a remote server."""
    address: str
    port: int
    username: str
    password: str
    timeout: float = 30


@dataclass
class CreateInfo:
    name: str
    username: str
    password: str
    permission: str
    version: str
    format: str = "utf8mb4"
    timeout: float = 30


@dataclass
class DeleteInfo:
    username: str
    permission: str
    version: str
    name: str = ""
    force_delete: bool = False
    timeout: float = 30


@dataclass
class PasswordChangeInfo:
    username: str
    password: str
    permission: str
    version: str
    timeout: float = 30


@dataclass
class AccessChangeInfo:
    name: str
    username: str
    password: str
    permission: str
    old_permission: str
    version: str
    timeout: float = 30


@dataclass
class BackupInfo:
    name: str
    target_dir: str
    format: str = "utf8mb4"


@dataclass
class RecoverInfo:
    name: str
    source_file: str
    format: str = "utf8mb4"
