"""Expansion of permission scopes into `'user'@'host'` identities."""

from typing import NamedTuple


class Identity(NamedTuple):
    user: str
    host: str

    def __str__(self) -> str:
        return f"'{self.user}'@'{self.host}'"


def expand_identities(username: str, permission: str) -> list[Identity]:
    """Turn a permission scope into the identities it grants access to.

    A comma-separated scope yields one identity per non-empty host pattern,
    in order and without deduplication. Any other scope, including the empty
    string, is used verbatim as a single host pattern.
    """
    if "," not in permission:
        return [Identity(username, permission)]
    return [Identity(username, host) for host in permission.split(",") if host]
