"""Version-dependent SQL statement templates.

The caller-supplied version string is trusted as-is; nothing here talks to
the server. Each version bucket maps to a `Dialect` holding the templates
that differ between server generations.
"""

from dataclasses import dataclass

from .identity import Identity


@dataclass(frozen=True)
class Dialect:
    drop_user: str
    change_password: str
    grant_suffix: str


MYSQL_56 = Dialect(
    drop_user="drop user {identity}",
    change_password="set password for {identity} = password('{password}')",
    grant_suffix=" identified by '{password}' with grant option",
)

MYSQL_57 = Dialect(
    drop_user="drop user if exists {identity}",
    change_password="set password for {identity} = password('{password}')",
    grant_suffix=" identified by '{password}' with grant option",
)

MYSQL_8 = Dialect(
    drop_user="drop user if exists {identity}",
    change_password="alter user {identity} identified with mysql_native_password by '{password}'",
    grant_suffix="",
)

MODERN = "8"

# Versions not starting with a legacy prefix use the modern dialect.
DIALECTS = {
    "5.6": MYSQL_56,
    "5.7": MYSQL_57,
    MODERN: MYSQL_8,
}


def version_bucket(version: str) -> str:
    """Normalize a server version string to a `DIALECTS` key."""
    for prefix in DIALECTS:
        if prefix != MODERN and version.startswith(prefix):
            return prefix
    return MODERN


def select_dialect(version: str) -> Dialect:
    return DIALECTS[version_bucket(version)]


def create_user_clause(identity: Identity, password: str) -> str:
    return f"create user {identity} identified by '{password}'"


def grant_clause(version: str, name: str, identity: Identity, password: str) -> str:
    """Grant all privileges on one database, or on everything when `name` is `*`."""
    target = "*.*" if name == "*" else f"`{name}`.*"
    suffix = select_dialect(version).grant_suffix.format(password=password)
    return f"grant all privileges on {target} to {identity}{suffix}"


def drop_user_clause(version: str, identity: Identity) -> str:
    return select_dialect(version).drop_user.format(identity=identity)


def password_clause(version: str, identity: Identity, password: str) -> str:
    return select_dialect(version).change_password.format(identity=identity, password=password)
