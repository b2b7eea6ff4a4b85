"""MySQL Admin - remote administration of MySQL databases, users and backups."""

from .errors import AdminError, DatabaseAlreadyExists, DumpToolError, ExecutionTimeout, UserAlreadyExists
from .identity import Identity, expand_identities
from .remote import Remote, new_remote

__version__ = "0.1.0"
__all__ = [
    "AdminError",
    "DatabaseAlreadyExists",
    "DumpToolError",
    "ExecutionTimeout",
    "UserAlreadyExists",
    "Identity",
    "expand_identities",
    "Remote",
    "new_remote",
]
