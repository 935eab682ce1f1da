"""Local username/password authentication backed by a SQLite database."""

from .database import AuthDatabase, close_auth_database, initialize_auth_database
from .dependencies import AuthContext, get_auth_service, initialise_auth, require_user, shutdown_auth
from .errors import SchemaError, StorageUnavailable, StoreClosedError
from .store import SQLiteAuthStore

__all__ = [
    "AuthContext",
    "AuthDatabase",
    "SQLiteAuthStore",
    "SchemaError",
    "StorageUnavailable",
    "StoreClosedError",
    "close_auth_database",
    "get_auth_service",
    "initialise_auth",
    "initialize_auth_database",
    "require_user",
    "shutdown_auth",
]
