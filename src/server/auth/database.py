"""SQLite database handle backing local accounts and login sessions."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Union

from .errors import CloseError, SchemaError, StorageUnavailable, StoreClosedError

logger = logging.getLogger(__name__)

DEFAULT_DB_FILENAME = "auth.db"
DEFAULT_SCHEMA_PATH = Path(__file__).resolve().with_name("schema.sql")

_BUSY_TIMEOUT_SECONDS = 5.0

PathLike = Union[str, Path]


def _ensure_pragmas(connection: sqlite3.Connection) -> None:
    connection.execute("PRAGMA foreign_keys = ON;")


class AuthDatabase:
    """Owns the on-disk auth database for the lifetime of the process.

    The handle keeps one connection open between ``init()`` and ``close()``.
    Queries run on short-lived connections so that concurrent requests rely on
    SQLite's own locking: WAL lets readers proceed next to the single writer.
    """

    def __init__(
        self,
        storage_dir: PathLike,
        schema_path: PathLike = DEFAULT_SCHEMA_PATH,
        *,
        filename: str = DEFAULT_DB_FILENAME,
    ) -> None:
        directory = Path(storage_dir)
        if not directory.is_absolute():
            directory = Path.cwd() / directory
        self._storage_dir = directory
        self._db_path = directory / filename
        self._schema_path = Path(schema_path)
        self._connection: Optional[sqlite3.Connection] = None
        self._closed = False

    @property
    def path(self) -> Path:
        return self._db_path

    @property
    def schema_path(self) -> Path:
        return self._schema_path

    @property
    def is_open(self) -> bool:
        return self._connection is not None

    def init(self) -> "AuthDatabase":
        """Create the directory, open the file, apply the schema and enable WAL.

        Safe to repeat against an already provisioned file: every schema
        statement is ``IF NOT EXISTS``.
        """
        if self._connection is not None:
            return self

        try:
            if not self._storage_dir.exists():
                self._storage_dir.mkdir(parents=True, exist_ok=True)
                logger.info("Created auth data directory %s", self._storage_dir)
        except OSError as exc:
            raise StorageUnavailable(f"Cannot create data directory {self._storage_dir}: {exc}") from exc

        try:
            connection = sqlite3.connect(
                str(self._db_path),
                timeout=_BUSY_TIMEOUT_SECONDS,
                check_same_thread=False,
            )
        except sqlite3.Error as exc:
            raise StorageUnavailable(f"Cannot open auth database {self._db_path}: {exc}") from exc

        try:
            _ensure_pragmas(connection)
            # Reads the file header; a corrupt or foreign file fails here.
            connection.execute("SELECT count(*) FROM sqlite_master").fetchone()
        except sqlite3.Error as exc:
            connection.close()
            raise StorageUnavailable(f"Cannot open auth database {self._db_path}: {exc}") from exc

        logger.info("Auth database opened at %s", self._db_path)

        try:
            self._apply_schema(connection)
            mode = connection.execute("PRAGMA journal_mode = WAL;").fetchone()[0]
        except SchemaError:
            connection.close()
            raise
        except sqlite3.Error as exc:
            connection.close()
            raise StorageUnavailable(f"Cannot enable WAL on {self._db_path}: {exc}") from exc

        if str(mode).lower() != "wal":
            logger.warning("Auth database journal mode is %s, expected wal", mode)

        self._connection = connection
        self._closed = False
        return self

    def _apply_schema(self, connection: sqlite3.Connection) -> None:
        try:
            schema = self._schema_path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise SchemaError(f"Schema file not found: {self._schema_path}") from exc
        except OSError as exc:
            raise SchemaError(f"Cannot read schema file {self._schema_path}: {exc}") from exc

        if not schema.strip():
            raise SchemaError(f"Schema file is empty: {self._schema_path}")

        try:
            connection.executescript(schema)
        except sqlite3.Error as exc:
            raise SchemaError(f"Invalid schema in {self._schema_path}: {exc}") from exc
        logger.info("Auth schema applied from %s", self._schema_path)

    def close(self) -> None:
        """Release the handle. Errors are logged, never raised."""
        connection = self._connection
        self._connection = None
        self._closed = True
        if connection is None:
            return

        try:
            connection.execute("PRAGMA wal_checkpoint(TRUNCATE);")
        except sqlite3.Error as exc:
            logger.warning("WAL checkpoint failed for %s: %s", self._db_path, exc)

        try:
            connection.close()
        except sqlite3.Error as exc:
            error = CloseError(f"Error closing auth database {self._db_path}: {exc}")
            logger.error("%s", error)
            return
        logger.info("Auth database closed")

    def _ensure_open(self) -> None:
        if self._connection is None:
            if self._closed:
                raise StoreClosedError("Auth database has been closed")
            raise StoreClosedError("Auth database has not been initialised")

    def connect(self) -> sqlite3.Connection:
        """Open a short-lived connection with row access by column name."""
        self._ensure_open()
        connection = sqlite3.connect(str(self._db_path), timeout=_BUSY_TIMEOUT_SECONDS)
        connection.row_factory = sqlite3.Row
        _ensure_pragmas(connection)
        return connection

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection that commits on success and rolls back on error."""
        connection = self.connect()
        try:
            with connection:
                yield connection
        finally:
            connection.close()

    def execute(self, query: str, params: tuple = ()) -> int:
        with self.transaction() as connection:
            cursor = connection.execute(query, params)
            return cursor.rowcount

    def fetchone(self, query: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        connection = self.connect()
        try:
            return connection.execute(query, params).fetchone()
        finally:
            connection.close()

    def fetchall(self, query: str, params: tuple = ()) -> list[sqlite3.Row]:
        connection = self.connect()
        try:
            return connection.execute(query, params).fetchall()
        finally:
            connection.close()


def initialize_auth_database(
    storage_dir: PathLike,
    schema_path: PathLike = DEFAULT_SCHEMA_PATH,
) -> AuthDatabase:
    """Open ``<storage_dir>/auth.db`` and provision it from ``schema_path``."""
    return AuthDatabase(storage_dir, schema_path).init()


def close_auth_database(database: Optional[AuthDatabase]) -> None:
    if database is None:
        return
    database.close()
