"""SQLite document store using aiosqlite."""

import os
import re
import sqlite3
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager
from pathlib import Path
from typing import Any

import aiosqlite

from dbcounter.exceptions import ConnectivityError, StorageError
from dbcounter.models import ID_FIELD, KEY_FIELD, VALUE_FIELD, VALUE_KIND_FIELD
from dbcounter.persistence.base import Database, DocumentCollection, DocumentStore

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@contextmanager
def _storage_errors(action: str) -> Iterator[None]:
    """Re-raise sqlite failures and unbindable values as StorageError."""
    try:
        yield
    except (sqlite3.Error, OverflowError) as exc:
        raise StorageError(f"{action} failed: {exc}") from exc


class SqliteCollection(DocumentCollection):
    """A collection stored as one SQLite table.

    The ``val`` column is declared without a type, so SQLite keeps integers
    and reals exactly as written and the ``valType`` tag stays meaningful.
    """

    def __init__(self, database: "SqliteDatabase", name: str) -> None:
        if not _IDENTIFIER.match(name):
            raise StorageError(f"Invalid collection name: {name!r}")
        self._database = database
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    async def find_id(self, key: str) -> Any | None:
        db = await self._database.ensure_table(self._name)
        with _storage_errors(f"find {key!r} in {self._name}"):
            cursor = await db.execute(
                f"SELECT {ID_FIELD} FROM {self._name} WHERE {KEY_FIELD} = ? LIMIT 1",
                (key,),
            )
            row = await cursor.fetchone()
        return None if row is None else row[0]

    async def insert(self, document: dict[str, Any]) -> Any:
        db = await self._database.ensure_table(self._name)
        with _storage_errors(f"insert into {self._name}"):
            cursor = await db.execute(
                f"""
                INSERT INTO {self._name} ({KEY_FIELD}, {VALUE_FIELD}, {VALUE_KIND_FIELD})
                VALUES (?, ?, ?)
                """,
                (
                    document[KEY_FIELD],
                    document[VALUE_FIELD],
                    document.get(VALUE_KIND_FIELD),
                ),
            )
        return cursor.lastrowid

    async def set_value(self, doc_id: Any, value: int | float) -> None:
        db = await self._database.ensure_table(self._name)
        with _storage_errors(f"update {doc_id!r} in {self._name}"):
            await db.execute(
                f"UPDATE {self._name} SET {VALUE_FIELD} = ? WHERE {ID_FIELD} = ?",
                (value, doc_id),
            )

    async def delete(self, key: str) -> int:
        db = await self._database.ensure_table(self._name)
        with _storage_errors(f"delete {key!r} from {self._name}"):
            cursor = await db.execute(
                f"DELETE FROM {self._name} WHERE {KEY_FIELD} = ?",
                (key,),
            )
        return cursor.rowcount

    async def find_all(self) -> list[dict[str, Any]]:
        db = await self._database.ensure_table(self._name)
        with _storage_errors(f"read {self._name}"):
            cursor = await db.execute(
                f"""
                SELECT {ID_FIELD}, {KEY_FIELD}, {VALUE_FIELD}, {VALUE_KIND_FIELD}
                FROM {self._name}
                ORDER BY {ID_FIELD}
                """
            )
            rows = await cursor.fetchall()
        return [dict(row) for row in rows]


class SqliteDatabase(Database):
    """An open aiosqlite connection; tables are created on first use."""

    def __init__(self, connection: aiosqlite.Connection) -> None:
        self._connection = connection
        self._tables: set[str] = set()

    def collection(self, name: str) -> SqliteCollection:
        return SqliteCollection(self, name)

    async def ensure_table(self, name: str) -> aiosqlite.Connection:
        """Create the table and key index if needed and return the connection."""
        if name in self._tables:
            return self._connection
        with _storage_errors(f"create {name}"):
            await self._connection.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {name} (
                    {ID_FIELD} INTEGER PRIMARY KEY AUTOINCREMENT,
                    {KEY_FIELD} TEXT NOT NULL,
                    {VALUE_FIELD},
                    {VALUE_KIND_FIELD} TEXT
                )
                """
            )
            await self._connection.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{name}_key ON {name}({KEY_FIELD})"
            )
        self._tables.add(name)
        return self._connection


class SqliteDocumentStore(DocumentStore):
    """Document store keeping each database in ``<endpoint>/<database>.db``.

    The endpoint directory must already exist; a missing directory is
    reported as a connectivity failure rather than created.

    Example:
        ```python
        store = SqliteDocumentStore("/var/lib/counters")
        async with store.connect("metrics") as db:
            docs = await db.collection("counters").find_all()
        ```
    """

    def __init__(self, endpoint: str | Path | None = None) -> None:
        """Initialize the store.

        Args:
            endpoint: Directory holding the database files. Defaults to
                ``DBCOUNTER_ENDPOINT`` or the current directory.
        """
        self._endpoint = Path(endpoint or os.getenv("DBCOUNTER_ENDPOINT", "."))

    @property
    def endpoint(self) -> Path:
        return self._endpoint

    def path_for(self, database: str) -> Path:
        """Return the file backing ``database``."""
        return self._endpoint / f"{database}.db"

    @asynccontextmanager
    async def connect(self, database: str) -> AsyncIterator[SqliteDatabase]:
        path = self.path_for(database)
        if not self._endpoint.is_dir():
            raise ConnectivityError(f"Endpoint directory does not exist: {self._endpoint}")
        try:
            connection = await aiosqlite.connect(path, isolation_level=None)
        except sqlite3.Error as exc:
            raise ConnectivityError(f"Cannot open {path}: {exc}") from exc
        try:
            connection.row_factory = aiosqlite.Row
            with _storage_errors(f"configure {path}"):
                await connection.execute("PRAGMA journal_mode = WAL")
                await connection.execute("PRAGMA synchronous = NORMAL")
            yield SqliteDatabase(connection)
        finally:
            await connection.close()
