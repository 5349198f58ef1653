"""Process-local document store for tests and development."""

import itertools
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from dbcounter.exceptions import ConnectivityError
from dbcounter.models import ID_FIELD, KEY_FIELD, VALUE_FIELD
from dbcounter.persistence.base import Database, DocumentCollection, DocumentStore


class InMemoryCollection(DocumentCollection):
    """A list of documents shared by every connection to the same store."""

    def __init__(self, documents: list[dict[str, Any]], ids: itertools.count) -> None:
        self._documents = documents
        self._ids = ids

    async def find_id(self, key: str) -> Any | None:
        for document in self._documents:
            if document[KEY_FIELD] == key:
                return document[ID_FIELD]
        return None

    async def insert(self, document: dict[str, Any]) -> Any:
        doc_id = next(self._ids)
        self._documents.append({ID_FIELD: doc_id, **document})
        return doc_id

    async def set_value(self, doc_id: Any, value: int | float) -> None:
        for document in self._documents:
            if document[ID_FIELD] == doc_id:
                document[VALUE_FIELD] = value

    async def delete(self, key: str) -> int:
        before = len(self._documents)
        self._documents[:] = [d for d in self._documents if d[KEY_FIELD] != key]
        return before - len(self._documents)

    async def find_all(self) -> list[dict[str, Any]]:
        return [dict(d) for d in self._documents]


class InMemoryDatabase(Database):
    def __init__(self, collections: dict[str, list[dict[str, Any]]], ids: itertools.count) -> None:
        self._collections = collections
        self._ids = ids

    def collection(self, name: str) -> InMemoryCollection:
        return InMemoryCollection(self._collections.setdefault(name, []), self._ids)


class InMemoryDocumentStore(DocumentStore):
    """Simple in-memory implementation for testing and development.

    Not suitable for persistence across process restarts. Setting
    ``available`` to False makes every ``connect`` fail with
    ConnectivityError, which simulates losing the storage server.
    """

    def __init__(self) -> None:
        self._databases: dict[str, dict[str, list[dict[str, Any]]]] = {}
        self._ids = itertools.count(1)
        self.available = True
        self.connections_opened = 0

    def documents(self, database: str, collection: str) -> list[dict[str, Any]]:
        """Return a copy of the stored documents, for inspection."""
        return [dict(d) for d in self._databases.get(database, {}).get(collection, [])]

    @asynccontextmanager
    async def connect(self, database: str) -> AsyncIterator[InMemoryDatabase]:
        if not self.available:
            raise ConnectivityError("In-memory store is unavailable")
        self.connections_opened += 1
        yield InMemoryDatabase(self._databases.setdefault(database, {}), self._ids)
