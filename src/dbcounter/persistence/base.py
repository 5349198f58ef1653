"""Base protocols for document stores."""

from contextlib import AbstractAsyncContextManager
from typing import Any, Protocol


class DocumentCollection(Protocol):
    """A named set of documents inside one database.

    Documents are plain dicts carrying ``_id``, ``key``, ``val`` and
    ``valType`` fields. Stores never interpret ``val`` or ``valType``.
    """

    async def find_id(self, key: str) -> Any | None:
        """Return the identifier of the document with ``key``, or None."""
        ...

    async def insert(self, document: dict[str, Any]) -> Any:
        """Insert a document and return its store-generated identifier."""
        ...

    async def set_value(self, doc_id: Any, value: int | float) -> None:
        """Overwrite only the ``val`` field of the identified document."""
        ...

    async def delete(self, key: str) -> int:
        """Delete documents with ``key``. Returns how many were removed."""
        ...

    async def find_all(self) -> list[dict[str, Any]]:
        """Return every document in the collection."""
        ...


class Database(Protocol):
    """An open connection to one database."""

    def collection(self, name: str) -> DocumentCollection:
        """Return a handle to the named collection."""
        ...


class DocumentStore(Protocol):
    """Protocol for document storage backends.

    Each call to ``connect`` opens a fresh connection that is released when
    the context exits, so a failed operation never poisons the next one.
    Backends may buffer writes until the connection closes, but must apply
    them on close even when the context exits with an error.
    """

    def connect(self, database: str) -> AbstractAsyncContextManager[Database]:
        """Open a connection to ``database``.

        Raises:
            ConnectivityError: If the store cannot be reached.
        """
        ...
