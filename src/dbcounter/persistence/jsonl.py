"""JSON-lines document store using aiofiles."""

import asyncio
import json
import os
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import aiofiles

from dbcounter.exceptions import ConnectivityError, StorageError
from dbcounter.models import ID_FIELD, KEY_FIELD, VALUE_FIELD
from dbcounter.persistence.base import Database, DocumentCollection, DocumentStore


class JsonlCollection(DocumentCollection):
    """A collection stored as one JSON document per line.

    The file is read once, on first access within a connection, and the
    collection's path lock is held from then until the connection closes.
    Changes are applied in memory and written back in one atomic rewrite
    (temp file plus ``os.replace``) when the connection closes, so readers
    never observe a half-written collection. JSON keeps integers and reals
    apart but has no duration type, which is what ``valType`` is for.
    """

    def __init__(self, path: Path, lock: asyncio.Lock) -> None:
        self._path = path
        self._lock = lock
        self._documents: list[dict[str, Any]] | None = None
        self._ids_by_key: dict[Any, Any] = {}
        self._by_id: dict[Any, dict[str, Any]] = {}
        self._dirty = False

    @property
    def path(self) -> Path:
        return self._path

    async def _read_file(self) -> list[dict[str, Any]]:
        if not self._path.exists():
            return []
        try:
            async with aiofiles.open(self._path, encoding="utf-8") as f:
                content = await f.read()
            return [json.loads(line) for line in content.splitlines() if line.strip()]
        except (OSError, json.JSONDecodeError) as exc:
            raise StorageError(f"read {self._path} failed: {exc}") from exc

    async def _save(self, documents: list[dict[str, Any]]) -> None:
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            async with aiofiles.open(tmp_path, mode="w", encoding="utf-8", newline="\n") as f:
                for document in documents:
                    await f.write(json.dumps(document, ensure_ascii=False) + "\n")
                await f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self._path)
        except OSError as exc:
            raise StorageError(f"write {self._path} failed: {exc}") from exc

    def _reindex(self) -> None:
        self._ids_by_key = {}
        self._by_id = {}
        for document in self._documents or []:
            self._ids_by_key.setdefault(document.get(KEY_FIELD), document.get(ID_FIELD))
            self._by_id[document.get(ID_FIELD)] = document

    async def _loaded(self) -> list[dict[str, Any]]:
        """Return the session's documents, locking and reading the file on first use."""
        if self._documents is None:
            await self._lock.acquire()
            try:
                self._documents = await self._read_file()
            except BaseException:
                self._lock.release()
                raise
            self._reindex()
        return self._documents

    async def close(self) -> None:
        """Write pending changes and release the path lock."""
        if self._documents is None:
            return
        try:
            if self._dirty:
                await self._save(self._documents)
        finally:
            self._documents = None
            self._dirty = False
            self._reindex()
            self._lock.release()

    async def find_id(self, key: str) -> Any | None:
        await self._loaded()
        return self._ids_by_key.get(key)

    async def insert(self, document: dict[str, Any]) -> Any:
        documents = await self._loaded()
        doc_id = uuid.uuid4().hex
        stored = {ID_FIELD: doc_id, **document}
        documents.append(stored)
        self._ids_by_key.setdefault(stored.get(KEY_FIELD), doc_id)
        self._by_id[doc_id] = stored
        self._dirty = True
        return doc_id

    async def set_value(self, doc_id: Any, value: int | float) -> None:
        await self._loaded()
        document = self._by_id.get(doc_id)
        if document is not None:
            document[VALUE_FIELD] = value
            self._dirty = True

    async def delete(self, key: str) -> int:
        documents = await self._loaded()
        kept = [d for d in documents if d.get(KEY_FIELD) != key]
        removed = len(documents) - len(kept)
        if removed:
            documents[:] = kept
            self._reindex()
            self._dirty = True
        return removed

    async def find_all(self) -> list[dict[str, Any]]:
        return [dict(d) for d in await self._loaded()]


class JsonlDatabase(Database):
    """A directory of ``<collection>.jsonl`` files."""

    def __init__(self, store: "JsonlDocumentStore", directory: Path) -> None:
        self._store = store
        self._directory = directory
        self._collections: dict[str, JsonlCollection] = {}

    def collection(self, name: str) -> JsonlCollection:
        collection = self._collections.get(name)
        if collection is None:
            path = self._directory / f"{name}.jsonl"
            collection = JsonlCollection(path, self._store.lock_for(path))
            self._collections[name] = collection
        return collection

    async def close(self) -> None:
        """Flush every collection used in this connection.

        All collections are closed even if one fails; the first error is
        raised afterwards.
        """
        error: BaseException | None = None
        for collection in self._collections.values():
            try:
                await collection.close()
            except StorageError as exc:
                error = error or exc
        self._collections.clear()
        if error is not None:
            raise error


class JsonlDocumentStore(DocumentStore):
    """Document store keeping collections in ``<endpoint>/<database>/<name>.jsonl``.

    The endpoint directory must exist; database directories are created on
    first connect. Writes made through a connection reach the file when the
    connection closes, including when it closes on an error.

    Example:
        ```python
        store = JsonlDocumentStore("/var/lib/counters")
        async with store.connect("metrics") as db:
            await db.collection("counters").delete("requests")
        ```
    """

    def __init__(self, endpoint: str | Path | None = None) -> None:
        """Initialize the store.

        Args:
            endpoint: Root directory. Defaults to ``DBCOUNTER_ENDPOINT`` or
                the current directory.
        """
        self._endpoint = Path(endpoint or os.getenv("DBCOUNTER_ENDPOINT", "."))
        self._locks: dict[Path, asyncio.Lock] = {}

    @property
    def endpoint(self) -> Path:
        return self._endpoint

    def lock_for(self, path: Path) -> asyncio.Lock:
        """Return the lock serializing connections that use ``path``."""
        lock = self._locks.get(path)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[path] = lock
        return lock

    @asynccontextmanager
    async def connect(self, database: str) -> AsyncIterator[JsonlDatabase]:
        if not self._endpoint.is_dir():
            raise ConnectivityError(f"Endpoint directory does not exist: {self._endpoint}")
        directory = self._endpoint / database
        try:
            directory.mkdir(exist_ok=True)
        except OSError as exc:
            raise ConnectivityError(f"Cannot open database {directory}: {exc}") from exc
        db = JsonlDatabase(self, directory)
        try:
            yield db
        finally:
            await db.close()
