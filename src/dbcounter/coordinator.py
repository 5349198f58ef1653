"""Persistence coordinator keeping a Counter in sync with a document store."""

import asyncio
import contextlib
import json
import logging
import os
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Self

from dbcounter.counter import Counter
from dbcounter.exceptions import SerializationError
from dbcounter.models import (
    KEY_FIELD,
    VALUE_FIELD,
    CounterEntry,
    CounterValue,
    encode_value,
    is_duration,
)
from dbcounter.persistence.base import DocumentCollection, DocumentStore

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 10.0


@dataclass
class CoordinatorConfig:
    """Configuration for PersistenceCoordinator.

    Attributes:
        database: Name of the database holding the collection.
        collection: Name of the collection, one document per counter key.
        interval: Seconds between background persists. Values <= 0 are
            replaced by DEFAULT_INTERVAL_SECONDS when background mode starts.
    """

    database: str = field(default_factory=lambda: os.getenv("DBCOUNTER_DATABASE", "counter"))
    collection: str = field(
        default_factory=lambda: os.getenv("DBCOUNTER_COLLECTION", "counters")
    )
    interval: float = field(
        default_factory=lambda: float(
            os.getenv("DBCOUNTER_PERSISTENCE_INTERVAL", str(DEFAULT_INTERVAL_SECONDS))
        )
    )


class PersistenceCoordinator:
    """Snapshots a Counter into a document store and reloads it on demand.

    The coordinator is created idle. ``start_background`` spawns one task
    that persists on a fixed interval; ``stop`` cancels that task and flushes
    once more so increments made right before the stop are not lost.
    ``persist``, ``clear`` and ``update_from_db`` can also be awaited
    directly and raise the first error they hit.

    Every operation opens its own store connection, so an outage during one
    call does not affect the next. Persists are serialized by a lock;
    increments on the counter are never blocked.

    Args:
        counter: The counter to persist. It stays owned by the caller.
        store: Document store backend.
        config: Database, collection and interval settings.

    Example:
        ```python
        counter = Counter()
        coordinator = PersistenceCoordinator(
            counter,
            SqliteDocumentStore("/var/lib/counters"),
            CoordinatorConfig(database="metrics", collection="counters", interval=5.0),
        )
        await coordinator.update_from_db()

        async with coordinator:
            counter.inc("requests", 1)
        ```
    """

    def __init__(
        self,
        counter: Counter,
        store: DocumentStore,
        config: CoordinatorConfig | None = None,
    ) -> None:
        self._counter = counter
        self._store = store
        self._config = config or CoordinatorConfig()
        self._interval = self._config.interval

        self._running = False
        self._stop_event: asyncio.Event | None = None
        self._task: asyncio.Task[None] | None = None
        self._persist_lock = asyncio.Lock()

    @property
    def counter(self) -> Counter:
        return self._counter

    @property
    def config(self) -> CoordinatorConfig:
        return self._config

    @property
    def interval(self) -> float:
        """Interval in seconds used by the current or last background run."""
        return self._interval

    @property
    def is_running(self) -> bool:
        """Check if background persistence is active."""
        return self._running

    async def __aenter__(self) -> Self:
        """Start background persistence.

        Returns:
            Self for context manager protocol.
        """
        self.start_background()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Stop background persistence and flush the counter."""
        await self.stop()

    def _log_event(self, level: int, event: str, **fields: Any) -> None:
        """Log an event as structured JSON."""
        log_entry = {
            "event": event,
            "database": self._config.database,
            "collection": self._config.collection,
            "timestamp": datetime.now(UTC).isoformat(),
            **fields,
        }
        logger.log(level, json.dumps(log_entry, default=str))

    def start_background(self, interval: float | None = None) -> None:
        """Start persisting on a fixed interval.

        Does nothing if already running. Must be called with an event loop
        running.

        Args:
            interval: Seconds between persists. Defaults to the configured
                interval.
        """
        if self._running:
            return

        interval = self._config.interval if interval is None else interval
        if interval <= 0:
            self._log_event(
                logging.WARNING,
                "persistence_interval_defaulted",
                requested_interval=interval,
                interval=DEFAULT_INTERVAL_SECONDS,
            )
            interval = DEFAULT_INTERVAL_SECONDS

        self._interval = interval
        self._stop_event = asyncio.Event()
        self._running = True
        self._task = asyncio.create_task(self._background_loop(self._stop_event, interval))
        self._log_event(logging.INFO, "background_persistence_started", interval=interval)

    async def _background_loop(self, stop_event: asyncio.Event, interval: float) -> None:
        """Persist on every tick until ``stop_event`` is set."""
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + interval

        while not stop_event.is_set():
            try:
                await asyncio.wait_for(
                    stop_event.wait(), timeout=max(0.0, next_tick - loop.time())
                )
            except TimeoutError:
                pass
            else:
                return

            # Ticks missed during a slow persist are dropped, not replayed.
            now = loop.time()
            while next_tick <= now:
                next_tick += interval

            try:
                written = await self.persist()
            except Exception as exc:
                self._log_event(
                    logging.ERROR,
                    "background_persistence_failed",
                    error=f"{type(exc).__name__}: {exc}",
                )
            else:
                self._log_event(logging.INFO, "background_persistence_executed", keys=written)

    async def stop(self) -> None:
        """Stop background persistence and flush the counter one last time.

        Calling stop when not running is a no-op. The background task has
        exited before the final flush starts; an error from that flush is
        raised after the coordinator is already idle.
        """
        if not self._running:
            return

        self._log_event(logging.INFO, "background_persistence_stopping")
        self._running = False

        if self._stop_event is not None:
            self._stop_event.set()
            self._stop_event = None

        if self._task is not None:
            task = self._task
            self._task = None
            with contextlib.suppress(asyncio.CancelledError):
                await task

        try:
            await self.persist()
        finally:
            self._log_event(logging.INFO, "background_persistence_stopped")

    async def persist(self) -> int:
        """Write a snapshot of the counter to storage.

        Each key is upserted in snapshot order: the value of an existing
        document is overwritten, otherwise a new tagged document is inserted.
        The first failure aborts the remaining keys; keys already written
        stay written.

        Returns:
            Number of keys written.

        Raises:
            PersistenceError: If the store cannot be reached or a write fails.
        """
        async with self._persist_lock:
            async with self._store.connect(self._config.database) as db:
                collection = db.collection(self._config.collection)
                written = 0
                for key, value in self._counter.snapshot():
                    logger.debug("Persisting key: %s", key)
                    await self._upsert(collection, key, value)
                    written += 1
        return written

    async def _upsert(self, collection: DocumentCollection, key: str, value: CounterValue) -> None:
        """Insert or update the document for ``key``.

        Raises:
            SerializationError: If the value is not a supported counter value.
        """
        doc_id = await collection.find_id(key)
        if doc_id is None:
            await collection.insert(CounterEntry.for_value(key, value).to_document())
        else:
            await collection.set_value(doc_id, encode_value(value))

    async def clear(self, key: str) -> None:
        """Delete ``key`` from storage, then from the counter.

        A key missing from storage is not an error. If the storage delete
        fails the in-memory value is left in place.

        Raises:
            PersistenceError: If the store cannot be reached or the delete fails.
        """
        async with self._persist_lock:
            async with self._store.connect(self._config.database) as db:
                removed = await db.collection(self._config.collection).delete(key)
            self._counter.remove(key)
        logger.debug("Cleared key %s (%d stored documents removed)", key, removed)

    async def update_from_db(self) -> int:
        """Add every stored value to the counter.

        Reloading is additive: values are incremented into the counter, not
        assigned. A document with an unrecognized ``valType`` is applied with
        its raw stored value. Every document is decoded and checked against
        the counter before any is applied, so a failed reload leaves the
        counter untouched and can be retried.

        Returns:
            Number of documents applied.

        Raises:
            PersistenceError: If the store cannot be reached, the read fails,
                or a stored value cannot be added to the counter.
        """
        async with self._store.connect(self._config.database) as db:
            documents = await db.collection(self._config.collection).find_all()

        planned: list[tuple[str, CounterValue]] = []
        durations: dict[str, bool] = {}
        for document in documents:
            key = document[KEY_FIELD]
            value = self._decode(document)
            if key not in durations:
                current = self._counter.value_at(key)
                durations[key] = is_duration(value if current is None else current)
            if durations[key] != is_duration(value):
                raise SerializationError(
                    f"Stored value for {key!r} does not match the counter kind"
                )
            planned.append((key, value))

        for key, value in planned:
            try:
                self._counter.inc(key, value)
            except TypeError as exc:
                raise SerializationError(
                    f"Stored value for {key!r} does not match the counter: {exc}"
                ) from exc

        self._log_event(logging.INFO, "counter_reloaded", documents=len(documents))
        return len(documents)

    def _decode(self, document: dict[str, Any]) -> CounterValue:
        """Rebuild a stored value, falling back to the raw number on unknown tags."""
        try:
            return CounterEntry.from_document(document).value
        except SerializationError as exc:
            if exc.tag is None:
                raise
            self._log_event(
                logging.WARNING,
                "unknown_value_kind",
                key=document[KEY_FIELD],
                value_kind=exc.tag,
            )
            return document[VALUE_FIELD]
