"""dbcounter.

Periodic persistence of an in-memory numeric counter into a document store,
with reload on startup and per-key deletion.
"""

from dbcounter.coordinator import (
    DEFAULT_INTERVAL_SECONDS,
    CoordinatorConfig,
    PersistenceCoordinator,
)
from dbcounter.counter import Counter
from dbcounter.exceptions import (
    ConnectivityError,
    PersistenceError,
    SerializationError,
    StorageError,
)
from dbcounter.models import CounterEntry, CounterValue, Duration, ValueKind
from dbcounter.persistence import (
    InMemoryDocumentStore,
    JsonlDocumentStore,
    SqliteDocumentStore,
)

__version__ = "0.1.0"

__all__ = [
    "DEFAULT_INTERVAL_SECONDS",
    "ConnectivityError",
    "CoordinatorConfig",
    "Counter",
    "CounterEntry",
    "CounterValue",
    "Duration",
    "InMemoryDocumentStore",
    "JsonlDocumentStore",
    "PersistenceCoordinator",
    "PersistenceError",
    "SerializationError",
    "SqliteDocumentStore",
    "StorageError",
    "ValueKind",
]
