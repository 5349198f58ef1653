"""Document store backends."""

from dbcounter.persistence.base import Database, DocumentCollection, DocumentStore
from dbcounter.persistence.jsonl import JsonlDocumentStore
from dbcounter.persistence.memory import InMemoryDocumentStore
from dbcounter.persistence.sqlite import SqliteDocumentStore

__all__ = [
    "Database",
    "DocumentCollection",
    "DocumentStore",
    "InMemoryDocumentStore",
    "JsonlDocumentStore",
    "SqliteDocumentStore",
]
