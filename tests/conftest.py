"""Pytest configuration and fixtures for dbcounter tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from dbcounter import (
    CoordinatorConfig,
    Counter,
    InMemoryDocumentStore,
    JsonlDocumentStore,
    PersistenceCoordinator,
    SqliteDocumentStore,
)


@pytest.fixture()
def config() -> CoordinatorConfig:
    """Provide a configuration with a short background interval."""
    return CoordinatorConfig(database="counter-test-db", collection="counterstest", interval=0.05)


@pytest.fixture()
def counter() -> Counter:
    """Provide an empty counter."""
    return Counter()


@pytest.fixture()
def memory_store() -> InMemoryDocumentStore:
    """Provide an empty in-memory document store."""
    return InMemoryDocumentStore()


@pytest.fixture()
def sqlite_store(tmp_path: Path) -> SqliteDocumentStore:
    """Provide a SQLite document store rooted in a temporary directory."""
    return SqliteDocumentStore(tmp_path)


@pytest.fixture()
def jsonl_store(tmp_path: Path) -> JsonlDocumentStore:
    """Provide a JSONL document store rooted in a temporary directory."""
    return JsonlDocumentStore(tmp_path)


@pytest.fixture()
def coordinator(
    counter: Counter,
    memory_store: InMemoryDocumentStore,
    config: CoordinatorConfig,
) -> PersistenceCoordinator:
    """Provide an idle coordinator over the in-memory store."""
    return PersistenceCoordinator(counter, memory_store, config)
