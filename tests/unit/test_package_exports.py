"""Tests for package-level exports."""

from __future__ import annotations


class TestPackageExports:
    """Test cases for top-level package imports."""

    def test_import_coordinator(self) -> None:
        """PersistenceCoordinator should be importable from dbcounter."""
        from dbcounter import PersistenceCoordinator

        assert PersistenceCoordinator is not None

    def test_import_counter(self) -> None:
        """Counter should be importable from dbcounter."""
        from dbcounter import Counter

        assert Counter is not None

    def test_import_stores(self) -> None:
        """Every document store should be importable from dbcounter."""
        from dbcounter import InMemoryDocumentStore, JsonlDocumentStore, SqliteDocumentStore

        assert InMemoryDocumentStore is not None
        assert JsonlDocumentStore is not None
        assert SqliteDocumentStore is not None

    def test_all_exports_match_declared(self) -> None:
        """All items in __all__ should be importable."""
        import dbcounter

        for name in dbcounter.__all__:
            assert hasattr(dbcounter, name), f"{name} not found in dbcounter"
