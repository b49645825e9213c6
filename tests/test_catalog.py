"""Tests for the SQLite artifact catalog."""

from __future__ import annotations

from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from ratifact.catalog import ArtifactCatalog, ArtifactRecord, CatalogError


@pytest.fixture
def catalog() -> Iterator[ArtifactCatalog]:
    """Create an in-memory catalog."""
    cat = ArtifactCatalog.open(":memory:")
    yield cat
    cat.close()


def _record(path: str, size: int = 100, days_ago: int | None = None, language: str = "Rust") -> ArtifactRecord:
    discovered_at = None
    if days_ago is not None:
        discovered_at = datetime.now(UTC) - timedelta(days=days_ago)
    return ArtifactRecord(
        path=path,
        project_path=str(Path(path).parent),
        language=language,
        size_bytes=size,
        discovered_at=discovered_at,
    )


class TestOpen:
    """Tests for opening the database."""

    def test_creates_parent_directory(self, tmp_path: Path) -> None:
        """Test that missing parent directories are created."""
        db = tmp_path / "nested" / "dir" / "builds.db"
        cat = ArtifactCatalog.open(db)
        try:
            assert db.exists()
            assert cat.count() == 0
        finally:
            cat.close()

    def test_rows_survive_reopen(self, tmp_path: Path) -> None:
        """Test that rows are persisted to disk."""
        db = tmp_path / "builds.db"
        cat = ArtifactCatalog.open(db)
        cat.record(_record("/code/app/target"))
        cat.close()

        cat = ArtifactCatalog.open(db)
        try:
            assert cat.distinct_paths() == {"/code/app/target"}
        finally:
            cat.close()

    def test_unopenable_database(self, tmp_path: Path) -> None:
        """Test that an unusable path raises CatalogError."""
        (tmp_path / "builds.db").mkdir()
        with pytest.raises(CatalogError):
            ArtifactCatalog.open(tmp_path / "builds.db")


class TestQueries:
    """Tests for catalog reads."""

    def test_record_appends_rows(self, catalog: ArtifactCatalog) -> None:
        """Test that repeated discoveries append new rows."""
        catalog.record(_record("/code/app/target"))
        catalog.record(_record("/code/app/target"))

        assert catalog.count() == 2
        assert catalog.distinct_paths() == {"/code/app/target"}

    def test_recent_artifact_paths_distinct_newest_first(self, catalog: ArtifactCatalog) -> None:
        """Test that paths are de-duplicated and ordered by last discovery."""
        catalog.record(_record("/code/a/target", days_ago=3))
        catalog.record(_record("/code/b/node_modules", days_ago=2))
        catalog.record(_record("/code/a/target", days_ago=1))

        assert catalog.recent_artifact_paths() == ["/code/a/target", "/code/b/node_modules"]

    def test_recent_artifact_paths_limit(self, catalog: ArtifactCatalog) -> None:
        """Test the path limit."""
        for i in range(5):
            catalog.record(_record(f"/code/p{i}/target"))

        assert len(catalog.recent_artifact_paths(limit=3)) == 3

    def test_recent_builds(self, catalog: ArtifactCatalog) -> None:
        """Test that history rows come back newest first with timestamps."""
        catalog.record(_record("/code/old/target", days_ago=5, language="Rust"))
        catalog.record(_record("/code/new/build", days_ago=1, language="Go"))

        records = catalog.recent_builds(10)

        assert [r.path for r in records] == ["/code/new/build", "/code/old/target"]
        assert records[0].language == "Go"
        assert records[0].project_path == "/code/new"
        assert records[0].discovered_at is not None
        assert records[0].discovered_at.tzinfo is UTC

    def test_largest_artifacts_uses_max_size(self, catalog: ArtifactCatalog) -> None:
        """Test that the chart data holds the largest size per path."""
        catalog.record(_record("/code/a/target", size=10))
        catalog.record(_record("/code/a/target", size=500))
        catalog.record(_record("/code/b/dist", size=200))

        assert catalog.largest_artifacts() == [("/code/a/target", 500), ("/code/b/dist", 200)]


class TestDeletes:
    """Tests for catalog deletes."""

    def test_delete_artifact_removes_every_row(self, catalog: ArtifactCatalog) -> None:
        """Test that all rows for a path are removed."""
        catalog.record(_record("/code/a/target"))
        catalog.record(_record("/code/a/target"))
        catalog.record(_record("/code/b/dist"))

        assert catalog.delete_artifact("/code/a/target") == 2
        assert catalog.distinct_paths() == {"/code/b/dist"}

    def test_delete_all(self, catalog: ArtifactCatalog) -> None:
        """Test clearing the catalog."""
        catalog.record(_record("/code/a/target"))
        catalog.record(_record("/code/b/dist"))

        catalog.delete_all()

        assert catalog.count() == 0

    def test_purge_older_than(self, catalog: ArtifactCatalog) -> None:
        """Test that only expired rows are purged."""
        catalog.record(_record("/code/old/target", days_ago=40))
        catalog.record(_record("/code/new/target", days_ago=2))
        catalog.record(_record("/code/now/target"))

        removed = catalog.purge_older_than(30)

        assert removed == 1
        assert catalog.distinct_paths() == {"/code/new/target", "/code/now/target"}

    def test_operations_after_close_raise(self) -> None:
        """Test that a closed catalog reports CatalogError."""
        cat = ArtifactCatalog.open(":memory:")
        cat.close()

        with pytest.raises(CatalogError):
            cat.count()
