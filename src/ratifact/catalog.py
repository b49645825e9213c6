"""SQLite-backed catalog of discovered build artifacts."""

from __future__ import annotations

import sqlite3
import threading
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS builds (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    project_path TEXT NOT NULL,
    language TEXT NOT NULL,
    build_time TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    artifact_path TEXT NOT NULL,
    size_bytes INTEGER
)
"""


class CatalogError(Exception):
    """Raised when the catalog database cannot be read or written."""


@dataclass(frozen=True)
class ArtifactRecord:
    """One discovery event for an artifact directory."""

    path: str
    project_path: str
    language: str
    size_bytes: int
    discovered_at: datetime | None = None


def _format_time(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(UTC)
    return value.strftime(_TIMESTAMP_FORMAT)


def _parse_time(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.strptime(value, _TIMESTAMP_FORMAT).replace(tzinfo=UTC)
    except ValueError:
        return None


class ArtifactCatalog:
    """Append-only history of artifact discoveries.

    Each scan inserts a new row per artifact; rows are never updated.
    Removing an artifact deletes every row carrying its path.
    """

    def __init__(self, connection: sqlite3.Connection) -> None:
        """Wrap an open connection. Use :meth:`open` to create one.

        Args:
            connection: SQLite connection opened with ``check_same_thread=False``.

        """
        self._conn = connection
        self._lock = threading.Lock()

    @classmethod
    def open(cls, database: Path | str) -> ArtifactCatalog:
        """Open (and create if needed) the catalog database.

        Args:
            database: Database file path, or ``":memory:"``.

        Returns:
            Ready-to-use catalog.

        Raises:
            CatalogError: If the database cannot be opened or initialized.

        """
        try:
            if str(database) != ":memory:":
                Path(database).parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(database), check_same_thread=False)
            conn.execute(_SCHEMA)
            conn.commit()
        except (sqlite3.Error, OSError) as e:
            raise CatalogError(f"Cannot open catalog {database}: {e}") from e
        return cls(conn)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        """Run a statement under the connection lock and commit."""
        try:
            with self._lock:
                cursor = self._conn.execute(sql, params)
                self._conn.commit()
                return cursor
        except sqlite3.Error as e:
            raise CatalogError(str(e)) from e

    def _fetch(self, sql: str, params: tuple = ()) -> list[tuple]:
        try:
            with self._lock:
                return self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise CatalogError(str(e)) from e

    def record(self, record: ArtifactRecord) -> None:
        """Append a discovery row."""
        if record.discovered_at is None:
            self._execute(
                "INSERT INTO builds (project_path, language, artifact_path, size_bytes) "
                "VALUES (?, ?, ?, ?)",
                (record.project_path, record.language, record.path, record.size_bytes),
            )
        else:
            self._execute(
                "INSERT INTO builds (project_path, language, build_time, artifact_path, size_bytes) "
                "VALUES (?, ?, ?, ?, ?)",
                (
                    record.project_path,
                    record.language,
                    _format_time(record.discovered_at),
                    record.path,
                    record.size_bytes,
                ),
            )

    def recent_artifact_paths(self, limit: int = 50) -> list[str]:
        """Distinct artifact paths, most recently discovered first."""
        rows = self._fetch(
            "SELECT artifact_path FROM builds GROUP BY artifact_path "
            "ORDER BY MAX(build_time) DESC, MAX(id) DESC LIMIT ?",
            (limit,),
        )
        return [row[0] for row in rows]

    def distinct_paths(self) -> set[str]:
        return {row[0] for row in self._fetch("SELECT DISTINCT artifact_path FROM builds")}

    def recent_builds(self, limit: int = 10) -> list[ArtifactRecord]:
        """Most recent discovery rows, newest first."""
        rows = self._fetch(
            "SELECT artifact_path, project_path, language, size_bytes, build_time "
            "FROM builds ORDER BY build_time DESC, id DESC LIMIT ?",
            (limit,),
        )
        return [
            ArtifactRecord(
                path=path,
                project_path=project,
                language=language,
                size_bytes=size or 0,
                discovered_at=_parse_time(build_time),
            )
            for path, project, language, size, build_time in rows
        ]

    def count(self) -> int:
        """Total number of discovery rows."""
        return int(self._fetch("SELECT COUNT(*) FROM builds")[0][0])

    def largest_artifacts(self, limit: int = 10) -> list[tuple[str, int]]:
        """Per-artifact maximum size, largest first."""
        rows = self._fetch(
            "SELECT artifact_path, MAX(size_bytes) AS size FROM builds "
            "GROUP BY artifact_path ORDER BY size DESC LIMIT ?",
            (limit,),
        )
        return [(path, int(size or 0)) for path, size in rows]

    def delete_artifact(self, path: str) -> int:
        """Delete every row for ``path``.

        Returns:
            Number of rows removed.

        """
        return self._execute("DELETE FROM builds WHERE artifact_path = ?", (path,)).rowcount

    def delete_all(self) -> int:
        return self._execute("DELETE FROM builds").rowcount

    def purge_older_than(self, days: int) -> int:
        """Delete rows discovered more than ``days`` days ago.

        Returns:
            Number of rows removed.

        """
        return self._execute(
            "DELETE FROM builds WHERE build_time < datetime('now', ?)",
            (f"-{int(days)} days",),
        ).rowcount
