"""Tests for artifact discovery and the single-flight scanner."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from ratifact.catalog import ArtifactCatalog, CatalogError
from ratifact.scanner import (
    Scanner,
    ScanInProgressError,
    calculate_dir_size,
    find_artifact_dirs,
    format_size,
)
from ratifact.telemetry import LogSink


@pytest.fixture
def catalog() -> Iterator[ArtifactCatalog]:
    """Create an in-memory catalog."""
    cat = ArtifactCatalog.open(":memory:")
    yield cat
    cat.close()


@pytest.fixture
def sink() -> LogSink:
    """Create log buffer."""
    return LogSink(100)


@pytest.fixture
def watcher() -> MagicMock:
    """Create a stand-in watcher that records registrations."""
    return MagicMock()


@pytest.fixture
def scanner(catalog: ArtifactCatalog, watcher: MagicMock, sink: LogSink) -> Scanner:
    """Create scanner."""
    return Scanner(catalog, watcher, sink, logging.getLogger("test-scanner"))


@pytest.fixture
def projects(tmp_path: Path) -> Path:
    """Create a Rust project and a JavaScript project with build output."""
    rust = tmp_path / "proj"
    (rust / "target").mkdir(parents=True)
    (rust / "Cargo.toml").write_text("[package]\n")
    (rust / "target" / "app").write_bytes(b"\0" * 500_000)

    js = tmp_path / "proj2"
    (js / "node_modules").mkdir(parents=True)
    (js / "package.json").write_text("{}")
    (js / "node_modules" / "index.js").write_bytes(b"\0" * 10_000)
    return tmp_path


def _messages(sink: LogSink) -> list[str]:
    return [line.split("] ", 1)[1] for line in sink.snapshot()]


class TestFormatSize:
    """Tests for format_size."""

    @pytest.mark.parametrize(
        "size,expected",
        [
            (0, "0 B"),
            (999, "999 B"),
            (1000, "1.0 KB"),
            (500_000, "500.0 KB"),
            (1_500_000, "1.5 MB"),
            (2_000_000_000, "2.0 GB"),
        ],
    )
    def test_format_size(self, size: int, expected: str) -> None:
        """Test human-readable sizes."""
        assert format_size(size) == expected


class TestFindArtifactDirs:
    """Tests for find_artifact_dirs."""

    def test_finds_artifacts(self, projects: Path) -> None:
        """Test discovery of known artifact directory names."""
        found = list(find_artifact_dirs(projects))
        assert found == [projects / "proj" / "target", projects / "proj2" / "node_modules"]

    def test_depth_bound(self, tmp_path: Path) -> None:
        """Test that artifacts deeper than the bound are not reported."""
        (tmp_path / "a" / "b" / "target").mkdir(parents=True)
        (tmp_path / "a" / "b" / "c" / "build").mkdir(parents=True)

        found = list(find_artifact_dirs(tmp_path, max_depth=3))

        assert found == [tmp_path / "a" / "b" / "target"]

    def test_nested_matches_reported(self, tmp_path: Path) -> None:
        """Test that artifacts inside another artifact are reported too."""
        (tmp_path / "proj" / "build" / "Release").mkdir(parents=True)
        (tmp_path / "proj" / "build" / "Debug").mkdir(parents=True)

        found = list(find_artifact_dirs(tmp_path))

        assert found == [
            tmp_path / "proj" / "build",
            tmp_path / "proj" / "build" / "Debug",
            tmp_path / "proj" / "build" / "Release",
        ]

    def test_nested_matches_respect_depth(self, tmp_path: Path) -> None:
        """Test that descending into a match stops at the depth bound."""
        (tmp_path / "proj" / "node_modules" / "dep" / "dist").mkdir(parents=True)

        found = list(find_artifact_dirs(tmp_path))

        assert found == [tmp_path / "proj" / "node_modules"]

    def test_root_is_reported(self, tmp_path: Path) -> None:
        """Test that a root named like an artifact is itself a match."""
        root = tmp_path / "build"
        (root / "src").mkdir(parents=True)
        (root / "Release").mkdir()

        assert list(find_artifact_dirs(root)) == [root, root / "Release"]

    def test_excluded_subtree(self, projects: Path) -> None:
        """Test that excluded paths are pruned."""
        found = list(find_artifact_dirs(projects, excluded=[projects / "proj2"]))
        assert found == [projects / "proj" / "target"]

    def test_symlinks_skipped(self, tmp_path: Path) -> None:
        """Test that symlinked directories are not followed or reported."""
        real = tmp_path / "real" / "target"
        real.mkdir(parents=True)
        (tmp_path / "link").mkdir()
        (tmp_path / "link" / "target").symlink_to(real)

        found = list(find_artifact_dirs(tmp_path))

        assert found == [real]

    def test_missing_root(self, tmp_path: Path) -> None:
        """Test that a nonexistent root yields nothing."""
        assert list(find_artifact_dirs(tmp_path / "missing")) == []


class TestCalculateDirSize:
    """Tests for calculate_dir_size."""

    def test_sums_regular_files(self, tmp_path: Path) -> None:
        """Test that nested file sizes are summed."""
        (tmp_path / "sub").mkdir()
        (tmp_path / "a").write_bytes(b"x" * 10)
        (tmp_path / "sub" / "b").write_bytes(b"x" * 5)
        (tmp_path / "link").symlink_to(tmp_path / "a")

        assert calculate_dir_size(tmp_path) == 15


class TestScanner:
    """Tests for Scanner."""

    @pytest.mark.asyncio
    async def test_scan_catalogs_and_watches(
        self,
        scanner: Scanner,
        catalog: ArtifactCatalog,
        watcher: MagicMock,
        sink: LogSink,
        projects: Path,
    ) -> None:
        """Test a full scan of two projects."""
        target = str(projects / "proj" / "target")
        modules = str(projects / "proj2" / "node_modules")

        result = await scanner.begin_scan([projects]).result()

        assert result == [target, modules]

        records = {r.path: r for r in catalog.recent_builds(10)}
        assert records[target].language == "Rust"
        assert records[target].size_bytes == 500_000
        assert records[target].project_path == str(projects / "proj")
        assert records[modules].language == "JavaScript"
        assert records[modules].size_bytes == 10_000

        registered = [c.args[0] for c in watcher.register.call_args_list]
        assert registered == [target, modules]

        assert _messages(sink) == [
            "Starting scan...",
            f"Scanning path: {projects}",
            f"Found Rust artifact: {target} (500.0 KB)",
            f"Found JavaScript artifact: {modules} (10.0 KB)",
            f"Scan complete for {projects}. Found 2 artifacts.",
            "Total scan complete. Found 2 artifacts.",
        ]

    @pytest.mark.asyncio
    async def test_second_scan_rejected(self, scanner: Scanner, sink: LogSink, projects: Path) -> None:
        """Test that only one scan runs at a time."""
        handle = scanner.begin_scan([projects])
        before = sink.snapshot()

        assert scanner.is_scanning
        with pytest.raises(ScanInProgressError):
            scanner.begin_scan([projects])

        assert sink.snapshot() == before
        await handle.result()
        assert not scanner.is_scanning

    @pytest.mark.asyncio
    async def test_new_scan_after_finish(self, scanner: Scanner, projects: Path) -> None:
        """Test that a finished scan does not block the next one."""
        await scanner.begin_scan([projects]).result()
        second = await scanner.begin_scan([projects]).result()

        assert len(second) == 2
        assert scanner.catalog.count() == 4

    @pytest.mark.asyncio
    async def test_result_awaitable_twice(self, scanner: Scanner, projects: Path) -> None:
        """Test that the result can be awaited again after completion."""
        handle = scanner.begin_scan([projects])
        first = await handle.result()
        second = await handle.result()

        assert first == second
        assert handle.done()
        assert await scanner.wait_for_result() == first

    @pytest.mark.asyncio
    async def test_wait_without_scan(self, scanner: Scanner) -> None:
        """Test waiting when no scan was ever started."""
        assert await scanner.wait_for_result() is None
        assert scanner.current is None

    @pytest.mark.asyncio
    async def test_duplicate_roots_deduplicated(self, scanner: Scanner, projects: Path) -> None:
        """Test that overlapping roots report each artifact once."""
        result = await scanner.begin_scan([projects, projects / "proj"]).result()

        assert result == [str(projects / "proj" / "target"), str(projects / "proj2" / "node_modules")]

    @pytest.mark.asyncio
    async def test_excluded_paths(self, scanner: Scanner, projects: Path) -> None:
        """Test that excluded subtrees are skipped during a scan."""
        result = await scanner.begin_scan([projects], [projects / "proj"]).result()

        assert result == [str(projects / "proj2" / "node_modules")]

    @pytest.mark.asyncio
    async def test_catalog_failure_skips_watch(
        self, watcher: MagicMock, sink: LogSink, projects: Path
    ) -> None:
        """Test that an artifact that cannot be recorded is listed but not watched."""
        catalog = MagicMock()
        catalog.record.side_effect = CatalogError("database is locked")
        scanner = Scanner(catalog, watcher, sink, logging.getLogger("test-scanner"))

        result = await scanner.begin_scan([projects]).result()

        assert len(result) == 2
        watcher.register.assert_not_called()
        assert any(m.startswith("Failed to record") for m in _messages(sink))

    @pytest.mark.asyncio
    async def test_catalog_write_off_loop_thread(
        self, watcher: MagicMock, sink: LogSink, projects: Path
    ) -> None:
        """Test that catalog writes happen in a worker thread."""
        threads: list[int] = []
        catalog = MagicMock()
        catalog.record.side_effect = lambda _record: threads.append(threading.get_ident())
        scanner = Scanner(catalog, watcher, sink, logging.getLogger("test-scanner"))

        await scanner.begin_scan([projects]).result()

        assert len(threads) == 2
        assert threading.get_ident() not in threads

    @pytest.mark.asyncio
    async def test_session_keeps_records(self, scanner: Scanner, projects: Path) -> None:
        """Test that the scan session holds the record written for each artifact."""
        target = str(projects / "proj" / "target")

        handle = scanner.begin_scan([projects])
        await handle.result()

        record = handle.session.found[target]
        assert record.language == "Rust"
        assert record.size_bytes == 500_000
        assert record.project_path == str(projects / "proj")
