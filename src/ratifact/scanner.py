"""Single-flight background scan for build artifact directories."""

from __future__ import annotations

import asyncio
import logging
import os
import stat
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from .catalog import ArtifactRecord, CatalogError
from .languages import detect_language

if TYPE_CHECKING:
    from .catalog import ArtifactCatalog
    from .telemetry import LogSink
    from .watcher import ArtifactWatcher

# Levels below a scan root that are still inspected
MAX_SCAN_DEPTH = 3

ARTIFACT_DIR_NAMES: frozenset[str] = frozenset({
    "target",
    "build",
    ".build",
    "node_modules",
    "__pycache__",
    "dist",
    "out",
    "vendor",
    "cmake-build-debug",
    "cmake-build-release",
    "Debug",
    "Release",
})


class ScanInProgressError(RuntimeError):
    """Raised when a scan is requested while another one is running."""


def format_size(size_bytes: int) -> str:
    """Human-readable byte count (``1.5 MB``)."""
    if size_bytes < 1000:
        return f"{size_bytes} B"
    size = float(size_bytes)
    for unit in ("KB", "MB", "GB"):
        size /= 1000
        if size < 1000:
            break
    return f"{size:.1f} {unit}"


def _is_excluded(path: Path, excluded: Sequence[Path]) -> bool:
    return any(path == ex or ex in path.parents for ex in excluded)


def find_artifact_dirs(
    root: Path,
    max_depth: int = MAX_SCAN_DEPTH,
    excluded: Sequence[Path] = (),
) -> Iterator[Path]:
    """Yield artifact directories at or below ``root``.

    Every matching directory within the depth bound is reported, including
    the root itself and matches nested inside other matches
    (``build/Release``). Unreadable directories are skipped.

    Args:
        root: Directory to walk.
        max_depth: Deepest level below ``root`` that is inspected.
        excluded: Subtrees to prune.

    Yields:
        Paths of matching directories, in walk order.

    """
    root = Path(root)
    excluded = [Path(p) for p in excluded]
    if _is_excluded(root, excluded):
        return
    if root.name in ARTIFACT_DIR_NAMES and root.is_dir():
        yield root

    for dirpath, dirnames, _filenames in os.walk(root, onerror=lambda _e: None):
        current = Path(dirpath)
        depth = len(current.relative_to(root).parts)

        kept: list[str] = []
        for name in sorted(dirnames):
            child = current / name
            if _is_excluded(child, excluded) or child.is_symlink():
                continue
            if name in ARTIFACT_DIR_NAMES:
                yield child
            if depth + 1 < max_depth:
                kept.append(name)
        dirnames[:] = kept


def calculate_dir_size(path: Path) -> int:
    """Sum the sizes of regular files under ``path``, skipping unreadable ones."""
    total = 0
    for dirpath, _dirnames, filenames in os.walk(path, onerror=lambda _e: None):
        for name in filenames:
            try:
                st = os.lstat(os.path.join(dirpath, name))
            except OSError:
                continue
            if stat.S_ISREG(st.st_mode):
                total += st.st_size
    return total


@dataclass
class ScanSession:
    """State owned by one in-flight scan."""

    roots: list[Path]
    excluded: list[Path]
    sink: LogSink
    found: dict[str, ArtifactRecord] = field(default_factory=dict)

    def add(self, record: ArtifactRecord) -> None:
        self.found[record.path] = record

    @property
    def paths(self) -> list[str]:
        return list(self.found)


class ScanHandle:
    """Awaitable result of one scan.

    The result can be awaited any number of times, before or after the
    scan finishes.
    """

    def __init__(self, task: asyncio.Task[list[str]], session: ScanSession) -> None:
        self._task = task
        self.session = session

    def done(self) -> bool:
        return self._task.done()

    async def result(self) -> list[str]:
        """Wait for and return the de-duplicated artifact paths."""
        return list(await asyncio.shield(self._task))

    def cancel(self) -> None:
        self._task.cancel()


class Scanner:
    """Walks scan roots, catalogs artifacts and registers them for watching."""

    def __init__(
        self,
        catalog: ArtifactCatalog,
        watcher: ArtifactWatcher,
        sink: LogSink,
        logger: logging.Logger,
        max_depth: int = MAX_SCAN_DEPTH,
    ) -> None:
        """Initialize the scanner.

        Args:
            catalog: Catalog receiving one row per discovered artifact.
            watcher: Watcher every discovered artifact is registered with.
            sink: Log buffer for progress lines.
            logger: Logger instance.
            max_depth: Depth bound below each root.

        """
        self.catalog = catalog
        self.watcher = watcher
        self.sink = sink
        self.logger = logger
        self.max_depth = max_depth
        self._current: ScanHandle | None = None

    @property
    def is_scanning(self) -> bool:
        return self._current is not None and not self._current.done()

    @property
    def current(self) -> ScanHandle | None:
        """Handle of the latest scan, finished or not."""
        return self._current

    def begin_scan(
        self,
        roots: Sequence[Path | str],
        excluded: Sequence[Path | str] = (),
    ) -> ScanHandle:
        """Start a scan in the background.

        Args:
            roots: Directories to walk; empty means the current directory.
            excluded: Subtrees to skip.

        Returns:
            Handle resolving to the discovered artifact paths.

        Raises:
            ScanInProgressError: If a scan is already running.

        """
        if self.is_scanning:
            raise ScanInProgressError("Scan already in progress")

        session = ScanSession(
            roots=[Path(r).expanduser().absolute() for r in roots] or [Path(".").absolute()],
            excluded=[Path(p).expanduser().absolute() for p in excluded],
            sink=self.sink,
        )
        task = asyncio.get_running_loop().create_task(self._run(session))
        self._current = ScanHandle(task, session)
        return self._current

    async def wait_for_result(self) -> list[str] | None:
        """Result of the latest scan, or None if no scan was ever started."""
        if self._current is None:
            return None
        return await self._current.result()

    async def _run(self, session: ScanSession) -> list[str]:
        session.sink.append("Starting scan...")
        self.logger.info("Scan started: %s", ", ".join(str(r) for r in session.roots))
        total = 0

        for root in session.roots:
            session.sink.append(f"Scanning path: {root}")
            matches = await asyncio.to_thread(self._discover, root, session.excluded)
            for artifact in matches:
                await self._process_artifact(session, artifact)
            total += len(matches)
            session.sink.append(f"Scan complete for {root}. Found {len(matches)} artifacts.")

        session.sink.append(f"Total scan complete. Found {total} artifacts.")
        self.logger.info("Scan finished: %d artifacts", total)
        return session.paths

    def _discover(self, root: Path, excluded: Sequence[Path]) -> list[Path]:
        return list(find_artifact_dirs(root, self.max_depth, excluded))

    async def _process_artifact(self, session: ScanSession, artifact: Path) -> None:
        project = artifact.parent
        language = detect_language(project)
        size = await asyncio.to_thread(calculate_dir_size, artifact)
        path = str(artifact)
        record = ArtifactRecord(
            path=path,
            project_path=str(project),
            language=language,
            size_bytes=size,
        )

        try:
            await asyncio.to_thread(self.catalog.record, record)
        except CatalogError as e:
            # Still listed, but only cataloged artifacts get watched
            self.logger.warning("Failed to record %s: %s", path, e)
            session.sink.append(f"Failed to record {path}: {e}")
        else:
            self.watcher.register(path)
        session.add(record)
        session.sink.append(f"Found {language} artifact: {path} ({format_size(size)})")
