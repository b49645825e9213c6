"""Filesystem watcher for discovered artifact directories."""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

if TYPE_CHECKING:
    from watchdog.events import FileSystemEvent
    from watchdog.observers.api import BaseObserver, ObservedWatch

    from .config import AppConfig
    from .telemetry import LogSink

# Access-only events (opened, closed, closed_no_write) are not changes
CHANGE_EVENT_TYPES = frozenset(
    {EVENT_TYPE_CREATED, EVENT_TYPE_MODIFIED, EVENT_TYPE_DELETED, EVENT_TYPE_MOVED}
)


class ArtifactEventHandler(FileSystemEventHandler):
    """Reports changes inside watched artifacts to the log buffer."""

    def __init__(self, config: AppConfig, sink: LogSink, logger: logging.Logger) -> None:
        """Initialize the event handler.

        Args:
            config: Application configuration; ``debug_logs_enabled`` is read
                on every event so toggling it takes effect immediately.
            sink: Log buffer to append change lines to.
            logger: Logger instance.

        """
        super().__init__()
        self.config = config
        self.sink = sink
        self.logger = logger

    def on_any_event(self, event: FileSystemEvent) -> None:
        """Handle every event type delivered by the observer.

        Args:
            event: File system event.

        """
        if event.event_type not in CHANGE_EVENT_TYPES:
            return
        if not self.config.debug_logs_enabled:
            return

        raw_path = event.dest_path if event.event_type == EVENT_TYPE_MOVED else event.src_path
        path = os.fsdecode(raw_path)
        self.logger.debug("Build change detected: %s %s", event.event_type, path)
        self.sink.append(f"Build change detected: {event.event_type} {path}")


@dataclass(frozen=True)
class _WatchRequest:
    action: str  # "register" or "unregister"
    path: str


class ArtifactWatcher:
    """Owns the single watchdog observer for all registered artifacts.

    Callers never touch the observer. ``register`` and ``unregister`` only
    enqueue a request; an owner task started by :meth:`start` applies the
    requests one at a time.
    """

    def __init__(self, config: AppConfig, sink: LogSink, logger: logging.Logger) -> None:
        """Initialize the watcher.

        Args:
            config: Application configuration.
            sink: Log buffer shared with the dashboard.
            logger: Logger instance.

        """
        self.config = config
        self.logger = logger
        self._handler = ArtifactEventHandler(config, sink, logger)
        self._observer: BaseObserver | None = None
        self._owner: asyncio.Task[None] | None = None
        self._requests: asyncio.Queue[_WatchRequest] = asyncio.Queue()
        self._watches: dict[str, ObservedWatch] = {}

    def start(self) -> None:
        """Start the observer and its owner task. Needs a running event loop."""
        if self._observer is not None:
            return

        self._observer = Observer()
        self._observer.start()
        self._owner = asyncio.get_running_loop().create_task(self._serve())
        self.logger.info("Artifact watcher started")

    def stop(self) -> None:
        """Stop the owner task and the observer."""
        if self._owner is not None:
            self._owner.cancel()
            self._owner = None
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5.0)
            self._observer = None
            self._watches.clear()
            self.logger.info("Artifact watcher stopped")

    @property
    def is_running(self) -> bool:
        return self._observer is not None

    @property
    def registered_paths(self) -> frozenset[str]:
        """Paths the observer currently watches."""
        return frozenset(self._watches)

    def register(self, path: str | Path) -> None:
        """Request a recursive watch on ``path``. Repeat requests are no-ops."""
        self._requests.put_nowait(_WatchRequest("register", str(path)))

    def unregister(self, path: str | Path) -> None:
        """Request removal of the watch on ``path``, if any."""
        self._requests.put_nowait(_WatchRequest("unregister", str(path)))

    async def join(self) -> None:
        """Wait until every queued request has been applied."""
        if self._owner is None:
            return
        await self._requests.join()

    async def _serve(self) -> None:
        while True:
            request = await self._requests.get()
            try:
                await self._apply(request)
            finally:
                self._requests.task_done()

    async def _apply(self, request: _WatchRequest) -> None:
        observer = self._observer
        if observer is None:
            return

        if request.action == "register":
            if request.path in self._watches:
                return
            # Recursive setup walks the whole tree, so it runs off the loop thread
            try:
                watch = await asyncio.to_thread(
                    observer.schedule, self._handler, request.path, recursive=True
                )
            except OSError as e:
                # Unwatched artifacts stay listed and cataloged
                self.logger.debug("Cannot watch %s: %s", request.path, e)
                return
            if self._observer is observer:
                self._watches[request.path] = watch
            return

        watch = self._watches.pop(request.path, None)
        if watch is None:
            return
        try:
            await asyncio.to_thread(observer.unschedule, watch)
        except (KeyError, OSError) as e:
            self.logger.debug("Cannot unwatch %s: %s", request.path, e)
