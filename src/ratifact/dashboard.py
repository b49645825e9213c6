"""Interactive dashboard: event loop, key dispatch and deletion workflow."""

from __future__ import annotations

import asyncio
import logging
import signal
import subprocess
from pathlib import Path
from typing import TYPE_CHECKING

from rich.console import Console
from rich.live import Live

from . import view
from .catalog import CatalogError
from .keyboard import (
    KEY_DOWN,
    KEY_ENTER,
    KEY_PAGE_DOWN,
    KEY_PAGE_UP,
    KEY_TAB,
    KEY_UP,
    KeyReader,
)
from .languages import rebuild_command
from .logging_config import LOGGER_NAME
from .popup import (
    ACTION_DELETE,
    ACTION_REBUILD,
    CLOSED,
    PASSWORD_TITLE,
    RETENTION_TITLE,
    SCAN_PATH_KEY,
    ArtifactActionMenu,
    ClearAll,
    ClearAllConfirm,
    Command,
    ConfirmAction,
    DirBrowse,
    GenericConfirm,
    Info,
    LogsView,
    OpenDirBrowse,
    OpenInput,
    Popup,
    Progress,
    RequestDelete,
    RequestRebuild,
    ScanningView,
    SetValue,
    SettingsList,
    TextInput,
    ToggleRemoval,
)
from .remover import CLEAR_ALL, DELETE_ONE, ArtifactRemover, PendingPrivilegedAction
from .scanner import Scanner, ScanInProgressError
from .telemetry import LogSink
from .watcher import ArtifactWatcher

if TYPE_CHECKING:
    from .catalog import ArtifactCatalog
    from .config import AppConfig
    from .scanner import ScanHandle

PANEL_COUNT = 5
ARTIFACTS_PANEL = 0
CHARTS_PANEL = 2
SETTINGS_PANEL = 3

RECENT_ARTIFACT_LIMIT = 50
HISTORY_LIMIT = 10
CHART_LIMIT = 10

# Seconds the loop waits for a key before re-rendering
POLL_INTERVAL = 0.1

QUIT_KEY = "q"
CLEAR_ALL_KEY = "D"


class Dashboard:
    """Owns the scanner, watcher, catalog and popup state of one session."""

    def __init__(
        self,
        config: AppConfig,
        catalog: ArtifactCatalog,
        *,
        config_path: Path | None = None,
        logger: logging.Logger | None = None,
        remover: ArtifactRemover | None = None,
    ) -> None:
        """Initialize the dashboard.

        Args:
            config: Application configuration; saved on every mutation.
            catalog: Open artifact catalog.
            config_path: Where to save the configuration. Uses default if None.
            logger: Logger instance.
            remover: Artifact remover; created if None.

        """
        self.config = config
        self.config_path = config_path
        self.catalog = catalog
        self.logger = logger or logging.getLogger(LOGGER_NAME)

        # Components
        self.sink = LogSink(config.log_buffer_size)
        self.watcher = ArtifactWatcher(config, self.sink, self.logger)
        self.scanner = Scanner(catalog, self.watcher, self.sink, self.logger)
        self.remover = remover or ArtifactRemover(self.logger)

        # State
        self.popup: Popup = CLOSED
        self.artifacts: list[str] = []
        self.selected = 0
        self.focused_panel = ARTIFACTS_PANEL
        self.chart_selected = 0
        self.build_history: list[str] = []
        self.total_builds = 0
        self.chart_data: list[tuple[str, int]] = []
        self.pending_action: PendingPrivilegedAction | None = None
        self.should_quit = False
        self._scan: ScanHandle | None = None

    # -- lifecycle ----------------------------------------------------------

    async def start(self) -> None:
        """Start watching and load catalog state. Needs a running event loop."""
        self.watcher.start()
        if self.config.automatic_removal:
            self.purge_expired()
        self.load_artifacts()
        self.load_history()

    async def shutdown(self) -> None:
        if self._scan is not None and not self._scan.done():
            self._scan.cancel()
        self._scan = None
        self.watcher.stop()

    async def run(self) -> None:
        """Run the render/input loop until the operator quits."""
        await self.start()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._handle_shutdown)

        console = Console()
        try:
            with (
                KeyReader() as keys,
                Live(view.render(self), console=console, screen=True, auto_refresh=False) as live,
            ):
                while not self.should_quit:
                    live.update(view.render(self), refresh=True)
                    key = await asyncio.to_thread(keys.read_key, POLL_INTERVAL)
                    if key is not None:
                        await self.handle_key(key)
                    await self.poll_scan()
        finally:
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.remove_signal_handler(sig)
            await self.shutdown()

    def _handle_shutdown(self) -> None:
        self.logger.info("Shutdown signal received")
        self.should_quit = True

    # -- catalog-backed state ----------------------------------------------

    def load_artifacts(self) -> None:
        """Load recently cataloged artifacts and watch them."""
        try:
            paths = self.catalog.recent_artifact_paths(RECENT_ARTIFACT_LIMIT)
        except CatalogError as e:
            self.logger.warning("Failed to load artifacts: %s", e)
            paths = []

        self.artifacts = paths
        for path in paths:
            self.watcher.register(path)
        self._clamp_selection()

    def load_history(self) -> None:
        """Refresh the history, total count and chart panels."""
        try:
            self.build_history = [
                f"{record.project_path} - {record.language} - "
                f"{record.discovered_at.strftime('%Y-%m-%d %H:%M') if record.discovered_at else '?'}"
                for record in self.catalog.recent_builds(HISTORY_LIMIT)
            ]
        except CatalogError as e:
            self.logger.warning("Failed to load history: %s", e)
            self.build_history = ["Failed to load history"]

        try:
            self.total_builds = self.catalog.count()
        except CatalogError:
            self.total_builds = 0

        try:
            self.chart_data = self.catalog.largest_artifacts(CHART_LIMIT)
        except CatalogError:
            self.chart_data = []
        self.chart_selected = min(self.chart_selected, max(len(self.chart_data) - 1, 0))

    def purge_expired(self) -> int:
        """Delete catalog rows older than the retention period.

        Returns:
            Number of rows removed.

        """
        days = self.config.retention_days
        try:
            removed = self.catalog.purge_older_than(days)
            remaining = self.catalog.distinct_paths()
        except CatalogError as e:
            self.logger.warning("Retention purge failed: %s", e)
            return 0

        if removed:
            self.logger.info("Purged %d catalog rows older than %d days", removed, days)
            self.sink.append(f"Purged {removed} catalog rows older than {days} days")

        for path in [p for p in self.artifacts if p not in remaining]:
            self.artifacts.remove(path)
            self.watcher.unregister(path)
        self._clamp_selection()
        return removed

    def _clamp_selection(self) -> None:
        if not self.artifacts:
            self.selected = 0
        elif self.selected >= len(self.artifacts):
            self.selected = len(self.artifacts) - 1

    def _forget(self, paths: list[str]) -> None:
        """Drop artifacts from the list, the catalog and the watcher."""
        if not paths:
            return
        for path in paths:
            try:
                self.catalog.delete_artifact(path)
            except CatalogError as e:
                self.logger.warning("Failed to remove %s from catalog: %s", path, e)
            self.watcher.unregister(path)
        gone = set(paths)
        self.artifacts = [a for a in self.artifacts if a not in gone]
        self._clamp_selection()
        self.load_history()

    def save_config(self) -> None:
        try:
            self.config.save(self.config_path)
        except OSError as e:
            self.logger.error("Failed to save config: %s", e)
            self.sink.append(f"Failed to save config: {e}")

    # -- scanning -----------------------------------------------------------

    def trigger_scan(self) -> bool:
        """Start a background scan of the configured roots.

        Returns:
            True if a scan started, False if one was already running.

        """
        try:
            self._scan = self.scanner.begin_scan(
                self.config.effective_scan_roots,
                self.config.excluded_paths,
            )
        except ScanInProgressError:
            self.popup = Info("Scan already in progress.")
            return False

        self.popup = ScanningView()
        return True

    async def poll_scan(self) -> None:
        """Apply the scan result once the running scan has finished."""
        if self._scan is None or not self._scan.done():
            return

        handle, self._scan = self._scan, None
        self.apply_scan_result(await handle.result())

    async def wait_for_scan(self) -> None:
        """Block until the running scan finishes and its result is applied."""
        if self._scan is not None:
            await self._scan.result()
        await self.poll_scan()

    def apply_scan_result(self, found: list[str]) -> None:
        """Replace the artifact list with a scan result.

        Listed paths that were not rediscovered stay listed while they still
        exist on disk; vanished ones are forgotten everywhere.
        """
        found_set = set(found)
        kept: list[str] = []
        vanished: list[str] = []
        for path in self.artifacts:
            if path in found_set:
                continue
            (kept if Path(path).exists() else vanished).append(path)

        self.artifacts = list(found) + kept
        self._forget(vanished)
        self._clamp_selection()

        if isinstance(self.popup, ScanningView):
            self.popup = CLOSED
        self.load_history()

    # -- key dispatch -------------------------------------------------------

    async def handle_key(self, key: str) -> None:
        """Dispatch one key press.

        Shift+D opens the clear-all confirmation unless text is being typed
        or a scan is running. Otherwise an open popup gets the key first, and
        only the quit key passes through it.
        """
        if key == CLEAR_ALL_KEY and not self.popup.captures_text and not self.scanner.is_scanning:
            self.popup = ClearAllConfirm()
            return

        if self.popup.active:
            await self._handle_popup_key(key)
            return

        await self._handle_main_key(key)

    async def _handle_popup_key(self, key: str) -> None:
        current = self.popup
        transition = current.handle_key(key)
        self.popup = transition.popup

        if transition.command is not None:
            await self.execute(transition.command)
            return

        if isinstance(current, TextInput) and current.is_password and not self.popup.active:
            # Password prompt cancelled
            self.pending_action = None
            return

        if key == QUIT_KEY and not current.captures_text:
            self.should_quit = True

    async def _handle_main_key(self, key: str) -> None:
        if key == QUIT_KEY:
            self.should_quit = True
        elif key == KEY_TAB:
            self.focused_panel = (self.focused_panel + 1) % PANEL_COUNT
        elif key == "s":
            self.trigger_scan()
        elif key == KEY_ENTER:
            if self.focused_panel == ARTIFACTS_PANEL:
                self.popup = ArtifactActionMenu()
            elif self.focused_panel == SETTINGS_PANEL:
                self.popup = SettingsList()
        elif key == "d":
            self.popup = GenericConfirm("Delete this artifact?", ACTION_DELETE)
        elif key == "r":
            self.rebuild_selected()
        elif key == "h":
            self.load_history()
        elif key == "e":
            self.popup = SettingsList()
        elif key == "l":
            self.popup = LogsView()
        elif key == "p":
            removed = self.purge_expired()
            self.load_history()
            self.popup = Info(
                f"Purged {removed} catalog rows older than {self.config.retention_days} days."
            )
        elif key in (KEY_UP, KEY_PAGE_UP):
            self._move_selection(-1)
        elif key in (KEY_DOWN, KEY_PAGE_DOWN):
            self._move_selection(1)

    def _move_selection(self, step: int) -> None:
        if self.focused_panel == ARTIFACTS_PANEL and self.artifacts:
            self.selected = min(max(self.selected + step, 0), len(self.artifacts) - 1)
        elif self.focused_panel == CHARTS_PANEL and self.chart_data:
            self.chart_selected = min(max(self.chart_selected + step, 0), len(self.chart_data) - 1)

    # -- commands -----------------------------------------------------------

    async def execute(self, command: Command) -> None:
        """Carry out a command emitted by a popup."""
        if isinstance(command, OpenInput):
            initial = str(self.config.retention_days) if command.title == RETENTION_TITLE else command.initial
            self.popup = TextInput(command.title, initial)
        elif isinstance(command, OpenDirBrowse):
            self.popup = DirBrowse.at(self._browse_start())
        elif isinstance(command, ToggleRemoval):
            self.config.automatic_removal = not self.config.automatic_removal
            self.save_config()
        elif isinstance(command, SetValue):
            await self._set_value(command.key, command.value)
        elif isinstance(command, RequestDelete):
            self.popup = GenericConfirm("Delete this artifact?", ACTION_DELETE)
        elif isinstance(command, RequestRebuild):
            self.popup = GenericConfirm("Rebuild this project?", ACTION_REBUILD)
        elif isinstance(command, ClearAll):
            await self.clear_all()
        elif isinstance(command, ConfirmAction):
            if command.action == ACTION_DELETE:
                await self.delete_selected()
            elif command.action == ACTION_REBUILD:
                if self.rebuild_selected():
                    self.popup = Progress("Rebuilding project...")
                else:
                    self.popup = Info("No rebuild started. See logs (l).")

    def _browse_start(self) -> Path:
        roots = self.config.effective_scan_roots
        if roots and roots[0].expanduser().is_dir():
            return roots[0].expanduser()
        return Path.home()

    async def _set_value(self, key: str, value: str) -> None:
        if key == RETENTION_TITLE:
            try:
                days = int(value.strip())
            except ValueError:
                self.logger.info("Ignoring invalid retention days: %r", value)
                return
            if days < 0:
                return
            self.config.retention_days = days
            self.save_config()
        elif key == SCAN_PATH_KEY:
            self.config.scan_roots = [Path(value)]
            self.save_config()
        elif key == PASSWORD_TITLE:
            await self._submit_password(value)

    # -- deletion workflow --------------------------------------------------

    async def delete_selected(self) -> None:
        """Delete the selected artifact, asking for sudo if needed."""
        self.popup = CLOSED
        if not self.artifacts:
            return

        path = self.artifacts[self.selected]
        result = await asyncio.to_thread(self.remover.remove, Path(path))

        if result.success:
            self._forget([path])
            self.sink.append(f"Deleted artifact: {path}")
            self.popup = Info("Artifact deleted.")
        elif result.action == "needs_privilege":
            self.pending_action = PendingPrivilegedAction(DELETE_ONE, [path])
            self.popup = TextInput(PASSWORD_TITLE)
        # Refused directories are left untouched without a popup

    async def clear_all(self) -> None:
        """Delete every listed artifact, asking for sudo for the failures."""
        self.popup = CLOSED
        removed: list[str] = []
        failed: list[str] = []

        for path in list(self.artifacts):
            result = await asyncio.to_thread(self.remover.remove, Path(path))
            if result.success:
                removed.append(path)
            elif result.action == "needs_privilege":
                failed.append(path)

        self._forget(removed)

        if failed:
            self.pending_action = PendingPrivilegedAction(CLEAR_ALL, failed)
            self.popup = TextInput(PASSWORD_TITLE)
            return

        self._finish_clear_all()
        self.popup = Info("All builds cleared.")

    def _finish_clear_all(self) -> None:
        # Refused artifacts stay listed, so their rows must stay too
        if self.artifacts:
            return
        try:
            self.catalog.delete_all()
        except CatalogError as e:
            self.logger.warning("Failed to clear catalog: %s", e)
        self.load_history()
        self.sink.append("All builds cleared.")

    async def _submit_password(self, password: str) -> None:
        action, self.pending_action = self.pending_action, None
        if action is None:
            return

        succeeded: list[str] = []
        for path in action.paths:
            result = await asyncio.to_thread(self.remover.remove_privileged, Path(path), password)
            if not result.success:
                # A wrong password fails every remaining path too
                break
            succeeded.append(path)

        self._forget(succeeded)
        all_done = len(succeeded) == len(action.paths)

        if action.kind == DELETE_ONE:
            self.popup = Info("Artifact deleted with sudo." if all_done else "Sudo delete failed.")
        elif all_done:
            self._finish_clear_all()
            self.popup = Info("All builds cleared with sudo.")
        else:
            self.popup = Info("Some sudo deletes failed.")

    # -- rebuild ------------------------------------------------------------

    def rebuild_selected(self) -> bool:
        """Spawn the project's build tool for the selected artifact.

        Returns:
            True if a build process was started.

        """
        if not self.artifacts:
            return False

        project = Path(self.artifacts[self.selected]).parent
        command = rebuild_command(project)
        if command is None:
            self.sink.append(f"No build command for {project}")
            return False

        try:
            subprocess.Popen(
                command,
                cwd=project,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            self.logger.error("Failed to start %s in %s: %s", command[0], project, e)
            self.sink.append(f"Failed to start {' '.join(command)}: {e}")
            return False

        self.logger.info("Rebuild started in %s: %s", project, " ".join(command))
        self.sink.append(f"Rebuild started: {' '.join(command)} in {project}")
        return True
