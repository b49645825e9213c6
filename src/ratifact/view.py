"""Rich rendering of the dashboard state."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from rich.align import Align
from rich.console import Group, RenderableType
from rich.layout import Layout
from rich.panel import Panel
from rich.style import Style
from rich.table import Table
from rich.text import Text

from .popup import (
    ARTIFACT_ACTIONS,
    SETTINGS_OPTIONS,
    ArtifactActionMenu,
    ClearAllConfirm,
    DirBrowse,
    GenericConfirm,
    Info,
    LogsView,
    Popup,
    Progress,
    ScanningView,
    SettingsList,
    TextInput,
)
from .scanner import format_size

if TYPE_CHECKING:
    from .dashboard import Dashboard

PANEL_TITLES = ("📦 Artifacts", "📜 History", "📊 Charts", "⚙️ Settings", "🏠 Summary")

LOG_TAIL_LINES = 20
BAR_WIDTH = 25

FOOTER_TEXT = (
    "Tab: Focus Panel | s: Scan | h: Load History | ↑↓: Navigate | d: Delete | r: Rebuild"
    " | e: Edit Settings | l: Logs | p: Purge | Shift+D: Clear All | q: Quit"
)

STYLE_FOCUSED = Style(color="yellow")
STYLE_SELECTED = Style(bgcolor="blue", color="black")
STYLE_HIGHLIGHT = Style(color="yellow", bold=True)
STYLE_DIM = Style(color="bright_black")

CHART_COLORS = ("red", "green", "blue", "yellow", "magenta", "cyan", "white")


def artifact_color(path: str) -> str:
    name = Path(path).name
    if name == "target":
        return "green"
    if name == "node_modules":
        return "blue"
    if name == "__pycache__":
        return "yellow"
    if "build" in name:
        return "red"
    return "white"


def _panel(content: RenderableType, index: int, focused: int) -> Panel:
    return Panel(
        content,
        title=PANEL_TITLES[index],
        border_style=STYLE_FOCUSED if index == focused else Style(),
        padding=(0, 1),
    )


def _make_artifacts(dashboard: Dashboard) -> Panel:
    focused = dashboard.focused_panel == 0
    if not dashboard.artifacts:
        return _panel(Text("No artifacts. Press s to scan.", style=STYLE_DIM), 0, dashboard.focused_panel)

    if focused:
        start, count = 0, len(dashboard.artifacts)
    else:
        start, count = max(dashboard.selected - 2, 0), 3

    lines = []
    for index, path in enumerate(dashboard.artifacts[start : start + count], start=start):
        style = STYLE_SELECTED if focused and index == dashboard.selected else Style(color=artifact_color(path))
        lines.append(Text(f"📁 {path}", style=style, overflow="ellipsis", no_wrap=True))
    return _panel(Group(*lines), 0, dashboard.focused_panel)


def _make_history(dashboard: Dashboard) -> Panel:
    text = Text("\n".join(dashboard.build_history) or "No builds recorded", no_wrap=True)
    return _panel(text, 1, dashboard.focused_panel)


def _make_charts(dashboard: Dashboard) -> Panel:
    if not dashboard.chart_data:
        return _panel(Text("No data", style=STYLE_DIM), 2, dashboard.focused_panel)

    max_size = max(size for _, size in dashboard.chart_data) or 1
    roots = [str(r).rstrip("/") + "/" for r in dashboard.config.scan_roots]
    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column("Artifact", no_wrap=True)
    table.add_column("Bar", no_wrap=True)
    table.add_column("Size", justify="right", no_wrap=True)

    for index, (path, size) in enumerate(dashboard.chart_data):
        name = next((path[len(r) :] for r in roots if path.startswith(r)), path)
        if len(name) > 20:
            name = name[:17] + "..."
        focused_row = dashboard.focused_panel == 2 and index == dashboard.chart_selected
        style = STYLE_SELECTED if focused_row else Style(color=CHART_COLORS[index % len(CHART_COLORS)])
        table.add_row(
            Text(name, style=style),
            Text("█" * (size * BAR_WIDTH // max_size), style=style),
            Text(format_size(size), style=style),
        )
    return _panel(table, 2, dashboard.focused_panel)


def _make_settings(dashboard: Dashboard) -> Panel:
    config = dashboard.config
    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column("Key", style="bold blue")
    table.add_column("Value")
    table.add_row("Database", str(config.database_path))
    table.add_row("Paths", ", ".join(str(p) for p in config.scan_roots) or ".")
    table.add_row("Retention Days", str(config.retention_days))
    table.add_row("Automatic Removal", "Enabled" if config.automatic_removal else "Disabled")
    table.add_row("Debug Logs", "Enabled" if config.debug_logs_enabled else "Disabled")
    return _panel(table, 3, dashboard.focused_panel)


def _make_summary(dashboard: Dashboard) -> Panel:
    scanning = "Running" if dashboard.scanner.is_scanning else "Idle"
    watcher = "Running" if dashboard.watcher.is_running else "Stopped"
    text = Text(
        f"🏗️ Total Builds: {dashboard.total_builds}\n"
        f"📦 Artifacts: {len(dashboard.artifacts)}\n"
        f"🔍 Scan: {scanning}\n"
        f"⚡ Watcher: {watcher} ({len(dashboard.watcher.registered_paths)} paths)"
    )
    return _panel(text, 4, dashboard.focused_panel)


def _options(options: tuple[str, ...], selected: int) -> Group:
    return Group(
        *(
            Text(option, style=STYLE_HIGHLIGHT if index == selected else Style())
            for index, option in enumerate(options)
        )
    )


def render_popup(popup: Popup, dashboard: Dashboard) -> Panel | None:
    """Panel for the active popup, or None when no popup is open."""
    if isinstance(popup, SettingsList):
        return Panel(_options(SETTINGS_OPTIONS, popup.selected), title="Settings (↑↓ Enter Esc)", width=40)
    if isinstance(popup, TextInput):
        return Panel(
            Text(f"{popup.title}: {popup.display_text}"),
            title="Edit (Enter: Apply, Esc: Cancel)",
            width=60,
        )
    if isinstance(popup, DirBrowse):
        lines = [
            Text(entry, style=STYLE_SELECTED if index == popup.selected else Style())
            for index, entry in enumerate(popup.entries)
        ]
        return Panel(
            Group(*lines),
            title=f"Browse: {popup.path}",
            subtitle="↑↓ Nav, Enter: Open, s: Select, Space: Select Current, Esc: Cancel",
            width=80,
        )
    if isinstance(popup, LogsView):
        lines = dashboard.sink.snapshot(LOG_TAIL_LINES)
        return Panel(Text("\n".join(lines) or "No logs yet"), title="📝 Logs (Esc)", width=100)
    if isinstance(popup, ScanningView):
        lines = dashboard.sink.snapshot(LOG_TAIL_LINES)
        return Panel(Text("\n".join(lines)), title="🔍 Scanning...", width=100)
    if isinstance(popup, ArtifactActionMenu):
        return Panel(_options(ARTIFACT_ACTIONS, popup.selected), title="Artifact Actions (↑↓ Enter Esc)", width=40)
    if isinstance(popup, ClearAllConfirm):
        return Panel(
            Text(
                "Are you sure you want to clear all builds?\n"
                "This will delete all artifacts from the filesystem.\n"
                "(y: Confirm, n: Cancel)"
            ),
            title="⚠️ Clear All Builds",
            width=60,
        )
    if isinstance(popup, GenericConfirm):
        return Panel(
            Text(f"{popup.message}\n\nPress Enter to confirm, Esc to cancel."),
            title="Confirm Action",
            width=60,
        )
    if isinstance(popup, Progress):
        return Panel(Text(f"{popup.message}\n\nPress Esc to close."), title="Progress", width=60)
    if isinstance(popup, Info):
        return Panel(Text(f"{popup.message}\n\nPress Esc to close."), title="Info", width=60)
    return None


def render(dashboard: Dashboard) -> Layout:
    """Render the full dashboard."""
    layout = Layout()
    layout.split_column(
        Layout(name="header", size=3),
        Layout(name="body"),
        Layout(name="footer", size=1),
    )

    layout["header"].update(
        Panel(Text("🐀 Ratifact - Build Artifact Tool", style="bold cyan"), style="cyan")
    )

    if (popup_panel := render_popup(dashboard.popup, dashboard)) is not None:
        layout["body"].update(Align.center(popup_panel, vertical="middle"))
    else:
        layout["body"].split_column(Layout(name="top"), Layout(name="bottom"))
        layout["top"].split_row(
            Layout(_make_artifacts(dashboard)),
            Layout(_make_history(dashboard)),
            Layout(_make_charts(dashboard)),
        )
        layout["bottom"].split_row(
            Layout(_make_settings(dashboard)),
            Layout(_make_summary(dashboard)),
        )

    layout["footer"].update(Text(FOOTER_TEXT, style="black on green", no_wrap=True, overflow="ellipsis"))
    return layout
