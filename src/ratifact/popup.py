"""Popup state machine driving every interactive dialog.

Each popup is an immutable variant that owns exactly the fields it needs.
``handle_key`` never mutates a popup; it returns a :class:`Transition`
naming the popup that replaces it and, optionally, a command for the
dashboard to execute.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path

from .keyboard import (
    KEY_BACKSPACE,
    KEY_DOWN,
    KEY_ENTER,
    KEY_ESC,
    KEY_UP,
    is_text_key,
)

RETENTION_TITLE = "Retention Days"
SCAN_PATH_KEY = "Scan Path"
PASSWORD_TITLE = "Enter sudo password"

SETTINGS_OPTIONS = (RETENTION_TITLE, SCAN_PATH_KEY, "Automatic Removal")
ARTIFACT_ACTIONS = ("Delete", "Rebuild")

ACTION_DELETE = "delete"
ACTION_REBUILD = "rebuild"


# Commands emitted to the dashboard


@dataclass(frozen=True)
class OpenInput:
    title: str
    initial: str = ""


@dataclass(frozen=True)
class OpenDirBrowse:
    pass


@dataclass(frozen=True)
class ToggleRemoval:
    pass


@dataclass(frozen=True)
class SetValue:
    key: str
    value: str


@dataclass(frozen=True)
class RequestDelete:
    pass


@dataclass(frozen=True)
class RequestRebuild:
    pass


@dataclass(frozen=True)
class ClearAll:
    pass


@dataclass(frozen=True)
class ConfirmAction:
    action: str


Command = (
    OpenInput
    | OpenDirBrowse
    | ToggleRemoval
    | SetValue
    | RequestDelete
    | RequestRebuild
    | ClearAll
    | ConfirmAction
)


@dataclass(frozen=True)
class Transition:
    """Outcome of one key press inside a popup."""

    popup: Popup
    command: Command | None = None


def _wrap(index: int, step: int, size: int) -> int:
    return (index + step) % size


def list_dir_entries(path: Path) -> tuple[str, ...]:
    """Entries shown by the directory browser.

    Starts with ``..`` unless ``path`` is the filesystem root, followed by
    sub-directory names in sorted order. Unreadable directories yield only
    the ``..`` entry.
    """
    entries: list[str] = []
    if path.parent != path:
        entries.append("..")
    try:
        with os.scandir(path) as it:
            names = sorted(entry.name for entry in it if entry.is_dir())
    except OSError:
        names = []
    entries.extend(names)
    return tuple(entries)


class Popup:
    """Base of all popup variants."""

    # False only for NoPopup
    active = True
    # Text inputs consume every printable key, including the quit key
    captures_text = False

    def handle_key(self, key: str) -> Transition:
        return Transition(self)


@dataclass(frozen=True)
class NoPopup(Popup):
    active = False

    def handle_key(self, key: str) -> Transition:
        return Transition(self)


CLOSED = NoPopup()


@dataclass(frozen=True)
class SettingsList(Popup):
    selected: int = 0

    def handle_key(self, key: str) -> Transition:
        size = len(SETTINGS_OPTIONS)
        if key == KEY_UP:
            return Transition(replace(self, selected=_wrap(self.selected, -1, size)))
        if key == KEY_DOWN:
            return Transition(replace(self, selected=_wrap(self.selected, 1, size)))
        if key == KEY_ENTER:
            commands: tuple[Command, ...] = (
                OpenInput(RETENTION_TITLE),
                OpenDirBrowse(),
                ToggleRemoval(),
            )
            return Transition(CLOSED, commands[self.selected])
        if key == KEY_ESC:
            return Transition(CLOSED)
        return Transition(self)


@dataclass(frozen=True)
class TextInput(Popup):
    title: str
    buffer: str = ""

    captures_text = True

    @property
    def is_password(self) -> bool:
        return self.title == PASSWORD_TITLE

    @property
    def display_text(self) -> str:
        """Buffer as shown on screen; passwords are masked."""
        return "*" * len(self.buffer) if self.is_password else self.buffer

    def handle_key(self, key: str) -> Transition:
        if key == KEY_ENTER:
            return Transition(CLOSED, SetValue(self.title, self.buffer))
        if key == KEY_ESC:
            return Transition(CLOSED)
        if key == KEY_BACKSPACE:
            return Transition(replace(self, buffer=self.buffer[:-1]))
        if is_text_key(key):
            return Transition(replace(self, buffer=self.buffer + key))
        return Transition(self)


@dataclass(frozen=True)
class DirBrowse(Popup):
    path: Path
    entries: tuple[str, ...] = ()
    selected: int = 0

    @classmethod
    def at(cls, path: Path) -> DirBrowse:
        """Open the browser at ``path`` with a freshly loaded entry list."""
        path = Path(path).absolute()
        return cls(path=path, entries=list_dir_entries(path))

    def _target(self, entry: str) -> Path:
        return self.path.parent if entry == ".." else self.path / entry

    def handle_key(self, key: str) -> Transition:
        if key == KEY_UP:
            return Transition(replace(self, selected=max(self.selected - 1, 0)))
        if key == KEY_DOWN:
            last = max(len(self.entries) - 1, 0)
            return Transition(replace(self, selected=min(self.selected + 1, last)))
        if key == KEY_ENTER:
            if self.selected >= len(self.entries):
                return Transition(self)
            target = self._target(self.entries[self.selected])
            if target.is_dir():
                return Transition(DirBrowse.at(target))
            return Transition(self)
        if key == "s":
            if self.selected >= len(self.entries):
                return Transition(self)
            target = self._target(self.entries[self.selected])
            return Transition(CLOSED, SetValue(SCAN_PATH_KEY, str(target)))
        if key == " ":
            return Transition(CLOSED, SetValue(SCAN_PATH_KEY, str(self.path)))
        if key == KEY_ESC:
            return Transition(CLOSED)
        return Transition(self)


@dataclass(frozen=True)
class ArtifactActionMenu(Popup):
    selected: int = 0

    def handle_key(self, key: str) -> Transition:
        size = len(ARTIFACT_ACTIONS)
        if key == KEY_UP:
            return Transition(replace(self, selected=_wrap(self.selected, -1, size)))
        if key == KEY_DOWN:
            return Transition(replace(self, selected=_wrap(self.selected, 1, size)))
        if key == KEY_ENTER:
            command: Command = RequestDelete() if self.selected == 0 else RequestRebuild()
            return Transition(CLOSED, command)
        if key == KEY_ESC:
            return Transition(CLOSED)
        return Transition(self)


@dataclass(frozen=True)
class ClearAllConfirm(Popup):
    def handle_key(self, key: str) -> Transition:
        if key in ("y", "Y"):
            return Transition(CLOSED, ClearAll())
        if key in ("n", "N", KEY_ESC):
            return Transition(CLOSED)
        return Transition(self)


@dataclass(frozen=True)
class GenericConfirm(Popup):
    message: str
    action: str

    def handle_key(self, key: str) -> Transition:
        if key == KEY_ENTER:
            return Transition(CLOSED, ConfirmAction(self.action))
        if key == KEY_ESC:
            return Transition(CLOSED)
        return Transition(self)


@dataclass(frozen=True)
class _Dismissible(Popup):
    """Display-only popup closed with Esc."""

    def handle_key(self, key: str) -> Transition:
        if key == KEY_ESC:
            return Transition(CLOSED)
        return Transition(self)


@dataclass(frozen=True)
class Progress(_Dismissible):
    message: str


@dataclass(frozen=True)
class Info(_Dismissible):
    message: str


@dataclass(frozen=True)
class LogsView(_Dismissible):
    pass


@dataclass(frozen=True)
class ScanningView(Popup):
    """Live scan progress; cleared by the dashboard, not by keys."""

    def handle_key(self, key: str) -> Transition:
        return Transition(self)
