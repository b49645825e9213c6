"""Raw terminal key reader for the dashboard loop."""

from __future__ import annotations

import os
import select
import sys
import termios
import tty

KEY_UP = "up"
KEY_DOWN = "down"
KEY_LEFT = "left"
KEY_RIGHT = "right"
KEY_ENTER = "enter"
KEY_ESC = "esc"
KEY_BACKSPACE = "backspace"
KEY_TAB = "tab"
KEY_PAGE_UP = "pageup"
KEY_PAGE_DOWN = "pagedown"

_ESCAPE_SEQUENCES = {
    "[A": KEY_UP,
    "[B": KEY_DOWN,
    "[C": KEY_RIGHT,
    "[D": KEY_LEFT,
    "OA": KEY_UP,
    "OB": KEY_DOWN,
    "OC": KEY_RIGHT,
    "OD": KEY_LEFT,
    "[5~": KEY_PAGE_UP,
    "[6~": KEY_PAGE_DOWN,
}

_CONTROL_KEYS = {
    "\r": KEY_ENTER,
    "\n": KEY_ENTER,
    "\t": KEY_TAB,
    "\x7f": KEY_BACKSPACE,
    "\x08": KEY_BACKSPACE,
}


def is_text_key(key: str) -> bool:
    """True for a single printable character (including space)."""
    return len(key) == 1 and key.isprintable()


def decode_key(data: str) -> str | None:
    """Map raw terminal input to a key name.

    Args:
        data: Bytes read for one keypress, decoded.

    Returns:
        Key name, the character itself, or None if unrecognized.

    """
    if not data:
        return None
    if data == "\x1b":
        return KEY_ESC
    if data.startswith("\x1b"):
        return _ESCAPE_SEQUENCES.get(data[1:])
    if data in _CONTROL_KEYS:
        return _CONTROL_KEYS[data]
    if is_text_key(data[0]):
        return data[0]
    return None


def _utf8_length(lead: int) -> int:
    if 0xC0 <= lead <= 0xDF:
        return 2
    if 0xE0 <= lead <= 0xEF:
        return 3
    if 0xF0 <= lead <= 0xF7:
        return 4
    return 1


class KeyReader:
    """Puts the terminal in cbreak mode and reads one key at a time."""

    def __init__(self, fd: int | None = None) -> None:
        self._fd = sys.stdin.fileno() if fd is None else fd
        self._old_settings = termios.tcgetattr(self._fd)
        self._closed = False
        tty.setcbreak(self._fd)

    def close(self) -> None:
        if self._closed:
            return
        termios.tcsetattr(self._fd, termios.TCSADRAIN, self._old_settings)
        self._closed = True

    def __enter__(self) -> KeyReader:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def read_key(self, timeout: float = 0.1) -> str | None:
        """Wait up to ``timeout`` seconds for a key.

        Returns:
            Key name, or None if nothing was pressed.

        """
        ready, _, _ = select.select([self._fd], [], [], timeout)
        if not ready:
            return None

        raw = os.read(self._fd, 1)
        if not raw:
            return None
        # Multi-byte characters arrive one byte at a time
        needed = _utf8_length(raw[0])
        while len(raw) < needed and select.select([self._fd], [], [], 0.05)[0]:
            chunk = os.read(self._fd, needed - len(raw))
            if not chunk:
                break
            raw += chunk

        data = raw.decode(errors="ignore")
        if data == "\x1b":
            # Collect the rest of an escape sequence if it is already buffered
            while select.select([self._fd], [], [], 0.01)[0]:
                data += os.read(self._fd, 1).decode(errors="ignore")
                if len(data) > 2 and (data[-1].isalpha() or data[-1] == "~"):
                    break
        return decode_key(data)
