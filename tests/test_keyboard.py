"""Tests for terminal key decoding."""

from __future__ import annotations

import os
import pty
from collections.abc import Iterator

import pytest

from ratifact.keyboard import (
    KEY_BACKSPACE,
    KEY_DOWN,
    KEY_ENTER,
    KEY_ESC,
    KEY_PAGE_DOWN,
    KEY_PAGE_UP,
    KEY_TAB,
    KEY_UP,
    KeyReader,
    decode_key,
    is_text_key,
)


@pytest.mark.parametrize(
    "data,expected",
    [
        ("\x1b", KEY_ESC),
        ("\x1b[A", KEY_UP),
        ("\x1b[B", KEY_DOWN),
        ("\x1bOA", KEY_UP),
        ("\x1b[5~", KEY_PAGE_UP),
        ("\x1b[6~", KEY_PAGE_DOWN),
        ("\r", KEY_ENTER),
        ("\n", KEY_ENTER),
        ("\t", KEY_TAB),
        ("\x7f", KEY_BACKSPACE),
        ("q", "q"),
        ("D", "D"),
        (" ", " "),
        ("é", "é"),
    ],
)
def test_decode_key(data: str, expected: str) -> None:
    """Test decoding of raw terminal input."""
    assert decode_key(data) == expected


def test_decode_unknown() -> None:
    """Test that unrecognized input decodes to None."""
    assert decode_key("") is None
    assert decode_key("\x1b[99~") is None
    assert decode_key("\x01") is None


def test_is_text_key() -> None:
    """Test which keys are typed into text inputs."""
    assert is_text_key("a")
    assert is_text_key(" ")
    assert not is_text_key(KEY_ENTER)
    assert not is_text_key("\x01")


@pytest.fixture
def terminal() -> Iterator[tuple[int, int]]:
    """Open a pseudo-terminal pair."""
    master, slave = pty.openpty()
    yield master, slave
    os.close(master)
    os.close(slave)


class TestKeyReader:
    """Tests for KeyReader on a pseudo-terminal."""

    @pytest.mark.parametrize("char", ["é", "ж", "€", "😀"])
    def test_multibyte_character(self, terminal: tuple[int, int], char: str) -> None:
        """Test that a non-ASCII character is read whole."""
        master, slave = terminal
        with KeyReader(slave) as reader:
            os.write(master, char.encode())
            assert reader.read_key(1.0) == char

    def test_arrow_key(self, terminal: tuple[int, int]) -> None:
        """Test that a buffered escape sequence decodes to its key."""
        master, slave = terminal
        with KeyReader(slave) as reader:
            os.write(master, b"\x1b[A")
            assert reader.read_key(1.0) == KEY_UP

    def test_timeout(self, terminal: tuple[int, int]) -> None:
        """Test that no input returns None."""
        _master, slave = terminal
        with KeyReader(slave) as reader:
            assert reader.read_key(0.01) is None
