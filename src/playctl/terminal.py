"""Raw keyboard input and ANSI screen control."""
from __future__ import annotations

import os
import shutil
import sys
import termios
import tty
from typing import Dict, Optional, TextIO, Tuple

_KEY_NAMES: Dict[bytes, str] = {
    b"\x1b": "escape",
    b"\n": "enter",
    b"\r": "enter",
    b"\x1b[A": "up",
    b"\x1b[B": "down",
    b"\x1b[C": "right",
    b"\x1b[D": "left",
    b"\x1bOA": "up",
    b"\x1bOB": "down",
    b"\x1bOC": "right",
    b"\x1bOD": "left",
    # Shift+Up / Shift+Down, whole or as the tail of a split read.
    b"\x1b[1;2A": "UP",
    b"\x1b[1;2B": "DOWN",
    b";2A": "UP",
    b";2B": "DOWN",
}


def decode_key(data: bytes) -> str:
    """Name of a keypress read as one chunk of 1 to a few bytes."""
    if data in _KEY_NAMES:
        return _KEY_NAMES[data]
    text = data.decode("utf-8", errors="replace")
    return text


class Terminal:
    def __init__(self, stdin: Optional[TextIO] = None, stdout: Optional[TextIO] = None) -> None:
        self.stdin = stdin or sys.stdin
        self.stdout = stdout or sys.stdout

    def size(self) -> Tuple[int, int]:
        """(rows, columns)"""
        cols, rows = shutil.get_terminal_size()
        return rows, cols

    def read_key(self) -> str:
        fd = self.stdin.fileno()
        old = termios.tcgetattr(fd)
        try:
            tty.setcbreak(fd)
            data = os.read(fd, 8)
        finally:
            termios.tcsetattr(fd, termios.TCSADRAIN, old)
        return decode_key(data)

    def write(self, text: str) -> None:
        self.stdout.write(text)

    def flush(self) -> None:
        self.stdout.flush()

    def clear(self) -> None:
        self.write("\033[2J\033[H")

    def move(self, row: int, col: int) -> None:
        """Move the cursor; rows and columns start at 1."""
        self.write(f"\033[{row};{col}H")

    def clear_line(self) -> None:
        self.write("\033[2K\r")

    def reset_modes(self) -> None:
        self.write("\033[0m")
