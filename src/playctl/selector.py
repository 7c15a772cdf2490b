"""Full-screen file selector driven by single keypresses.

The screen is a fixed header, one page of directory entries and a footer::

     ### PLAYCTL ###
     ?) help
     -) ../ [parent]
     .) ./ [current]
     1) first entry
     2) second/
    ...
    <blank>
    # 2/40) second/
    > 1/3

The cursor lives on a body row. Rows are counted from 0, so the entry under
the cursor is ``files[(cursor + offset) - HEADER_LINES]``.
"""
from __future__ import annotations

import math
import os
import stat
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional

from playctl.config import Config
from playctl.control import METADATA, PlayerControl
from playctl.errors import FilesystemError, NotRunningError, PlayctlError, TerminalTooSmallError
from playctl.ipc import ControlChannel, poll_until
from playctl.lock import is_running
from playctl.logs import get_logger
from playctl.signals import Interrupted, SignalGuard
from playctl.terminal import Terminal

logger = get_logger("selector")

HEADER_LINES = 4
FOOTER_LINES = 3

HELP = """# help
.       # lists the current directory contents [r]
-       # changes to parent directory
_       # changes to previous directory [^,p]
~       # changes to home user directory
h       # goes to previous page
l       # goes to next page
j       # goes one line downward
k       # goes one line upward
J       # goes to bottom line
K       # goes to top line
Enter   # selects the file or directory
Escape  # exits sf [q]
?       # shows sf' help information
"""


@dataclass
class Entry:
    name: str
    path: Path
    indicator: str
    is_dir: bool
    is_link: bool

    @property
    def label(self) -> str:
        return self.name + self.indicator


def file_indicator(mode: int) -> str:
    """``ls -F`` style suffix for an lstat mode."""
    if stat.S_ISLNK(mode):
        return "@"
    if stat.S_ISDIR(mode):
        return "/"
    if mode & 0o111:
        return "*"
    if stat.S_ISFIFO(mode):
        return "|"
    if stat.S_ISSOCK(mode):
        return "="
    return ""


def list_directory(path: Path) -> List[Entry]:
    try:
        names = sorted(os.listdir(path))
    except OSError as e:
        raise FilesystemError(f"cannot list '{path}': {e}") from e
    entries = []
    for name in names:
        full = path / name
        try:
            mode = full.lstat().st_mode
        except OSError:
            # Vanished between listdir and lstat.
            continue
        entries.append(
            Entry(
                name=name,
                path=full,
                indicator=file_indicator(mode),
                is_dir=stat.S_ISDIR(mode),
                is_link=stat.S_ISLNK(mode),
            )
        )
    return entries


def body_capacity(rows: int, header: int = HEADER_LINES, footer: int = FOOTER_LINES) -> int:
    if rows < header + footer + 1:
        raise TerminalTooSmallError("the terminal window is too small")
    return max(1, rows - header - footer - 1)


def page_count(entries: int, capacity: int) -> int:
    return math.ceil(entries / capacity)


@dataclass
class SelectorState:
    cwd: Path
    old_cwd: Optional[Path] = None
    files: List[Entry] = field(default_factory=list)
    capacity: int = 1
    lines_body: int = 0
    cursor: int = HEADER_LINES
    offset: int = 0
    page: int = 1
    pages: int = 0
    pad: int = 1
    message: str = ""

    @property
    def index(self) -> int:
        return (self.cursor + self.offset) - HEADER_LINES

    @property
    def first_row(self) -> int:
        return HEADER_LINES

    @property
    def last_row(self) -> int:
        return HEADER_LINES + max(1, self.lines_body) - 1

    @property
    def info_row(self) -> int:
        return HEADER_LINES + self.lines_body + 1

    @property
    def page_row(self) -> int:
        return HEADER_LINES + self.lines_body + 2

    def current(self) -> Optional[Entry]:
        if not self.files or not 0 <= self.index < len(self.files):
            return None
        return self.files[self.index]


class FileSelector:
    def __init__(
        self,
        config: Config,
        control: Optional[PlayerControl] = None,
        terminal: Optional[Terminal] = None,
        guard: Optional[SignalGuard] = None,
        start_dir: Optional[Path] = None,
    ) -> None:
        self.config = config
        self.guard = guard or SignalGuard()
        self.control = control or PlayerControl(config, channel=ControlChannel(config, guard=self.guard))
        self.terminal = terminal or Terminal()
        self.state = SelectorState(cwd=Path(start_dir or os.getcwd()).absolute())
        self._loop = False
        self._drawn = False
        self._actions: Dict[str, Callable[[], None]] = {
            "?": self.show_help,
            "_": self.previous_dir,
            "^": self.previous_dir,
            "p": self.previous_dir,
            "-": self.parent_dir,
            "~": self.home_dir,
            ".": self.redraw,
            "r": self.redraw,
            "enter": self.select,
            "J": self.bottom,
            "DOWN": self.bottom,
            "K": self.top,
            "UP": self.top,
            "j": self.down,
            "down": self.down,
            "k": self.up,
            "up": self.up,
            "h": self.page_back,
            "left": self.page_back,
            "l": self.page_forward,
            "right": self.page_forward,
        }

    def run(self) -> None:
        """Browse until Escape or ``q``."""
        if not is_running(self.config.paths):
            raise NotRunningError(self.config.prog_name)
        try:
            while True:
                self.load_directory()
                self.draw_page()
                self.state.cursor = self.state.first_row
                self.terminal.reset_modes()
                self._paint_row(self.state.cursor, True)
                self._place_cursor()
                if not self._run_actions():
                    return
        finally:
            if self._drawn:
                self.terminal.reset_modes()
                self.terminal.clear()
                self.terminal.flush()

    def _run_actions(self) -> bool:
        """False once the user quits, True when the directory must be listed again."""
        self._loop = True
        while self._loop:
            with self.guard.waiting():
                key = self.terminal.read_key()
            if key in ("escape", "q"):
                return False
            self.guard.checkpoint()
            try:
                self.dispatch(key)
            except (TerminalTooSmallError, Interrupted):
                raise
            except PlayctlError as e:
                logger.warning("%s", e)
                self.show_message(str(e))
        return True

    def dispatch(self, key: str) -> None:
        action = self._actions.get(key)
        if action is None:
            shown = key.encode("unicode_escape").decode("ascii")
            self.show_message(f"sf: error: keystroke '{shown}' is not supported, press '?' for help")
            return
        action()

    # listing and drawing

    def load_directory(self) -> None:
        s = self.state
        rows, _ = self.terminal.size()
        s.capacity = body_capacity(rows)
        s.files = list_directory(s.cwd)
        s.pad = len(str(len(s.files)))
        s.offset = 0
        s.page = 1
        s.pages = page_count(len(s.files), s.capacity)
        s.message = ""

    def draw_page(self) -> None:
        s = self.state
        t = self.terminal
        t.clear()
        self._drawn = True
        indent = " " * s.pad
        parent = s.cwd.parent.name or "/"
        current = s.cwd.name or "/"
        t.write(f"{indent}### {self.config.prog_name.upper()} ###\n")
        t.write(f"{indent}?) help\n")
        t.write(f"{indent}-) ../ [{parent}]\n")
        t.write(f"{indent}.) ./ [{current}]\n")
        visible = s.files[s.offset:s.offset + s.capacity]
        for num, entry in enumerate(visible, start=s.offset + 1):
            t.write(f" {num:>{s.pad}}) {entry.label}\n")
        s.lines_body = len(visible)
        t.write("\n")
        if s.files:
            entry = s.files[s.offset]
            t.write(f"# {s.offset + 1}/{len(s.files)}) {entry.label}\n")
            t.write(f"> {s.page}/{s.pages}")
        else:
            t.write("# empty directory, no files were found to select\n")
            t.write("> ")

    def _paint_row(self, row: int, selected: bool) -> None:
        s = self.state
        index = (row + s.offset) - HEADER_LINES
        if not 0 <= index < len(s.files) or row > s.last_row:
            return
        entry = s.files[index]
        t = self.terminal
        t.move(row + 1, 1)
        t.clear_line()
        line = f" {index + 1:>{s.pad}}) {entry.label}"
        t.write(f"\033[7m{line}\033[0m" if selected else line)

    def _paint_footer(self) -> None:
        s = self.state
        t = self.terminal
        entry = s.current()
        t.move(s.info_row + 1, 1)
        t.clear_line()
        if entry is not None:
            t.write(f"# {s.index + 1}/{len(s.files)}) {entry.label}")
        t.move(s.page_row + 1, 1)
        t.clear_line()
        t.write(f"> {s.page}/{s.pages}")

    def _place_cursor(self) -> None:
        self.terminal.move(self.state.cursor + 1, self.state.pad + 1)
        self.terminal.flush()

    def _move_cursor(self, row: int) -> None:
        s = self.state
        if row == s.cursor:
            return
        self._paint_row(s.cursor, False)
        s.cursor = row
        self._paint_row(s.cursor, True)
        self._paint_footer()
        self._place_cursor()

    def show_message(self, message: str) -> None:
        s = self.state
        s.message = message
        self.terminal.move(s.info_row + 1, 1)
        self.terminal.clear_line()
        self.terminal.write(f"# {message}")
        self._place_cursor()

    # line and page movement

    def down(self) -> None:
        s = self.state
        if not s.files:
            return
        if s.cursor < s.last_row:
            self._move_cursor(s.cursor + 1)
        else:
            self.next_page()

    def up(self) -> None:
        s = self.state
        if not s.files:
            return
        if s.cursor > s.first_row:
            self._move_cursor(s.cursor - 1)
        else:
            self.prev_page(top=False)

    def bottom(self) -> None:
        if self.state.files:
            self._move_cursor(self.state.last_row)

    def top(self) -> None:
        if self.state.files:
            self._move_cursor(self.state.first_row)

    def page_forward(self) -> None:
        s = self.state
        if s.pages > 1 and s.page < s.pages:
            s.cursor = s.last_row
            self.next_page()

    def page_back(self) -> None:
        if self.state.pages > 1:
            self.prev_page(top=True)

    def next_page(self) -> None:
        s = self.state
        if s.page >= s.pages:
            return
        s.page += 1
        # Skip past what this page already showed.
        s.offset += s.cursor - HEADER_LINES + 1
        self.draw_page()
        s.cursor = s.first_row
        self._paint_row(s.cursor, True)
        self._place_cursor()

    def prev_page(self, top: bool) -> None:
        s = self.state
        if s.page <= 1:
            return
        s.page -= 1
        s.offset = max(0, s.offset - s.capacity)
        self.draw_page()
        s.cursor = s.first_row if top else s.last_row
        self._paint_footer()
        self._paint_row(s.cursor, True)
        self._place_cursor()

    # directory changes

    def change_dir(self, path: Path) -> None:
        if not path.is_dir():
            raise FilesystemError(f"'{path}' is not a directory")
        # Fail here, not after the screen was cleared.
        list_directory(path)
        s = self.state
        s.old_cwd = s.cwd
        s.cwd = path
        self._loop = False

    def parent_dir(self) -> None:
        if self.state.cwd != Path(self.state.cwd.anchor):
            self.change_dir(self.state.cwd.parent)

    def home_dir(self) -> None:
        self.change_dir(Path.home())

    def previous_dir(self) -> None:
        s = self.state
        if s.old_cwd is not None and s.old_cwd != s.cwd:
            self.change_dir(s.old_cwd)

    def redraw(self) -> None:
        self._loop = False

    def select(self) -> None:
        s = self.state
        entry = s.current()
        if entry is None:
            return
        is_dir = entry.is_dir
        if entry.is_link:
            target = Path(os.readlink(entry.path))
            if not target.is_absolute():
                target = s.cwd / target
            try:
                is_dir = stat.S_ISDIR(os.stat(target).st_mode)
            except FileNotFoundError:
                raise FilesystemError(f"'{target}' no such file or directory") from None
            except OSError as e:
                raise FilesystemError(f"'{target}': {e}") from e
        if is_dir:
            self.change_dir(entry.path)
            return
        self.control.play(str(entry.path))
        try:
            poll_until(self.control.channel, METADATA, "error", self.config.settings.min_status_tries)
        except Interrupted:
            raise
        except PlayctlError as e:
            logger.warning("%s", e)
            self.show_message(str(e))
            return
        self._paint_footer()
        self._place_cursor()

    def show_help(self) -> None:
        s = self.state
        t = self.terminal
        t.move(s.info_row + 1, 1)
        t.write("\033[J")
        t.write(HELP)
        t.write("\nPress any key to go back")
        t.flush()
        with self.guard.waiting():
            t.read_key()
        self._loop = False
