from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Mapping, Optional, Tuple

from rich.console import Console
from rich.text import Text

from playctl.config import Config
from playctl.control import METADATA, PlayerControl, valid_url
from playctl.errors import AlreadyRunningError, InvalidSelectionError, PlayctlError, TooManyErrorsError
from playctl.ipc import ControlChannel, poll_until
from playctl.lock import is_running
from playctl.logs import get_logger
from playctl.player import spawn_detached_start
from playctl.selector import FileSelector
from playctl.signals import Interrupted, SignalGuard
from playctl.streams import Stream, find_by_url, sorted_streams
from playctl.supervisor import Supervisor

logger = get_logger("menu")

_SEEK_RE = re.compile(r"^seek\s+([+-]\d+)$")
_VOLUME_RE = re.compile(r"^(?:volume|vol)\s+(-?\d+)$")

HELP = """help
clear          # clear the terminal screen
exit           # exits the menu
sf             # launches sf selector file [.]
number         # plays the selected media stream
url            # plays the stream url
start          # starts {prog}
stop           # stops {prog}
stopplay       # stops playing the current media [stopp, stop-playback]
status         # prints status information
seek +n/-n     # seeks forward (+n) or backward (-n) number in seconds
mute           # toggles between mute and unmute
pause          # toggles between pause and unpause
video          # toggles between video auto and off
volume n       # sets volume number between ({low}-{high}) [vol]
help           # shows help menu information [?]
"""


@dataclass
class MenuState:
    status: str = ""
    errors: int = 0
    stream_id: Optional[int] = None
    current_path: str = ""


def resolve_selection(catalog: Mapping[int, Stream], option: str) -> Tuple[Optional[Stream], str]:
    """Turn menu input into (catalog stream or None, what to play)."""
    try:
        stream = catalog.get(int(option))
    except ValueError:
        stream = None
    if stream is not None:
        return stream, str(stream.id)
    if valid_url(option):
        return find_by_url(catalog, option), option
    raise InvalidSelectionError("invalid option")


class StreamMenu:
    def __init__(
        self,
        config: Config,
        control: Optional[PlayerControl] = None,
        console: Optional[Console] = None,
        input_fn: Optional[Callable[[str], str]] = None,
        guard: Optional[SignalGuard] = None,
        selector_factory: Optional[Callable[[], FileSelector]] = None,
        starter: Optional[Callable[[], int]] = None,
    ) -> None:
        self.config = config
        self.guard = guard or SignalGuard()
        self.control = control or PlayerControl(config, channel=ControlChannel(config, guard=self.guard))
        self.console = console or Console(highlight=False)
        self.input_fn = input_fn or self.console.input
        self.selector_factory = selector_factory or (
            lambda: FileSelector(config, control=self.control, guard=self.guard)
        )
        self.starter = starter or spawn_detached_start
        self.streams = sorted_streams(config.streams)
        self.state = MenuState()

    def run(self) -> None:
        s = self.state
        if not is_running(self.config.paths):
            s.status = f"info: '{self.config.prog_name}' is not running, see help"
        s.current_path = self.control.stream_path()
        while True:
            self.render()
            try:
                with self.guard.waiting():
                    option = self.input_fn("> ").strip()
            except EOFError:
                return
            try:
                if not self.dispatch(option):
                    return
            except (TooManyErrorsError, Interrupted):
                raise
            except PlayctlError as e:
                logger.warning("%s: %s", option, e)
                s.status = str(e)

    def render(self) -> None:
        s = self.state
        c = self.console
        c.clear()
        width = len(str(len(self.streams)))
        pad = " " * width
        c.print(Text(f"{pad}### {self.config.prog_name.upper()} ###", style="bold"))
        c.print(Text(f"{pad}?) help"))
        c.print(Text(f"{pad}.) sf"))
        for stream in self.streams:
            current = s.stream_id == stream.id or (bool(s.current_path) and s.current_path == stream.url)
            if current and not s.status:
                s.status = stream.name
            marker = "*" if current else " "
            c.print(Text(f"{marker}{stream.id:>{width}}) {stream.name}", style="bold green" if current else ""))
        c.print()
        c.print(Text(f"# {s.status.rstrip()}"))

    def dispatch(self, option: str) -> bool:
        """Handle one line of input. False ends the menu."""
        self.guard.checkpoint()
        s = self.state

        m = _SEEK_RE.match(option)
        if m:
            s.status = f"time: {self.control.seek(int(m.group(1)))}"
            return True
        m = _VOLUME_RE.match(option)
        if m:
            s.status = f"volume: {self.control.volume(int(m.group(1)))}"
            return True

        if option in (".", "sf"):
            self.selector_factory().run()
            s.status = "info: 'sf' was closed"
        elif option in ("?", "help"):
            settings = self.config.settings
            s.status = HELP.format(prog=self.config.prog_name, low=settings.volume_min, high=settings.volume_max)
        elif option == "clear":
            s.status = ""
        elif option == "exit":
            return False
        elif option in ("mute", "pause", "video"):
            s.status = f"{option}: {self.control.toggle(option)}"
        elif option in ("number", "url"):
            s.status = f"info: simply put the stream {option} and press ENTER"
        elif option == "start":
            s.status = ""
            if is_running(self.config.paths):
                raise AlreadyRunningError(self.config.prog_name)
            pid = self.starter()
            s.status = f"info: {self.config.prog_name} pid: {pid}"
        elif option == "status":
            s.status = "status\n" + self.control.status()
        elif option == "stop":
            self._forget_stream()
            Supervisor(self.config, channel=self.control.channel, guard=self.guard).stop()
        elif option in ("stopp", "stopplay", "stop-playback"):
            self._forget_stream()
            self.control.play_stop()
        else:
            self._select(option)
        return True

    def _forget_stream(self) -> None:
        s = self.state
        s.current_path = ""
        s.stream_id = None
        s.status = ""

    def _select(self, option: str) -> None:
        s = self.state
        s.current_path = ""
        s.status = ""
        try:
            stream, target = resolve_selection(self.config.streams, option)
        except InvalidSelectionError:
            s.errors += 1
            if s.errors >= self.config.settings.max_menu_tries:
                raise TooManyErrorsError("too many consecutive errors") from None
            s.status = "invalid option"
            return
        s.errors = 0
        s.stream_id = stream.id if stream else None
        self.control.play(target)
        poll_until(self.control.channel, METADATA, "error", self.config.settings.menu_status_tries)
        s.status = stream.name if stream else option
