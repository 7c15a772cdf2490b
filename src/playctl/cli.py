from __future__ import annotations

import argparse
import re
from typing import Optional

from rich.console import Console

import playctl
from playctl.config import Config, build_config, check_setup
from playctl.control import METADATA, PlayerControl
from playctl.errors import NotRunningError, PlayctlError
from playctl.ipc import ControlChannel, poll_until
from playctl.lock import is_running
from playctl.logs import get_logger, setup_logging
from playctl.menu import StreamMenu
from playctl.selector import FileSelector
from playctl.signals import Interrupted, SignalGuard
from playctl.supervisor import Supervisor

logger = get_logger("cli")

_SEEK_ARG_RE = re.compile(r"^[+-]\d+$")

USAGE = """Usage:
  {prog} number         # number key id from the stream catalog
  {prog} url            # plays the stream url
  {prog} /path/to/file  # plays the local file
  {prog} start          # starts {prog}
  {prog} stop           # stops {prog}
  {prog} stopplay       # stops playing the current media file [stopp, stop-playback]
  {prog} status         # prints status information
  {prog} title          # prints the current media title
  {prog} check          # exits non-zero unless {prog} is running
  {prog} mute           # toggles between mute and unmute
  {prog} pause          # toggles between pause and unpause
  {prog} video          # toggles between video auto and off
  {prog} seek +n/-n     # seeks forward (+n) or backward (-n) number in seconds
  {prog} volume n       # sets volume number [vol]
  {prog} menu           # opens an interactive menu
  {prog} sf             # opens the interactive file selector
  {prog} help           # shows help menu information
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="playctl",
        description="Control a long-lived mpv process.",
        epilog=USAGE.format(prog="playctl"),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--debug", action="store_true")
    parser.add_argument("--version", action="store_true")
    parser.add_argument("action", nargs="?")
    parser.add_argument("value", nargs="?")
    return parser


def run_action(config: Config, action: str, value: Optional[str], out: Console, guard: SignalGuard) -> int:
    control = PlayerControl(config, channel=ControlChannel(config, guard=guard))

    if action == "help":
        out.print(USAGE.format(prog=config.prog_name), markup=False)
    elif action == "check":
        if not is_running(config.paths):
            raise NotRunningError(config.prog_name)
    elif action == "menu":
        StreamMenu(config, control=control, guard=guard).run()
    elif action == "sf":
        FileSelector(config, control=control, guard=guard).run()
    elif action in ("mute", "pause", "video"):
        control.toggle(action)
    elif action == "seek":
        if value is None or not _SEEK_ARG_RE.match(value):
            out.print(USAGE.format(prog=config.prog_name), markup=False)
            return 1
        control.seek(int(value))
    elif action == "start":
        return Supervisor(config, channel=control.channel, guard=guard).start()
    elif action == "status":
        out.print(control.status(), end="", markup=False)
    elif action == "stop":
        Supervisor(config, channel=control.channel, guard=guard).stop()
    elif action in ("stopp", "stopplay", "stop-playback"):
        control.play_stop()
    elif action == "title":
        out.print(f"title: {control.title()}", markup=False)
    elif action in ("vol", "volume"):
        try:
            level = int(value or "")
        except ValueError:
            out.print(USAGE.format(prog=config.prog_name), markup=False)
            return 1
        control.volume(level)
    else:
        control.play(action)
        poll_until(control.channel, METADATA, "error", config.settings.max_status_tries)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    # Titles, paths and metadata go to scripts unchanged, never wrapped.
    out = Console(highlight=False, soft_wrap=True)
    err = Console(stderr=True, highlight=False, soft_wrap=True)

    if args.version:
        out.print(f"playctl {playctl.__version__} ({playctl.__file__})", markup=False)
        return 0

    config = build_config()
    setup_logging(config.paths.log_file, debug=args.debug)

    if not args.action:
        out.print(USAGE.format(prog=config.prog_name), markup=False)
        return 1

    try:
        check_setup(config)
        with SignalGuard() as guard:
            rc = run_action(config, args.action, args.value, out, guard)
            guard.checkpoint()
            return rc
    except Interrupted as e:
        logger.info("%s", e)
        return e.exit_code
    except PlayctlError as e:
        logger.error("%s: %s", args.action, e)
        err.print(f"{args.action}: error: {e}", style="red", markup=False)
        return 1
