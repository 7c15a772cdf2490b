from __future__ import annotations

import os
import signal
import subprocess
import sys
from dataclasses import dataclass
from typing import List, Optional

from playctl.config import Config, RuntimePaths
from playctl.errors import PlayerError
from playctl.lock import pid_alive, read_pid
from playctl.logs import get_logger

logger = get_logger("player")


@dataclass
class PlayerCommand:
    argv: List[str]


def build_player_command(config: Config) -> PlayerCommand:
    """Return the command line of the long-lived, idle player."""
    settings = config.settings
    argv = [settings.player, *settings.player_args]
    argv.append(f"--input-ipc-server={config.paths.control_socket}")
    return PlayerCommand(argv=argv)


def _default_hangup() -> None:
    # An ignored SIGHUP survives exec.
    signal.signal(signal.SIGHUP, signal.SIG_DFL)


def run_player(cmd: PlayerCommand) -> subprocess.Popen:
    """Spawn the player in its own session with stdout and stderr merged."""
    try:
        proc = subprocess.Popen(
            cmd.argv,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            encoding="utf-8",
            errors="replace",
            bufsize=1,
            start_new_session=True,
            preexec_fn=_default_hangup,
        )
    except OSError as e:
        raise PlayerError(f"cannot start '{cmd.argv[0]}': {e}") from e
    logger.info("run %s", " ".join(cmd.argv))
    return proc


def stop_player(paths: RuntimePaths) -> bool:
    """Send SIGINT to the player named in the player pid file, if it is alive."""
    pid = read_pid(paths.player_pid_file)
    if pid is None or not pid_alive(pid):
        return False
    try:
        os.kill(pid, signal.SIGINT)
    except ProcessLookupError:
        return False
    except PermissionError as e:
        raise PlayerError(f"cannot signal player pid {pid}: {e}") from e
    logger.info("sent SIGINT to player pid %d", pid)
    return True


def spawn_detached_start(prog_args: Optional[List[str]] = None) -> int:
    """Start ``playctl start`` in a new session, outliving the caller."""
    argv = prog_args or [sys.executable, "-m", "playctl", "start"]
    try:
        proc = subprocess.Popen(
            argv,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )
    except OSError as e:
        raise PlayerError(f"cannot run '{' '.join(argv)}': {e}") from e
    logger.info("spawned '%s' with pid %d", " ".join(argv), proc.pid)
    return proc.pid
