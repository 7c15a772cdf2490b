"""Lifecycle of the player process.

``start()`` holds the instance lock for as long as the player runs, scanning
its output for title changes; ``stop()`` asks the running instance's player to
quit over the control socket. Whatever ends the player, the lock, pid files,
control socket and status file are removed.
"""
from __future__ import annotations

import enum
import re
import subprocess
import time
from typing import Optional

from playctl.config import Config
from playctl.errors import AlreadyRunningError, BatchError, FilesystemError, NotRunningError, PlayerError
from playctl.ipc import Command, ControlChannel
from playctl.lock import InstanceLock, is_running, remove_path, write_pid
from playctl.logs import get_logger
from playctl.player import build_player_command, run_player, stop_player
from playctl.signals import Interrupted, SignalGuard
from playctl.statusbar import StatusBar

logger = get_logger("supervisor")

_TITLE_RE = re.compile(r"^\sicy-title:\s|^Title:\s|^\[cplayer\].*/force-media-title=")
# "[cplayer] Set property: options/force-media-title="x" -> 1"
_PROPERTY_ECHO_RE = re.compile(r"\s*->\s*-?\d+\s*$")

STOP_COMMANDS = (
    Command.of("playlist-remove", "current"),
    Command.of("stop"),
    Command.of("quit"),
)


class State(enum.Enum):
    NOT_RUNNING = "not running"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


def parse_title(line: str) -> Optional[str]:
    """Extract a media title from one line of player output, if it carries one."""
    line = line.rstrip("\r\n")
    if "[file] Opening " in line:
        return line.split("/")[-1].strip() or None
    if not _TITLE_RE.search(line):
        return None
    title = _TITLE_RE.sub("", line, count=1)
    title = _PROPERTY_ECHO_RE.sub("", title).strip().strip('"')
    return title or None


class Supervisor:
    def __init__(
        self,
        config: Config,
        channel: Optional[ControlChannel] = None,
        guard: Optional[SignalGuard] = None,
    ) -> None:
        self.config = config
        self.paths = config.paths
        self.guard = guard or SignalGuard()
        self.channel = channel or ControlChannel(config, guard=self.guard)
        self.status_bar = StatusBar(config)
        self.state = State.NOT_RUNNING
        self.title: Optional[str] = None

    def is_running(self) -> bool:
        return is_running(self.paths)

    def start(self) -> int:
        """Run the player until it exits. Returns its exit status."""
        if self.is_running():
            raise AlreadyRunningError(self.config.prog_name)
        self.state = State.STARTING
        with InstanceLock(self.paths, self.config.prog_name):
            proc: Optional[subprocess.Popen] = None
            try:
                logger.info("starting '%s'", self.config.prog_name)
                proc = run_player(build_player_command(self.config))
                write_pid(self.paths.player_pid_file, proc.pid)
                logger.info("player pid: %d", proc.pid)
                self.state = State.RUNNING
                self._scan_output(proc)
                rc = proc.wait()
                if rc != 0:
                    raise PlayerError(f"'{self.config.settings.player}' exited with status {rc}")
                return rc
            finally:
                self.state = State.STOPPING
                try:
                    self._finish(proc)
                finally:
                    self.state = State.NOT_RUNNING

    def _scan_output(self, proc: subprocess.Popen) -> None:
        assert proc.stdout is not None
        while True:
            with self.guard.waiting():
                line = proc.stdout.readline()
            if not line:
                break
            title = parse_title(line)
            if title is None:
                continue
            self.title = title
            logger.info("title: %s", title)
            self.status_bar.write_title(title)

    def stop(self) -> None:
        if not self.is_running():
            raise NotRunningError(self.config.prog_name)
        logger.info("stopping '%s'", self.config.prog_name)
        self.state = State.STOPPING
        try:
            self.channel.send_many(STOP_COMMANDS)
        except BatchError as e:
            logger.warning("stop sequence failed at command %d: %s", e.index, e)
            raise
        finally:
            try:
                if not self._wait_released():
                    logger.warning("instance did not shut down, cleaning up")
                    self._finish(None)
            except Interrupted:
                logger.warning("interrupted while waiting for shutdown, cleaning up")
                self._finish(None)
                raise
            finally:
                self.state = State.NOT_RUNNING

    def _wait_released(self) -> bool:
        deadline = time.monotonic() + self.config.settings.stop_timeout
        while time.monotonic() < deadline:
            if not self.is_running():
                return True
            with self.guard.waiting():
                time.sleep(0.1)
        return not self.is_running()

    def _finish(self, proc: Optional[subprocess.Popen]) -> None:
        try:
            stop_player(self.paths)
            if proc is not None and proc.poll() is None:
                try:
                    proc.wait(timeout=self.config.settings.stop_timeout)
                except subprocess.TimeoutExpired:
                    logger.warning("player pid %d ignored SIGINT, killing it", proc.pid)
                    proc.kill()
                    proc.wait()
        finally:
            self.cleanup()

    def cleanup(self) -> None:
        first_error: Optional[FilesystemError] = None
        for path in (
            self.paths.lock_dir,
            self.paths.pid_file,
            self.paths.control_socket,
            self.paths.player_pid_file,
            self.paths.status_file,
        ):
            try:
                remove_path(path)
            except FilesystemError as e:
                logger.error("%s", e)
                first_error = first_error or e
        self.status_bar.refresh()
        if first_error is not None:
            raise first_error
