from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlparse

from playctl.config import Config
from playctl.errors import BatchError, InvalidSelectionError, NotRunningError, PlayctlError
from playctl.ipc import Command, ControlChannel, Failure, PropertyMissing, Response, Success
from playctl.lock import is_running
from playctl.logs import get_logger
from playctl.statusbar import StatusBar
from playctl.streams import Stream

logger = get_logger("control")

METADATA = Command.of("get_property", "filtered-metadata")

_STATUS_FIELDS = (
    ("mute", "mute"),
    ("pause", "pause"),
    ("video", "video"),
    ("idle", "idle-active"),
    ("song", "media-title"),
    ("path", "path"),
    ("ffmt", "file-format"),
)


def valid_url(text: str) -> bool:
    try:
        u = urlparse(text)
    except ValueError:
        return False
    return bool(u.scheme and u.netloc and u.path)


class PlayerControl:
    """Playback verbs on top of the control channel."""

    def __init__(self, config: Config, channel: Optional[ControlChannel] = None) -> None:
        self.config = config
        self.channel = channel or ControlChannel(config)
        self.status_bar = StatusBar(config)

    def _require_running(self) -> None:
        if not is_running(self.config.paths):
            raise NotRunningError(self.config.prog_name)

    def _send(self, command: Command) -> Response:
        resp = self.channel.send_one(command)
        if isinstance(resp, (Failure, PropertyMissing)):
            logger.warning("'%s' answered: %s", command, resp.message)
        return resp

    def is_idle(self) -> bool:
        try:
            return self.channel.get_property_string("idle-active") == "yes"
        except PlayctlError:
            return False

    def stream_path(self) -> str:
        if not is_running(self.config.paths):
            return ""
        try:
            return self.channel.get_property_string("path")
        except PlayctlError:
            return ""

    def play(self, target: str) -> str:
        """Play a catalog id, a stream url or a local file. Returns what was loaded."""
        self._require_running()
        if not os.environ.get("DISPLAY"):
            self._send(Command.of("set_property", "video", False))
        try:
            stream_id = int(target)
        except ValueError:
            loaded = self.play_file(target)
        else:
            loaded = self.play_stream(stream_id).url
        self.status_bar.refresh()
        return loaded

    def play_stream(self, stream_id: int) -> Stream:
        stream = self.config.streams.get(stream_id)
        if stream is None:
            raise InvalidSelectionError(f"stream '{stream_id}' not found")
        self._load(stream.url)
        return stream

    def play_file(self, target: str) -> str:
        path = Path(target).expanduser()
        if path.exists():
            if path.is_dir():
                raise InvalidSelectionError(f"'{target}' is a directory, not a file")
            load = str(path.resolve())
        elif valid_url(target):
            load = target
        else:
            raise InvalidSelectionError(f"'{target}' no such file or stream url")
        self._load(load)
        return load

    def _load(self, target: str) -> None:
        self.play_stop()
        self.status_bar.clear()
        logger.info("loadfile %s", target)
        self._send(Command.of("loadfile", target, "replace"))

    def play_stop(self) -> None:
        self._require_running()
        if self.is_idle():
            return
        self.channel.send_many([Command.of("playlist-remove", "current"), Command.of("stop")])

    def toggle(self, prop: str) -> str:
        """Toggle ``mute``, ``pause`` or ``video``; returns the new value."""
        self._require_running()
        if prop == "video":
            current = self.channel.get_property_string("video")
            value: Any = False if current in ("auto", "yes", "1") else "auto"
            self._send(Command.of("set_property", "video", value))
        else:
            self._send(Command.of("cycle", prop))
        return self.channel.get_property_string(prop)

    def seek(self, seconds: int) -> str:
        self._require_running()
        self._send(Command.of("seek", seconds))
        return self.channel.get_property_string("playback-time")

    def volume(self, level: int) -> int:
        self._require_running()
        low, high = self.config.settings.volume_min, self.config.settings.volume_max
        if not low <= level <= high:
            raise InvalidSelectionError(f"volume must be between {low} and {high}")
        self._send(Command.of("set_property", "volume", level))
        return level

    def status(self) -> str:
        self._require_running()
        meta = self.channel.send_one(Command.of("get_property", "metadata"))
        commands = [Command.of("get_property_string", prop) for _, prop in _STATUS_FIELDS]
        try:
            answers = self.channel.send_many(commands, concurrent=True)
        except BatchError as e:
            logger.error("status query '%s' failed: %s", commands[e.index], e)
            raise
        lines = []
        for (label, _), resp in zip(_STATUS_FIELDS, answers):
            value = resp.data if isinstance(resp, Success) else None
            lines.append(f"{label + ':':<6} {value if value is not None else '<nil>'}")
        meta_data = meta.data if isinstance(meta, Success) else None
        lines.append("meta:")
        lines.append(json.dumps(meta_data, indent=4, ensure_ascii=False))
        return "\n".join(lines) + "\n"

    def title(self) -> str:
        self._require_running()
        title = self.status_bar.read_title()
        if title:
            return title
        return self.channel.get_property_string("media-title")
