import json
import shutil
import socketserver
import tempfile
import threading
import time
from pathlib import Path

import pytest

from playctl.config import RuntimePaths, Settings, build_config
from playctl.ipc import Command
from playctl.streams import Stream


class _Handler(socketserver.StreamRequestHandler):
    def handle(self):
        line = self.rfile.readline()
        if not line:
            return
        reply = self.server.player.reply_to(line)
        if reply:
            self.wfile.write(reply)


class _Server(socketserver.ThreadingMixIn, socketserver.UnixStreamServer):
    daemon_threads = True


class FakePlayer:
    """Speaks the player's JSON line protocol on a Unix socket."""

    def __init__(self, path: Path):
        self.path = path
        self.received = []
        self.properties = {
            "idle-active": "no",
            "path": "",
            "video": "auto",
            "mute": "no",
            "pause": "no",
            "playback-time": "00:00:42",
            "media-title": "Some Title",
            "file-format": "mp3",
            "metadata": {"icy-title": "Song"},
            "filtered-metadata": {},
        }
        # verb or property name -> list of raw byte replies, consumed in order
        self.scripted = {}
        self.delay = 0.0
        self._lock = threading.Lock()
        self._server = None

    def reply_to(self, line: bytes) -> bytes:
        command = Command.from_json(line.decode("utf-8"))
        with self._lock:
            self.received.append(command)
            key = command.args[0] if command.verb.startswith("get_property") and command.args else command.verb
            queue = self.scripted.get(key)
            scripted = queue.pop(0) if queue else None
        if self.delay:
            time.sleep(self.delay)
        if scripted is not None:
            return scripted
        if command.verb in ("get_property", "get_property_string"):
            name = command.args[0]
            if name in self.properties:
                body = {"data": self.properties[name], "error": "success"}
            else:
                body = {"error": "property unavailable"}
        else:
            body = {"error": "success"}
        return (json.dumps(body) + "\n").encode("utf-8")

    @property
    def verbs(self):
        return [c.verb for c in self.received]

    def start(self):
        self._server = _Server(str(self.path), _Handler)
        self._server.player = self
        threading.Thread(target=self._server.serve_forever, daemon=True).start()
        return self

    def stop(self):
        if self._server is not None:
            self._server.shutdown()
            self._server.server_close()


@pytest.fixture
def short_tmp():
    """Unix socket paths must stay short, so avoid pytest's deep tmp_path."""
    path = Path(tempfile.mkdtemp(prefix="pc-", dir="/tmp"))
    yield path
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def settings():
    return Settings(
        write_delay=0,
        poll_interval=0,
        socket_timeout=2.0,
        stop_timeout=0.3,
        status_bar_command="",
    )


@pytest.fixture
def config(short_tmp, settings):
    return build_config(
        settings=settings,
        streams={
            1: Stream(1, "Test", "Test", "test-url"),
            2: Stream(2, "Other", "Other Radio", "https://example.com/other"),
        },
        paths=RuntimePaths.for_user(tmp_dir=short_tmp, user="tester"),
    )


@pytest.fixture
def running(config):
    """Mark the instance as running, the way `start` does."""
    config.paths.lock_dir.mkdir()
    yield config
    shutil.rmtree(config.paths.lock_dir, ignore_errors=True)


@pytest.fixture
def player(config):
    fake = FakePlayer(config.paths.control_socket).start()
    yield fake
    fake.stop()


@pytest.fixture
def no_display(monkeypatch):
    monkeypatch.delenv("DISPLAY", raising=False)
