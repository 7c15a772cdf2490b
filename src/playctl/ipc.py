"""JSON line exchange with the player's control socket.

Requests are ``{"command": [verb, *args]}`` objects, one per line. The player
answers with an object carrying ``error`` (``"success"`` when it worked) and,
for property reads, ``data``. Responses are decoded once here into
``Success``, ``Failure`` or ``PropertyMissing``.
"""
from __future__ import annotations

import json
import socket
import stat
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from playctl.config import Config
from playctl.errors import (
    BatchError,
    ConnectionFailureError,
    ControlSocketMissingError,
    ControlSocketTypeError,
    InvalidCommandError,
    MalformedResponseError,
    NotRunningError,
    PlayctlError,
    PropertyUnavailableError,
)
from playctl.lock import is_running
from playctl.logs import get_logger
from playctl.signals import SignalGuard

logger = get_logger("ipc")

_PROPERTY_MISSING = {"property unavailable", "property not found"}


@dataclass(frozen=True)
class Command:
    verb: str
    args: Tuple[Any, ...] = ()

    @classmethod
    def of(cls, verb: str, *args: Any) -> "Command":
        return cls(verb=verb, args=tuple(args))

    def payload(self) -> Dict[str, List[Any]]:
        return {"command": [self.verb, *self.args]}

    def to_json(self) -> str:
        try:
            return json.dumps(self.payload(), ensure_ascii=False, allow_nan=False)
        except (TypeError, ValueError) as e:
            raise InvalidCommandError(f"invalid json for command '{self.verb}': {e}") from e

    @classmethod
    def from_json(cls, text: str) -> "Command":
        try:
            raw = json.loads(text)
        except ValueError as e:
            raise InvalidCommandError(f"invalid json {text!r}") from e
        parts = raw.get("command") if isinstance(raw, dict) else None
        if not isinstance(parts, list) or not parts or not isinstance(parts[0], str):
            raise InvalidCommandError(f"not a command object: {text!r}")
        return cls(verb=parts[0], args=tuple(parts[1:]))

    def __str__(self) -> str:
        return " ".join(str(p) for p in [self.verb, *self.args])


@dataclass(frozen=True)
class Success:
    data: Any = None
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class Failure:
    message: str
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class PropertyMissing:
    message: str = "property unavailable"
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False)


Response = Union[Success, Failure, PropertyMissing]


def decode_response(raw: Mapping[str, Any]) -> Response:
    error = raw.get("error")
    if error == "success":
        return Success(data=raw.get("data"), raw=raw)
    if error in _PROPERTY_MISSING:
        return PropertyMissing(message=str(error), raw=raw)
    if error is None:
        return Failure(message="response has no 'error' field", raw=raw)
    return Failure(message=str(error), raw=raw)


class ControlChannel:
    def __init__(
        self,
        config: Config,
        running: Optional[Callable[[], bool]] = None,
        guard: Optional[SignalGuard] = None,
    ) -> None:
        self.config = config
        self.guard = guard or SignalGuard()
        self._running = running or (lambda: is_running(config.paths))

    @property
    def socket_path(self):
        return self.config.paths.control_socket

    def _require_running(self) -> None:
        if not self._running():
            raise NotRunningError(self.config.prog_name)

    def _check_socket(self) -> None:
        path = self.socket_path
        try:
            mode = path.stat().st_mode
        except FileNotFoundError:
            raise ControlSocketMissingError(f"'{path}' no such file or directory") from None
        except OSError as e:
            raise ControlSocketMissingError(f"'{path}': {e}") from e
        if not stat.S_ISSOCK(mode):
            raise ControlSocketTypeError(f"'{path}' is not a socket")

    def send_one(self, command: Command) -> Response:
        self._require_running()
        line = (command.to_json() + "\n").encode("utf-8")
        self._check_socket()

        settings = self.config.settings
        buf = b""
        with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as s:
            s.settimeout(settings.socket_timeout)
            try:
                s.connect(str(self.socket_path))
            except OSError as e:
                raise ConnectionFailureError(f"cannot connect to '{self.socket_path}': {e}") from e
            try:
                s.sendall(line)
                if settings.write_delay > 0:
                    time.sleep(settings.write_delay)
                while b"\n" not in buf and len(buf) < settings.read_limit:
                    chunk = s.recv(4096)
                    if not chunk:
                        break
                    buf += chunk
            except socket.timeout:
                raise ConnectionFailureError(
                    f"no response to '{command}' within {settings.socket_timeout}s"
                ) from None
            except OSError as e:
                raise ConnectionFailureError(f"'{command}': {e}") from e

        # The socket is a stream; only the first line belongs to us.
        first = buf.split(b"\n", 1)[0].strip()
        try:
            raw = json.loads(first.decode("utf-8", errors="replace"))
        except ValueError:
            raise MalformedResponseError(f"invalid json in response to '{command}': {first[:200]!r}") from None
        if not isinstance(raw, dict):
            raise MalformedResponseError(f"response to '{command}' is not an object: {first[:200]!r}")

        resp = decode_response(raw)
        logger.debug("%s -> %s", command, raw)
        return resp

    def send_many(self, commands: Sequence[Command], concurrent: bool = False) -> List[Response]:
        self._require_running()
        if not concurrent:
            done: List[Response] = []
            for index, command in enumerate(commands):
                self.guard.checkpoint()
                try:
                    done.append(self.send_one(command))
                except PlayctlError as e:
                    raise BatchError(index, e, list(done)) from e
            return done

        self.guard.checkpoint()
        # One slot per command; only the owning future's result fills it.
        slots: List[Optional[Response]] = [None] * len(commands)
        failed: Dict[int, PlayctlError] = {}
        with ThreadPoolExecutor(max_workers=max(1, len(commands))) as pool:
            futures = {pool.submit(self.send_one, command): i for i, command in enumerate(commands)}
            for future in as_completed(futures):
                index = futures[future]
                try:
                    slots[index] = future.result()
                except PlayctlError as e:
                    failed[index] = e
        self.guard.checkpoint()
        if failed:
            first = min(failed)
            raise BatchError(first, failed[first], slots) from failed[first]
        return [s for s in slots if s is not None]

    def get_property(self, name: str) -> Any:
        resp = self.send_one(Command.of("get_property", name))
        if not isinstance(resp, Success):
            raise PropertyUnavailableError(name)
        return resp.data

    def get_property_string(self, name: str) -> str:
        resp = self.send_one(Command.of("get_property_string", name))
        if not isinstance(resp, Success):
            raise PropertyUnavailableError(name)
        return "" if resp.data is None else str(resp.data)


def has_field(resp: Response, name: str) -> bool:
    if not isinstance(resp, Success):
        return False
    if name in resp.raw:
        return True
    return isinstance(resp.data, dict) and name in resp.data


def poll_until(
    channel: ControlChannel,
    command: Command,
    field_name: str,
    max_tries: int,
    interval: Optional[float] = None,
) -> Response:
    """Re-send ``command`` at a fixed interval until ``field_name`` shows up.

    Sleeps before every try. Channel errors are not retried. A signal caught
    by the channel's guard ends the poll with ``Interrupted``.
    """
    guard = channel.guard
    if interval is None:
        interval = channel.config.settings.poll_interval
    for attempt in range(1, max(0, max_tries) + 1):
        if interval > 0:
            with guard.waiting():
                time.sleep(interval)
        guard.checkpoint()
        resp = channel.send_one(command)
        if has_field(resp, field_name):
            logger.debug("'%s' available after %d tries", field_name, attempt)
            return resp
    raise PropertyUnavailableError(field_name)
