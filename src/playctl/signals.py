"""Signal handling observed at well-defined points.

A caught signal is recorded. If the main flow is blocked inside
``SignalGuard.waiting()`` (player output, keyboard, line input) it is raised
there as ``Interrupted``; otherwise the next ``checkpoint()`` raises it.
"""
from __future__ import annotations

import signal
import threading
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, Optional

from playctl.errors import PlayctlError
from playctl.logs import get_logger

logger = get_logger("signals")

STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM, signal.SIGQUIT)
IGNORED_SIGNALS = (signal.SIGHUP,)
UNSUPPORTED_SIGNALS = (signal.SIGUSR1, signal.SIGUSR2)


class Interrupted(PlayctlError):
    def __init__(self, signum: int, exit_code: int) -> None:
        super().__init__(f"received signal '{signal.Signals(signum).name}'")
        self.signum = signum
        self.exit_code = exit_code


class SignalGuard:
    def __init__(
        self,
        stop: Iterable[int] = STOP_SIGNALS,
        ignore: Iterable[int] = IGNORED_SIGNALS,
        unsupported: Iterable[int] = UNSUPPORTED_SIGNALS,
    ) -> None:
        self.stop = tuple(stop)
        self.ignore = tuple(ignore)
        self.unsupported = tuple(unsupported)
        self.received: Optional[int] = None
        self._event = threading.Event()
        self._waiting = False
        self._previous: Dict[int, object] = {}

    @property
    def exit_code(self) -> int:
        if self.received is None or self.received in self.stop:
            return 0
        return 1

    def install(self) -> "SignalGuard":
        for signum in self.stop + self.unsupported:
            self._previous[signum] = signal.signal(signum, self._handle)
        for signum in self.ignore:
            self._previous[signum] = signal.signal(signum, signal.SIG_IGN)
        return self

    def restore(self) -> None:
        for signum, handler in self._previous.items():
            signal.signal(signum, handler)
        self._previous.clear()

    def __enter__(self) -> "SignalGuard":
        return self.install()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.restore()

    def _handle(self, signum, frame) -> None:
        name = signal.Signals(signum).name
        if signum in self.stop:
            logger.info("received signal '%s'", name)
        else:
            logger.error("unsupported signal '%s'", name)
        if self.received is None:
            self.received = signum
        self._event.set()
        if self._waiting:
            self._waiting = False
            raise Interrupted(signum, self.exit_code)

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def checkpoint(self) -> None:
        if self._event.is_set() and self.received is not None:
            raise Interrupted(self.received, self.exit_code)

    @contextmanager
    def waiting(self) -> Iterator[None]:
        self.checkpoint()
        self._waiting = True
        try:
            yield
        finally:
            self._waiting = False
