from __future__ import annotations

from typing import Any, List, Optional


class PlayctlError(RuntimeError):
    pass


class SetupError(PlayctlError):
    pass


class NotRunningError(PlayctlError):
    def __init__(self, prog: str = "playctl") -> None:
        super().__init__(f"'{prog}' is not running")


class AlreadyRunningError(PlayctlError):
    def __init__(self, prog: str = "playctl") -> None:
        super().__init__(f"'{prog}' is already running or locked")


class InvalidCommandError(PlayctlError):
    pass


class ControlSocketMissingError(PlayctlError):
    pass


class ControlSocketTypeError(PlayctlError):
    pass


class ConnectionFailureError(PlayctlError):
    pass


class MalformedResponseError(PlayctlError):
    pass


class PropertyUnavailableError(PlayctlError):
    def __init__(self, field: str) -> None:
        super().__init__(f"property '{field}' unavailable")
        self.field = field


class InvalidSelectionError(PlayctlError):
    pass


class TooManyErrorsError(InvalidSelectionError):
    pass


class TerminalTooSmallError(PlayctlError):
    pass


class FilesystemError(PlayctlError):
    pass


class PlayerError(PlayctlError):
    pass


class BatchError(PlayctlError):
    """A command inside a batch failed.

    ``results`` holds what was collected before the failure (sequential mode)
    or every slot, ``None`` where a command failed (concurrent mode).
    """

    def __init__(self, index: int, cause: BaseException, results: List[Optional[Any]]) -> None:
        super().__init__(str(cause))
        self.index = index
        self.cause = cause
        self.results = results
