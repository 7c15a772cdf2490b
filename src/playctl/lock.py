from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from playctl.config import PROG_NAME, RuntimePaths
from playctl.errors import AlreadyRunningError, FilesystemError
from playctl.logs import get_logger

logger = get_logger("lock")


def read_pid(path: Path) -> Optional[int]:
    try:
        return int(path.read_text(encoding="utf-8").strip())
    except (OSError, ValueError):
        return None


def pid_alive(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists, owned by someone else.
        return True
    return True


def pid_file_alive(path: Path) -> bool:
    pid = read_pid(path)
    return pid is not None and pid_alive(pid)


def write_pid(path: Path, pid: int) -> None:
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(f"{pid}\n")


def remove_path(path: Path) -> None:
    """Remove a file, socket or empty directory; a missing path is fine."""
    try:
        if path.is_dir() and not path.is_symlink():
            path.rmdir()
        else:
            path.unlink()
    except FileNotFoundError:
        return
    except OSError as e:
        raise FilesystemError(f"cannot remove '{path}': {e}") from e


def is_running(paths: RuntimePaths) -> bool:
    if paths.lock_dir.is_dir():
        return True
    return pid_file_alive(paths.pid_file)


class InstanceLock:
    """Single-instance lock: a directory created with fail-if-exists plus a pid file.

    Use as a context manager; the lock is released on every way out of the
    ``with`` block.
    """

    def __init__(self, paths: RuntimePaths, prog: str = PROG_NAME) -> None:
        self.paths = paths
        self.prog = prog
        self.acquired = False

    def acquire(self) -> "InstanceLock":
        if pid_file_alive(self.paths.pid_file):
            raise AlreadyRunningError(self.prog)
        try:
            os.mkdir(self.paths.lock_dir, 0o700)
        except FileExistsError:
            raise AlreadyRunningError(self.prog) from None
        except OSError as e:
            raise FilesystemError(f"cannot create lock '{self.paths.lock_dir}': {e}") from e
        try:
            write_pid(self.paths.pid_file, os.getpid())
        except OSError as e:
            remove_path(self.paths.lock_dir)
            raise FilesystemError(f"cannot write pid file '{self.paths.pid_file}': {e}") from e
        self.acquired = True
        logger.debug("lock acquired: %s", self.paths.lock_dir)
        return self

    def release(self) -> None:
        if not self.acquired:
            return
        self.acquired = False
        remove_path(self.paths.pid_file)
        remove_path(self.paths.lock_dir)
        logger.debug("lock released: %s", self.paths.lock_dir)

    def __enter__(self) -> "InstanceLock":
        return self.acquire()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
