from __future__ import annotations

import os
import subprocess
from typing import Optional

from playctl.config import Config
from playctl.errors import FilesystemError
from playctl.lock import remove_path
from playctl.logs import get_logger

logger = get_logger("statusbar")


class StatusBar:
    """Title file for a window-manager status bar, plus its refresh command."""

    def __init__(self, config: Config) -> None:
        self.path = config.paths.status_file
        self.command = config.status_bar_cmd

    def read_title(self) -> Optional[str]:
        try:
            return self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise FilesystemError(f"cannot read '{self.path}': {e}") from e

    def write_title(self, title: str) -> None:
        try:
            fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(title + "\n")
        except OSError as e:
            raise FilesystemError(f"cannot write '{self.path}': {e}") from e
        self.refresh()

    def clear(self) -> None:
        remove_path(self.path)

    def refresh(self) -> None:
        if not self.command:
            return
        try:
            subprocess.run(
                [self.command],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                check=True,
                timeout=5,
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning("status bar refresh '%s' failed: %s", self.command, e)
