from __future__ import annotations

import getpass
import json
import platform
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

from platformdirs import user_config_dir

from playctl.errors import SetupError
from playctl.logs import get_logger
from playctl.streams import DEFAULT_STREAMS, Stream, parse_streams

PROG_NAME = "playctl"

logger = get_logger("config")


def _default_player_args() -> List[str]:
    return [
        "--no-config",
        "--msg-level=all=v",
        "--network-timeout=10",
        "--cache=no",
        "--cache-pause=no",
        "--keep-open=always",
        "--keep-open-pause=no",
        "--idle=yes",
    ]


@dataclass
class Settings:
    player: str = "mpv"
    # The control socket option is appended at launch.
    player_args: List[str] = field(default_factory=_default_player_args)

    max_menu_tries: int = 5
    min_status_tries: int = 1
    menu_status_tries: int = 5
    max_status_tries: int = 10
    poll_interval: float = 1.0

    volume_min: int = 0
    volume_max: int = 100

    # mpv closes the pipe if we hang up straight after writing.
    write_delay: float = 0.1
    socket_timeout: float = 5.0
    read_limit: int = 1024 * 1024

    stop_timeout: float = 5.0
    status_bar_command: str = "wmbarupdate"


@dataclass(frozen=True)
class RuntimePaths:
    lock_dir: Path
    pid_file: Path
    control_socket: Path
    player_pid_file: Path
    log_file: Path
    status_file: Path

    @classmethod
    def for_user(cls, prog: str = PROG_NAME, tmp_dir: Optional[Path] = None, user: Optional[str] = None) -> "RuntimePaths":
        root = Path(tmp_dir) if tmp_dir is not None else Path(tempfile.gettempdir())
        base = f"{user or getpass.getuser()}-{prog}"
        return cls(
            lock_dir=root / f"{base}.lock",
            pid_file=root / f"{base}.pid",
            control_socket=root / f"{base}-player-control.socket",
            player_pid_file=root / f"{base}-player.pid",
            log_file=root / f"{base}.log",
            status_file=root / f"{base}-wm.txt",
        )


@dataclass(frozen=True)
class Config:
    settings: Settings
    paths: RuntimePaths
    streams: Mapping[int, Stream]
    prog_name: str = PROG_NAME
    status_bar_cmd: Optional[str] = None


def config_path() -> Path:
    return Path(user_config_dir(PROG_NAME)) / "config.json"


def _read_config_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("ignoring unreadable config %s: %s", path, e)
        return {}
    if not isinstance(raw, dict):
        logger.warning("ignoring config %s: top level is not an object", path)
        return {}
    return raw


def load_settings(path: Optional[Path] = None) -> Settings:
    raw = _read_config_file(path or config_path())
    try:
        return Settings(**{k: v for k, v in raw.items() if k in Settings.__annotations__})
    except TypeError as e:
        logger.warning("invalid settings, using defaults: %s", e)
        return Settings()


def load_streams(path: Optional[Path] = None) -> Dict[int, Stream]:
    raw = _read_config_file(path or config_path())
    streams = raw.get("streams")
    if isinstance(streams, dict):
        parsed = parse_streams(streams)
        if parsed:
            return parsed
    return dict(DEFAULT_STREAMS)


def build_config(
    settings: Optional[Settings] = None,
    streams: Optional[Mapping[int, Stream]] = None,
    paths: Optional[RuntimePaths] = None,
) -> Config:
    """Resolve everything the components need, once."""
    settings = settings or load_settings()
    catalog = dict(streams) if streams is not None else load_streams()
    status_bar_cmd = shutil.which(settings.status_bar_command) if settings.status_bar_command else None
    return Config(
        settings=settings,
        paths=paths or RuntimePaths.for_user(),
        streams=MappingProxyType(catalog),
        status_bar_cmd=status_bar_cmd,
    )


def check_setup(config: Config) -> None:
    system = platform.system().lower()
    if system not in {"linux", "freebsd", "netbsd", "openbsd", "darwin"}:
        logger.warning("'%s' has not been tested", system)
    if not shutil.which(config.settings.player):
        raise SetupError(f"command '{config.settings.player}' not found")
