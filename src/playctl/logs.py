"""
Logging configuration for playctl.

Everything goes to the per-user log file; the terminal belongs to the menus.
"""
import logging
from pathlib import Path
from typing import Optional


def setup_logging(log_file: Optional[Path] = None, debug: bool = False) -> logging.Logger:
    """Attach a file handler to the ``playctl`` logger.

    Args:
        log_file: Path of the log file, appended to and created 0600
        debug: Log at DEBUG instead of INFO

    Returns:
        The package logger
    """
    logger = logging.getLogger("playctl")
    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if log_file is None:
        logger.addHandler(logging.NullHandler())
        return logger

    log_file.touch(mode=0o600, exist_ok=True)
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s")
    )
    logger.addHandler(file_handler)
    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"playctl.{name}")
