"""
Central logging for the beans MCP server.

stdout carries the stdio MCP channel, so console output always goes to
stderr. An optional rotating file receives everything at DEBUG.
"""
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

FMT = "%(asctime)s|%(levelname)-8s|%(name)-25s|%(message)s"
FMT_DETAIL = "%(asctime)s|%(levelname)-8s|%(name)-25s|%(filename)s:%(lineno)d|%(message)s"
DATE_FMT = "%Y-%m-%d %H:%M:%S"
MAX_BYTES, BACKUP = 50 * 1024 * 1024, 5

ROOT_LOGGER = "beans_mcp"

_init = {"central": False}


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[Union[str, Path]] = None,
) -> logging.Logger:
    """Initialize logging for the ``beans_mcp`` logger tree. Call once at startup."""
    root = logging.getLogger(ROOT_LOGGER)
    if _init["central"]:
        return root

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root.setLevel(logging.DEBUG)
    root.handlers.clear()
    root.propagate = False

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(logging.Formatter(FMT, DATE_FMT))
    root.addHandler(console)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(path, maxBytes=MAX_BYTES, backupCount=BACKUP, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FMT_DETAIL, DATE_FMT))
        root.addHandler(file_handler)

    # Third-party
    logging.getLogger("mcp").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    _init["central"] = True
    root.debug(f"Logging ready | console={logging.getLevelName(level)} | file={log_file or '-'}")
    return root


def get_logger(name: str) -> logging.Logger:
    """Get logger with beans_mcp prefix."""
    return logging.getLogger(name if name.startswith(f"{ROOT_LOGGER}.") else f"{ROOT_LOGGER}.{name}")
