"""
Logging setup for the scanner:
  - stderr: compact, ANSI-colored lines tagged with the emitting component
  - file (always): full debug trace at logs/scan_YYYYMMDD_HHMMSS.log
  - file (optional): one JSON object per line, for grepping opportunities later
"""

from __future__ import annotations

import json
import logging
import os
import sys
import time
from datetime import datetime, timezone

_RESET = "\033[0m"
_BOLD = "\033[1m"
_DIM = "\033[2m"
_RED = "\033[31m"
_GREEN = "\033[32m"
_YELLOW = "\033[33m"
_CYAN = "\033[36m"
_WHITE = "\033[37m"

_LEVEL_TAGS = {
    logging.DEBUG: (_DIM, "DBG"),
    logging.INFO: (_CYAN, "INF"),
    logging.WARNING: (_YELLOW, "WRN"),
    logging.ERROR: (_RED, "ERR"),
    logging.CRITICAL: (_RED + _BOLD, "CRT"),
}

# Messages starting with these are highlighted on the console
_OPPORTUNITY_PREFIXES = ("BINARY ", "CROSS ", "OPPORTUNITY")

_NOISY_LOGGERS = ("httpx", "httpcore", "websockets", "py_clob_client", "asyncio")


def _component(name: str) -> str:
    """'scanner.cross_market' -> 'cross_market'; root-level modules stay as-is."""
    return name.rsplit(".", 1)[-1]


class ConsoleFormatter(logging.Formatter):
    """HH:MM:SS TAG component  message"""

    def __init__(self, use_color: bool = True):
        super().__init__()
        self._use_color = use_color and _supports_color()

    def format(self, record: logging.LogRecord) -> str:
        ts = time.strftime("%H:%M:%S", time.localtime(record.created))
        color, tag = _LEVEL_TAGS.get(record.levelno, (_WHITE, "???"))
        msg = record.getMessage()
        component = f"{_component(record.name):<14}"

        if not self._use_color:
            line = f"{ts} {tag} {component} {msg}"
        else:
            if msg.startswith(_OPPORTUNITY_PREFIXES):
                msg = f"{_GREEN}{_BOLD}{msg}{_RESET}"
            line = f"{_DIM}{ts}{_RESET} {color}{tag}{_RESET} {_DIM}{component}{_RESET} {msg}"

        if record.exc_info and record.exc_info[1]:
            err = f"{type(record.exc_info[1]).__name__}: {record.exc_info[1]}"
            line += f"\n{_RED}     {err}{_RESET}" if self._use_color else f"\n     {err}"
        return line


class JSONFormatter(logging.Formatter):
    """ndjson records. Fields passed via `extra={"data": {...}}` are merged in."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        data = getattr(record, "data", None)
        if isinstance(data, dict):
            entry.update(data)
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = repr(record.exc_info[1])
        return json.dumps(entry, separators=(",", ":"), default=str)


def setup_logging(
    level: str = "INFO",
    json_log_file: str | None = None,
    log_dir: str | None = None,
) -> str:
    """
    Install console, debug-file and optional JSON handlers on the root logger.

    Returns the path of the debug log file.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(getattr(logging, level.upper(), logging.INFO))
    console.setFormatter(ConsoleFormatter())
    root.addHandler(console)

    if log_dir is None:
        log_dir = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "logs")
    os.makedirs(log_dir, exist_ok=True)
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    log_path = os.path.join(log_dir, f"scan_{stamp}.log")

    debug_handler = logging.FileHandler(log_path, mode="a")
    debug_handler.setLevel(logging.DEBUG)
    debug_handler.setFormatter(logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)-8s %(name)s:%(lineno)d - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    root.addHandler(debug_handler)

    if json_log_file:
        json_handler = logging.FileHandler(json_log_file, mode="a")
        json_handler.setLevel(logging.INFO)
        json_handler.setFormatter(JSONFormatter())
        root.addHandler(json_handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return log_path


def _supports_color() -> bool:
    if os.environ.get("NO_COLOR"):
        return False
    if os.environ.get("FORCE_COLOR"):
        return True
    return hasattr(sys.stderr, "isatty") and sys.stderr.isatty()
