"""
Structured Logger — JSON or human-readable log output for the whole process.

Two output modes:

- **JSON mode** (`CODELOOP_LOG_FORMAT=json`): each line is a JSON object.
- **Human mode** (default): ``HH:MM:SS [LEVEL] logger: message``.

Records may carry ``session_id`` and ``tool_name`` attributes (pass them via
``extra=``); both formatters include them when present.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, Optional

LOG_FORMAT_ENV = "CODELOOP_LOG_FORMAT"
CONTEXT_FIELDS = ("session_id", "tool_name")


# ── JSON formatter ──────────────────────────────────────────────────

class StructuredFormatter(logging.Formatter):
    """Emits each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for ctx_field in CONTEXT_FIELDS:
            val = getattr(record, ctx_field, "")
            if val:
                entry[ctx_field] = val
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


# ── Human-readable formatter ────────────────────────────────────────

class HumanFormatter(logging.Formatter):

    def __init__(self, fmt: Optional[str] = None, datefmt: Optional[str] = None):
        super().__init__(
            fmt=fmt or "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt=datefmt or "%H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        session_id = getattr(record, "session_id", "")
        return f"[{session_id[:8]}] {line}" if session_id else line


# ── Setup ───────────────────────────────────────────────────────────

def verbosity_to_level(verbose: int, debug: bool = False) -> str:
    if debug or verbose >= 2:
        return "DEBUG"
    if verbose == 1:
        return "INFO"
    return "WARNING"


def setup_logging(level: str = "WARNING", json_mode: Optional[bool] = None) -> None:
    """
    Configure the root logger.

    Parameters
    ----------
    level : str
        Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    json_mode : bool or None
        If None, auto-detect from ``CODELOOP_LOG_FORMAT`` (``"json"`` enables it).
    """
    if json_mode is None:
        json_mode = os.getenv(LOG_FORMAT_ENV, "").lower() == "json"

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.WARNING))
    root.handlers.clear()

    handler = logging.StreamHandler()
    if json_mode:
        handler.setFormatter(StructuredFormatter(datefmt="%Y-%m-%dT%H:%M:%S"))
    else:
        handler.setFormatter(HumanFormatter())
    root.addHandler(handler)

    # Third-party HTTP clients are chatty at INFO
    for noisy in ("httpx", "httpcore", "openai", "anthropic"):
        logging.getLogger(noisy).setLevel(max(root.level, logging.WARNING))
