"""Structured logging configuration.

Every record emitted while an analysis runs is stamped with that
analysis' id (see ``analysis_scope``), so interleaved concurrent
analyses can be told apart in both JSON and console output.
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

# ── Analysis context ─────────────────────────────────────────────────────────

_current_analysis_id: ContextVar[str | None] = ContextVar("current_analysis_id", default=None)

# Fields callers attach through ``extra=``
CONTEXT_KEYS = ("analysis_id", "address", "chain_id", "duration_ms", "import_path", "cache_key")


def current_analysis_id() -> str | None:
    return _current_analysis_id.get()


@contextmanager
def analysis_scope(analysis_id: str | None = None) -> Iterator[str]:
    """Bind an analysis id for the duration of the block.

    Nested scopes reuse the outer id unless one is passed explicitly, so an
    address lookup and the analysis it triggers log under the same id.
    """
    active = analysis_id or _current_analysis_id.get() or uuid.uuid4().hex[:12]
    token = _current_analysis_id.set(active)
    try:
        yield active
    finally:
        _current_analysis_id.reset(token)


class AnalysisContextFilter(logging.Filter):
    """Copy the active analysis id onto records that lack one."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "analysis_id", None) is None:
            analysis_id = _current_analysis_id.get()
            if analysis_id is not None:
                record.analysis_id = analysis_id  # type: ignore[attr-defined]
        return True


def _context(record: logging.LogRecord) -> dict[str, Any]:
    return {key: getattr(record, key) for key in CONTEXT_KEYS if hasattr(record, key)}


# ── Formatters ───────────────────────────────────────────────────────────────


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for staging and production."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        entry.update(_context(record))

        if record.exc_info and record.exc_info[1]:
            exc_type, exc, _ = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__ if exc_type else "Unknown",
                "message": str(exc),
                "traceback": self.formatException(record.exc_info),
            }
        return json.dumps(entry, default=str)


class DevFormatter(logging.Formatter):
    """Coloured single-line output for local runs."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    DIM = "\033[2m"
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, "")
        ts = datetime.fromtimestamp(record.created, timezone.utc).strftime("%H:%M:%S")
        parts = [f"{color}{ts} {record.levelname[0]}{self.RESET}"]

        analysis_id = getattr(record, "analysis_id", None)
        if analysis_id:
            parts.append(f"[{analysis_id[:8]}]")
        parts.append(f"{record.name}: {record.getMessage()}")

        address = getattr(record, "address", None)
        if address:
            target = f"{address}@{getattr(record, 'chain_id', '?')}"
            parts.append(f"{self.DIM}({target}){self.RESET}")

        line = " ".join(parts)
        if record.exc_info and record.exc_info[1]:
            line += "\n" + self.formatException(record.exc_info)
        return line


# ── Setup ────────────────────────────────────────────────────────────────────


def setup_logging(env: str = "development", log_level: str = "INFO") -> None:
    """Configure the root logger.

    Args:
        env: Application environment; staging and production log JSON
        log_level: Minimum log level
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    # stdout carries command output, so logs go to stderr
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.addFilter(AnalysisContextFilter())
    handler.setFormatter(JSONFormatter() if env in ("staging", "production") else DevFormatter())
    root.addHandler(handler)

    for noisy in ("httpcore", "httpx", "asyncio", "redis"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
