"""JSONL logging on stderr.

stdout belongs to the MCP JSON-RPC stream, so nothing else may ever write there:
uvicorn's loggers are folded into the same stderr handler as ours.
"""
from __future__ import annotations

import json
import logging
import sys
from typing import Any, Dict, Iterable, Optional, TextIO

from .time import epoch_to_iso

# `extra={...}` keys copied onto each record when present.
_CORRELATION_KEYS = ("request_id", "command", "tool", "stage", "step", "pid")

# Third-party loggers that would otherwise install their own handlers.
_FOLDED_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi")

_installed: Optional[logging.Handler] = None


class JsonlFormatter(logging.Formatter):
    def __init__(self, *, component: str):
        super().__init__()
        self._component = str(component or "").strip() or "premiere-bridge"

    def _fields(self, record: logging.LogRecord) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "ts": epoch_to_iso(record.created) or "",
            "level": record.levelname,
            "logger": record.name,
            "component": self._component,
            "msg": record.getMessage(),
        }
        for key in _CORRELATION_KEYS:
            value = getattr(record, key, None)
            text = "" if value is None else str(value).strip()
            if text:
                out[key] = text
        if record.exc_info:
            out["exc"] = self.formatException(record.exc_info)
        return out

    def format(self, record: logging.LogRecord) -> str:
        fields = self._fields(record)
        try:
            return json.dumps(fields, ensure_ascii=False, default=str)
        except (TypeError, ValueError):
            return json.dumps({"component": self._component, "level": fields["level"], "msg": "(log serialization failed)"})


def _level(name: str) -> int:
    value = logging.getLevelName(str(name or "INFO").strip().upper())
    return value if isinstance(value, int) else logging.INFO


def fold_loggers(names: Iterable[str] = _FOLDED_LOGGERS) -> None:
    """Strip handlers from the named loggers so their records reach the root handler."""
    for name in names:
        lg = logging.getLogger(name)
        for h in list(lg.handlers):
            lg.removeHandler(h)
        lg.propagate = True


def setup_root_json_logging(
    *,
    component: str,
    level: str = "INFO",
    stream: Optional[TextIO] = None,
    force: bool = False,
) -> logging.Handler:
    """Install the JSONL handler on the root logger (idempotent unless `force`)."""
    global _installed
    root = logging.getLogger()
    lvl = _level(level)
    root.setLevel(lvl)

    if _installed is not None and not force:
        _installed.setLevel(lvl)
        return _installed

    if force:
        for h in list(root.handlers):
            root.removeHandler(h)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(lvl)
    handler.setFormatter(JsonlFormatter(component=component))
    root.addHandler(handler)
    fold_loggers()
    _installed = handler
    return handler
