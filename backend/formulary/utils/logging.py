"""
Logging setup for the formulary engine.

Two renderings of the same record:
- ``json``: one object per line, for shipping to a log store
- ``pretty``: coloured single lines for a terminal

Resolver and cache records may carry ``drug_name``, ``state`` and
``cache_key`` extras. A request-scoped ``correlation_id`` is pulled from
``LogContext`` when the record itself has none.
"""
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional


_CONTEXT_FIELDS = ("drug_name", "correlation_id", "cache_key", "state")

_LEVEL_COLOURS = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[35m",
}
_RESET = "\033[0m"


def _record_context(record: logging.LogRecord) -> Dict[str, Any]:
    """Extras attached to the record, topped up from the active LogContext."""
    context = {
        field: getattr(record, field)
        for field in _CONTEXT_FIELDS
        if getattr(record, field, None) is not None
    }
    if "correlation_id" not in context:
        correlation_id = LogContext.get("correlation_id")
        if correlation_id:
            context["correlation_id"] = correlation_id
    return context


class JSONFormatter(logging.Formatter):
    """
    One JSON object per record:
        {"ts": "...", "level": "INFO", "logger": "...", "where": "module:function:line",
         "message": "...", "drug_name": "...", ...}
    """

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "where": f"{record.module}:{record.funcName}:{record.lineno}",
            "message": record.getMessage(),
        }
        payload.update(_record_context(record))
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class PrettyFormatter(logging.Formatter):
    """
    Terminal rendering:
        10:30:00 INFO     resolver.drug_context_resolver | Validated drug [drug_name=PARACETAMOL]
    """

    def format(self, record: logging.LogRecord) -> str:
        colour = _LEVEL_COLOURS.get(record.levelname, "")
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{clock} {colour}{record.levelname:<8}{_RESET} {record.name} | {record.getMessage()}"

        context = _record_context(record)
        if context:
            line += " [" + " ".join(f"{k}={v}" for k, v in context.items()) + "]"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(
    level: str = "INFO",
    json_format: bool = False,
    log_file: Optional[str] = None,
) -> logging.Logger:
    """
    (Re)configure the root logger.

    Console output follows ``json_format``; a log file, when given, is always
    written as JSON lines. Calling this again replaces earlier handlers.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for handler in list(root.handlers):
        root.removeHandler(handler)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(JSONFormatter() if json_format else PrettyFormatter())
    root.addHandler(console)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        to_file = logging.FileHandler(path, encoding="utf-8")
        to_file.setFormatter(JSONFormatter())
        root.addHandler(to_file)

    return root


def setup_logging_from_settings(settings) -> logging.Logger:
    return setup_logging(
        level=settings.LOG_LEVEL,
        json_format=settings.LOG_FORMAT.lower() == "json",
        log_file=settings.LOG_FILE,
    )


class LogContext:
    """
    Scoped fields merged into every record logged inside the block.

        with LogContext(correlation_id="3f9a0c1d2e4b"):
            await qa_service.answer(request)
    """

    _current_context: Dict[str, Any] = {}

    def __init__(self, **fields):
        self.fields = fields
        self._saved: Dict[str, Any] = {}

    def __enter__(self):
        self._saved = dict(LogContext._current_context)
        LogContext._current_context = {**self._saved, **self.fields}
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        LogContext._current_context = self._saved
        return False

    @classmethod
    def get(cls, key: str, default=None):
        return cls._current_context.get(key, default)
