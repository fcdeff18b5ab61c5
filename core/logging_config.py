"""
Logging setup for the dispense calculator.

Two output styles share one root configuration:
- **ConsoleFormatter**: colored, one line per record, pipeline stage in brackets
- **JSONFormatter**: one JSON object per line for log shipping; log files always use it

Pipeline code logs through ``StageLoggerAdapter`` so every record carries the
step (``stage``) and collaborator (``service``) that produced it. Records may
also carry ``error_code`` and ``elapsed_ms`` via ``extra``.

Usage:
    from core.logging_config import configure_logging
    configure_logging(json_mode=True, log_file="logs/calculator.jsonl")
"""

import json
import logging
import sys
from pathlib import Path
from typing import Optional, Union

# Record attributes copied into JSON output when set
CONTEXT_FIELDS = ("stage", "service", "error_code", "elapsed_ms")

# SDK / transport loggers whose DEBUG output includes request bodies and headers
NOISY_LOGGERS = ("httpx", "httpcore", "openai", "anthropic", "urllib3", "requests")


class JSONFormatter(logging.Formatter):
    """Emit each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.name != "root":
            entry["module"] = record.module
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value not in (None, ""):
                entry[field] = value
        if record.exc_info and record.exc_info[1]:
            exc = record.exc_info[1]
            entry["error"] = {"type": type(exc).__name__, "message": str(exc)}
        return json.dumps(entry, ensure_ascii=False, default=str)


class ConsoleFormatter(logging.Formatter):
    """Colored level tag, optional ``[stage]`` tag, then the message."""

    LEVEL_TAGS = {
        logging.DEBUG: "\033[90m[DEBUG]\033[0m",
        logging.INFO: "[INFO]",
        logging.WARNING: "\033[33m[WARN]\033[0m",
        logging.ERROR: "\033[31m[ERROR]\033[0m",
        logging.CRITICAL: "\033[1;31m[CRIT]\033[0m",
    }

    def format(self, record: logging.LogRecord) -> str:
        parts = [self.LEVEL_TAGS.get(record.levelno, f"[{record.levelname}]")]
        stage = getattr(record, "stage", "")
        if stage:
            parts.append(f"[{stage}]")
        parts.append(record.getMessage())
        line = " ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _resolve_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return resolved


def configure_logging(
    *,
    json_mode: bool = False,
    log_file: Optional[str] = None,
    level: Union[int, str] = logging.INFO,
    quiet: bool = False,
) -> None:
    """
    Configure the root logger. Safe to call more than once.

    Args:
        json_mode: JSON lines on stderr instead of colored text.
        log_file: Also append JSON lines to this file (parent dirs are created).
        level: Level as an int or a name such as ``"DEBUG"``.
        quiet: No console handler; only the file, if any.
    """
    level = _resolve_level(level)
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    if not quiet:
        console = logging.StreamHandler(sys.stderr)
        console.setLevel(level)
        console.setFormatter(JSONFormatter() if json_mode else ConsoleFormatter())
        root.addHandler(console)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(JSONFormatter())
        root.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


class StageLoggerAdapter(logging.LoggerAdapter):
    """
    Adds ``stage`` and ``service`` to every record; explicit ``extra`` keys win.

        logger = StageLoggerAdapter(logging.getLogger(__name__), {"stage": "calculate"})
        logger.for_stage("fetch_packages").debug("...")
    """

    def process(self, msg, kwargs):
        extra = kwargs.setdefault("extra", {})
        extra.setdefault("stage", self.extra.get("stage", ""))
        extra.setdefault("service", self.extra.get("service", ""))
        return msg, kwargs

    def for_stage(self, stage: str) -> "StageLoggerAdapter":
        """Sibling adapter bound to another stage."""
        return StageLoggerAdapter(self.logger, {**self.extra, "stage": stage})
