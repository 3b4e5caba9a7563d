from __future__ import annotations

import json
import logging
import re
import sys
import time
from pathlib import Path
from typing import Any

from backup_core.utils.paths import ensure_dir

_CONFIGURED = False

TEXT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

_REDACTION_PATTERNS = (
    re.compile(r"(?i)(authorization:\s*bearer\s+)[^\s'\"]+"),
    re.compile(r"(?i)(bearer\s+)[A-Za-z0-9_\-.]{8,}"),
    re.compile(r"()\b(?:ghp|gho|ghu|ghs|ghr|github_pat)_[A-Za-z0-9_]{10,}\b"),
)


def redact_string(text: str) -> str:
    """Mask bearer tokens and GitHub tokens in ``text``."""
    for pattern in _REDACTION_PATTERNS:
        text = pattern.sub(lambda m: f"{m.group(1)}[REDACTED]", text)
    return text


class TextFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__(TEXT_FORMAT, datefmt=DATE_FORMAT)
        self.converter = time.gmtime

    def format(self, record: logging.LogRecord) -> str:
        return redact_string(super().format(record))


class JsonFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__()
        self.converter = time.gmtime

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, DATE_FORMAT),
            "level": record.levelname,
            "logger": record.name,
            "message": redact_string(record.getMessage()),
        }
        if record.exc_info:
            payload["exc_info"] = redact_string(self.formatException(record.exc_info))
        return json.dumps(payload, ensure_ascii=False)


def _resolve_level(level: str | int | None) -> int:
    if isinstance(level, int):
        return level
    if level is None:
        return logging.INFO
    return logging.getLevelNamesMapping().get(str(level).upper(), logging.INFO)


def _build_formatter(fmt: str) -> logging.Formatter:
    if fmt.lower() == "json":
        return JsonFormatter()
    return TextFormatter()


def configure_logging(
    *,
    level: str | int | None = None,
    fmt: str = "text",
    log_file: Path | None = None,
    force: bool = False,
) -> None:
    """Send log records to stdout and, when given, append them to ``log_file``.

    The first call wins unless ``force`` is set, which removes the handlers
    installed by an earlier call.
    """
    global _CONFIGURED
    if _CONFIGURED and not force:
        return

    root = logging.getLogger()
    root.setLevel(_resolve_level(level))
    if force:
        for handler in list(root.handlers):
            if getattr(handler, "_backup_core", False):
                root.removeHandler(handler)
                handler.close()

    formatter = _build_formatter(fmt)
    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)
    stream_handler._backup_core = True  # type: ignore[attr-defined]
    root.addHandler(stream_handler)

    if log_file is not None:
        ensure_dir(log_file.parent)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setFormatter(formatter)
        file_handler._backup_core = True  # type: ignore[attr-defined]
        root.addHandler(file_handler)

    _CONFIGURED = True


def add_logging_args(parser: Any) -> None:
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        default="text",
        choices=["text", "json"],
        help="Logging format (default: text)",
    )
