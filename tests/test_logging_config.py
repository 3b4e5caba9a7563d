from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from backup_core.logging_config import (
    JsonFormatter,
    TextFormatter,
    add_logging_args,
    configure_logging,
    redact_string,
)
from backup_core.utils.logging import log_event


def _record(msg: str, *args: object) -> logging.LogRecord:
    return logging.LogRecord(
        name="backup_core.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=args,
        exc_info=None,
    )


def test_redact_string_masks_tokens() -> None:
    text = "Authorization: Bearer abcdef123456 and ghp_0123456789abcdefXYZ"
    redacted = redact_string(text)
    assert "abcdef123456" not in redacted
    assert "ghp_0123456789abcdefXYZ" not in redacted
    assert redacted.count("[REDACTED]") == 2


def test_text_formatter_layout_and_redaction() -> None:
    output = TextFormatter().format(_record("headers=%s", {"Authorization": "Bearer secret-token-1"}))
    timestamp, level, name, message = output.split(" | ", 3)
    assert timestamp.endswith("Z")
    assert (level, name) == ("INFO", "backup_core.test")
    assert "secret-token-1" not in message


def test_json_formatter_emits_one_object() -> None:
    payload = json.loads(JsonFormatter().format(_record("Saved archive -> %s", "/wiki/a.zim")))
    assert payload["message"] == "Saved archive -> /wiki/a.zim"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "backup_core.test"


def test_configure_logging_appends_to_file(tmp_path: Path, capsys) -> None:
    log_file = tmp_path / "logs" / "kiwix-backup.log"
    log_file.parent.mkdir()
    log_file.write_text("previous run\n", encoding="utf-8")

    configure_logging(level="INFO", log_file=log_file)
    logging.getLogger("backup_core.test").info("=== START KIWIX MONTHLY BACKUP ===")
    for handler in logging.getLogger().handlers:
        handler.flush()

    content = log_file.read_text(encoding="utf-8")
    assert content.startswith("previous run\n")
    assert "=== START KIWIX MONTHLY BACKUP ===" in content
    assert "=== START KIWIX MONTHLY BACKUP ===" in capsys.readouterr().out


def test_configure_logging_is_idempotent_unless_forced(tmp_path: Path) -> None:
    root = logging.getLogger()
    configure_logging(level="INFO")
    configure_logging(level="INFO", log_file=tmp_path / "a.log")
    ours = [h for h in root.handlers if getattr(h, "_backup_core", False)]
    assert len(ours) == 1

    configure_logging(level="DEBUG", log_file=tmp_path / "a.log", force=True)
    ours = [h for h in root.handlers if getattr(h, "_backup_core", False)]
    assert len(ours) == 2
    assert root.level == logging.DEBUG


def test_add_logging_args_defaults() -> None:
    parser = argparse.ArgumentParser()
    add_logging_args(parser)
    args = parser.parse_args([])
    assert (args.log_level, args.log_format) == ("INFO", "text")


def test_log_event_appends_sorted_fields(caplog) -> None:
    logger = logging.getLogger("backup_core.test")
    with caplog.at_level(logging.INFO, logger="backup_core.test"):
        log_event(logger, "Failed", logging.ERROR, url="https://x.test", basename="wiki")
        log_event(logger, "plain")
    assert caplog.records[0].getMessage() == 'Failed | {"basename": "wiki", "url": "https://x.test"}'
    assert caplog.records[0].levelno == logging.ERROR
    assert caplog.records[1].getMessage() == "plain"


def test_log_event_accepts_fields_named_like_its_parameters(caplog) -> None:
    logger = logging.getLogger("backup_core.test")
    with caplog.at_level(logging.INFO, logger="backup_core.test"):
        log_event(
            logger,
            "binaries: item failed",
            logging.WARNING,
            message="connection reset",
            level="x",
            logger="y",
        )
    record = caplog.records[0]
    assert record.levelno == logging.WARNING
    assert record.getMessage() == (
        'binaries: item failed | {"level": "x", "logger": "y", "message": "connection reset"}'
    )
