from __future__ import annotations

import json
import logging
from typing import Any


def log_event(
    logger: logging.Logger, message: str, level: int = logging.INFO, /, **fields: Any
) -> None:
    """Log a message followed by its context fields rendered as JSON."""
    if fields:
        payload = json.dumps(fields, sort_keys=True, ensure_ascii=False, default=str)
        logger.log(level, "%s | %s", message, payload)
    else:
        logger.log(level, "%s", message)
