from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

import requests

T = TypeVar("T")

logger = logging.getLogger(__name__)

_TRANSIENT_EXCEPTIONS = (
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
    requests.exceptions.ChunkedEncodingError,
    requests.exceptions.ContentDecodingError,
)


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 3
    backoff_base: float = 2.0
    backoff_max: float = 60.0
    retry_on_429: bool = True
    retry_on_403: bool = False

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number ``attempt + 1`` (``attempt`` is 0-based)."""
        return min(self.backoff_base**attempt, self.backoff_max)


def is_transient_error(exc: BaseException, retry: RetryConfig | None = None) -> bool:
    """Check whether ``exc`` is worth retrying.

    5xx responses and connection-level failures always are. 429 and 403
    (GitHub's rate-limit status) are governed by ``retry``.
    """
    retry = retry or RetryConfig()
    if isinstance(exc, requests.exceptions.HTTPError):
        status_code = exc.response.status_code if exc.response is not None else None
        if status_code is None:
            return False
        if status_code >= 500:
            return True
        if status_code == 429:
            return retry.retry_on_429
        if status_code == 403:
            return retry.retry_on_403
        return False
    return isinstance(exc, _TRANSIENT_EXCEPTIONS)


def with_retries(
    fn: Callable[[], T],
    retry: RetryConfig | None = None,
    *,
    description: str = "request",
    on_retry: Callable[[int, Exception], None] | None = None,
) -> T:
    """Call ``fn`` until it succeeds, retrying transient HTTP failures.

    Args:
        fn: Zero-argument callable performing one attempt.
        retry: Attempt count and backoff settings.
        description: Label used in the retry log line (usually the URL).
        on_retry: Optional callback invoked before each retry with
            ``(attempt_number, exception)``; use it to discard partial output.

    Returns:
        The result of the first successful call.

    Raises:
        Exception: The last exception when it is not transient or attempts
            are exhausted.
    """
    retry = retry or RetryConfig()
    attempts = max(1, retry.max_attempts)
    for attempt in range(attempts):
        try:
            return fn()
        except Exception as exc:
            if not is_transient_error(exc, retry) or attempt >= attempts - 1:
                raise
            delay = retry.delay_for(attempt)
            logger.warning(
                "Attempt %d/%d for %s failed (%s); retrying in %.1fs",
                attempt + 1,
                attempts,
                description,
                exc,
                delay,
            )
            if on_retry:
                on_retry(attempt + 1, exc)
            time.sleep(delay)
    raise RuntimeError("unreachable")
