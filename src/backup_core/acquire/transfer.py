"""Streaming HTTP transfer into a temp path with atomic commit.

Every file that lands in a managed directory goes through here: the body is
streamed to ``<final>.part`` and only renamed onto the final name once it is
complete (and, for archives, verified). A failed transfer never leaves data
at either path.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime
from email.utils import parsedate_to_datetime
from pathlib import Path

import requests

from backup_core.exceptions import TransferFailedError
from backup_core.network_utils import RetryConfig, with_retries
from backup_core.utils.hash import CHUNK_SIZE
from backup_core.utils.http import DEFAULT_TIMEOUT, Timeout
from backup_core.utils.paths import ensure_dir, temp_path_for

logger = logging.getLogger(__name__)

TEMP_SUFFIX = ".part"


@dataclass(frozen=True)
class TransferResult:
    path: Path
    url: str
    resolved_url: str
    bytes_downloaded: int
    last_modified: datetime | None = None


def parse_last_modified(value: str | None) -> datetime | None:
    """Parse an HTTP ``Last-Modified`` header; None when absent or invalid."""
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    return parsed


def remove_quietly(*paths: Path) -> None:
    for path in paths:
        try:
            path.unlink(missing_ok=True)
        except OSError:
            logger.warning("Failed to remove %s", path, exc_info=True)


def stream_to_file(
    session: requests.Session,
    url: str,
    dest: Path,
    *,
    timeout: Timeout = DEFAULT_TIMEOUT,
    retry: RetryConfig | None = None,
    preserve_mtime: bool = True,
) -> TransferResult:
    """Stream ``url`` into ``dest``, restarting from zero on transient errors.

    The remote ``Last-Modified`` time is applied to ``dest`` when
    ``preserve_mtime`` is set and the header is present.

    Raises:
        TransferFailedError: The transfer did not complete; ``dest`` has been
            deleted.
    """
    ensure_dir(dest.parent)
    state: dict[str, object] = {}

    def _attempt() -> int:
        written = 0
        with session.get(url, stream=True, timeout=timeout) as response:
            response.raise_for_status()
            state["resolved_url"] = response.url or url
            state["last_modified"] = parse_last_modified(response.headers.get("Last-Modified"))
            with dest.open("wb") as f:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        f.write(chunk)
                        written += len(chunk)
        return written

    try:
        written = with_retries(
            _attempt,
            retry,
            description=url,
            on_retry=lambda _attempt_no, _exc: remove_quietly(dest),
        )
    except (requests.RequestException, OSError) as exc:
        remove_quietly(dest)
        raise TransferFailedError(
            f"Failed to download {url}: {exc}",
            context={"url": url, "path": str(dest)},
        ) from exc

    last_modified = state.get("last_modified")
    if preserve_mtime and isinstance(last_modified, datetime):
        timestamp = last_modified.timestamp()
        os.utime(dest, (timestamp, timestamp))
    return TransferResult(
        path=dest,
        url=url,
        resolved_url=str(state.get("resolved_url") or url),
        bytes_downloaded=written,
        last_modified=last_modified if isinstance(last_modified, datetime) else None,
    )


def commit(temp_path: Path, final_path: Path) -> Path:
    """Atomically move a finished temp file onto its final name."""
    os.replace(temp_path, final_path)
    return final_path


def download_file(
    session: requests.Session,
    url: str,
    final_path: Path,
    *,
    timeout: Timeout = DEFAULT_TIMEOUT,
    retry: RetryConfig | None = None,
    preserve_mtime: bool = True,
) -> TransferResult:
    """Download ``url`` to ``final_path`` through a ``.part`` temp file."""
    temp_path = temp_path_for(final_path, TEMP_SUFFIX)
    result = stream_to_file(
        session,
        url,
        temp_path,
        timeout=timeout,
        retry=retry,
        preserve_mtime=preserve_mtime,
    )
    commit(temp_path, final_path)
    return TransferResult(
        path=final_path,
        url=result.url,
        resolved_url=result.resolved_url,
        bytes_downloaded=result.bytes_downloaded,
        last_modified=result.last_modified,
    )


def fetch_optional_text(
    session: requests.Session,
    url: str,
    *,
    timeout: Timeout = DEFAULT_TIMEOUT,
    retry: RetryConfig | None = None,
) -> str | None:
    """Return the body of ``url``, or None if it cannot be fetched for any reason."""

    def _get() -> str:
        response = session.get(url, timeout=timeout)
        response.raise_for_status()
        return response.text

    try:
        return with_retries(_get, retry, description=url)
    except requests.RequestException as exc:
        logger.debug("Optional resource %s unavailable: %s", url, exc)
        return None
