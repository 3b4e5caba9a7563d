from __future__ import annotations

import hashlib
import re
from pathlib import Path

CHUNK_SIZE = 1024 * 1024

SHA256_HEX_RE = re.compile(r"^[0-9a-fA-F]{64}$")


def sha256_file(path: Path, *, chunk_size: int = CHUNK_SIZE) -> str:
    """Compute SHA-256 hash of a file.

    Raises:
        OSError: If the file cannot be read.
    """
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            h.update(chunk)
    return h.hexdigest()


def is_sha256_hex(value: str | None) -> bool:
    """Return True when ``value`` is exactly 64 hex digits."""
    return bool(value) and SHA256_HEX_RE.match(value) is not None
