from __future__ import annotations

import re
from pathlib import Path
from urllib.parse import unquote, urlparse

_UNSAFE_CHARS_RE = re.compile(r"[^A-Za-z0-9._+-]+")


def ensure_dir(path: Path) -> Path:
    """Create ``path`` (and parents) if missing and return it."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def safe_filename(name: str | None) -> str:
    """Reduce a remote name to a single safe path component.

    Directory parts and traversal segments are dropped; characters outside
    ``[A-Za-z0-9._+-]`` become underscores. Returns "" when nothing usable
    remains.
    """
    if not name:
        return ""
    candidate = name.replace("\\", "/").rsplit("/", 1)[-1]
    candidate = _UNSAFE_CHARS_RE.sub("_", candidate).strip("._")
    if candidate in ("", ".", ".."):
        return ""
    return candidate


def filename_from_url(url: str) -> str:
    """Return the safe last path component of ``url`` ("" if there is none)."""
    path = urlparse(url).path
    return safe_filename(unquote(path.rsplit("/", 1)[-1]))


def temp_path_for(final_path: Path, suffix: str = ".part") -> Path:
    """Return the sibling temp path used while ``final_path`` is downloading."""
    return final_path.with_name(f"{final_path.name}{suffix}")
