"""Byte-size parsing and formatting for quota settings and log lines."""

from __future__ import annotations

import re

_UNITS = {
    "": 1,
    "b": 1,
    "k": 1000,
    "kb": 1000,
    "m": 1000**2,
    "mb": 1000**2,
    "g": 1000**3,
    "gb": 1000**3,
    "t": 1000**4,
    "tb": 1000**4,
    "kib": 1024,
    "mib": 1024**2,
    "gib": 1024**3,
    "tib": 1024**4,
}

_SIZE_RE = re.compile(r"^\s*(?P<number>\d+(?:\.\d+)?)\s*(?P<unit>[A-Za-z]*)\s*$")


def parse_size(value: int | float | str) -> int:
    """Parse a byte count such as ``1800GiB``, ``"1.8 TiB"`` or ``42``.

    Raises:
        ValueError: For negative numbers, unknown units, or unparseable text.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid byte size: {value!r}")
    if isinstance(value, (int, float)):
        if value < 0:
            raise ValueError(f"Byte size must not be negative: {value!r}")
        return int(value)
    match = _SIZE_RE.match(str(value))
    if not match:
        raise ValueError(f"Invalid byte size: {value!r}")
    unit = match.group("unit").lower()
    if unit not in _UNITS:
        raise ValueError(f"Unknown size unit {match.group('unit')!r} in {value!r}")
    return int(float(match.group("number")) * _UNITS[unit])


def format_size(num_bytes: int) -> str:
    """Render ``num_bytes`` with a binary unit, e.g. ``1.50 GiB``."""
    size = float(num_bytes)
    for unit in ("B", "KiB", "MiB", "GiB"):
        if abs(size) < 1024:
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.2f} {unit}"
        size /= 1024
    return f"{size:.2f} TiB"
