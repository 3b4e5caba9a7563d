"""Shared utility functions for the Kiwix backup."""

from backup_core.utils.hash import is_sha256_hex, sha256_file
from backup_core.utils.logging import log_event
from backup_core.utils.paths import ensure_dir, filename_from_url, safe_filename, temp_path_for
from backup_core.utils.sizes import format_size, parse_size

__all__ = [
    "log_event",
    "ensure_dir",
    "safe_filename",
    "filename_from_url",
    "temp_path_for",
    "sha256_file",
    "is_sha256_hex",
    "parse_size",
    "format_size",
]
