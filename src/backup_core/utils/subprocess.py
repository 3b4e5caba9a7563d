"""Subprocess execution utilities used by the repository mirror."""

from __future__ import annotations

import subprocess
from pathlib import Path


def run_cmd(cmd: list[str], cwd: Path | None = None, timeout: float | None = None) -> str:
    """Run a command and return its combined stdout/stderr output.

    Args:
        cmd: Command and arguments as a list of strings.
        cwd: Optional working directory for the command.
        timeout: Optional limit in seconds before the command is killed.

    Returns:
        The command output decoded as UTF-8.

    Raises:
        subprocess.CalledProcessError: If the command exits with non-zero status.
        subprocess.TimeoutExpired: If the command runs longer than ``timeout``.

    Example:
        >>> run_cmd(["git", "-C", "/wiki/kiwix/repos/libzim", "rev-parse", "HEAD"])
        '3f0c1d2...\\n'
    """
    p = subprocess.run(
        cmd,
        cwd=str(cwd) if cwd else None,
        check=True,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        timeout=timeout,
    )
    return p.stdout.decode("utf-8", errors="ignore")
