from __future__ import annotations

import logging
import shutil
from collections.abc import Callable

from backup_core.config import BackupConfig
from backup_core.exceptions import ConfigValidationError
from backup_core.utils.paths import ensure_dir

logger = logging.getLogger(__name__)

TOOL_INSTALL_HINTS = {
    "git": "Install Git (e.g. sudo apt-get install git)",
}


def required_tools(config: BackupConfig) -> list[str]:
    tools: list[str] = []
    if config.repositories:
        tools.append("git")
    return tools


def missing_tools(config: BackupConfig, which: Callable[[str], str | None] = shutil.which) -> list[str]:
    return [tool for tool in required_tools(config) if which(tool) is None]


def run_preflight(
    config: BackupConfig,
    *,
    which: Callable[[str], str | None] = shutil.which,
) -> None:
    """Check external tools and create the managed directories.

    Raises:
        ConfigValidationError: A required external tool is not on PATH.
    """
    missing = missing_tools(config, which)
    if missing:
        hints = "; ".join(TOOL_INSTALL_HINTS.get(tool, tool) for tool in missing)
        raise ConfigValidationError(
            f"Required command(s) not found: {', '.join(missing)}. {hints}",
            context={"missing_tools": missing},
        )
    for directory in config.managed_dirs():
        ensure_dir(directory)
