"""Secondary collaborators run after the primary archive is secured."""

from __future__ import annotations

from typing import Any, Protocol

from backup_core.delegates.binaries import BinaryFetcher
from backup_core.delegates.git_mirror import GitMirror
from backup_core.delegates.packages import PackageFetcher
from backup_core.result import Result


class Delegate(Protocol):
    name: str

    def run(self) -> list[Result[Any]]: ...


__all__ = ["Delegate", "BinaryFetcher", "GitMirror", "PackageFetcher"]
