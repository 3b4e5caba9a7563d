"""
backup_core/result.py

Result values for per-item outcomes of the secondary delegates.

Error Handling Convention:
--------------------------
1. **Exceptions** (``backup_core.exceptions``) are raised for configuration
   errors and for the fatal acquisition failures that abort a run:
   SourceNotFoundError, TransferFailedError, IntegrityFailedError.

2. **Result values** (this module) are returned for recoverable per-item
   issues in the delegates: a repository that failed to fetch, a release API
   that timed out, a package page without a download link. The orchestrator
   logs them and carries on with the next item.

3. Results serialize to dicts with a "status" field:
   - {"status": "ok", "item": "...", ...}
   - {"status": "error", "item": "...", "error": "code", "message": "..."}
   - {"status": "noop", "item": "...", "reason": "already_present"}

Usage:
------
    from backup_core.result import Ok, Err, Noop

    def fetch(name: str) -> Result[Path]:
        if out_path.exists():
            return Noop("already_present", item=name, path=str(out_path))
        ...
        return Ok(out_path, item=name)
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

T = TypeVar("T")

STATUS_OK = "ok"
STATUS_ERROR = "error"
STATUS_NOOP = "noop"


@dataclass
class Result(Generic[T]):
    """
    Outcome of one delegate item.

    Attributes:
        status: "ok" when work was done, "error" on failure, "noop" when
            nothing needed doing (e.g. the file was already present)
        value: The success value, typically the local path
        error: Error code (only meaningful when status="error")
        message: Human-readable error message or noop reason
        extras: Additional context (item name, url, path)
    """

    status: str
    value: T | None = None
    error: str | None = None
    message: str | None = None
    extras: dict[str, Any] = field(default_factory=dict)

    @property
    def is_ok(self) -> bool:
        return self.status == STATUS_OK

    @property
    def is_err(self) -> bool:
        return self.status == STATUS_ERROR

    @property
    def is_noop(self) -> bool:
        return self.status == STATUS_NOOP

    @property
    def item(self) -> str | None:
        return self.extras.get("item")

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dict for log and JSON output."""
        d: dict[str, Any] = {"status": self.status}
        if self.status == STATUS_OK:
            if self.value is not None:
                d["value"] = str(self.value)
        elif self.status == STATUS_ERROR:
            if self.error:
                d["error"] = self.error
            if self.message:
                d["message"] = self.message
        elif self.status == STATUS_NOOP:
            if self.message:
                d["reason"] = self.message
        d.update(self.extras)
        return d


def Ok(value: T = None, **extras: Any) -> Result[T]:  # noqa: N802 - intentional PascalCase
    """Create a successful result."""
    return Result(status=STATUS_OK, value=value, extras=extras)


def Err(error: str, message: str | None = None, **extras: Any) -> Result[Any]:  # noqa: N802
    """Create a failure result."""
    return Result(status=STATUS_ERROR, error=error, message=message, extras=extras)


def Noop(reason: str, **extras: Any) -> Result[Any]:  # noqa: N802
    """Create a no-operation result (skipped)."""
    return Result(status=STATUS_NOOP, message=reason, extras=extras)


def count_statuses(results: Iterable[Result[Any]]) -> dict[str, int]:
    """Return ``{"ok": n, "error": n, "noop": n}`` for a batch of results."""
    counts = Counter(r.status for r in results)
    return {status: counts.get(status, 0) for status in (STATUS_OK, STATUS_ERROR, STATUS_NOOP)}


def failed(results: Iterable[Result[Any]]) -> list[Result[Any]]:
    return [r for r in results if r.is_err]
