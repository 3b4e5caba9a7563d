"""Storage quota rotation for dated archives.

The managed directory holds ``<basename>_<YYYY>-<MM>.<ext>`` files whose sizes
must sum to at most ``max_bytes``. Enforcement deletes the oldest entries
(smallest mtime, then file name) until ``total + headroom <= max_bytes``.

A run calls it twice: before downloading, with an estimated size of the
incoming archive as headroom, and afterwards with zero headroom against the
real total.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from backup_core.acquire.sources import parse_archive_name
from backup_core.config import BackupConfig
from backup_core.utils.sizes import format_size

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ArchiveEntry:
    path: Path
    size: int
    mtime: float

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def sort_key(self) -> tuple[float, str]:
        return (self.mtime, self.path.name)


@dataclass
class QuotaReport:
    max_bytes: int
    headroom_bytes: int
    initial_bytes: int
    final_bytes: int
    evicted: list[ArchiveEntry] = field(default_factory=list)
    undeletable: list[ArchiveEntry] = field(default_factory=list)

    @property
    def evicted_count(self) -> int:
        return len(self.evicted)

    @property
    def required_bytes(self) -> int:
        return self.final_bytes + self.headroom_bytes

    @property
    def satisfied(self) -> bool:
        return self.required_bytes <= self.max_bytes

    @property
    def shortfall_bytes(self) -> int:
        return max(0, self.required_bytes - self.max_bytes)

    def to_dict(self) -> dict[str, object]:
        return {
            "max_bytes": self.max_bytes,
            "headroom_bytes": self.headroom_bytes,
            "initial_bytes": self.initial_bytes,
            "final_bytes": self.final_bytes,
            "evicted": [entry.name for entry in self.evicted],
            "undeletable": [entry.name for entry in self.undeletable],
            "satisfied": self.satisfied,
            "shortfall_bytes": self.shortfall_bytes,
        }


def scan_archives(
    storage_dir: Path,
    *,
    extension: str | None = None,
    basename: str | None = None,
) -> list[ArchiveEntry]:
    """List rotation-eligible archives in ``storage_dir``, oldest first.

    Only regular files directly inside ``storage_dir`` whose names parse as
    dated archives are returned; temp ``.part`` files never match.
    """
    if not storage_dir.is_dir():
        return []
    entries: list[ArchiveEntry] = []
    for path in storage_dir.iterdir():
        if parse_archive_name(path.name, basename=basename, extension=extension) is None:
            continue
        try:
            stat = path.stat()
        except FileNotFoundError:
            continue
        if not path.is_file():
            continue
        entries.append(ArchiveEntry(path=path, size=stat.st_size, mtime=stat.st_mtime))
    entries.sort(key=lambda entry: entry.sort_key)
    return entries


def total_bytes(entries: list[ArchiveEntry]) -> int:
    return sum(entry.size for entry in entries)


def enforce_quota(
    storage_dir: Path,
    max_bytes: int,
    headroom_bytes: int = 0,
    *,
    extension: str | None = None,
    basename: str | None = None,
) -> QuotaReport:
    """Delete oldest archives until ``total + headroom_bytes <= max_bytes``.

    When every eligible archive is gone and the condition still fails, the
    loop stops and the returned report is unsatisfied with a shortfall; that
    is logged as a warning, not raised. An archive that cannot be deleted is
    logged, listed in ``undeletable`` and still counted toward the total.
    """
    if max_bytes < 0 or headroom_bytes < 0:
        raise ValueError("max_bytes and headroom_bytes must be non-negative")
    entries = scan_archives(storage_dir, extension=extension, basename=basename)
    initial = total_bytes(entries)
    current = initial
    logger.info(
        "Current storage: %d bytes (%s), headroom %s, max %d bytes (%s)",
        current,
        format_size(current),
        format_size(headroom_bytes),
        max_bytes,
        format_size(max_bytes),
    )
    report = QuotaReport(
        max_bytes=max_bytes,
        headroom_bytes=headroom_bytes,
        initial_bytes=initial,
        final_bytes=current,
    )
    if current + headroom_bytes <= max_bytes:
        logger.info("No pruning required.")
        return report

    logger.info("Pruning oldest archives to fit quota")
    while current + headroom_bytes > max_bytes:
        if not entries:
            logger.warning(
                "Quota unsatisfiable: no more archives to delete; still %d bytes over",
                current + headroom_bytes - max_bytes,
            )
            break
        oldest = entries.pop(0)
        logger.info("Deleting oldest: %s", oldest.path)
        try:
            oldest.path.unlink()
        except FileNotFoundError:
            logger.info("%s already removed; rescanning", oldest.path)
            remaining = [
                entry
                for entry in scan_archives(storage_dir, extension=extension, basename=basename)
                if entry.path != oldest.path
            ]
            current = total_bytes(remaining)
            skipped = {entry.path for entry in report.undeletable}
            entries = [entry for entry in remaining if entry.path not in skipped]
            continue
        except OSError as exc:
            logger.warning("Cannot delete %s: %s; skipping it", oldest.path, exc)
            report.undeletable.append(oldest)
            continue
        report.evicted.append(oldest)
        current -= oldest.size
        logger.info("Now: %d bytes", current)

    report.final_bytes = current
    return report


class QuotaEnforcer:
    """Quota enforcement bound to one storage directory and ceiling."""

    def __init__(
        self,
        storage_dir: Path,
        max_bytes: int,
        *,
        extension: str | None = None,
        basename: str | None = None,
    ) -> None:
        self.storage_dir = storage_dir
        self.max_bytes = max_bytes
        self.extension = extension
        self.basename = basename

    @classmethod
    def from_config(cls, config: BackupConfig) -> QuotaEnforcer:
        return cls(config.storage_dir, config.max_bytes, extension=config.archive.extension)

    def current_bytes(self) -> int:
        return total_bytes(
            scan_archives(self.storage_dir, extension=self.extension, basename=self.basename)
        )

    def enforce(self, headroom_bytes: int = 0) -> QuotaReport:
        return enforce_quota(
            self.storage_dir,
            self.max_bytes,
            headroom_bytes,
            extension=self.extension,
            basename=self.basename,
        )
