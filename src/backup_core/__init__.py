"""Kiwix/Wikipedia archive backup with storage-quota rotation."""

from backup_core.__version__ import __version__
from backup_core.acquire import AcquiredArchive, AcquisitionEngine, SourceResolver
from backup_core.config import BackupConfig, load_config
from backup_core.orchestrator import BackupOrchestrator, RunReport, RunStage
from backup_core.quota import QuotaEnforcer, QuotaReport

__all__ = [
    "__version__",
    "AcquiredArchive",
    "AcquisitionEngine",
    "SourceResolver",
    "BackupConfig",
    "load_config",
    "BackupOrchestrator",
    "RunReport",
    "RunStage",
    "QuotaEnforcer",
    "QuotaReport",
]
