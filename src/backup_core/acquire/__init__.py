"""Archive discovery, download and verification."""

from backup_core.acquire.engine import AcquiredArchive, AcquisitionEngine
from backup_core.acquire.sources import (
    ArchiveName,
    ResolvedArchive,
    SourceResolver,
    extract_archive_names,
    parse_archive_name,
)
from backup_core.acquire.verify import IntegrityVerifier, VerificationStatus, parse_checksum

__all__ = [
    "AcquiredArchive",
    "AcquisitionEngine",
    "ArchiveName",
    "ResolvedArchive",
    "SourceResolver",
    "extract_archive_names",
    "parse_archive_name",
    "IntegrityVerifier",
    "VerificationStatus",
    "parse_checksum",
]
