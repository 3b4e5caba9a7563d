"""Acquisition of the newest archive into managed storage.

Steps for ``AcquisitionEngine.acquire(basename)``:

1. resolve the newest archive URL across candidate sources,
2. return at once if that dated file is already in storage,
3. stream the body to ``<name>.part``,
4. fetch ``<url>.sha256`` and verify when a well-formed digest exists,
5. rename the temp file onto its final name.

Each dated archive is downloaded at most once: a committed file is never
fetched again, and nothing is ever written under the final name until the
body is complete and verified.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import requests

from backup_core.acquire.sources import ResolvedArchive, SourceResolver
from backup_core.acquire.transfer import (
    TEMP_SUFFIX,
    commit,
    fetch_optional_text,
    remove_quietly,
    stream_to_file,
)
from backup_core.acquire.verify import IntegrityVerifier, VerificationOutcome, VerificationStatus
from backup_core.config import BackupConfig
from backup_core.exceptions import IntegrityFailedError, TransferFailedError
from backup_core.network_utils import RetryConfig
from backup_core.utils.http import DEFAULT_TIMEOUT, Timeout, create_session
from backup_core.utils.paths import ensure_dir, filename_from_url, temp_path_for
from backup_core.utils.sizes import format_size

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AcquiredArchive:
    path: Path
    url: str
    cached: bool
    verification: VerificationStatus
    bytes_downloaded: int = 0
    sha256: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "status": "ok",
            "path": str(self.path),
            "url": self.url,
            "cached": self.cached,
            "verification": self.verification.value,
            "bytes_downloaded": self.bytes_downloaded,
            "sha256": self.sha256,
        }


class AcquisitionEngine:
    def __init__(
        self,
        storage_dir: Path,
        resolver: SourceResolver,
        *,
        session: requests.Session | None = None,
        verifier: IntegrityVerifier | None = None,
        checksum_suffix: str = ".sha256",
        timeout: Timeout = DEFAULT_TIMEOUT,
        retry: RetryConfig | None = None,
    ) -> None:
        self.storage_dir = storage_dir
        self.resolver = resolver
        self.session = session or create_session()
        self.verifier = verifier or IntegrityVerifier()
        self.checksum_suffix = checksum_suffix
        self.timeout = timeout
        self.retry = retry or RetryConfig()

    @classmethod
    def from_config(
        cls, config: BackupConfig, session: requests.Session | None = None
    ) -> AcquisitionEngine:
        session = session or create_session(config.network.user_agent or None)
        resolver = SourceResolver(
            config.archive.candidate_sources,
            extension=config.archive.extension,
            session=session,
            timeout=config.network.timeout,
        )
        return cls(
            config.storage_dir,
            resolver,
            session=session,
            checksum_suffix=config.archive.checksum_suffix,
            timeout=config.network.timeout,
            retry=config.network.retry,
        )

    def target_path(self, url: str) -> Path:
        filename = filename_from_url(url)
        if not filename:
            raise TransferFailedError(
                f"Cannot derive a file name from {url}", context={"url": url}
            )
        return self.storage_dir / filename

    def acquire(self, basename: str) -> AcquiredArchive:
        """Make sure the newest archive for ``basename`` is in storage.

        Raises:
            SourceNotFoundError: No candidate source lists a matching archive.
            TransferFailedError: The body could not be downloaded.
            IntegrityFailedError: The body does not match its published digest.
        """
        resolved = self.resolver.find_newest(basename)
        return self.acquire_resolved(resolved)

    def acquire_resolved(self, resolved: ResolvedArchive) -> AcquiredArchive:
        url = resolved.url
        final_path = self.target_path(url)
        if final_path.exists():
            logger.info("Already have %s, skipping download", final_path.name)
            return AcquiredArchive(
                path=final_path,
                url=url,
                cached=True,
                verification=VerificationStatus.NOT_CHECKED,
            )

        try:
            ensure_dir(self.storage_dir)
        except OSError as exc:
            raise TransferFailedError(
                f"Cannot create storage directory {self.storage_dir}: {exc}",
                context={"url": url, "path": str(self.storage_dir)},
            ) from exc
        temp_path = temp_path_for(final_path, TEMP_SUFFIX)
        checksum_path = temp_path_for(temp_path, self.checksum_suffix)

        logger.info("Downloading %s", url)
        transfer = stream_to_file(
            self.session, url, temp_path, timeout=self.timeout, retry=self.retry
        )
        logger.info(
            "Downloaded %s (%s)", final_path.name, format_size(transfer.bytes_downloaded)
        )

        try:
            outcome = self._verify(url, temp_path, checksum_path, final_path.name)
        except IntegrityFailedError:
            logger.error("SHA-256 mismatch for %s; discarding download", final_path.name)
            remove_quietly(temp_path, checksum_path)
            raise
        except OSError as exc:
            remove_quietly(temp_path, checksum_path)
            raise TransferFailedError(
                f"Failed to verify {final_path.name}: {exc}",
                context={"url": url, "path": str(temp_path)},
            ) from exc

        try:
            commit(temp_path, final_path)
        except OSError as exc:
            remove_quietly(temp_path, checksum_path)
            raise TransferFailedError(
                f"Failed to move {temp_path.name} into place: {exc}",
                context={"url": url, "path": str(final_path)},
            ) from exc
        remove_quietly(checksum_path)
        logger.info("Saved archive -> %s", final_path)
        return AcquiredArchive(
            path=final_path,
            url=url,
            cached=False,
            verification=outcome.status,
            bytes_downloaded=transfer.bytes_downloaded,
            sha256=outcome.actual,
        )

    def _verify(
        self, url: str, temp_path: Path, checksum_path: Path, label: str
    ) -> VerificationOutcome:
        checksum_url = f"{url}{self.checksum_suffix}"
        checksum_text = fetch_optional_text(
            self.session, checksum_url, timeout=self.timeout, retry=self.retry
        )
        if checksum_text is not None:
            checksum_path.write_text(checksum_text, encoding="utf-8")
            logger.info("Downloaded checksum %s; verifying", checksum_url)
        return self.verifier.verify(temp_path, checksum_text, label=label)
