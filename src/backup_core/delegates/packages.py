"""Offline package bundle delegate.

For every release codename and package name, resolves the ``.deb`` link from
the packages.ubuntu.com download page and stores the file under
``packages_dir/<release>/``. Files already present are skipped.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any

import requests

from backup_core.acquire.transfer import download_file
from backup_core.config import BackupConfig, PackageBundleConfig
from backup_core.exceptions import TransferFailedError
from backup_core.network_utils import RetryConfig, with_retries
from backup_core.result import Err, Noop, Ok, Result, count_statuses
from backup_core.utils.http import DEFAULT_TIMEOUT, Timeout, create_session, fetch_text
from backup_core.utils.paths import ensure_dir, filename_from_url

logger = logging.getLogger(__name__)

DEB_URL_RE = re.compile(r"""https?://[^"'\s<>]+\.deb""")


def find_deb_url(page: str) -> str | None:
    """Return the first ``.deb`` download link in a package download page."""
    match = DEB_URL_RE.search(page)
    return match.group(0) if match else None


class PackageFetcher:
    name = "packages"

    def __init__(
        self,
        packages_dir: Path,
        bundle: PackageBundleConfig,
        *,
        session: requests.Session | None = None,
        timeout: Timeout = DEFAULT_TIMEOUT,
        retry: RetryConfig | None = None,
    ) -> None:
        self.packages_dir = packages_dir
        self.bundle = bundle
        self.session = session or create_session()
        self.timeout = timeout
        self.retry = retry or RetryConfig()

    @classmethod
    def from_config(
        cls, config: BackupConfig, session: requests.Session | None = None
    ) -> PackageFetcher:
        return cls(
            config.packages_dir,
            config.packages,
            session=session or create_session(config.network.user_agent or None),
            timeout=config.network.timeout,
            retry=config.network.retry,
        )

    def run(self) -> list[Result[Any]]:
        logger.info(
            "Downloading build dependency packages (%s) into %s", self.bundle.arch, self.packages_dir
        )
        results: list[Result[Any]] = []
        for release in self.bundle.releases:
            logger.info("Processing packages for %s", release)
            release_dir = ensure_dir(self.packages_dir / release)
            for package in self.bundle.names:
                results.append(self.fetch(package, release, release_dir))
        counts = count_statuses(results)
        logger.info(
            "Packages done: %d downloaded, %d already present, %d failed",
            counts["ok"],
            counts["noop"],
            counts["error"],
        )
        if self.bundle.releases:
            logger.info(
                "To install offline: cd %s/<release>/ && sudo dpkg -i *.deb; sudo apt-get install -f",
                self.packages_dir,
            )
        return results

    def fetch(self, package: str, release: str, release_dir: Path) -> Result[Any]:
        item = f"{package} ({release})"
        page_url = self.bundle.download_page_url(release, package)
        logger.info("Fetching package info for: %s", item)
        try:
            page = with_retries(
                lambda: fetch_text(self.session, page_url, timeout=self.timeout),
                self.retry,
                description=page_url,
            )
        except requests.RequestException as exc:
            logger.warning("Could not fetch download page for %s: %s", item, exc)
            return Err("page_fetch_failed", str(exc), item=item, url=page_url)
        deb_url = find_deb_url(page)
        if deb_url is None:
            logger.warning("Could not find download URL for %s", item)
            return Err("no_download_url", "no .deb link on download page", item=item, url=page_url)
        deb_file = filename_from_url(deb_url)
        out_path = release_dir / deb_file
        if out_path.exists():
            logger.info("Already have: %s", deb_file)
            return Noop("already_present", item=item, path=str(out_path))
        logger.info("Downloading: %s", deb_file)
        try:
            download_file(self.session, deb_url, out_path, timeout=self.timeout, retry=self.retry)
        except TransferFailedError as exc:
            logger.error("Failed to download %s: %s", deb_file, exc)
            return Err(exc.code, str(exc), item=item, url=deb_url)
        logger.info("Downloaded: %s", deb_file)
        return Ok(str(out_path), item=item, url=deb_url)
