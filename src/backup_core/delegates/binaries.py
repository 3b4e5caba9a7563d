"""Binary asset delegate.

Downloads prebuilt application binaries into ``bin_dir`` from three kinds of
places:

- GitHub releases: every asset of the latest release whose name matches a
  rule's pattern,
- download index pages: the highest-versioned file matching a pattern,
- plain pages saved verbatim for offline reference.

Files already present under the same name are skipped.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import requests

from backup_core.acquire.sources import archive_url
from backup_core.acquire.transfer import download_file
from backup_core.config import BackupConfig, IndexAssetRule, PageSnapshot, ReleaseAssetRule
from backup_core.exceptions import TransferFailedError
from backup_core.network_utils import RetryConfig, with_retries
from backup_core.result import Err, Noop, Ok, Result
from backup_core.utils.http import DEFAULT_TIMEOUT, Timeout, create_session, fetch_text, github_auth_headers
from backup_core.utils.paths import ensure_dir, safe_filename

logger = logging.getLogger(__name__)

_VERSION_PART_RE = re.compile(r"(\d+)")


def version_sort_key(name: str) -> tuple[Any, ...]:
    """Natural sort key comparing digit runs numerically (like ``sort -V``)."""
    parts: list[Any] = []
    for token in _VERSION_PART_RE.split(name):
        if not token:
            continue
        parts.append((0, int(token), "") if token.isdigit() else (1, 0, token))
    return tuple(parts)


def newest_versioned_name(listing: str, pattern: str) -> str | None:
    names = {match.group(0) for match in re.finditer(pattern, listing)}
    if not names:
        return None
    return max(names, key=version_sort_key)


class BinaryFetcher:
    name = "binaries"

    def __init__(
        self,
        bin_dir: Path,
        *,
        release_assets: Sequence[ReleaseAssetRule] = (),
        index_assets: Sequence[IndexAssetRule] = (),
        page_snapshots: Sequence[PageSnapshot] = (),
        api_url: str = "https://api.github.com",
        session: requests.Session | None = None,
        timeout: Timeout = DEFAULT_TIMEOUT,
        retry: RetryConfig | None = None,
    ) -> None:
        self.bin_dir = bin_dir
        self.release_assets = tuple(release_assets)
        self.index_assets = tuple(index_assets)
        self.page_snapshots = tuple(page_snapshots)
        self.api_url = api_url.rstrip("/")
        self.session = session or create_session()
        self.timeout = timeout
        # GitHub answers rate limiting with 403.
        self.retry = retry or RetryConfig()
        self.api_retry = RetryConfig(
            max_attempts=self.retry.max_attempts,
            backoff_base=self.retry.backoff_base,
            backoff_max=self.retry.backoff_max,
            retry_on_403=True,
        )

    @classmethod
    def from_config(
        cls, config: BackupConfig, session: requests.Session | None = None
    ) -> BinaryFetcher:
        return cls(
            config.bin_dir,
            release_assets=config.release_assets,
            index_assets=config.index_assets,
            page_snapshots=config.page_snapshots,
            api_url=config.github_api_url,
            session=session or create_session(config.network.user_agent or None),
            timeout=config.network.timeout,
            retry=config.network.retry,
        )

    def run(self) -> list[Result[Any]]:
        logger.info("Fetching Kiwix tools and app binaries into %s", self.bin_dir)
        ensure_dir(self.bin_dir)
        results: list[Result[Any]] = []
        for index_rule in self.index_assets:
            results.append(self.fetch_index_asset(index_rule))
        for release_rule in self.release_assets:
            results.extend(self.fetch_release_assets(release_rule))
        for page in self.page_snapshots:
            results.append(self.save_page(page))
        return results

    def _download(self, url: str, filename: str, item: str) -> Result[Any]:
        out_path = self.bin_dir / filename
        if out_path.exists():
            logger.info("Already have: %s", filename)
            return Noop("already_present", item=item, path=str(out_path))
        logger.info("Downloading asset: %s", filename)
        try:
            download_file(self.session, url, out_path, timeout=self.timeout, retry=self.retry)
        except TransferFailedError as exc:
            logger.error("Failed to download %s: %s", filename, exc)
            return Err(exc.code, str(exc), item=item, url=url)
        logger.info("Downloaded: %s", filename)
        return Ok(str(out_path), item=item, url=url)

    def fetch_index_asset(self, rule: IndexAssetRule) -> Result[Any]:
        """Download the newest file matching ``rule.pattern`` from an index page."""
        label = rule.description or rule.pattern
        logger.info("Checking %s for %s", rule.base_url, label)
        try:
            listing = with_retries(
                lambda: fetch_text(self.session, rule.base_url, timeout=self.timeout),
                self.retry,
                description=rule.base_url,
            )
        except requests.RequestException as exc:
            logger.error("Failed to fetch index %s: %s", rule.base_url, exc)
            return Err("index_fetch_failed", str(exc), item=label, url=rule.base_url)
        newest = newest_versioned_name(listing, rule.pattern)
        if newest is None:
            logger.warning("No file matching %s at %s", rule.pattern, rule.base_url)
            return Err("no_match", f"no file matching {rule.pattern}", item=label, url=rule.base_url)
        filename = safe_filename(newest)
        return self._download(archive_url(rule.base_url, newest), filename, item=filename)

    def fetch_release_assets(self, rule: ReleaseAssetRule) -> list[Result[Any]]:
        """Download latest-release assets of ``rule.repo`` matching ``rule.pattern``."""
        label = f"{rule.repo} ({rule.description})" if rule.description else rule.repo
        logger.info("Querying GitHub releases for %s", label)
        url = f"{self.api_url}/repos/{rule.repo}/releases/latest"
        headers = {"Accept": "application/vnd.github+json", **github_auth_headers()}

        def _fetch() -> requests.Response:
            resp = self.session.get(url, headers=headers, timeout=self.timeout)
            resp.raise_for_status()
            return resp

        try:
            meta = with_retries(_fetch, self.api_retry, description=url).json()
        except requests.RequestException as exc:
            logger.error("Failed to fetch release info for %s: %s", rule.repo, exc)
            return [Err("release_fetch_failed", str(exc), item=rule.repo, url=url)]
        except json.JSONDecodeError as exc:
            logger.error("Invalid JSON from GitHub API for %s: %s", rule.repo, exc)
            return [Err("invalid_release_json", str(exc), item=rule.repo, url=url)]

        matcher = re.compile(rule.pattern, re.IGNORECASE)
        results: list[Result[Any]] = []
        for asset in meta.get("assets", []) or []:
            name = asset.get("name") or ""
            if not matcher.search(name):
                continue
            download_url = asset.get("browser_download_url")
            filename = safe_filename(name)
            if not download_url or not filename:
                results.append(Err("missing_download_url", item=name or rule.repo))
                continue
            results.append(self._download(download_url, filename, item=filename))
        if not results:
            logger.info("No assets of %s match %s", rule.repo, rule.pattern)
        return results

    def save_page(self, page: PageSnapshot) -> Result[Any]:
        """Save a web page for offline reference; always refreshes the copy."""
        logger.info("Saving copy of %s", page.url)
        out_path = self.bin_dir / safe_filename(page.filename)
        try:
            download_file(self.session, page.url, out_path, timeout=self.timeout, retry=self.retry)
        except TransferFailedError as exc:
            logger.warning("Failed to save page %s: %s", page.url, exc)
            return Err(exc.code, str(exc), item=page.filename, url=page.url)
        return Ok(str(out_path), item=page.filename, url=page.url)
