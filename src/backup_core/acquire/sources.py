"""Locate the newest dated archive across ordered candidate sources.

Archive file names follow ``<basename>_<YYYY>-<MM>.<ext>``. Directory
listings (Apache/nginx autoindex pages or plain text) are scanned as text for
such names; no HTML parsing is involved.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from urllib.parse import urljoin

import requests

from backup_core.exceptions import SourceNotFoundError
from backup_core.utils.http import DEFAULT_TIMEOUT, Timeout, fetch_text

logger = logging.getLogger(__name__)

ARCHIVE_NAME_RE = re.compile(
    r"^(?P<basename>.+)_(?P<year>\d{4})-(?P<month>\d{2})\.(?P<extension>[A-Za-z0-9]+)$"
)

ListingFetcher = Callable[[str], str]


@dataclass(frozen=True, order=True)
class ArchiveName:
    """Parsed ``<basename>_<YYYY>-<MM>.<ext>`` file name.

    Ordering compares ``stamp`` first so ``max()`` picks the newest month.
    """

    stamp: str
    basename: str
    extension: str

    @property
    def year(self) -> int:
        return int(self.stamp[:4])

    @property
    def month(self) -> int:
        return int(self.stamp[5:])

    @property
    def filename(self) -> str:
        return f"{self.basename}_{self.stamp}.{self.extension}"


def parse_archive_name(
    name: str,
    *,
    basename: str | None = None,
    extension: str | None = None,
) -> ArchiveName | None:
    """Parse ``name`` or return None when it is not a dated archive.

    When ``basename``/``extension`` are given the parsed parts must equal
    them exactly. Months outside 01-12 are rejected.
    """
    match = ARCHIVE_NAME_RE.match(name)
    if not match:
        return None
    if basename is not None and match.group("basename") != basename:
        return None
    if extension is not None and match.group("extension") != extension:
        return None
    if not 1 <= int(match.group("month")) <= 12:
        return None
    return ArchiveName(
        stamp=f"{match.group('year')}-{match.group('month')}",
        basename=match.group("basename"),
        extension=match.group("extension"),
    )


def listing_pattern(basename: str, extension: str) -> re.Pattern[str]:
    """Regex finding ``basename_YYYY-MM.ext`` anywhere in listing text."""
    return re.compile(
        rf"(?<![A-Za-z0-9_.-]){re.escape(basename)}_\d{{4}}-\d{{2}}\.{re.escape(extension)}(?![A-Za-z0-9_-])"
    )


def extract_archive_names(listing: str, basename: str, extension: str) -> list[ArchiveName]:
    """Return the distinct archives named in ``listing``, newest first."""
    found: set[ArchiveName] = set()
    for match in listing_pattern(basename, extension).finditer(listing):
        parsed = parse_archive_name(match.group(0), basename=basename, extension=extension)
        if parsed is not None:
            found.add(parsed)
    return sorted(found, key=lambda name: name.stamp, reverse=True)


def archive_url(base_url: str, filename: str) -> str:
    if not base_url.endswith("/"):
        base_url = f"{base_url}/"
    return urljoin(base_url, filename)


@dataclass(frozen=True)
class ResolvedArchive:
    """The newest archive found and where it was found."""

    url: str
    name: ArchiveName
    source: str
    source_index: int

    @property
    def filename(self) -> str:
        return self.name.filename

    @property
    def is_fallback(self) -> bool:
        return self.source_index > 0


class SourceResolver:
    """Search candidate sources in priority order for the newest archive.

    The first source whose listing contains at least one match wins; results
    from different sources are never merged. A source that cannot be fetched
    counts as "no match" so the next one is tried.
    """

    def __init__(
        self,
        sources: Sequence[str],
        *,
        extension: str = "zim",
        session: requests.Session | None = None,
        timeout: Timeout = DEFAULT_TIMEOUT,
        fetch_listing: ListingFetcher | None = None,
    ) -> None:
        self.sources = tuple(sources)
        self.extension = extension
        self.timeout = timeout
        if fetch_listing is None:
            http = session or requests.Session()
            fetch_listing = lambda url: fetch_text(http, url, timeout=self.timeout)  # noqa: E731
        self._fetch_listing = fetch_listing

    def find_in_source(self, base_url: str, basename: str) -> ArchiveName | None:
        """Return the newest match listed by one source (fetch errors propagate)."""
        listing = self._fetch_listing(base_url)
        names = extract_archive_names(listing, basename, self.extension)
        return names[0] if names else None

    def find_newest(self, basename: str) -> ResolvedArchive:
        """Return the newest archive for ``basename``.

        Raises:
            SourceNotFoundError: No candidate source lists a matching archive.
        """
        logger.info("Searching for newest archive for '%s'", basename)
        failures: dict[str, str] = {}
        for index, base_url in enumerate(self.sources):
            try:
                newest = self.find_in_source(base_url, basename)
            except requests.RequestException as exc:
                logger.warning("Listing fetch failed for %s: %s", base_url, exc)
                failures[base_url] = str(exc)
                continue
            if newest is None:
                logger.info("No match for '%s' in %s", basename, base_url)
                continue
            label = "primary" if index == 0 else f"fallback #{index}"
            resolved = ResolvedArchive(
                url=archive_url(base_url, newest.filename),
                name=newest,
                source=base_url,
                source_index=index,
            )
            logger.info("Selected archive (%s): %s", label, resolved.url)
            return resolved
        raise SourceNotFoundError(
            f"No archives matching {basename}_YYYY-MM.{self.extension} found in any candidate source",
            context={
                "basename": basename,
                "sources": list(self.sources),
                "fetch_failures": failures,
            },
        )
