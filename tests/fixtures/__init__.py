"""Test fixtures for Kiwix backup tests."""
from __future__ import annotations

import os
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

import requests

from backup_core.config import DEFAULT_CONFIG, BackupConfig, _deep_merge, build_config


class FakeResponse:
    """Minimal stand-in for ``requests.Response`` (streaming and plain)."""

    def __init__(
        self,
        content: bytes | str = b"",
        status_code: int = 200,
        *,
        url: str = "",
        headers: dict[str, str] | None = None,
        chunks: Iterable[bytes | BaseException] | None = None,
        payload: Any = None,
    ) -> None:
        self.content = content.encode("utf-8") if isinstance(content, str) else content
        self.status_code = status_code
        self.url = url or "https://example.test/file"
        self.headers = dict(headers or {})
        self._chunks = list(chunks) if chunks is not None else [self.content]
        self._payload = payload

    @property
    def text(self) -> str:
        return self.content.decode("utf-8")

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}", response=self)

    def iter_content(self, chunk_size: int = 1024 * 1024):
        for chunk in self._chunks:
            if isinstance(chunk, BaseException):
                raise chunk
            yield chunk

    def json(self) -> Any:
        return self._payload

    def __enter__(self) -> FakeResponse:
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        return False


Route = FakeResponse | BaseException | Callable[[], FakeResponse] | list[Any]


class FakeSession:
    """Routes ``get`` calls by URL and records every request.

    A route may be a response, an exception to raise, a zero-argument
    callable, or a list consumed one entry per call (the last entry repeats).
    Unknown URLs answer 404.
    """

    def __init__(self, routes: dict[str, Route] | None = None) -> None:
        self.routes: dict[str, Route] = dict(routes or {})
        self.calls: list[dict[str, Any]] = []
        self.headers: dict[str, str] = {}

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"url": url, **kwargs})
        route = self.routes.get(url)
        if route is None:
            return FakeResponse(b"not found", status_code=404, url=url)
        if isinstance(route, list):
            route = route.pop(0) if len(route) > 1 else route[0]
        if isinstance(route, BaseException):
            raise route
        if callable(route) and not isinstance(route, FakeResponse):
            route = route()
        if not route.url or route.url == "https://example.test/file":
            route.url = url
        return route

    def requested(self, url: str) -> int:
        return sum(1 for call in self.calls if call["url"] == url)


def write_archive(directory: Path, name: str, size: int, mtime: float | None = None) -> Path:
    """Create a file of ``size`` bytes, optionally with a fixed mtime."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_bytes(b"\0" * size)
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


def make_config(tmp_path: Path, **overrides: Any) -> BackupConfig:
    """Build a config rooted in ``tmp_path`` with all delegates disabled."""
    raw: dict[str, Any] = {
        "storage_dir": str(tmp_path / "zim"),
        "repos_dir": str(tmp_path / "repos"),
        "bin_dir": str(tmp_path / "apps"),
        "log_file": str(tmp_path / "logs" / "kiwix-backup.log"),
        "max_bytes": 1000,
        "estimated_archive_bytes": 100,
        "archive": {
            "basename": "wiki_test",
            "candidate_sources": ["https://primary.test/zim/", "https://fallback.test/zim/"],
        },
        "repositories": [],
        "release_assets": [],
        "index_assets": [],
        "page_snapshots": [],
        "packages": {"names": [], "releases": []},
        "network": {"retry": {"max_attempts": 2, "backoff_base": 0.0, "backoff_max": 0.0}},
    }
    return build_config(_deep_merge(_deep_merge(DEFAULT_CONFIG, raw), overrides))
