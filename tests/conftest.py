"""
Shared pytest fixtures for Kiwix backup tests.

Provides common fixtures for:
- Backup configurations rooted in a temp directory
- Fake HTTP sessions
- Retry backoff without real sleeping
"""

from __future__ import annotations

import sys
from collections.abc import Generator
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest

SRC_ROOT = Path(__file__).resolve().parents[1] / "src"
if SRC_ROOT.is_dir():
    sys.path.insert(0, str(SRC_ROOT))

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from tests.fixtures import FakeSession, make_config  # noqa: E402


@pytest.fixture(autouse=True)
def no_backoff_sleep(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    """Record retry backoff delays instead of sleeping."""
    import backup_core.network_utils as network_utils

    sleeps: list[float] = []
    monkeypatch.setattr(network_utils, "time", SimpleNamespace(sleep=sleeps.append))
    return sleeps


@pytest.fixture(autouse=True)
def no_github_token(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)


@pytest.fixture(autouse=True)
def reset_logging_config() -> Generator[None, None, None]:
    """Drop handlers installed by configure_logging between tests."""
    import logging

    import backup_core.logging_config as logging_config

    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_backup_core", False):
            root.removeHandler(handler)
            handler.close()
    logging_config._CONFIGURED = False


@pytest.fixture
def config_factory(tmp_path: Path):
    def _create(**overrides: Any):
        return make_config(tmp_path, **overrides)

    return _create


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()
