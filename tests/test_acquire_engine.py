"""Tests for the acquisition engine: idempotence, atomic commit, verification gate."""

from __future__ import annotations

import hashlib
from pathlib import Path

import pytest
import requests

import backup_core.acquire.engine as engine_mod
from backup_core.acquire.engine import AcquisitionEngine
from backup_core.acquire.sources import SourceResolver
from backup_core.acquire.verify import VerificationStatus
from backup_core.exceptions import IntegrityFailedError, SourceNotFoundError, TransferFailedError
from backup_core.network_utils import RetryConfig
from tests.fixtures import FakeResponse, FakeSession, write_archive

SOURCE = "https://mirror.test/zim/"
NAME = "wiki_test_2024-03.zim"
URL = f"{SOURCE}{NAME}"
CHECKSUM_URL = f"{URL}.sha256"
PAYLOAD = b"the real archive body"
DIGEST = hashlib.sha256(PAYLOAD).hexdigest()
RETRY = RetryConfig(max_attempts=2, backoff_base=0.0, backoff_max=0.0)


def _engine(storage: Path, session: FakeSession) -> AcquisitionEngine:
    resolver = SourceResolver([SOURCE], session=session)
    return AcquisitionEngine(storage, resolver, session=session, retry=RETRY)


def _session(body: object = None, checksum: object = None) -> FakeSession:
    routes: dict[str, object] = {
        SOURCE: FakeResponse(f'<a href="{NAME}">{NAME}</a>'),
        URL: body if body is not None else FakeResponse(PAYLOAD),
    }
    if checksum is not None:
        routes[CHECKSUM_URL] = checksum
    return FakeSession(routes)


class TestAcquire:
    def test_downloads_and_verifies(self, tmp_path: Path) -> None:
        storage = tmp_path / "zim"
        session = _session(checksum=FakeResponse(f"{DIGEST}  {NAME}\n"))
        acquired = _engine(storage, session).acquire("wiki_test")

        assert acquired.path == storage / NAME
        assert acquired.path.read_bytes() == PAYLOAD
        assert acquired.cached is False
        assert acquired.verification is VerificationStatus.VERIFIED
        assert acquired.sha256 == DIGEST
        assert sorted(p.name for p in storage.iterdir()) == [NAME]

    def test_second_acquire_transfers_nothing(self, tmp_path: Path) -> None:
        storage = tmp_path / "zim"
        session = _session(checksum=FakeResponse(DIGEST))
        engine = _engine(storage, session)

        first = engine.acquire("wiki_test")
        second = engine.acquire("wiki_test")

        assert first.cached is False
        assert second.cached is True
        assert second.verification is VerificationStatus.NOT_CHECKED
        assert session.requested(URL) == 1
        assert session.requested(CHECKSUM_URL) == 1
        assert [p.name for p in storage.iterdir()] == [NAME]

    def test_existing_file_is_never_overwritten(self, tmp_path: Path) -> None:
        storage = tmp_path / "zim"
        existing = write_archive(storage, NAME, 5)
        session = _session()
        acquired = _engine(storage, session).acquire("wiki_test")
        assert acquired.cached is True
        assert existing.read_bytes() == b"\0" * 5
        assert session.requested(URL) == 0

    def test_corrupted_payload_is_rejected(self, tmp_path: Path) -> None:
        storage = tmp_path / "zim"
        session = _session(
            body=FakeResponse(b"corrupted body"), checksum=FakeResponse(f"{DIGEST}  {NAME}")
        )
        with pytest.raises(IntegrityFailedError) as excinfo:
            _engine(storage, session).acquire("wiki_test")
        assert excinfo.value.context["expected_sha256"] == DIGEST
        assert list(storage.iterdir()) == []

    def test_malformed_checksum_accepts_payload(self, tmp_path: Path) -> None:
        storage = tmp_path / "zim"
        session = _session(
            body=FakeResponse(b"corrupted body"), checksum=FakeResponse("<html>oops</html>")
        )
        acquired = _engine(storage, session).acquire("wiki_test")
        assert acquired.verification is VerificationStatus.SKIPPED_MALFORMED
        assert (storage / NAME).read_bytes() == b"corrupted body"
        assert not (storage / f"{NAME}.part.sha256").exists()

    def test_absent_checksum_accepts_payload(self, tmp_path: Path) -> None:
        storage = tmp_path / "zim"
        acquired = _engine(storage, _session()).acquire("wiki_test")
        assert acquired.verification is VerificationStatus.SKIPPED_ABSENT
        assert acquired.path.exists()

    def test_interrupted_transfer_leaves_no_final_or_temp(self, tmp_path: Path) -> None:
        storage = tmp_path / "zim"
        older = write_archive(storage, "wiki_test_2024-02.zim", 7)
        body = FakeResponse(chunks=[b"half", requests.exceptions.ChunkedEncodingError("cut")])
        session = _session(body=body)
        with pytest.raises(TransferFailedError):
            _engine(storage, session).acquire("wiki_test")
        assert sorted(p.name for p in storage.iterdir()) == [older.name]
        assert session.requested(URL) == RETRY.max_attempts

    def test_failed_rename_becomes_transfer_error(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def refuse(temp_path: Path, final_path: Path) -> Path:
            raise PermissionError(13, "Permission denied", str(final_path))

        monkeypatch.setattr(engine_mod, "commit", refuse)
        storage = tmp_path / "zim"
        session = _session(checksum=FakeResponse(DIGEST))

        with pytest.raises(TransferFailedError) as excinfo:
            _engine(storage, session).acquire("wiki_test")

        assert excinfo.value.context == {"url": URL, "path": str(storage / NAME)}
        assert isinstance(excinfo.value.__cause__, PermissionError)
        assert list(storage.iterdir()) == []

    def test_uncreatable_storage_becomes_transfer_error(self, tmp_path: Path) -> None:
        blocker = tmp_path / "zim"
        blocker.write_text("not a directory", encoding="utf-8")
        session = _session()

        with pytest.raises(TransferFailedError) as excinfo:
            _engine(blocker / "nested", session).acquire("wiki_test")

        assert excinfo.value.context["path"] == str(blocker / "nested")
        assert session.requested(URL) == 0

    def test_source_not_found_propagates(self, tmp_path: Path) -> None:
        session = FakeSession({SOURCE: FakeResponse("nothing here")})
        with pytest.raises(SourceNotFoundError):
            _engine(tmp_path / "zim", session).acquire("wiki_test")


def test_target_path_requires_a_filename(tmp_path: Path) -> None:
    engine = _engine(tmp_path, FakeSession())
    assert engine.target_path(URL) == tmp_path / NAME
    with pytest.raises(TransferFailedError):
        engine.target_path("https://mirror.test/zim/")


def test_from_config_wires_sources_and_timeouts(config_factory) -> None:
    config = config_factory(network={"connect_timeout": 3, "read_timeout": 30})
    engine = AcquisitionEngine.from_config(config, session=FakeSession())
    assert engine.storage_dir == config.storage_dir
    assert engine.resolver.sources == config.archive.candidate_sources
    assert engine.timeout == (3.0, 30.0)
    assert engine.checksum_suffix == ".sha256"
