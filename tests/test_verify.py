from __future__ import annotations

import hashlib
from pathlib import Path

import pytest

from backup_core.acquire.verify import IntegrityVerifier, VerificationStatus, parse_checksum
from backup_core.exceptions import IntegrityFailedError

PAYLOAD = b"zim archive payload"
DIGEST = hashlib.sha256(PAYLOAD).hexdigest()


@pytest.fixture
def payload_file(tmp_path: Path) -> Path:
    path = tmp_path / "wiki_test_2024-01.zim.part"
    path.write_bytes(PAYLOAD)
    return path


class TestParseChecksum:
    def test_sha256sum_format(self) -> None:
        assert parse_checksum(f"{DIGEST}  wiki_test_2024-01.zim\n") == DIGEST

    def test_bare_digest_uppercase(self) -> None:
        assert parse_checksum(DIGEST.upper()) == DIGEST

    @pytest.mark.parametrize(
        "text",
        [None, "", "   \n", "not-a-digest wiki.zim", DIGEST[:-1], DIGEST + "0", "<html>404</html>"],
    )
    def test_malformed_or_empty(self, text: str | None) -> None:
        assert parse_checksum(text) is None


class TestIntegrityVerifier:
    def test_matching_digest_is_verified(self, payload_file: Path) -> None:
        outcome = IntegrityVerifier().verify(payload_file, f"{DIGEST}  wiki_test_2024-01.zim")
        assert outcome.status is VerificationStatus.VERIFIED
        assert outcome.actual == DIGEST
        assert not outcome.status.skipped

    def test_absent_checksum_is_skipped(self, payload_file: Path, caplog) -> None:
        with caplog.at_level("INFO"):
            outcome = IntegrityVerifier().verify(payload_file, None)
        assert outcome.status is VerificationStatus.SKIPPED_ABSENT
        assert outcome.status.skipped
        assert "skipping verification" in caplog.text

    def test_malformed_checksum_is_skipped(self, payload_file: Path, caplog) -> None:
        with caplog.at_level("WARNING"):
            outcome = IntegrityVerifier().verify(payload_file, "garbage")
        assert outcome.status is VerificationStatus.SKIPPED_MALFORMED
        assert "unexpected format" in caplog.text

    def test_mismatch_raises_with_context(self, payload_file: Path) -> None:
        wrong = hashlib.sha256(b"something else").hexdigest()
        with pytest.raises(IntegrityFailedError) as excinfo:
            IntegrityVerifier().verify(payload_file, wrong, label="wiki_test_2024-01.zim")
        assert excinfo.value.code == "integrity_failed"
        assert excinfo.value.context == {
            "file": "wiki_test_2024-01.zim",
            "expected_sha256": wrong,
            "sha256": DIGEST,
        }
