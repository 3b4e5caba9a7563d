"""SHA-256 verification against an optional published checksum.

A missing or malformed checksum skips verification rather than failing it;
only a well-formed digest that disagrees with the payload is an error.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from pathlib import Path

from backup_core.exceptions import IntegrityFailedError
from backup_core.utils.hash import is_sha256_hex, sha256_file

logger = logging.getLogger(__name__)


class VerificationStatus(str, enum.Enum):
    VERIFIED = "verified"
    SKIPPED_ABSENT = "skipped_absent"
    SKIPPED_MALFORMED = "skipped_malformed"
    NOT_CHECKED = "not_checked"

    @property
    def skipped(self) -> bool:
        return self in (VerificationStatus.SKIPPED_ABSENT, VerificationStatus.SKIPPED_MALFORMED)


def parse_checksum(text: str | None) -> str | None:
    """Return the lower-cased digest from a ``.sha256`` body, or None.

    The digest is the first whitespace-delimited token of the first line
    (``sha256sum`` output format). Anything that is not exactly 64 hex
    digits is treated as malformed.
    """
    if not text:
        return None
    tokens = text.strip().split()
    if not tokens:
        return None
    candidate = tokens[0]
    if not is_sha256_hex(candidate):
        return None
    return candidate.lower()


@dataclass(frozen=True)
class VerificationOutcome:
    status: VerificationStatus
    expected: str | None = None
    actual: str | None = None


class IntegrityVerifier:
    """Check a downloaded file against an externally supplied checksum."""

    def verify(self, path: Path, checksum_text: str | None, *, label: str | None = None) -> VerificationOutcome:
        """Verify ``path`` against ``checksum_text`` (body of the ``.sha256`` file).

        Args:
            path: The downloaded file (usually still at its ``.part`` path).
            checksum_text: Checksum body, or None when none was published.
            label: Name used in log lines and error context.

        Returns:
            The verification outcome; skipped outcomes are not errors.

        Raises:
            IntegrityFailedError: The digest is well-formed and does not match.
        """
        label = label or path.name
        if checksum_text is None:
            logger.info("No checksum available for %s; skipping verification", label)
            return VerificationOutcome(VerificationStatus.SKIPPED_ABSENT)
        expected = parse_checksum(checksum_text)
        if expected is None:
            logger.warning("Checksum for %s has unexpected format; stored unverified", label)
            return VerificationOutcome(VerificationStatus.SKIPPED_MALFORMED)
        actual = sha256_file(path)
        if actual.lower() != expected:
            raise IntegrityFailedError(
                f"SHA-256 mismatch for {label}",
                context={"file": label, "expected_sha256": expected, "sha256": actual},
            )
        logger.info("SHA-256 OK for %s", label)
        return VerificationOutcome(VerificationStatus.VERIFIED, expected=expected, actual=actual)
