"""Exception hierarchy for the Kiwix backup run.

Exceptions are raised for configuration errors and for the fatal acquisition
failures that end a run. Recoverable per-item outcomes (a repository that
failed to update, a package that could not be downloaded) are reported as
``backup_core.result.Result`` values instead.

Every error carries a stable ``code`` and a ``context`` dict so that log lines
identify the archive, URL or config path involved.
"""

from __future__ import annotations

from typing import Any


class BackupError(Exception):
    """Base class for all errors raised by backup_core."""

    code = "backup_error"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.context: dict[str, Any] = dict(context or {})

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.code, "message": self.message}
        payload.update(self.context)
        return payload


class ConfigValidationError(BackupError):
    code = "config_validation_error"


class YamlParseError(BackupError):
    code = "yaml_parse_error"


class RunLockedError(BackupError):
    """Another invocation holds the run lock."""

    code = "run_locked"


class AcquisitionError(BackupError):
    """Base class for errors that abort acquisition of the primary archive."""

    code = "acquisition_error"


class SourceNotFoundError(AcquisitionError):
    """No candidate source lists an archive for the requested basename."""

    code = "source_not_found"


class TransferFailedError(AcquisitionError):
    """The archive body could not be transferred."""

    code = "transfer_failed"


class IntegrityFailedError(AcquisitionError):
    """The downloaded archive does not match its published SHA-256."""

    code = "integrity_failed"
