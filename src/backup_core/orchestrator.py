"""Sequencing of one backup run.

    START -> PRE_QUOTA_CHECK -> ACQUIRE -> POST_QUOTA_CHECK -> DELEGATE_EXTERNAL -> DONE
                                   |
                                   +-- on AcquisitionError --> ABORT

The primary archive decides the exit code. Delegates (repository mirror,
binaries, packages) run one after another once it is secured; a delegate that
fails, even by raising, is logged and recorded without stopping the others.
Every step is idempotent, so a failed run is repaired by the next scheduled
invocation.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import requests

from backup_core.acquire.engine import AcquiredArchive, AcquisitionEngine
from backup_core.config import BackupConfig
from backup_core.delegates import BinaryFetcher, Delegate, GitMirror, PackageFetcher
from backup_core.exceptions import AcquisitionError
from backup_core.quota import QuotaEnforcer, QuotaReport
from backup_core.result import Err, Result, count_statuses, failed
from backup_core.utils.http import create_session
from backup_core.utils.logging import log_event

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ACQUISITION_FAILED = 1
EXIT_CONFIG_ERROR = 2
EXIT_LOCKED = 3


class RunStage(str, enum.Enum):
    START = "start"
    PRE_QUOTA_CHECK = "pre_quota_check"
    ACQUIRE = "acquire"
    ABORT = "abort"
    POST_QUOTA_CHECK = "post_quota_check"
    DELEGATE_EXTERNAL = "delegate_external"
    DONE = "done"


@dataclass
class RunReport:
    stages: list[RunStage] = field(default_factory=list)
    pre_quota: QuotaReport | None = None
    acquired: AcquiredArchive | None = None
    error: AcquisitionError | None = None
    post_quota: QuotaReport | None = None
    delegates: dict[str, list[Result[Any]]] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.acquired is not None and self.error is None

    @property
    def exit_code(self) -> int:
        return EXIT_OK if self.succeeded else EXIT_ACQUISITION_FAILED

    def delegate_failures(self) -> dict[str, list[Result[Any]]]:
        return {name: failed(results) for name, results in self.delegates.items() if failed(results)}

    def to_dict(self) -> dict[str, Any]:
        return {
            "stages": [stage.value for stage in self.stages],
            "exit_code": self.exit_code,
            "pre_quota": self.pre_quota.to_dict() if self.pre_quota else None,
            "acquired": self.acquired.to_dict() if self.acquired else None,
            "error": self.error.to_dict() if self.error else None,
            "post_quota": self.post_quota.to_dict() if self.post_quota else None,
            "delegates": {
                name: [r.to_dict() for r in results] for name, results in self.delegates.items()
            },
        }


class BackupOrchestrator:
    def __init__(
        self,
        config: BackupConfig,
        *,
        engine: AcquisitionEngine,
        quota: QuotaEnforcer,
        delegates: Sequence[Delegate] = (),
    ) -> None:
        self.config = config
        self.engine = engine
        self.quota = quota
        self.delegates = tuple(delegates)

    @classmethod
    def from_config(
        cls, config: BackupConfig, session: requests.Session | None = None
    ) -> BackupOrchestrator:
        session = session or create_session(config.network.user_agent or None)
        return cls(
            config,
            engine=AcquisitionEngine.from_config(config, session=session),
            quota=QuotaEnforcer.from_config(config),
            delegates=(
                GitMirror.from_config(config),
                BinaryFetcher.from_config(config, session=session),
                PackageFetcher.from_config(config, session=session),
            ),
        )

    def run(self) -> RunReport:
        report = RunReport(stages=[RunStage.START])
        logger.info("=== START KIWIX MONTHLY BACKUP ===")

        report.stages.append(RunStage.PRE_QUOTA_CHECK)
        logger.info("Pre-download storage check")
        report.pre_quota = self._check_quota(self.config.estimated_archive_bytes)

        report.stages.append(RunStage.ACQUIRE)
        try:
            report.acquired = self.engine.acquire(self.config.archive.basename)
        except AcquisitionError as exc:
            report.error = exc
            report.stages.append(RunStage.ABORT)
            log_event(
                logger,
                f"Failed to acquire new archive ({exc.code}): {exc.message}. Exiting.",
                logging.ERROR,
                **exc.context,
            )
            return report
        logger.info("Newest archive local path: %s", report.acquired.path)

        report.stages.append(RunStage.POST_QUOTA_CHECK)
        logger.info("Post-download storage check")
        report.post_quota = self._check_quota(0)

        report.stages.append(RunStage.DELEGATE_EXTERNAL)
        for delegate in self.delegates:
            report.delegates[delegate.name] = self._run_delegate(delegate)

        report.stages.append(RunStage.DONE)
        failures = report.delegate_failures()
        if failures:
            logger.warning(
                "Secondary artifacts incomplete: %s",
                ", ".join(f"{name}: {len(items)} failed" for name, items in failures.items()),
            )
        logger.info("=== END KIWIX MONTHLY BACKUP ===")
        return report

    def _check_quota(self, headroom_bytes: int) -> QuotaReport:
        report = self.quota.enforce(headroom_bytes)
        if not report.satisfied:
            logger.warning(
                "Storage quota cannot be met: %d bytes short (continuing)", report.shortfall_bytes
            )
        return report

    def _run_delegate(self, delegate: Delegate) -> list[Result[Any]]:
        try:
            results = delegate.run()
        except Exception as exc:
            logger.exception("Delegate %s failed", delegate.name)
            return [Err("delegate_failed", str(exc), item=delegate.name)]
        for result in failed(results):
            log_event(logger, f"{delegate.name}: item failed", logging.WARNING, **result.to_dict())
        counts = count_statuses(results)
        logger.info(
            "%s: %d ok, %d skipped, %d failed",
            delegate.name,
            counts["ok"],
            counts["noop"],
            counts["error"],
        )
        return results
