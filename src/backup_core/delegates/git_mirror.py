"""Repository mirror delegate.

Keeps one local clone per ``owner/name`` repository under ``repos_dir/<name>``:
clone when absent, otherwise fetch and fast-forward, falling back to a plain
``git pull`` when the history has diverged.
"""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from backup_core.config import BackupConfig
from backup_core.result import Err, Ok, Result
from backup_core.utils.paths import ensure_dir
from backup_core.utils.subprocess import run_cmd

logger = logging.getLogger(__name__)

GIT_TIMEOUT_S = 3600.0


def _log_output(output: str) -> None:
    for line in output.splitlines():
        if line.strip():
            logger.info("git: %s", line.rstrip())


def _git(args: list[str], cwd: Path | None = None) -> str:
    output = run_cmd(["git", *args], cwd=cwd, timeout=GIT_TIMEOUT_S)
    _log_output(output)
    return output


class GitMirror:
    name = "repositories"

    def __init__(
        self,
        repos_dir: Path,
        repositories: Sequence[str],
        *,
        base_url: str = "https://github.com",
    ) -> None:
        self.repos_dir = repos_dir
        self.repositories = tuple(repositories)
        self.base_url = base_url.rstrip("/")

    @classmethod
    def from_config(cls, config: BackupConfig) -> GitMirror:
        return cls(config.repos_dir, config.repositories, base_url=config.github_base_url)

    def clone_url(self, repo: str) -> str:
        return f"{self.base_url}/{repo}.git"

    def local_path(self, repo: str) -> Path:
        return self.repos_dir / repo.rsplit("/", 1)[-1]

    def run(self) -> list[Result[Any]]:
        logger.info("Updating Git repos in %s", self.repos_dir)
        ensure_dir(self.repos_dir)
        return [self.sync(repo) for repo in self.repositories]

    def sync(self, repo: str) -> Result[Any]:
        """Clone or update one repository; failures become an error Result."""
        path = self.local_path(repo)
        try:
            if (path / ".git").is_dir():
                return self._update(repo, path)
            if path.exists() and any(path.iterdir()):
                logger.error("Cannot mirror %s: %s exists but is not a git repository", repo, path)
                return Err("missing_git_repo", f"{path} is not a git repository", item=repo, path=str(path))
            return self._clone(repo, path)
        except subprocess.CalledProcessError as exc:
            output = exc.output.decode("utf-8", errors="ignore") if isinstance(exc.output, bytes) else str(exc.output or "")
            _log_output(output)
            logger.error("git failed for %s (exit %s)", repo, exc.returncode)
            return Err("git_failed", f"exit status {exc.returncode}", item=repo, path=str(path))
        except (subprocess.TimeoutExpired, OSError) as exc:
            logger.error("git failed for %s: %s", repo, exc)
            return Err("git_failed", str(exc), item=repo, path=str(path))

    def _clone(self, repo: str, path: Path) -> Result[Any]:
        logger.info("Cloning %s", repo)
        _git(["clone", self.clone_url(repo), str(path)])
        head = _git(["-C", str(path), "rev-parse", "HEAD"]).strip()
        return Ok(str(path), item=repo, action="cloned", git_commit=head)

    def _update(self, repo: str, path: Path) -> Result[Any]:
        logger.info("Updating %s", path.name)
        _git(["-C", str(path), "fetch", "--all", "--prune"])
        action = "fast_forward"
        try:
            _git(["-C", str(path), "pull", "--ff-only"])
        except subprocess.CalledProcessError as exc:
            logger.warning("Fast-forward failed for %s (exit %s); trying plain pull", repo, exc.returncode)
            _git(["-C", str(path), "pull"])
            action = "merged"
        head = _git(["-C", str(path), "rev-parse", "HEAD"]).strip()
        return Ok(str(path), item=repo, action=action, git_commit=head)
