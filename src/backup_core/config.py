"""Configuration loading for the Kiwix backup.

Settings come from three layers, later layers winning:

1. ``DEFAULT_CONFIG`` (mirrors the historical cron script),
2. an optional YAML file (``--config`` or ``KIWIX_BACKUP_CONFIG``),
3. ``KIWIX_BACKUP_*`` environment variables.

The merged mapping is validated against ``schemas/backup_config.schema.json``
and frozen into a ``BackupConfig`` that is handed to every component.
"""

from __future__ import annotations

import copy
import dataclasses
import json
import os
import re
from collections.abc import Mapping
from functools import cache
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from jsonschema import Draft7Validator, FormatChecker

from backup_core.exceptions import ConfigValidationError, YamlParseError
from backup_core.network_utils import RetryConfig
from backup_core.utils.sizes import parse_size

ENV_PREFIX = "KIWIX_BACKUP_"
CONFIG_PATH_ENV = f"{ENV_PREFIX}CONFIG"
SCHEMA_NAME = "backup_config"
MAX_REPORTED_ERRORS = 10

GIB = 1024**3

DEFAULT_CONFIG: dict[str, Any] = {
    "storage_dir": "/wiki/kiwix/zim",
    "repos_dir": "/wiki/kiwix/repos",
    "bin_dir": "/wiki/kiwix/apps",
    "log_file": "/var/log/kiwix-backup.log",
    "lock_file": None,
    "max_bytes": 1800 * GIB,
    "estimated_archive_bytes": 100 * GIB,
    "archive": {
        "basename": "wikipedia_en_all_maxi",
        "extension": "zim",
        "candidate_sources": [
            "https://dumps.wikimedia.org/kiwix/zim/wikipedia/",
            "https://dumps.wikimedia.org/other/kiwix/zim/wikipedia/",
        ],
        "checksum_suffix": ".sha256",
    },
    "repositories": [
        "kiwix/kiwix-desktop",
        "kiwix/kiwix-tools",
        "kiwix/kiwix-js",
        "openzim/libzim",
        "kiwix/kiwix-lib",
        "docopt/docopt.cpp",
        "kainjow/Mustache",
    ],
    "github_base_url": "https://github.com",
    "github_api_url": "https://api.github.com",
    "release_assets": [
        {
            "repo": "kiwix/kiwix-desktop",
            "pattern": r"\.(exe|AppImage|deb)$",
            "description": "Desktop app for Windows and Linux",
        },
        {
            "repo": "kiwix/kiwix-js-windows",
            "pattern": r"\.(exe|appx|msix|zip)$",
            "description": "Kiwix JS for Windows",
        },
        {
            "repo": "kiwix/kiwix-js",
            "pattern": r"\.(AppImage|zip|tar\.gz)$",
            "description": "Kiwix JS cross-platform",
        },
        {
            "repo": "kiwix/kiwix-android",
            "pattern": r"\.apk$",
            "description": "Android APK",
        },
    ],
    "index_assets": [
        {
            "base_url": "https://download.kiwix.org/release/kiwix-tools/",
            "pattern": r"kiwix-tools_linux-x86_64-[0-9.]+\.tar\.gz",
            "description": "kiwix-tools server binaries for Linux x86_64",
        },
        {
            "base_url": "https://download.kiwix.org/release/kiwix-tools/",
            "pattern": r"kiwix-tools_linux-aarch64-[0-9.]+\.tar\.gz",
            "description": "kiwix-tools server binaries for Linux ARM64",
        },
        {
            "base_url": "https://download.kiwix.org/release/kiwix-tools/",
            "pattern": r"kiwix-tools_win-x86_64-[0-9.]+\.zip",
            "description": "kiwix-tools for Windows x86_64",
        },
        {
            "base_url": "https://download.kiwix.org/release/kiwix-tools/",
            "pattern": r"kiwix-tools_win-i686-[0-9.]+\.zip",
            "description": "kiwix-tools for Windows i686",
        },
    ],
    "page_snapshots": [
        {
            "url": "https://kiwix.org/en/applications/",
            "filename": "kiwix-applications-page.html",
        },
    ],
    "packages": {
        "names": [
            "build-essential",
            "cmake",
            "pkg-config",
            "meson",
            "ninja-build",
            "liblz4-dev",
            "libzstd-dev",
            "libxapian-dev",
            "libicu-dev",
            "libcurl4-openssl-dev",
            "libmicrohttpd-dev",
            "libevent-dev",
            "libfmt-dev",
            "libctpl-dev",
            "git",
            "wget",
            "curl",
        ],
        "releases": ["jammy", "noble"],
        "arch": "amd64",
        "download_page_template": "https://packages.ubuntu.com/{release}/{arch}/{package}/download",
    },
    "network": {
        "connect_timeout": 15.0,
        "read_timeout": 300.0,
        "user_agent": "",
        "retry": {"max_attempts": 3, "backoff_base": 2.0, "backoff_max": 60.0},
    },
}

_ENV_SCALARS: dict[str, tuple[str, ...]] = {
    "STORAGE_DIR": ("storage_dir",),
    "REPOS_DIR": ("repos_dir",),
    "BIN_DIR": ("bin_dir",),
    "PACKAGES_DIR": ("packages_dir",),
    "LOG_FILE": ("log_file",),
    "LOCK_FILE": ("lock_file",),
    "MAX_BYTES": ("max_bytes",),
    "ESTIMATED_ARCHIVE_BYTES": ("estimated_archive_bytes",),
    "ARCHIVE_BASENAME": ("archive", "basename"),
}

_ENV_LISTS: dict[str, tuple[str, ...]] = {
    "CANDIDATE_SOURCES": ("archive", "candidate_sources"),
    "REPOSITORIES": ("repositories",),
    "PACKAGE_RELEASES": ("packages", "releases"),
    "PACKAGE_NAMES": ("packages", "names"),
}


@dataclasses.dataclass(frozen=True)
class ArchiveConfig:
    basename: str
    extension: str
    candidate_sources: tuple[str, ...]
    checksum_suffix: str = ".sha256"


@dataclasses.dataclass(frozen=True)
class ReleaseAssetRule:
    repo: str
    pattern: str
    description: str = ""


@dataclasses.dataclass(frozen=True)
class IndexAssetRule:
    base_url: str
    pattern: str
    description: str = ""


@dataclasses.dataclass(frozen=True)
class PageSnapshot:
    url: str
    filename: str


@dataclasses.dataclass(frozen=True)
class PackageBundleConfig:
    names: tuple[str, ...]
    releases: tuple[str, ...]
    arch: str
    download_page_template: str

    def download_page_url(self, release: str, package: str) -> str:
        return self.download_page_template.format(release=release, arch=self.arch, package=package)


@dataclasses.dataclass(frozen=True)
class NetworkConfig:
    connect_timeout: float = 15.0
    read_timeout: float = 300.0
    user_agent: str = ""
    retry: RetryConfig = dataclasses.field(default_factory=RetryConfig)

    @property
    def timeout(self) -> tuple[float, float]:
        return (self.connect_timeout, self.read_timeout)


@dataclasses.dataclass(frozen=True)
class BackupConfig:
    storage_dir: Path
    repos_dir: Path
    bin_dir: Path
    packages_dir: Path
    log_file: Path
    lock_file: Path | None
    max_bytes: int
    estimated_archive_bytes: int
    archive: ArchiveConfig
    repositories: tuple[str, ...]
    github_base_url: str
    github_api_url: str
    release_assets: tuple[ReleaseAssetRule, ...]
    index_assets: tuple[IndexAssetRule, ...]
    page_snapshots: tuple[PageSnapshot, ...]
    packages: PackageBundleConfig
    network: NetworkConfig

    def managed_dirs(self) -> list[Path]:
        """Directories the run writes into, in creation order."""
        return [self.storage_dir, self.repos_dir, self.bin_dir, self.packages_dir, self.log_file.parent]


@cache
def load_schema(schema_name: str = SCHEMA_NAME) -> dict[str, Any]:
    schema_path = resources.files("backup_core").joinpath("schemas", f"{schema_name}.schema.json")
    try:
        return json.loads(schema_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise FileNotFoundError(f"Schema not found: {schema_name}") from None


def validate_config(config: Any, *, config_path: Path | None = None) -> None:
    validator = Draft7Validator(load_schema(), format_checker=FormatChecker())
    errors = sorted(validator.iter_errors(config), key=lambda exc: list(exc.path))
    if not errors:
        return
    location = str(config_path) if config_path else "<config>"
    lines = [f"Schema validation failed for {location} ({SCHEMA_NAME})."]
    error_details: list[dict[str, str]] = []
    for error in errors[:MAX_REPORTED_ERRORS]:
        path = ".".join(str(p) for p in error.path) if error.path else "<root>"
        lines.append(f"- {path}: {error.message}")
        error_details.append({"path": path, "message": error.message})
    if len(errors) > MAX_REPORTED_ERRORS:
        lines.append(f"... and {len(errors) - MAX_REPORTED_ERRORS} more errors.")
    raise ConfigValidationError(
        "\n".join(lines),
        context={
            "path": location,
            "schema": SCHEMA_NAME,
            "errors": error_details,
            "truncated": len(errors) > MAX_REPORTED_ERRORS,
        },
    )


def read_yaml(path: Path) -> dict[str, Any]:
    """Parse a YAML config file into a mapping (empty file -> ``{}``)."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigValidationError(
            f"Cannot read config file {path}: {exc}", context={"path": str(path)}
        ) from exc
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise YamlParseError(
            f"YAML parse error in {path}: {exc}",
            context={"path": str(path), "error": str(exc)},
        ) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigValidationError(
            f"Config file {path} must contain a mapping, got {type(data).__name__}",
            context={"path": str(path)},
        )
    return data


def _deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(dict(base))
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _set_path(data: dict[str, Any], keys: tuple[str, ...], value: Any) -> None:
    node = data
    for key in keys[:-1]:
        child = node.get(key)
        if not isinstance(child, dict):
            child = {}
            node[key] = child
        node = child
    node[keys[-1]] = value


def _split_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def apply_env_overrides(raw: dict[str, Any], env: Mapping[str, str]) -> dict[str, Any]:
    """Return a copy of ``raw`` with ``KIWIX_BACKUP_*`` variables applied."""
    data = copy.deepcopy(raw)
    for name, keys in _ENV_SCALARS.items():
        value = env.get(f"{ENV_PREFIX}{name}")
        if value is not None and value.strip():
            _set_path(data, keys, value.strip())
    for name, keys in _ENV_LISTS.items():
        value = env.get(f"{ENV_PREFIX}{name}")
        if value is not None:
            _set_path(data, keys, _split_list(value))
    return data


def _compile_check(pattern: str, where: str) -> None:
    try:
        re.compile(pattern)
    except re.error as exc:
        raise ConfigValidationError(
            f"Invalid regular expression for {where}: {exc}",
            context={"field": where, "pattern": pattern},
        ) from exc


def _size(raw: dict[str, Any], key: str) -> int:
    try:
        return parse_size(raw[key])
    except ValueError as exc:
        raise ConfigValidationError(str(exc), context={"field": key}) from exc


def build_config(raw: dict[str, Any]) -> BackupConfig:
    """Freeze a validated raw mapping into a ``BackupConfig``."""
    archive_raw = raw.get("archive") or {}
    network_raw = raw.get("network") or {}
    retry_raw = network_raw.get("retry") or {}
    packages_raw = raw.get("packages") or {}

    release_assets = tuple(
        ReleaseAssetRule(
            repo=item["repo"], pattern=item["pattern"], description=item.get("description", "")
        )
        for item in raw.get("release_assets") or []
    )
    index_assets = tuple(
        IndexAssetRule(
            base_url=item["base_url"],
            pattern=item["pattern"],
            description=item.get("description", ""),
        )
        for item in raw.get("index_assets") or []
    )
    for rule in release_assets:
        _compile_check(rule.pattern, f"release_assets[{rule.repo}]")
    for rule in index_assets:
        _compile_check(rule.pattern, f"index_assets[{rule.base_url}]")

    bin_dir = Path(raw["bin_dir"])
    packages_dir = raw.get("packages_dir")
    lock_file = raw.get("lock_file")

    return BackupConfig(
        storage_dir=Path(raw["storage_dir"]),
        repos_dir=Path(raw["repos_dir"]),
        bin_dir=bin_dir,
        packages_dir=Path(packages_dir) if packages_dir else bin_dir / "ubuntu-debs",
        log_file=Path(raw["log_file"]),
        lock_file=Path(lock_file) if lock_file else None,
        max_bytes=_size(raw, "max_bytes"),
        estimated_archive_bytes=_size(raw, "estimated_archive_bytes"),
        archive=ArchiveConfig(
            basename=archive_raw["basename"],
            extension=archive_raw["extension"],
            candidate_sources=tuple(archive_raw["candidate_sources"]),
            checksum_suffix=archive_raw.get("checksum_suffix", ".sha256"),
        ),
        repositories=tuple(raw.get("repositories") or []),
        github_base_url=raw["github_base_url"].rstrip("/"),
        github_api_url=raw["github_api_url"].rstrip("/"),
        release_assets=release_assets,
        index_assets=index_assets,
        page_snapshots=tuple(
            PageSnapshot(url=item["url"], filename=item["filename"])
            for item in raw.get("page_snapshots") or []
        ),
        packages=PackageBundleConfig(
            names=tuple(packages_raw.get("names") or []),
            releases=tuple(packages_raw.get("releases") or []),
            arch=packages_raw["arch"],
            download_page_template=packages_raw["download_page_template"],
        ),
        network=NetworkConfig(
            connect_timeout=float(network_raw["connect_timeout"]),
            read_timeout=float(network_raw["read_timeout"]),
            user_agent=network_raw.get("user_agent") or "",
            retry=RetryConfig(
                max_attempts=int(retry_raw["max_attempts"]),
                backoff_base=float(retry_raw["backoff_base"]),
                backoff_max=float(retry_raw["backoff_max"]),
            ),
        ),
    )


def load_config(
    path: Path | None = None,
    *,
    env: Mapping[str, str] | None = None,
) -> BackupConfig:
    """Load, merge, validate and freeze the backup configuration.

    Args:
        path: YAML config file. Falls back to ``KIWIX_BACKUP_CONFIG``; when
            neither is set only defaults and environment overrides apply.
        env: Environment mapping (defaults to ``os.environ``).

    Raises:
        YamlParseError: The config file is not valid YAML.
        ConfigValidationError: The merged settings violate the schema.
    """
    env = os.environ if env is None else env
    if path is None and env.get(CONFIG_PATH_ENV):
        path = Path(env[CONFIG_PATH_ENV])
    raw = DEFAULT_CONFIG
    if path is not None:
        raw = _deep_merge(DEFAULT_CONFIG, read_yaml(path))
    raw = apply_env_overrides(raw, env)
    validate_config(raw, config_path=path)
    return build_config(raw)
