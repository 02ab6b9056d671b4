from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from typing import Any

import tomli_w
from feedgen_host.config_types import DEFAULT_SOURCE_BRANCH, DEFAULT_SOURCE_URL, InstallerSettings
from platformdirs import user_config_dir

from . import console

APP_NAME = "feedgen-installer"
CONFIG_FILENAME = "config.toml"
ENV_SOURCE_URL = "FEEDGEN_INSTALLER_SOURCE_URL"
ENV_LOCK_TIMEOUT = "FEEDGEN_INSTALLER_LOCK_TIMEOUT"


@dataclass
class AppConfig:
    source_url: str = DEFAULT_SOURCE_URL
    source_branch: str = DEFAULT_SOURCE_BRANCH
    # 0 means wait for the package lock forever.
    lock_timeout_s: float = 0.0
    lock_poll_interval_s: float = 2.0
    probe_timeout_s: float = 2.0
    parallel_probes: bool = False


def config_path() -> str:
    return f"{user_config_dir(APP_NAME)}/{CONFIG_FILENAME}"


def default_config() -> AppConfig:
    return AppConfig()


def _as_float(value: Any, default: float, *, minimum: float = 0.0) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if number >= minimum else default


def to_toml(cfg: AppConfig) -> dict[str, Any]:
    return {
        "source_url": cfg.source_url,
        "source_branch": cfg.source_branch,
        "lock_timeout_s": cfg.lock_timeout_s,
        "lock_poll_interval_s": cfg.lock_poll_interval_s,
        "probe_timeout_s": cfg.probe_timeout_s,
        "parallel_probes": cfg.parallel_probes,
    }


def from_toml(data: dict[str, Any]) -> AppConfig:
    defaults = default_config()
    source_url = str(data.get("source_url") or "").strip()
    source_branch = str(data.get("source_branch") or "").strip()
    parallel = data.get("parallel_probes")
    return AppConfig(
        source_url=source_url or defaults.source_url,
        source_branch=source_branch or defaults.source_branch,
        lock_timeout_s=_as_float(data.get("lock_timeout_s"), defaults.lock_timeout_s),
        lock_poll_interval_s=_as_float(
            data.get("lock_poll_interval_s"), defaults.lock_poll_interval_s, minimum=0.1
        ),
        probe_timeout_s=_as_float(data.get("probe_timeout_s"), defaults.probe_timeout_s, minimum=0.1),
        parallel_probes=parallel if isinstance(parallel, bool) else defaults.parallel_probes,
    )


def load_config() -> AppConfig:
    path = config_path()
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except FileNotFoundError:
        return apply_env_overrides(default_config())
    except tomllib.TOMLDecodeError as exc:
        console.warn(f"Ignoring unreadable config {path}: {exc}")
        return apply_env_overrides(default_config())
    return apply_env_overrides(from_toml(data))


def apply_env_overrides(cfg: AppConfig) -> AppConfig:
    source_url = os.getenv(ENV_SOURCE_URL, "").strip()
    if source_url:
        cfg.source_url = source_url
    lock_timeout = os.getenv(ENV_LOCK_TIMEOUT, "").strip()
    if lock_timeout:
        cfg.lock_timeout_s = _as_float(lock_timeout, cfg.lock_timeout_s)
    return cfg


def to_settings(cfg: AppConfig) -> InstallerSettings:
    return InstallerSettings(
        source_url=cfg.source_url,
        source_branch=cfg.source_branch,
        lock_poll_interval_s=cfg.lock_poll_interval_s,
        lock_timeout_s=cfg.lock_timeout_s or None,
        probe_timeout_s=cfg.probe_timeout_s,
        parallel_probes=cfg.parallel_probes,
    )


def ensure_parent_dir(path: str) -> None:
    os.makedirs(os.path.dirname(path), exist_ok=True)


def save_config(cfg: AppConfig) -> str:
    path = config_path()
    ensure_parent_dir(path)
    with open(path, "wb") as f:
        f.write(tomli_w.dumps(to_toml(cfg)).encode("utf-8"))
    os.chmod(path, 0o600)
    return path
