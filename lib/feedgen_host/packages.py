from __future__ import annotations

import json
import logging
import os

import httpx

from .config_types import DeploymentParameters, HostEnvironment, HostPaths, InstallerSettings
from .errors import ProvisioningError
from .shell import CommandRunner, checked_filesystem, command_success, run_checked

log = logging.getLogger(__name__)

REQUIRED_SYSTEM_PACKAGES = (
    "ca-certificates",
    "curl",
    "gnupg",
    "lsb-release",
    "openssl",
    "xxd",
    "git",
)
REQUIRED_DOCKER_PACKAGES = (
    "docker-ce",
    "docker-ce-cli",
    "docker-compose-plugin",
    "containerd.io",
)
DOCKER_DOWNLOAD_URL = "https://download.docker.com/linux"
DOCKER_DAEMON_CONFIG = {
    "log-driver": "json-file",
    "log-opts": {
        "max-size": "500m",
        "max-file": "4",
    },
}


def ensure_system_packages(runner: CommandRunner) -> None:
    run_checked(runner, ["apt-get", "update"], label="update apt package lists")
    run_checked(
        runner,
        ["apt-get", "install", "--yes", *REQUIRED_SYSTEM_PACKAGES],
        label="install system packages",
    )


def container_runtime_present(runner: CommandRunner) -> bool:
    return command_success(runner, ["docker", "version"])


def fetch_docker_signing_key(env: HostEnvironment, *, timeout_s: float = 30.0) -> str:
    url = f"{DOCKER_DOWNLOAD_URL}/{env.distribution_id}/gpg"
    try:
        response = httpx.get(url, timeout=timeout_s, follow_redirects=True)
    except httpx.RequestError as exc:
        raise ProvisioningError(f"Failed to download Docker signing key from {url}: {exc}") from exc
    if response.status_code >= 400:
        raise ProvisioningError(
            f"Failed to download Docker signing key: HTTP {response.status_code}",
            stderr=response.text[:1000],
        )
    return response.text


def install_docker_signing_key(env: HostEnvironment, runner: CommandRunner, paths: HostPaths) -> None:
    with checked_filesystem(f"create {paths.keyrings_dir}"):
        paths.keyrings_dir.mkdir(parents=True, exist_ok=True)
    armored = fetch_docker_signing_key(env)
    # gpg prompts before overwriting, so a re-run must start from a clean slate.
    with checked_filesystem(f"remove stale keyring {paths.docker_keyring}"):
        paths.docker_keyring.unlink(missing_ok=True)
    run_checked(
        runner,
        ["gpg", "--dearmor", "--output", str(paths.docker_keyring)],
        label="dearmor Docker signing key",
        input_text=armored,
    )


def docker_sources_line(env: HostEnvironment, dpkg_architecture: str, paths: HostPaths) -> str:
    return (
        f"deb [arch={dpkg_architecture} signed-by={paths.docker_keyring}] "
        f"{DOCKER_DOWNLOAD_URL}/{env.distribution_id} {env.distribution_codename} stable\n"
    )


def ensure_container_runtime(env: HostEnvironment, runner: CommandRunner, paths: HostPaths) -> bool:
    """Install Docker from the upstream apt repository.

    Returns False (and does nothing) when a working ``docker`` is already on
    the host.
    """
    if container_runtime_present(runner):
        log.debug("docker already installed, skipping runtime install")
        return False

    install_docker_signing_key(env, runner, paths)
    res = run_checked(runner, ["dpkg", "--print-architecture"], label="read dpkg architecture")
    dpkg_architecture = (res.stdout or "").strip()
    if not dpkg_architecture:
        raise ProvisioningError("Failed to read dpkg architecture: empty output.")
    with checked_filesystem(f"write {paths.docker_sources_list}"):
        paths.docker_sources_list.parent.mkdir(parents=True, exist_ok=True)
        paths.docker_sources_list.write_text(
            docker_sources_line(env, dpkg_architecture, paths),
            encoding="utf-8",
        )

    run_checked(runner, ["apt-get", "update"], label="update apt package lists")
    run_checked(
        runner,
        ["apt-get", "install", "--yes", *REQUIRED_DOCKER_PACKAGES],
        label="install Docker packages",
    )
    return True


def ensure_docker_daemon_config(runner: CommandRunner, paths: HostPaths) -> bool:
    """Enable json-file log rotation unless the operator already configured dockerd."""
    config_path = paths.docker_daemon_config
    if config_path.exists():
        return False
    with checked_filesystem(f"write {config_path}"):
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text(json.dumps(DOCKER_DAEMON_CONFIG, indent=2) + "\n", encoding="utf-8")
    run_checked(runner, ["systemctl", "restart", "docker"], label="restart Docker daemon")
    return True


def prepare_data_directory(params: DeploymentParameters) -> bool:
    created = not params.data_dir.is_dir()
    with checked_filesystem(f"create data directory {params.data_directory}"):
        params.data_dir.mkdir(parents=True, exist_ok=True)
        os.chmod(params.data_dir, 0o700)
    return created


def fetch_sources(runner: CommandRunner, params: DeploymentParameters, settings: InstallerSettings) -> bool:
    if (params.data_dir / ".git").is_dir():
        log.debug("sources already checked out in %s", params.data_dir)
        return False
    run_checked(
        runner,
        [
            "git",
            "clone",
            "-b",
            settings.source_branch,
            settings.source_url,
            str(params.data_dir),
        ],
        label="download feed generator sources",
    )
    return True
