from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from pathlib import Path
from typing import Callable, Sequence

from . import activation, artifacts, host_platform, locks, network, packages, params
from .config_types import (
    COMPLETION_MARKER,
    DEFAULT_UNIT_NAME,
    DeploymentParameters,
    GeneratedArtifacts,
    HostEnvironment,
    HostPaths,
    InstallerSettings,
    ResolvedPublicAddress,
)
from .errors import UsageError
from .shell import CommandRunner, checked_filesystem, run_local

log = logging.getLogger(__name__)

REPO_URL = "https://github.com/bluesky-social/feed-generator"


class InstallState(str, Enum):
    START = "start"
    GATED = "gated"
    DETECTED = "detected"
    ADDRESS_RESOLVED = "address_resolved"
    PARAMS_COLLECTED = "params_collected"
    PROVISIONED = "provisioned"
    ARTIFACTS_WRITTEN = "artifacts_written"
    ACTIVATED = "activated"
    DONE = "done"


@dataclass
class InstallResult:
    environment: HostEnvironment
    address: ResolvedPublicAddress
    params: DeploymentParameters
    artifacts: GeneratedArtifacts
    written: list[Path] = field(default_factory=list)
    runtime_installed: bool = False
    opened_ports: list[int] = field(default_factory=list)


def require_root(geteuid: Callable[[], int] | None = None) -> None:
    euid = (geteuid or os.geteuid)()
    if euid != 0:
        raise UsageError(
            "This installer must be run as root.",
            remediation=["sudo feedgen-installer"],
        )


def check_existing_install(data_directory: str, unit_name: str = DEFAULT_UNIT_NAME) -> None:
    marker = Path(data_directory) / COMPLETION_MARKER
    if not marker.exists():
        return
    raise UsageError(
        f"feedgen is already configured in {data_directory}",
        remediation=[
            "To do a clean re-install:",
            "1. Stop the service",
            f"   sudo systemctl stop {unit_name}",
            "2. Delete the data directory",
            f"   sudo rm -rf {data_directory}",
            "3. Re-run this installer",
            "   sudo feedgen-installer",
            f"For assistance, check {REPO_URL}",
        ],
    )


def require_usable_data_directory(data_directory: str) -> None:
    """Fail before provisioning when the data directory can never be created."""
    path = Path(data_directory)
    for candidate in (path, *path.parents):
        if not candidate.exists():
            continue
        if not candidate.is_dir():
            raise UsageError(
                f"Cannot use data directory {data_directory}: {candidate} exists and is not a directory.",
                remediation=["Pass a different data directory, or move the file out of the way."],
            )
        return


def require_supported(env: HostEnvironment) -> None:
    if env.is_supported:
        return
    arch = env.architecture.value
    found = f"{env.distribution_id or 'unknown'} {env.distribution_codename or ''}".strip()
    raise UsageError(
        f"Unsupported host ({found}, {arch}). "
        f"Only {host_platform.supported_matrix_text()} on x86_64 or arm64 are supported by this installer.",
    )


class Installer:
    """Drives one provisioning run from the idempotency gate to service activation.

    Every step either completes or raises; nothing is retried. ``history``
    records each state reached, the last entry being where a failed run stopped.
    """

    def __init__(
        self,
        *,
        runner: CommandRunner = run_local,
        settings: InstallerSettings | None = None,
        paths: HostPaths | None = None,
        prompt: params.Prompt | None = None,
        notify: Callable[[str], None] | None = None,
        on_dns_hint: Callable[[ResolvedPublicAddress], None] | None = None,
        detector: Callable[[], HostEnvironment] | None = None,
        probes: Sequence[network.Probe] | None = None,
        sleep: Callable[[float], None] = time.sleep,
        geteuid: Callable[[], int] | None = None,
    ) -> None:
        self.runner = runner
        self.settings = settings or InstallerSettings()
        self.paths = paths or HostPaths()
        self.prompt = prompt
        self.notify = notify or (lambda _msg: None)
        self.on_dns_hint = on_dns_hint
        self.detector = detector or (lambda: host_platform.detect(self.runner, os_release_path=self.paths.os_release))
        self.probes = probes
        self.sleep = sleep
        self.geteuid = geteuid
        self.state = InstallState.START
        self.history: list[InstallState] = [InstallState.START]

    def _advance(self, state: InstallState) -> None:
        log.debug("installer state %s -> %s", self.state.value, state.value)
        self.state = state
        self.history.append(state)

    def run(self, positional_args: Sequence[str | None]) -> InstallResult:
        require_root(self.geteuid)

        data_directory = params.normalize_data_directory(positional_args[0] if positional_args else None)
        self._advance(InstallState.GATED)
        check_existing_install(data_directory, self.settings.unit_name)
        require_usable_data_directory(data_directory)

        env = self.detect()
        address = self.resolve_address()
        deployment = self.collect(positional_args, address)
        runtime_installed = self.provision(env, deployment)
        generated, written = self.write(env, deployment, address)
        opened = self.activate()

        self._advance(InstallState.DONE)
        return InstallResult(
            environment=env,
            address=address,
            params=deployment,
            artifacts=generated,
            written=written,
            runtime_installed=runtime_installed,
            opened_ports=opened,
        )

    def detect(self) -> HostEnvironment:
        env = self.detector()
        require_supported(env)
        self.notify(f"Detected supported distribution {env.label}")
        self._advance(InstallState.DETECTED)
        return env

    def resolve_address(self) -> ResolvedPublicAddress:
        probes = self.probes
        if probes is None:
            probes = network.default_probes(self.runner, timeout=self.settings.probe_timeout_s)
        address = network.resolve_public_address(probes, parallel=self.settings.parallel_probes)
        if address.known:
            log.debug("public address %s via %s", address.address, address.source)
        self._advance(InstallState.ADDRESS_RESOLVED)
        return address

    def collect(self, positional_args: Sequence[str | None], address: ResolvedPublicAddress) -> DeploymentParameters:
        hint = partial(self.on_dns_hint, address) if self.on_dns_hint is not None else None
        deployment = params.collect(positional_args, prompt=self.prompt, before_hostname_prompt=hint)
        self._advance(InstallState.PARAMS_COLLECTED)
        return deployment

    def provision(self, env: HostEnvironment, deployment: DeploymentParameters) -> bool:
        locks.wait_for_package_lock(
            self.runner,
            lock_files=self.paths.package_lock_files,
            interval_s=self.settings.lock_poll_interval_s,
            timeout_s=self.settings.lock_timeout_s,
            sleep=self.sleep,
            on_wait=lambda _elapsed: self.notify("Waiting for other apt process to complete..."),
        )
        self.notify("Installing system packages")
        packages.ensure_system_packages(self.runner)

        runtime_installed = packages.ensure_container_runtime(env, self.runner, self.paths)
        if runtime_installed:
            self.notify("Installed Docker")
        else:
            self.notify("Docker already installed")

        if packages.ensure_docker_daemon_config(self.runner, self.paths):
            self.notify("Configured Docker daemon log rotation")
        else:
            self.notify("Docker daemon already configured! Ensure log rotation is enabled.")

        if packages.prepare_data_directory(deployment):
            self.notify(f"Created data directory {deployment.data_directory}")
        if packages.fetch_sources(self.runner, deployment, self.settings):
            self.notify("Downloaded feed generator sources")
        self._advance(InstallState.PROVISIONED)
        return runtime_installed

    def compose_template(self, deployment: DeploymentParameters) -> str:
        # A partial prior run may have rewritten the file already; start from the checkout.
        res = self.runner(["git", "-C", deployment.data_directory, "show", "HEAD:docker-compose.yml"])
        if res.returncode == 0 and (res.stdout or "").strip():
            return res.stdout
        with checked_filesystem(f"read {deployment.compose_path}"):
            return deployment.compose_path.read_text(encoding="utf-8")

    def write(
        self,
        env: HostEnvironment,
        deployment: DeploymentParameters,
        address: ResolvedPublicAddress,
    ) -> tuple[GeneratedArtifacts, list[Path]]:
        generated = artifacts.render(
            env,
            deployment,
            address,
            self.compose_template(deployment),
            unit_name=self.settings.unit_name,
        )
        written = artifacts.write_artifacts(generated, deployment, self.paths, unit_name=self.settings.unit_name)
        for path in written:
            self.notify(f"Wrote {path}")
        self._advance(InstallState.ARTIFACTS_WRITTEN)
        return generated, written

    def activate(self) -> list[int]:
        self.notify(f"Starting the {self.settings.unit_name} systemd service")
        activation.activate(self.runner, self.settings.unit_name)
        opened = activation.open_firewall_ports(self.runner)
        for port in opened:
            self.notify(f"Enabled access on TCP port {port} using ufw")
        self._advance(InstallState.ACTIVATED)
        return opened
