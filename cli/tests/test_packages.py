import json
import stat
import subprocess
from pathlib import Path

import httpx
import pytest

from feedgen_host import packages
from feedgen_host.config_types import (
    Architecture,
    DeploymentParameters,
    HostEnvironment,
    HostPaths,
    InstallerSettings,
)
from feedgen_host.errors import ProvisioningError

ENV = HostEnvironment(
    architecture=Architecture.X86_64,
    distribution_id="ubuntu",
    distribution_codename="jammy",
    is_supported=True,
    label="Ubuntu 22.04 LTS",
)


class _FakeHost:
    """Stands in for the host: records commands, docker appears once installed."""

    def __init__(self, *, docker_present: bool = False, fail: tuple[str, ...] | None = None) -> None:
        self.docker_present = docker_present
        self.fail = fail
        self.calls: list[list[str]] = []
        self.inputs: list[str | None] = []

    def __call__(self, args, *, input_text=None) -> subprocess.CompletedProcess:
        self.calls.append(list(args))
        self.inputs.append(input_text)
        if self.fail and tuple(args[: len(self.fail)]) == self.fail:
            return subprocess.CompletedProcess(args, 100, "Reading package lists...", "E: Unable to locate package")
        if args[:2] == ["docker", "version"]:
            return subprocess.CompletedProcess(args, 0 if self.docker_present else 127, "", "")
        if args[:2] == ["dpkg", "--print-architecture"]:
            return subprocess.CompletedProcess(args, 0, "amd64\n", "")
        if args[:2] == ["gpg", "--dearmor"]:
            Path(args[-1]).write_bytes(b"keyring")
        if args[:3] == ["apt-get", "install", "--yes"] and "docker-ce" in args:
            self.docker_present = True
        return subprocess.CompletedProcess(args, 0, "", "")


def _paths(tmp_path: Path) -> HostPaths:
    return HostPaths(
        keyrings_dir=tmp_path / "keyrings",
        docker_sources_list=tmp_path / "sources.list.d" / "docker.list",
        docker_daemon_config=tmp_path / "docker" / "daemon.json",
        systemd_unit_dir=tmp_path / "systemd",
    )


def _params(tmp_path: Path) -> DeploymentParameters:
    return DeploymentParameters(
        data_directory=str(tmp_path / "feedgen"),
        hostname="example.com",
        admin_email="you@example.com",
        subscription_endpoint="wss://bsky.social",
        publisher_did="did:plc:abcde",
    )


def _key_response(monkeypatch, *, status: int = 200) -> list[str]:
    urls: list[str] = []

    def _fake_get(url, **_kwargs) -> httpx.Response:
        urls.append(url)
        return httpx.Response(status, text="-----BEGIN PGP PUBLIC KEY BLOCK-----\n")

    monkeypatch.setattr(httpx, "get", _fake_get)
    return urls


def test_system_packages_update_then_install() -> None:
    host = _FakeHost()
    packages.ensure_system_packages(host)
    assert host.calls[0] == ["apt-get", "update"]
    assert host.calls[1][:3] == ["apt-get", "install", "--yes"]
    assert "git" in host.calls[1]


def test_apt_failure_carries_output() -> None:
    host = _FakeHost(fail=("apt-get", "install"))
    with pytest.raises(ProvisioningError) as excinfo:
        packages.ensure_system_packages(host)
    assert "Unable to locate package" in excinfo.value.stderr
    assert "Reading package lists" in excinfo.value.stdout


def test_runtime_install_is_idempotent(tmp_path, monkeypatch) -> None:
    urls = _key_response(monkeypatch)
    host = _FakeHost()
    paths = _paths(tmp_path)

    assert packages.ensure_container_runtime(ENV, host, paths) is True
    first_calls = len(host.calls)
    assert packages.ensure_container_runtime(ENV, host, paths) is False

    assert urls == [f"{packages.DOCKER_DOWNLOAD_URL}/ubuntu/gpg"]
    assert host.calls[first_calls:] == [["docker", "version"]]
    assert paths.docker_sources_list.read_text(encoding="utf-8") == (
        f"deb [arch=amd64 signed-by={paths.docker_keyring}] "
        "https://download.docker.com/linux/ubuntu jammy stable\n"
    )
    install = [c for c in host.calls if c[:2] == ["apt-get", "install"]]
    assert install == [["apt-get", "install", "--yes", *packages.REQUIRED_DOCKER_PACKAGES]]


def test_stale_keyring_is_removed_before_dearmor(tmp_path, monkeypatch) -> None:
    _key_response(monkeypatch)
    paths = _paths(tmp_path)
    paths.keyrings_dir.mkdir(parents=True)
    paths.docker_keyring.write_bytes(b"stale")
    seen_before_gpg: list[bool] = []

    class _Host(_FakeHost):
        def __call__(self, args, *, input_text=None):
            if args[:2] == ["gpg", "--dearmor"]:
                seen_before_gpg.append(paths.docker_keyring.exists())
            return super().__call__(args, input_text=input_text)

    host = _Host()
    packages.install_docker_signing_key(ENV, host, paths)

    assert seen_before_gpg == [False]
    gpg_index = next(i for i, c in enumerate(host.calls) if c[0] == "gpg")
    assert host.inputs[gpg_index].startswith("-----BEGIN PGP")


def test_signing_key_download_failure(tmp_path, monkeypatch) -> None:
    _key_response(monkeypatch, status=404)
    with pytest.raises(ProvisioningError, match="HTTP 404"):
        packages.ensure_container_runtime(ENV, _FakeHost(), _paths(tmp_path))


def test_signing_key_network_error(tmp_path, monkeypatch) -> None:
    def _boom(url, **_kwargs):
        raise httpx.ConnectError("connection refused")

    monkeypatch.setattr(httpx, "get", _boom)
    with pytest.raises(ProvisioningError, match="signing key"):
        packages.fetch_docker_signing_key(ENV)


def test_daemon_config_written_once(tmp_path) -> None:
    host = _FakeHost()
    paths = _paths(tmp_path)

    assert packages.ensure_docker_daemon_config(host, paths) is True
    assert json.loads(paths.docker_daemon_config.read_text(encoding="utf-8")) == packages.DOCKER_DAEMON_CONFIG
    assert host.calls == [["systemctl", "restart", "docker"]]

    assert packages.ensure_docker_daemon_config(host, paths) is False
    assert len(host.calls) == 1


def test_existing_daemon_config_is_left_alone(tmp_path) -> None:
    paths = _paths(tmp_path)
    paths.docker_daemon_config.parent.mkdir(parents=True)
    paths.docker_daemon_config.write_text('{"debug": true}\n', encoding="utf-8")

    assert packages.ensure_docker_daemon_config(_FakeHost(), paths) is False
    assert paths.docker_daemon_config.read_text(encoding="utf-8") == '{"debug": true}\n'


def test_data_directory_is_private(tmp_path) -> None:
    params = _params(tmp_path)
    assert packages.prepare_data_directory(params) is True
    assert stat.S_IMODE(params.data_dir.stat().st_mode) == 0o700
    assert packages.prepare_data_directory(params) is False


def test_fetch_sources_clones_configured_branch(tmp_path) -> None:
    host = _FakeHost()
    params = _params(tmp_path)
    settings = InstallerSettings(source_url="https://example.invalid/feed.git", source_branch="main")

    assert packages.fetch_sources(host, params, settings) is True
    assert host.calls == [
        ["git", "clone", "-b", "main", "https://example.invalid/feed.git", params.data_directory]
    ]


def test_fetch_sources_skips_existing_checkout(tmp_path) -> None:
    host = _FakeHost()
    params = _params(tmp_path)
    (params.data_dir / ".git").mkdir(parents=True)

    assert packages.fetch_sources(host, params, InstallerSettings()) is False
    assert host.calls == []


def test_data_directory_under_a_file_is_a_provisioning_error(tmp_path) -> None:
    (tmp_path / "blocker").write_text("", encoding="utf-8")
    params = DeploymentParameters(
        data_directory=str(tmp_path / "blocker" / "feedgen"),
        hostname="example.com",
        admin_email="you@example.com",
        subscription_endpoint="wss://bsky.social",
        publisher_did="did:plc:abcde",
    )

    with pytest.raises(ProvisioningError, match="create data directory"):
        packages.prepare_data_directory(params)


def test_unwritable_daemon_config_is_a_provisioning_error(tmp_path) -> None:
    (tmp_path / "docker").write_text("", encoding="utf-8")
    host = _FakeHost()

    with pytest.raises(ProvisioningError, match="daemon.json"):
        packages.ensure_docker_daemon_config(host, _paths(tmp_path))
    assert host.calls == []
