from __future__ import annotations

import posixpath
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

DEFAULT_DATA_DIR = "/feedgen"
DEFAULT_SOURCE_URL = "https://github.com/sacckey/feed-generator.git"
DEFAULT_SOURCE_BRANCH = "docker"
DEFAULT_UNIT_NAME = "feedgen"
COMPLETION_MARKER = "feedgen.sqlite"
PACKAGE_LOCK_FILES = (
    "/var/cache/apt/archives/lock",
    "/var/lib/apt/lists/lock",
    "/var/lib/dpkg/lock",
)


class Architecture(str, Enum):
    X86_64 = "x86_64"
    ARM64 = "arm64"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class HostEnvironment:
    architecture: Architecture
    distribution_id: str
    distribution_codename: str
    is_supported: bool
    label: str | None = None


@dataclass(frozen=True)
class DeploymentParameters:
    data_directory: str
    hostname: str
    admin_email: str
    subscription_endpoint: str
    publisher_did: str

    # Rendered into artifacts as-is, so keep these POSIX strings.
    @property
    def env_path_posix(self) -> str:
        return posixpath.join(self.data_directory, ".env")

    @property
    def compose_path_posix(self) -> str:
        return posixpath.join(self.data_directory, "docker-compose.yml")

    @property
    def sqlite_path_posix(self) -> str:
        return posixpath.join(self.data_directory, COMPLETION_MARKER)

    @property
    def data_dir(self) -> Path:
        return Path(self.data_directory)

    @property
    def env_path(self) -> Path:
        return self.data_dir / ".env"

    @property
    def compose_path(self) -> Path:
        return self.data_dir / "docker-compose.yml"

    @property
    def readme_path(self) -> Path:
        return self.data_dir / "README.txt"

    @property
    def caddy_data_dir(self) -> Path:
        return self.data_dir / "caddy" / "data"

    @property
    def caddy_config_dir(self) -> Path:
        return self.data_dir / "caddy" / "etc" / "caddy"

    @property
    def caddyfile_path(self) -> Path:
        return self.caddy_config_dir / "Caddyfile"


@dataclass(frozen=True)
class ResolvedPublicAddress:
    address: str | None
    source: str = "unknown"

    @property
    def known(self) -> bool:
        return bool(self.address)

    @property
    def display(self) -> str:
        return self.address or "unknown"


@dataclass(frozen=True)
class HostPaths:
    keyrings_dir: Path = Path("/etc/apt/keyrings")
    docker_sources_list: Path = Path("/etc/apt/sources.list.d/docker.list")
    docker_daemon_config: Path = Path("/etc/docker/daemon.json")
    systemd_unit_dir: Path = Path("/etc/systemd/system")
    os_release: Path = Path("/etc/os-release")
    package_lock_files: tuple[str, ...] = PACKAGE_LOCK_FILES

    @property
    def docker_keyring(self) -> Path:
        return self.keyrings_dir / "docker.gpg"

    def unit_path(self, unit_name: str) -> Path:
        return self.systemd_unit_dir / f"{unit_name}.service"


@dataclass(frozen=True)
class InstallerSettings:
    source_url: str = DEFAULT_SOURCE_URL
    source_branch: str = DEFAULT_SOURCE_BRANCH
    unit_name: str = DEFAULT_UNIT_NAME
    lock_poll_interval_s: float = 2.0
    lock_timeout_s: float | None = None
    probe_timeout_s: float = 2.0
    parallel_probes: bool = False


@dataclass(frozen=True)
class GeneratedArtifacts:
    env: str
    caddyfile: str
    systemd_unit: str
    compose: str
    readme: str = field(default="")
