from __future__ import annotations

import logging
from pathlib import Path

from .config_types import Architecture, HostEnvironment
from .shell import CommandRunner

log = logging.getLogger(__name__)

SUPPORTED_DISTRIBUTIONS: dict[tuple[str, str], str] = {
    ("ubuntu", "focal"): "Ubuntu 20.04 LTS",
    ("ubuntu", "jammy"): "Ubuntu 22.04 LTS",
    ("debian", "bullseye"): "Debian 11",
    ("debian", "bookworm"): "Debian 12",
}

_ARCH_ALIASES: dict[str, Architecture] = {
    "": Architecture.X86_64,
    # uname reports "unknown" on plenty of x86 VMs.
    "unknown": Architecture.X86_64,
    "x86_64": Architecture.X86_64,
    "amd64": Architecture.X86_64,
    "aarch64": Architecture.ARM64,
    "arm64": Architecture.ARM64,
}


def normalize_architecture(raw: str | None) -> Architecture:
    return _ARCH_ALIASES.get((raw or "").strip().lower(), Architecture.UNKNOWN)


def is_supported(architecture: Architecture, distribution_id: str, codename: str) -> bool:
    if architecture is Architecture.UNKNOWN:
        return False
    return (distribution_id, codename) in SUPPORTED_DISTRIBUTIONS


def supported_matrix_text() -> str:
    names = list(SUPPORTED_DISTRIBUTIONS.values())
    return ", ".join(names[:-1]) + f" and {names[-1]}" if len(names) > 1 else "".join(names)


def read_os_release(path: Path) -> dict[str, str]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError:
        return {}
    data: dict[str, str] = {}
    for line in content.splitlines():
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        data[key.strip()] = value.strip().strip('"')
    return data


def _command_output(runner: CommandRunner, args: list[str]) -> str:
    try:
        res = runner(args)
    except OSError:
        return ""
    if res.returncode != 0:
        return ""
    return (res.stdout or "").strip()


def build_environment(raw_architecture: str | None, distribution_id: str, codename: str) -> HostEnvironment:
    architecture = normalize_architecture(raw_architecture)
    distribution_id = (distribution_id or "").strip().lower()
    codename = (codename or "").strip().lower()
    supported = is_supported(architecture, distribution_id, codename)
    return HostEnvironment(
        architecture=architecture,
        distribution_id=distribution_id,
        distribution_codename=codename,
        is_supported=supported,
        label=SUPPORTED_DISTRIBUTIONS.get((distribution_id, codename)) if supported else None,
    )


def detect(runner: CommandRunner, *, os_release_path: Path = Path("/etc/os-release")) -> HostEnvironment:
    raw_architecture = _command_output(runner, ["uname", "--hardware-platform"])
    distribution_id = _command_output(runner, ["lsb_release", "--id", "--short"])
    codename = _command_output(runner, ["lsb_release", "--codename", "--short"])
    if not distribution_id or not codename:
        # lsb-release is one of the packages installed later, minimal images lack it.
        os_release = read_os_release(os_release_path)
        distribution_id = distribution_id or os_release.get("ID", "")
        codename = codename or os_release.get("VERSION_CODENAME", "")
    env = build_environment(raw_architecture, distribution_id, codename)
    log.debug("detected host environment: %s", env)
    return env
