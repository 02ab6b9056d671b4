from __future__ import annotations

import logging
import re
from typing import Iterable

from .artifacts import FIREWALL_PORTS
from .config_types import DEFAULT_UNIT_NAME
from .shell import CommandRunner, run_checked

log = logging.getLogger(__name__)


def activate(runner: CommandRunner, unit_name: str = DEFAULT_UNIT_NAME) -> None:
    run_checked(runner, ["systemctl", "daemon-reload"], label="reload systemd unit definitions")
    run_checked(runner, ["systemctl", "enable", unit_name], label=f"enable the {unit_name} service")
    run_checked(runner, ["systemctl", "restart", unit_name], label=f"start the {unit_name} service")


def firewall_status(runner: CommandRunner) -> str | None:
    """Return ``ufw status`` output when ufw is installed and active."""
    try:
        res = runner(["ufw", "status"])
    except OSError:
        return None
    if res.returncode != 0:
        return None
    output = res.stdout or ""
    if not re.search(r"^Status:\s*active\b", output, re.MULTILINE):
        return None
    return output


def port_allowed(status: str, port: int) -> bool:
    return re.search(rf"^{port}[/ ]", status, re.MULTILINE) is not None


def open_firewall_ports(runner: CommandRunner, ports: Iterable[int] = FIREWALL_PORTS) -> list[int]:
    status = firewall_status(runner)
    if status is None:
        log.debug("ufw not active, leaving firewall alone")
        return []
    opened: list[int] = []
    for port in ports:
        if port_allowed(status, port):
            continue
        run_checked(runner, ["ufw", "allow", f"{port}/tcp"], label=f"allow TCP port {port} in ufw")
        opened.append(port)
    return opened
