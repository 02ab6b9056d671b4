from __future__ import annotations

import ipaddress
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Sequence

import httpx

from .config_types import ResolvedPublicAddress
from .shell import CommandRunner

log = logging.getLogger(__name__)

DEFAULT_PROBE_TIMEOUT = 2.0

# Order is priority: the first provider that answers wins.
METADATA_URLS: tuple[tuple[str, str], ...] = (
    ("vultr", "http://169.254.169.254/v1/interfaces/0/ipv4/address"),
    ("digitalocean", "http://169.254.169.254/metadata/v1/interfaces/public/0/ipv4/address"),
    ("aws", "http://169.254.169.254/2021-03-23/meta-data/public-ipv4"),
    ("hetzner", "http://169.254.169.254/hetzner/v1/metadata/public-ipv4"),
)

_IPV4_RE = re.compile(r"^\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}$")

_PRIVATE_NETWORKS = tuple(
    ipaddress.ip_network(cidr)
    for cidr in ("10.0.0.0/8", "172.16.0.0/12", "192.168.0.0/16", "127.0.0.0/8")
)


@dataclass(frozen=True)
class Probe:
    name: str
    run: Callable[[], str | None]


def is_ipv4_literal(value: str | None) -> bool:
    return bool(_IPV4_RE.match((value or "").strip()))


def is_private_address(value: str) -> bool:
    try:
        addr = ipaddress.ip_address(value)
    except ValueError:
        return False
    return any(addr in net for net in _PRIVATE_NETWORKS)


def accept_public_ipv4(value: str | None) -> str | None:
    text = (value or "").strip()
    if not is_ipv4_literal(text):
        return None
    try:
        ipaddress.IPv4Address(text)
    except ValueError:
        return None
    if is_private_address(text):
        return None
    return text


def local_interface_probe(runner: CommandRunner) -> Probe:
    def _run() -> str | None:
        res = runner(["hostname", "--all-ip-addresses"])
        if res.returncode != 0:
            return None
        parts = (res.stdout or "").split()
        if not parts:
            return None
        # Only the first address counts; a private one means we sit behind NAT.
        return accept_public_ipv4(parts[0])

    return Probe(name="local-interface", run=_run)


def metadata_probe(name: str, url: str, *, timeout: float = DEFAULT_PROBE_TIMEOUT) -> Probe:
    def _run() -> str | None:
        response = httpx.get(url, timeout=timeout)
        if response.status_code != 200:
            return None
        lines = response.text.strip().splitlines()
        return accept_public_ipv4(lines[0]) if lines else None

    return Probe(name=name, run=_run)


def default_probes(runner: CommandRunner, *, timeout: float = DEFAULT_PROBE_TIMEOUT) -> list[Probe]:
    probes = [local_interface_probe(runner)]
    probes.extend(metadata_probe(name, url, timeout=timeout) for name, url in METADATA_URLS)
    return probes


def _attempt(probe: Probe) -> str | None:
    try:
        return probe.run()
    except (httpx.HTTPError, OSError, ValueError) as exc:
        log.debug("probe %s failed: %s", probe.name, exc)
        return None


def first_success(probes: Sequence[Probe], *, parallel: bool = False) -> tuple[str, str] | None:
    if not probes:
        return None
    if not parallel:
        for probe in probes:
            result = _attempt(probe)
            if result:
                return probe.name, result
            log.debug("probe %s gave no address", probe.name)
        return None

    pool = ThreadPoolExecutor(max_workers=len(probes))
    try:
        futures = [(probe, pool.submit(_attempt, probe)) for probe in probes]
        # Collect in priority order so a slow higher-priority answer still wins.
        for probe, future in futures:
            result = future.result()
            if result:
                return probe.name, result
        return None
    finally:
        # Lower-priority probes still in flight are abandoned, not awaited.
        pool.shutdown(wait=False, cancel_futures=True)


def resolve_public_address(
    probes: Sequence[Probe],
    *,
    parallel: bool = False,
) -> ResolvedPublicAddress:
    found = first_success(probes, parallel=parallel)
    if found is None:
        return ResolvedPublicAddress(address=None, source="unknown")
    source, address = found
    return ResolvedPublicAddress(address=address, source=source)
