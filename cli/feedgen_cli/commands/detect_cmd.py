from __future__ import annotations

import typer
from feedgen_host import host_platform, network
from feedgen_host.shell import run_local

from .. import console
from ..config import load_config


def detect(
        json_output: bool = typer.Option(False, "--json", help="Output JSON only."),
) -> None:
    """Show what the installer sees on this host (no changes are made)."""
    cfg = load_config()
    env = host_platform.detect(run_local)
    address = network.resolve_public_address(
        network.default_probes(run_local, timeout=cfg.probe_timeout_s),
        parallel=cfg.parallel_probes,
    )

    if json_output:
        console.print_json(
            {
                "architecture": env.architecture.value,
                "distribution_id": env.distribution_id,
                "distribution_codename": env.distribution_codename,
                "supported": env.is_supported,
                "public_address": address.address,
                "public_address_source": address.source,
            }
        )
        return

    console.print(f"architecture={env.architecture.value}")
    console.print(f"distribution={env.distribution_id or '-'} codename={env.distribution_codename or '-'}")
    if env.is_supported:
        console.ok(f"Supported distribution: {env.label}")
    else:
        console.warn(f"Unsupported host. Supported: {host_platform.supported_matrix_text()} on x86_64 or arm64.")
    if address.known:
        console.ok(f"Public IP: {address.address} (via {address.source})")
    else:
        console.warn("Could not determine the public IP of this server.")
