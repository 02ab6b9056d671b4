from __future__ import annotations

import os
from pathlib import Path

import yaml

from .config_types import (
    DEFAULT_DATA_DIR,
    DEFAULT_UNIT_NAME,
    DeploymentParameters,
    GeneratedArtifacts,
    HostEnvironment,
    HostPaths,
    ResolvedPublicAddress,
)
from .errors import ProvisioningError
from .shell import checked_filesystem

FEEDGEN_PORT = 3000
FEEDGEN_LISTENHOST = "localhost"
SUBSCRIPTION_RECONNECT_DELAY_MS = 3000
ON_DEMAND_TLS_ASK_PATH = "/.well-known/did.json"
COMPOSE_PLACEHOLDER = DEFAULT_DATA_DIR
DOCKER_BIN = "/usr/bin/docker"
FIREWALL_PORTS = (80, 443)


def local_upstream() -> str:
    return f"http://{FEEDGEN_LISTENHOST}:{FEEDGEN_PORT}"


def render_env(params: DeploymentParameters) -> str:
    return "\n".join(
        [
            "# Whichever port you want to run this on",
            f"FEEDGEN_PORT={FEEDGEN_PORT}",
            "",
            "# Change this to use a different bind address",
            f"FEEDGEN_LISTENHOST={FEEDGEN_LISTENHOST}",
            "",
            "# Set to something like db.sqlite to store persistently",
            f"FEEDGEN_SQLITE_LOCATION={params.sqlite_path_posix}",
            "",
            "# Don't change unless you're working in a different environment than the primary Bluesky network",
            f"FEEDGEN_SUBSCRIPTION_ENDPOINT={params.subscription_endpoint}",
            "",
            "# Set this to the hostname that you intend to run the service at",
            f"FEEDGEN_HOSTNAME={params.hostname}",
            "",
            "# Set this to the DID of the account you'll use to publish the feed",
            "# You can find your accounts DID by going to",
            "# https://bsky.social/xrpc/com.atproto.identity.resolveHandle?handle=YOUR_HANDLE",
            f"FEEDGEN_PUBLISHER_DID={params.publisher_did}",
            "",
            "# Only use this if you want a service did different from did:web",
            '# FEEDGEN_SERVICE_DID="did:plc:abcde..."',
            "",
            "# Delay between reconnect attempts to the firehose subscription endpoint (in milliseconds)",
            f"FEEDGEN_SUBSCRIPTION_RECONNECT_DELAY={SUBSCRIPTION_RECONNECT_DELAY_MS}",
        ]
    ) + "\n"


def render_caddyfile(params: DeploymentParameters) -> str:
    return "\n".join(
        [
            "{",
            f"\temail {params.admin_email}",
            "\ton_demand_tls {",
            f"\t\task {local_upstream()}{ON_DEMAND_TLS_ASK_PATH}",
            "\t}",
            "}",
            "",
            f"{params.hostname} {{",
            "\ttls {",
            "\t\ton_demand",
            "\t}",
            f"\treverse_proxy {local_upstream()}",
            "}",
        ]
    ) + "\n"


def render_systemd_unit(params: DeploymentParameters) -> str:
    compose = f"{DOCKER_BIN} compose --file {params.compose_path_posix}"
    return "\n".join(
        [
            "[Unit]",
            "Description=Bluesky Feed Generator Service",
            "Documentation=https://github.com/bluesky-social/feed-generator",
            "Requires=docker.service",
            "After=docker.service",
            "",
            "[Service]",
            "Type=oneshot",
            "RemainAfterExit=yes",
            f"WorkingDirectory={params.data_directory}",
            f"ExecStart={compose} up --detach",
            f"ExecStop={compose} down",
            "",
            "[Install]",
            "WantedBy=default.target",
        ]
    ) + "\n"


def rewrite_compose(template: str, data_directory: str) -> str:
    """Point the checked-in compose file at the real data directory.

    Plain text substitution of the ``/feedgen`` placeholder. The result must
    still be a YAML mapping.
    """
    rewritten = template.replace(COMPOSE_PLACEHOLDER, data_directory)
    try:
        parsed = yaml.safe_load(rewritten)
    except yaml.YAMLError as exc:
        raise ProvisioningError(f"Compose file is not valid YAML after path rewrite: {exc}") from exc
    if not isinstance(parsed, dict):
        raise ProvisioningError("Compose file is not a YAML mapping after path rewrite.")
    return rewritten


def render_readme(
    env: HostEnvironment,
    params: DeploymentParameters,
    address: ResolvedPublicAddress,
    *,
    unit_name: str = DEFAULT_UNIT_NAME,
) -> str:
    platform_line = env.label or f"{env.distribution_id} {env.distribution_codename}".strip()
    return "\n".join(
        [
            "Bluesky Feed Generator",
            "",
            f"Host: {platform_line} ({env.architecture.value})",
            f"Data directory: {params.data_directory}",
            "",
            "Manage the service:",
            f"  sudo systemctl status {unit_name}",
            f"  sudo systemctl restart {unit_name}",
            f"  sudo docker compose --file {params.compose_path_posix} logs -f",
            "",
            "Required firewall ports (inbound TCP):",
            *(f"  {port}" for port in FIREWALL_PORTS),
            "",
            "Required DNS record:",
            f"  {params.hostname}  A  {address.display}",
        ]
    ) + "\n"


def render(
    env: HostEnvironment,
    params: DeploymentParameters,
    address: ResolvedPublicAddress,
    compose_template: str,
    *,
    unit_name: str = DEFAULT_UNIT_NAME,
) -> GeneratedArtifacts:
    return GeneratedArtifacts(
        env=render_env(params),
        caddyfile=render_caddyfile(params),
        systemd_unit=render_systemd_unit(params),
        compose=rewrite_compose(compose_template, params.data_directory),
        readme=render_readme(env, params, address, unit_name=unit_name),
    )


def write_artifacts(
    artifacts: GeneratedArtifacts,
    params: DeploymentParameters,
    paths: HostPaths,
    *,
    unit_name: str = DEFAULT_UNIT_NAME,
) -> list[Path]:
    unit_path = paths.unit_path(unit_name)
    with checked_filesystem("create Caddy and systemd directories"):
        params.caddy_data_dir.mkdir(parents=True, exist_ok=True)
        params.caddy_config_dir.mkdir(parents=True, exist_ok=True)
        paths.systemd_unit_dir.mkdir(parents=True, exist_ok=True)

    contents = [
        (params.compose_path, artifacts.compose),
        (params.caddyfile_path, artifacts.caddyfile),
        (params.env_path, artifacts.env),
        (unit_path, artifacts.systemd_unit),
        (params.readme_path, artifacts.readme),
    ]
    for path, text in contents:
        with checked_filesystem(f"write {path}"):
            path.write_text(text, encoding="utf-8")
            if path == params.env_path:
                os.chmod(path, 0o600)
    return [path for path, _text in contents]
