from __future__ import annotations

import typer
from feedgen_host import Installer, InstallResult, ProvisioningError, ResolvedPublicAddress, UsageError
from feedgen_host.artifacts import FIREWALL_PORTS
from feedgen_host.config_types import DEFAULT_DATA_DIR
from rich.table import Table

from .. import console
from ..config import load_config, to_settings

USAGE_HINT = "sudo feedgen-installer [DATA_DIR] [HOSTNAME] [ADMIN_EMAIL] [SUBSCRIPTION_ENDPOINT] [PUBLISHER_DID]"


def _tail(text: str, *, limit: int = 8) -> str:
    if not text:
        return ""
    lines = text.splitlines()
    if len(lines) <= limit:
        return text
    return "\n".join(lines[-limit:])


def report_usage_error(exc: UsageError) -> None:
    console.err(str(exc))
    for line in exc.remediation:
        console.print(f"  {line}", markup=False)
    console.print("Usage:", markup=False)
    console.print(f"  {USAGE_HINT}", markup=False)
    console.print("Please try again.")


def report_provisioning_failure(exc: ProvisioningError) -> None:
    console.err(f"Provisioning failed: {exc}")
    stdout = _tail(exc.stdout)
    stderr = _tail(exc.stderr)
    if stdout:
        console.err(f"Last stdout:\n{stdout}")
    if stderr:
        console.err(f"Last stderr:\n{stderr}")
    console.info("Useful checks:")
    console.print("- apt-get update")
    console.print("- systemctl status docker --no-pager")
    console.print("- journalctl -u feedgen --no-pager -n 100")
    console.print("Fix the problem above and re-run the installer.")


def print_dns_hint(address: ResolvedPublicAddress) -> None:
    value = address.address or "Server public IP"
    console.rule("[bold]Add DNS Record for Public IP[/]")
    console.print("From your DNS provider's control panel, create the required")
    console.print("DNS record with the value of your server's public IP address.")
    console.print("")
    console.print("  + Any DNS name that can be resolved on the public internet will work.")
    console.print("  + Replace example.com below with any valid domain name you control.")
    console.print("  + A TTL of 600 seconds (10 minutes) is recommended.")
    console.print("")
    table = Table(title="Example DNS record")
    table.add_column("NAME")
    table.add_column("TYPE")
    table.add_column("VALUE")
    table.add_row("example.com", "A", value)
    console.print(table)
    console.warn(
        "Wait 3-5 minutes after creating a new DNS record before using it, "
        "so the record has time to propagate."
    )


def print_summary(result: InstallResult, *, unit_name: str) -> None:
    params = result.params
    console.rule("[bold]Feed generator installation successful![/]")
    console.print(f"Check service status      : sudo systemctl status {unit_name}")
    console.print(f"Watch service logs        : sudo docker compose --file {params.compose_path_posix} logs -f")
    console.print(f"Backup service data       : {params.data_directory}")

    ports = Table(title="Required Firewall Ports")
    ports.add_column("Service")
    ports.add_column("Direction")
    ports.add_column("Port", justify="right")
    ports.add_column("Protocol")
    ports.add_column("Source")
    services = {80: "HTTP TLS verification", 443: "HTTPS"}
    for port in FIREWALL_PORTS:
        ports.add_row(services.get(port, "-"), "Inbound", str(port), "TCP", "Any")
    console.print(ports)

    dns = Table(title="Required DNS entries")
    dns.add_column("Name")
    dns.add_column("Type")
    dns.add_column("Value")
    dns.add_row(params.hostname, "A", result.address.display)
    console.print(dns)
    console.print(f"Detected public IP of this server: {result.address.display}")


def _prompt(text: str) -> str:
    return typer.prompt(text, default="", show_default=False)


def install(
    data_dir: str = typer.Argument(DEFAULT_DATA_DIR, help="Data directory for the feed generator."),
    hostname: str | None = typer.Argument(None, help="Public DNS name (not an IP address)."),
    admin_email: str | None = typer.Argument(None, help="Admin email used for TLS certificates."),
    subscription_endpoint: str | None = typer.Argument(None, help="Firehose endpoint, e.g. wss://bsky.social."),
    publisher_did: str | None = typer.Argument(None, help="DID of the account publishing the feed."),
    non_interactive: bool = typer.Option(False, "--non-interactive", help="Fail instead of prompting."),
):
    """Provision this host and start the feed generator under systemd.

    Examples:
      sudo feedgen-installer
      sudo feedgen-installer /feedgen example.com you@example.com wss://bsky.social did:plc:abcde
    """
    cfg = load_config()
    settings = to_settings(cfg)
    installer = Installer(
        settings=settings,
        prompt=None if non_interactive else _prompt,
        notify=console.info,
        on_dns_hint=print_dns_hint,
    )
    try:
        result = installer.run([data_dir, hostname, admin_email, subscription_endpoint, publisher_did])
    except UsageError as exc:
        report_usage_error(exc)
        raise typer.Exit(code=1)
    except ProvisioningError as exc:
        report_provisioning_failure(exc)
        raise typer.Exit(code=1)

    if result.runtime_installed:
        console.ok("Docker installed.")
    print_summary(result, unit_name=settings.unit_name)
