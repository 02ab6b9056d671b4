from __future__ import annotations

import posixpath
import re
import urllib.parse
from dataclasses import dataclass
from typing import Callable, Sequence

from .config_types import DEFAULT_DATA_DIR, DeploymentParameters
from .errors import UsageError
from .network import is_ipv4_literal

Prompt = Callable[[str], str]

# One RFC 1123 label.
_HOSTNAME_LABEL_RE = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$", re.IGNORECASE)
# Values end up in line-based .env and brace-delimited Caddyfile syntax.
_UNSAFE_CHARS_RE = re.compile(r"[\s\x00-\x1f\x7f{}]")


@dataclass(frozen=True)
class PromptedParameter:
    name: str
    prompt: str


# Positional order after the data directory.
PROMPTED_PARAMETERS: tuple[PromptedParameter, ...] = (
    PromptedParameter("hostname", "Enter your public DNS address (e.g. example.com)"),
    PromptedParameter("admin_email", "Enter an admin email address (e.g. you@example.com)"),
    PromptedParameter(
        "subscription_endpoint",
        "Enter a subscription endpoint (e.g. wss://bsky.social)",
    ),
    PromptedParameter(
        "publisher_did",
        "Enter the feed generator publisher DID (e.g. did:plc:abcde...)",
    ),
)


def _positional(args: Sequence[str | None], index: int) -> str:
    if index >= len(args):
        return ""
    return (args[index] or "").strip()


def normalize_data_directory(raw: str | None) -> str:
    value = (raw or "").strip() or DEFAULT_DATA_DIR
    if not posixpath.isabs(value):
        raise UsageError(f"Data directory must be an absolute path, got {value!r}.")
    if _UNSAFE_CHARS_RE.search(value):
        raise UsageError(
            f"Invalid data directory {value!r} (must not contain whitespace, control characters or braces)",
            remediation=["systemd splits ExecStart= on whitespace; pick a path like /srv/feedgen."],
        )
    normalized = posixpath.normpath(value)
    if not normalized.strip("/"):
        raise UsageError("Data directory cannot be the filesystem root.")
    return normalized


def _reject_unsafe(value: str, label: str) -> None:
    if _UNSAFE_CHARS_RE.search(value):
        raise UsageError(f"Invalid {label} {value!r} (must not contain whitespace, control characters or braces)")


def is_dns_name(value: str) -> bool:
    if len(value) > 253:
        return False
    return all(_HOSTNAME_LABEL_RE.match(label) for label in value.split("."))


def validate_hostname(value: str) -> str:
    if not value:
        raise UsageError("No public DNS address specified")
    if is_ipv4_literal(value):
        raise UsageError(
            "Invalid public DNS address (must not be an IP address)",
            remediation=[
                "Create a DNS A record pointing at this server and pass that name instead.",
                "Caddy issues certificates per hostname and cannot do so for a bare IP.",
            ],
        )
    if not is_dns_name(value):
        raise UsageError(
            f"Invalid public DNS address {value!r} (expected a bare host name like example.com)",
            remediation=["Leave out any scheme, port or path."],
        )
    return value.lower()


def validate_admin_email(value: str) -> str:
    if not value:
        raise UsageError("No admin email specified")
    _reject_unsafe(value, "admin email")
    if "@" not in value:
        raise UsageError(f"Invalid admin email {value!r} (must include '@')")
    return value


def validate_subscription_endpoint(value: str) -> str:
    if not value:
        raise UsageError("No subscription endpoint specified")
    _reject_unsafe(value, "subscription endpoint")
    parsed = urllib.parse.urlparse(value)
    if not parsed.scheme or not parsed.netloc:
        raise UsageError(f"Invalid subscription endpoint {value!r} (expected a URI like wss://bsky.social)")
    return value


def validate_publisher_did(value: str) -> str:
    if not value:
        raise UsageError("No feed generator publisher DID specified")
    _reject_unsafe(value, "feed generator publisher DID")
    return value


_VALIDATORS: dict[str, Callable[[str], str]] = {
    "hostname": validate_hostname,
    "admin_email": validate_admin_email,
    "subscription_endpoint": validate_subscription_endpoint,
    "publisher_did": validate_publisher_did,
}


def collect(
    positional_args: Sequence[str | None],
    *,
    prompt: Prompt | None = None,
    before_hostname_prompt: Callable[[], None] | None = None,
) -> DeploymentParameters:
    """Build deployment parameters from positional args, prompting for the gaps.

    Positional order: data directory, hostname, admin email, subscription
    endpoint, publisher DID. With ``prompt=None`` nothing is asked and a missing
    value is a usage error.
    """
    values: dict[str, str] = {"data_directory": normalize_data_directory(_positional(positional_args, 0))}
    for index, item in enumerate(PROMPTED_PARAMETERS, start=1):
        value = _positional(positional_args, index)
        if not value and prompt is not None:
            if item.name == "hostname" and before_hostname_prompt is not None:
                before_hostname_prompt()
            value = (prompt(item.prompt) or "").strip()
        values[item.name] = _VALIDATORS[item.name](value)
    return DeploymentParameters(**values)
