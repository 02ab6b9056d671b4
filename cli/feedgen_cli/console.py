from __future__ import annotations

from typing import Any

from rich.console import Console
from rich.markup import escape

console = Console()

# Messages carry paths, hostnames and command output; none of it is markup.


def _line(tag: str, msg: str) -> None:
    console.print(f"{tag} {escape(msg)}")


def info(msg: str) -> None:
    _line("[bold cyan]•[/]", msg)


def ok(msg: str) -> None:
    _line("[bold green]OK[/]", msg)


def warn(msg: str) -> None:
    _line("[bold yellow]WARN[/]", msg)


def err(msg: str) -> None:
    _line("[bold red]ERR[/]", msg)


def print_json(data: dict[str, Any]) -> None:
    console.print_json(data=data)


def print(*args, **kwargs):
    """Proxy to underlying rich Console.print()."""
    console.print(*args, **kwargs)


def rule(*args, **kwargs):
    """Proxy to underlying rich Console.rule()."""
    console.rule(*args, **kwargs)
