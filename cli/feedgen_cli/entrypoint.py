from __future__ import annotations

import sys

_GLOBAL_FLAGS = {"-v", "--verbose"}


def with_default_command(argv: list[str], commands: tuple[str, ...]) -> list[str]:
    """Insert ``install`` so the installer can be run with bare positional args."""
    idx = 1
    while idx < len(argv) and argv[idx] in _GLOBAL_FLAGS:
        idx += 1
    if idx < len(argv) and (argv[idx] in commands or argv[idx] in {"--help", "-h", "--install-completion", "--show-completion"}):
        return argv
    return [*argv[:idx], "install", *argv[idx:]]


def main() -> None:
    from .main import COMMANDS, app

    sys.argv = with_default_command(sys.argv, COMMANDS)
    app()


if __name__ == "__main__":
    main()
