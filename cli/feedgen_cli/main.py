from __future__ import annotations

import typer

from .commands import detect_cmd, install_cmd, settings_cmd
from .logging_ import setup_logging

COMMANDS = ("install", "detect", "settings")


def _build_app() -> typer.Typer:
    app = typer.Typer(
        name="feedgen-installer",
        help="Provision a Linux host for the Bluesky feed generator.",
        no_args_is_help=False,
    )

    app.command("install")(install_cmd.install)
    app.command("detect")(detect_cmd.detect)
    app.add_typer(settings_cmd.app, name="settings")

    @app.callback()
    def _main(
            verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose logs."),
    ):
        setup_logging(verbose)

    return app


app = _build_app()
