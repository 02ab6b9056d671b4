from __future__ import annotations

import os

import typer

from .. import console
from ..config import config_path, default_config, load_config, save_config

app = typer.Typer(help="Manage installer settings (~/.config/feedgen-installer/config.toml).")


@app.command("init")
def init_settings(
        force: bool = typer.Option(False, "--force", help="Overwrite existing config."),
        source_url: str | None = typer.Option(None, "--source-url", help="Git repository with the compose stack."),
        source_branch: str | None = typer.Option(None, "--source-branch", help="Branch to check out."),
        lock_timeout: float | None = typer.Option(
            None,
            "--lock-timeout",
            help="Seconds to wait for the apt lock before failing (0 waits forever).",
        ),
):
    path = config_path()
    if os.path.exists(path) and not force:
        console.info(f"Config already exists: {path}")
        console.info("Use --force to overwrite.")
        return

    cfg = default_config()
    if source_url is not None:
        cfg.source_url = source_url.strip()
    if source_branch is not None:
        cfg.source_branch = source_branch.strip()
    if lock_timeout is not None:
        if lock_timeout < 0:
            console.err("Lock timeout cannot be negative.")
            raise typer.Exit(code=2)
        cfg.lock_timeout_s = lock_timeout
    if not cfg.source_url or not cfg.source_branch:
        console.err("Source URL and branch cannot be empty.")
        raise typer.Exit(code=2)
    saved = save_config(cfg)
    console.ok(f"Config written: {saved}")


@app.command("show")
def show_settings():
    cfg = load_config()
    lock_timeout = f"{cfg.lock_timeout_s:g}s" if cfg.lock_timeout_s else "unbounded"
    console.console.print(
        f"source_url={cfg.source_url} source_branch={cfg.source_branch} "
        f"lock_timeout={lock_timeout} lock_poll_interval={cfg.lock_poll_interval_s:g}s "
        f"probe_timeout={cfg.probe_timeout_s:g}s parallel_probes={str(cfg.parallel_probes).lower()}",
        markup=False,
    )
