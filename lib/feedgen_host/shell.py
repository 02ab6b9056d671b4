from __future__ import annotations

import logging
import os
import shlex
import subprocess
from contextlib import contextmanager
from typing import Iterator, Protocol

from .errors import ProvisioningError

log = logging.getLogger(__name__)


class CommandRunner(Protocol):
    def __call__(
        self,
        args: list[str],
        *,
        input_text: str | None = None,
    ) -> subprocess.CompletedProcess[str]: ...


def run_local(args: list[str], *, input_text: str | None = None) -> subprocess.CompletedProcess[str]:
    # apt-get must never stop on a debconf prompt.
    env = {**os.environ, "DEBIAN_FRONTEND": "noninteractive"}
    log.debug("run: %s", shlex.join(args))
    return subprocess.run(
        args,
        input=input_text,
        capture_output=True,
        text=True,
        check=False,
        env=env,
    )


def command_success(runner: CommandRunner, args: list[str]) -> bool:
    try:
        res = runner(args)
    except OSError:
        return False
    return res.returncode == 0


def run_checked(
    runner: CommandRunner,
    args: list[str],
    *,
    label: str,
    input_text: str | None = None,
) -> subprocess.CompletedProcess[str]:
    try:
        res = runner(args, input_text=input_text)
    except OSError as exc:
        raise ProvisioningError(f"Failed to {label}: {exc}") from exc
    if res.returncode != 0:
        raise ProvisioningError(f"Failed to {label}.", stdout=res.stdout, stderr=res.stderr)
    return res


@contextmanager
def checked_filesystem(label: str) -> Iterator[None]:
    """Turn an ``OSError`` from the wrapped block into a :class:`ProvisioningError`."""
    try:
        yield
    except OSError as exc:
        raise ProvisioningError(f"Failed to {label}: {exc}") from exc
