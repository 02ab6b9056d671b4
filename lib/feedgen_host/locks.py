from __future__ import annotations

import logging
import time
from typing import Callable, Sequence

from .config_types import PACKAGE_LOCK_FILES
from .errors import LockTimeout
from .shell import CommandRunner, command_success

log = logging.getLogger(__name__)


def poll_until(
    check: Callable[[], bool],
    *,
    interval_s: float,
    timeout_s: float | None = None,
    sleep: Callable[[float], None] = time.sleep,
    monotonic: Callable[[], float] = time.monotonic,
    on_wait: Callable[[float], None] | None = None,
) -> None:
    """Call ``check`` until it returns True.

    ``timeout_s=None`` waits forever. Otherwise raises :class:`LockTimeout`
    once the deadline has passed with ``check`` still failing. ``on_wait``
    receives the elapsed seconds before each sleep.
    """
    started = monotonic()
    deadline = None if timeout_s is None else started + max(0.0, float(timeout_s))
    while True:
        if check():
            return
        now = monotonic()
        if deadline is not None and now >= deadline:
            raise LockTimeout(f"Still waiting after {now - started:.0f}s.")
        if on_wait:
            on_wait(now - started)
        sleep(interval_s)


def lock_check_available(runner: CommandRunner) -> bool:
    return command_success(runner, ["lsof", "-v"])


def lock_holders(runner: CommandRunner, lock_files: Sequence[str]) -> list[str]:
    # lsof exits 1 when nothing holds the files, so only stdout matters.
    res = runner(["lsof", "-n", "-t", *lock_files])
    return [line.strip() for line in (res.stdout or "").splitlines() if line.strip()]


def wait_for_package_lock(
    runner: CommandRunner,
    *,
    lock_files: Sequence[str] = PACKAGE_LOCK_FILES,
    interval_s: float = 2.0,
    timeout_s: float | None = None,
    sleep: Callable[[float], None] = time.sleep,
    monotonic: Callable[[], float] = time.monotonic,
    on_wait: Callable[[float], None] | None = None,
) -> bool:
    """Block until no other process holds the apt/dpkg locks.

    Returns False without polling when ``lsof`` is not available on the host.
    """
    if not lock_check_available(runner):
        log.debug("lsof not available, skipping package lock wait")
        return False

    def _free() -> bool:
        holders = lock_holders(runner, lock_files)
        if holders:
            log.debug("package lock held by pids %s", ", ".join(holders))
        return not holders

    try:
        poll_until(
            _free,
            interval_s=interval_s,
            timeout_s=timeout_s,
            sleep=sleep,
            monotonic=monotonic,
            on_wait=on_wait,
        )
    except LockTimeout as exc:
        raise LockTimeout(
            f"Package database is still locked by another process ({exc}). "
            "Wait for it to finish and re-run the installer."
        ) from exc
    return True
