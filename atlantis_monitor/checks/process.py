"""Async child-process helper shared by the ssh executor and cmk_admin wrapper."""

from __future__ import annotations

import asyncio
import logging
import time

logger = logging.getLogger(__name__)


class CommandError(Exception):
    """Raised when a child process cannot be started or exits non-zero."""

    def __init__(self, message: str, returncode: int | None = None, stderr: str = "") -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


async def run_command(argv: list[str]) -> str:
    """Run ``argv`` (no shell) and return its decoded stdout.

    If the awaiting task is cancelled the child is killed and reaped before
    the cancellation propagates.
    """
    t0 = time.perf_counter()
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        raise CommandError(f"Command not found: {argv[0]}") from e
    except OSError as e:
        raise CommandError(f"Could not start {argv[0]}: {e}") from e

    try:
        stdout, stderr = await proc.communicate()
    except asyncio.CancelledError:
        _kill(proc)
        await proc.wait()
        logger.debug("Killed %s after cancellation (pid %s)", argv[0], proc.pid)
        raise

    duration_ms = int((time.perf_counter() - t0) * 1000)
    err_text = stderr.decode("utf-8", errors="replace").strip()
    if proc.returncode != 0:
        logger.debug("%s exited %s in %dms", argv[0], proc.returncode, duration_ms)
        message = f"exit status {proc.returncode}"
        if err_text:
            message = f"{message}: {err_text}"
        raise CommandError(message, returncode=proc.returncode, stderr=err_text)

    logger.debug("%s finished in %dms", argv[0], duration_ms)
    return stdout.decode("utf-8", errors="replace")


def _kill(proc: asyncio.subprocess.Process) -> None:
    try:
        proc.kill()
    except ProcessLookupError:
        pass
