"""Remote execution over the system ssh binary."""

from __future__ import annotations

import logging

from .process import CommandError, run_command

logger = logging.getLogger(__name__)


class RemoteExecutor:
    """Runs single commands on containers with fixed, non-interactive ssh options."""

    def __init__(self, ssh_binary: str = "ssh") -> None:
        self.ssh_binary = ssh_binary

    def build_command(self, user: str, identity: str, host: str, port: int, command: str) -> list[str]:
        return [
            self.ssh_binary,
            "-q",
            f"{user}@{host}",
            "-i",
            identity,
            "-p",
            str(port),
            "-o",
            "StrictHostKeyChecking=no",
            command,
        ]

    async def run(self, user: str, identity: str, host: str, port: int, command: str) -> str:
        """Execute ``command`` on ``user@host:port`` and return its stdout.

        Raises CommandError on transport failure or non-zero remote exit.
        """
        logger.debug("ssh %s@%s:%s %s", user, host, port, command)
        try:
            return await run_command(self.build_command(user, identity, host, port, command))
        except CommandError as e:
            logger.debug("Remote command failed on %s:%s: %s", host, port, e)
            raise
