"""Service check — one check script run against one container, with a deadline."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from .process import CommandError
from .remote import RemoteExecutor
from .status import Severity, StatusWriter, format_line

logger = logging.getLogger(__name__)

TIMEOUT_MESSAGE = "Timeout occured during check"
GENERIC_ERROR_MESSAGE = "Error encountered while monitoring the service"


@dataclass
class ServiceCheck:
    """A single check-script invocation and the normalization of its outcome."""

    service: str
    user: str
    identity: str
    host: str
    port: int
    script: str  # full remote command: <dir>/<script> <primary port> <container id>
    executor: RemoteExecutor = field(default_factory=RemoteExecutor, repr=False, compare=False)

    def timeout_message(self) -> str:
        return format_line(Severity.CRITICAL, self.service, TIMEOUT_MESSAGE)

    def error_message(self, err: Exception | None = None) -> str:
        if err is not None:
            return format_line(Severity.CRITICAL, self.service, str(err))
        return format_line(Severity.CRITICAL, self.service, GENERIC_ERROR_MESSAGE)

    def validate(self, output: str) -> str:
        """Pass the script's line through only if it reports this service.

        A line naming another service (or a malformed one) is replaced by a
        generic critical line so it cannot overwrite a different service's state.
        """
        tokens = output.split(maxsplit=3)
        if len(tokens) > 1 and tokens[1] == self.service:
            return output
        logger.warning("Discarding output of %s: %r", self.service, output)
        return self.error_message()

    async def run(self) -> str:
        try:
            output = await self.executor.run(self.user, self.identity, self.host, self.port, self.script)
        except CommandError as e:
            return self.error_message(e)
        return self.validate(output)

    async def check_with_timeout(self, writer: StatusWriter, timeout: float) -> None:
        """Emit this check's line, or the timeout line if ``timeout`` expires first.

        Expiry cancels the in-flight check, which kills its ssh child.
        """
        try:
            line = await asyncio.wait_for(self.run(), timeout)
        except asyncio.TimeoutError:
            logger.info("Check %s timed out after %ss", self.service, timeout)
            line = self.timeout_message()
        writer.emit(line)
