"""Alerting backend — thin wrapper around the check_mk admin tool."""

from __future__ import annotations

import logging

from .process import CommandError, run_command

logger = logging.getLogger(__name__)


class AlertingError(Exception):
    """Raised when the alerting backend rejects or fails a command."""


class CheckMKAdmin:
    """Registers services under contact groups and triggers re-inventory."""

    def __init__(self, binary: str = "/usr/bin/cmk_admin") -> None:
        self.binary = binary

    async def register_service(self, service: str, contact_group: str) -> None:
        await self._call("-s", service, "-a", contact_group)
        logger.info("Registered %s under contact group %s", service, contact_group)

    async def reinventory(self) -> None:
        await self._call("-I")

    async def _call(self, *args: str) -> None:
        try:
            await run_command([self.binary, *args])
        except CommandError as e:
            raise AlertingError(str(e)) from e
