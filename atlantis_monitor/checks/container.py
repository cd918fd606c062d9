"""Per-container discovery of check scripts and their fan-out.

Each script implies a service ``<script stem>_<container id>``. The first time
a service is seen it is registered with the alerting backend under the
container's contact group and a marker is written so it is never registered
twice.
"""

from __future__ import annotations

import asyncio
import logging
import shlex

from ..inventory.markers import MarkerError, MarkerStore
from ..inventory.models import Container
from .alerting import AlertingError, CheckMKAdmin
from .process import CommandError
from .remote import RemoteExecutor
from .service import ServiceCheck
from .status import Severity, StatusWriter

logger = logging.getLogger(__name__)

DEFAULT_CONTACT_GROUP = "atlantis_orphan_apps"
CONTACT_DEP = "cmk"


def contact_group_for(container: Container) -> str:
    """Contact group declared by the container's ``cmk`` dependency, if any."""
    dep = container.manifest.deps.get(CONTACT_DEP)
    if dep is not None:
        group = dep.data_map.get("contact_group")
        if isinstance(group, str):
            return group
    return DEFAULT_CONTACT_GROUP


def service_name(script: str, container_id: str) -> str:
    return f"{script.split('.', 1)[0]}_{container_id}"


class ContainerCheck:
    """Runs every check script of one container for the duration of a run."""

    def __init__(
        self,
        name: str,
        user: str,
        identity: str,
        directory: str,
        container: Container,
        markers: MarkerStore,
        alerting: CheckMKAdmin,
        executor: RemoteExecutor,
        writer: StatusWriter,
    ) -> None:
        self.name = name
        self.user = user
        self.identity = identity
        self.directory = directory
        self.container = container
        self.markers = markers
        self.alerting = alerting
        self.executor = executor
        self.writer = writer

    async def run(self, timeout: float) -> None:
        try:
            output = await self.executor.run(
                self.user,
                self.identity,
                self.container.host,
                self.container.ssh_port,
                f"ls {shlex.quote(self.directory)}",
            )
        except CommandError as e:
            self.writer.status(Severity.CRITICAL, self.name, f"Error getting checks for container: {e}")
            return

        scripts = [line.strip() for line in output.strip().splitlines() if line.strip()]
        if not scripts:
            logger.debug("No checks on container %s", self.container.id)
            return

        self.writer.status(Severity.OK, self.name, "Got checks for container")
        await self.check_all(scripts, timeout)

    async def check_all(self, scripts: list[str], timeout: float) -> None:
        """Register and start every script's check, then wait for all of them.

        Checks already started are always awaited, even when registration of a
        later script fails or raises, so each one writes its line.
        """
        contact_group = contact_group_for(self.container)
        started: list[tuple[ServiceCheck, asyncio.Task[None]]] = []
        try:
            for script in scripts:
                check = self.service_check(script)
                if not self.markers.exists(check.service):
                    try:
                        await self.alerting.register_service(check.service, contact_group)
                    except AlertingError as e:
                        self.writer.diagnostic(
                            f"Failure to update contact group for service {check.service}. Error: {e}"
                        )
                        logger.error("Registration of %s failed, skipping remaining checks on %s",
                                     check.service, self.container.id)
                        break
                    try:
                        self.markers.create(check.service)
                    except MarkerError as e:
                        logger.warning("%s", e)
                task = asyncio.create_task(
                    check.check_with_timeout(self.writer, timeout),
                    name=f"check-{check.service}",
                )
                started.append((check, task))
        finally:
            if started:
                await self._collect(started)

    async def _collect(self, started: list[tuple[ServiceCheck, asyncio.Task[None]]]) -> None:
        results = await asyncio.gather(*(task for _, task in started), return_exceptions=True)
        for (check, _), result in zip(started, results):
            if isinstance(result, Exception):
                logger.error("Check %s crashed", check.service, exc_info=result)
                self.writer.emit(check.error_message(result))

    def service_check(self, script: str) -> ServiceCheck:
        command = f"{shlex.quote(self.directory + '/' + script)} {self.container.primary_port} {self.container.id}"
        return ServiceCheck(
            service=service_name(script, self.container.id),
            user=self.user,
            identity=self.identity,
            host=self.container.host,
            port=self.container.ssh_port,
            script=command,
            executor=self.executor,
        )
