"""Monitor run — one discovery + check + cleanup pass over the container inventory."""

from __future__ import annotations

import asyncio
import dataclasses
import fcntl
import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path

from ..config import MonitorSettings
from ..inventory.loader import InventoryError, retrieve_containers
from ..inventory.markers import MarkerError, MarkerStore, collect_garbage
from ..inventory.models import Container
from .alerting import AlertingError, CheckMKAdmin
from .container import ContainerCheck
from .remote import RemoteExecutor
from .status import Severity, StatusWriter

logger = logging.getLogger(__name__)

DEFAULT_HOST = "localhost"


class RunLockError(Exception):
    """Raised when the run lock file cannot be opened."""


@contextmanager
def run_lock(path: str) -> Iterator[bool]:
    """Hold an exclusive flock on ``path`` for the run; yields False if taken."""
    if not path:
        yield True
        return
    try:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        fh = open(path, "a", encoding="utf-8")
    except OSError as e:
        raise RunLockError(f"Cannot open lock file {path}: {e}") from e
    with fh:
        try:
            fcntl.flock(fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            yield False
            return
        try:
            yield True
        finally:
            fcntl.flock(fh.fileno(), fcntl.LOCK_UN)


class MonitorRun:
    """Checks every container of the saved inventory, then cleans up markers."""

    def __init__(
        self,
        settings: MonitorSettings,
        executor: RemoteExecutor | None = None,
        alerting: CheckMKAdmin | None = None,
        writer: StatusWriter | None = None,
        markers: MarkerStore | None = None,
        loader: Callable[[Path], dict[str, Container]] = retrieve_containers,
    ) -> None:
        self.settings = settings
        self.executor = executor or RemoteExecutor(settings.ssh_binary)
        self.alerting = alerting or CheckMKAdmin(settings.cmk_admin_path)
        self.writer = writer or StatusWriter()
        self.markers = markers or MarkerStore(settings.inventory_dir)
        self.loader = loader

    async def run(self) -> bool:
        """Run one pass.

        Returns False if the inventory could not be loaded or the run lock file
        could not be opened.
        """
        try:
            with run_lock(self.settings.lock_file) as acquired:
                if not acquired:
                    self.writer.status(
                        Severity.WARNING,
                        self.settings.check_name,
                        f"Another monitor run holds {self.settings.lock_file}",
                    )
                    return True
                return await self._run()
        except RunLockError as e:
            self.writer.status(Severity.UNKNOWN, self.settings.check_name, str(e))
            return False

    async def _run(self) -> bool:
        name = self.settings.check_name
        path = Path(self.settings.container_file)
        if not path.exists():
            self.writer.status(Severity.OK, name, f"Directory does not exists {path}")
            return True

        try:
            containers = self.loader(path)
        except InventoryError as e:
            self.writer.status(Severity.CRITICAL, name, f"Could not retrieve {path}: {e}")
            return False
        self.writer.status(Severity.OK, name, f"Able to open {path}")

        checks = [self.container_check(c) for c in containers.values()]
        results = await asyncio.gather(
            *(check.run(self.settings.timeout_seconds) for check in checks),
            return_exceptions=True,
        )
        for check, result in zip(checks, results):
            if isinstance(result, Exception):
                logger.error("Container check %s crashed", check.name, exc_info=result)
                self.writer.status(Severity.UNKNOWN, check.name, f"Unexpected error: {result}")

        try:
            await self.alerting.reinventory()
        except AlertingError as e:
            logger.warning("check_mk re-inventory failed: %s", e)

        self.collect_obsolete_markers(containers)
        return True

    def container_check(self, container: Container) -> ContainerCheck:
        if not container.host:
            container = dataclasses.replace(container, host=DEFAULT_HOST)
        return ContainerCheck(
            name=f"{self.settings.check_name}_{container.id}",
            user=self.settings.ssh_user,
            identity=self.settings.ssh_identity,
            directory=self.settings.check_dir,
            container=container,
            markers=self.markers,
            alerting=self.alerting,
            executor=self.executor,
            writer=self.writer,
        )

    def collect_obsolete_markers(self, containers: dict[str, Container]) -> list[str]:
        try:
            return collect_garbage(self.markers, containers.keys())
        except MarkerError as e:
            self.writer.diagnostic(
                f"Error iterating over inventory to delete obsolete markers. Error: {e}"
            )
            return e.removed
