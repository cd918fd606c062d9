"""Registration markers — the on-disk set of services known to the alerting backend.

A marker is a zero-byte file named after the service. Service names end in
``_<container id>``, which is how stale markers are matched to containers.
"""

from __future__ import annotations

import logging
from collections.abc import Collection
from pathlib import Path

logger = logging.getLogger(__name__)


class MarkerError(Exception):
    """Raised when a marker cannot be created or removed."""

    def __init__(self, message: str, removed: list[str] | None = None) -> None:
        super().__init__(message)
        self.removed = removed or []


def container_id_of(marker: str) -> str:
    return marker.rsplit("_", 1)[-1]


class MarkerStore:
    """Directory-backed set of registered service names."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def path_for(self, name: str) -> Path:
        return self.directory / name

    def exists(self, name: str) -> bool:
        return self.path_for(name).exists()

    def create(self, name: str) -> None:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            self.path_for(name).touch()
        except OSError as e:
            raise MarkerError(f"cannot create marker {name}: {e}") from e

    def delete(self, name: str) -> None:
        try:
            self.path_for(name).unlink()
        except OSError as e:
            raise MarkerError(f"cannot remove marker {name}: {e}") from e

    def names(self) -> list[str]:
        if not self.directory.is_dir():
            return []
        try:
            return sorted(p.name for p in self.directory.iterdir() if p.is_file())
        except OSError as e:
            raise MarkerError(f"cannot list markers in {self.directory}: {e}") from e


def collect_garbage(store: MarkerStore, container_ids: Collection[str]) -> list[str]:
    """Remove markers whose container is no longer in the inventory.

    Stops at the first failed removal; markers removed before it stay removed
    and are listed on the raised MarkerError.
    """
    removed: list[str] = []
    for name in store.names():
        if container_id_of(name) in container_ids:
            continue
        try:
            store.delete(name)
        except MarkerError as e:
            raise MarkerError(str(e), removed=removed) from e
        removed.append(name)
        logger.info("Removed obsolete marker %s", name)
    return removed
