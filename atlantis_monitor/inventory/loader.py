"""Reads the supervisor's saved container map."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from .models import Container, ManifestError, parse_container

logger = logging.getLogger(__name__)


class InventoryError(Exception):
    """Raised when the container inventory cannot be read or is malformed."""


def retrieve_containers(path: str | Path) -> dict[str, Container]:
    """Load ``container id -> Container`` from a JSON or YAML document.

    The document is either a mapping keyed by container id or a list of
    container objects each carrying its own id.
    """
    path = Path(path)
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise InventoryError(f"cannot read {path}: {e}") from e
    except yaml.YAMLError as e:
        raise InventoryError(f"cannot parse {path}: {e}") from e

    if raw is None:
        return {}

    entries: list[tuple[str, Any]]
    if isinstance(raw, dict):
        entries = [(str(key), value) for key, value in raw.items()]
    elif isinstance(raw, list):
        entries = [("", value) for value in raw]
    else:
        raise InventoryError(f"{path}: expected a mapping of containers, got {type(raw).__name__}")

    containers: dict[str, Container] = {}
    for key, entry in entries:
        if not isinstance(entry, dict):
            raise InventoryError(f"{path}: container {key or '?'} is not a mapping")
        try:
            container = parse_container(entry, fallback_id=key)
        except (ManifestError, TypeError, ValueError) as e:
            raise InventoryError(f"{path}: invalid container {key or '?'}: {e}") from e
        if container.id in containers:
            raise InventoryError(f"{path}: duplicate container id {container.id}")
        containers[container.id] = container

    logger.info("Loaded %d containers from %s", len(containers), path)
    return containers
