"""Shared test fixtures."""

from __future__ import annotations

import io
from pathlib import Path

import pytest

from atlantis_monitor.checks.status import StatusWriter
from atlantis_monitor.inventory.markers import MarkerStore
from tests.fakes import FakeAlerting


@pytest.fixture
def writer() -> StatusWriter:
    return StatusWriter(io.StringIO())


@pytest.fixture
def markers(tmp_path: Path) -> MarkerStore:
    return MarkerStore(tmp_path / "inventory")


@pytest.fixture
def alerting() -> FakeAlerting:
    return FakeAlerting()
