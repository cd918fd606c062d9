"""End-to-end tests for a monitor run with fake ssh and cmk_admin."""

from __future__ import annotations

import asyncio
import fcntl
import json
from pathlib import Path

import pytest

from atlantis_monitor.checks.process import CommandError
from atlantis_monitor.checks.run import MonitorRun
from atlantis_monitor.checks.status import StatusWriter
from atlantis_monitor.config import MonitorSettings
from atlantis_monitor.inventory.markers import MarkerError, MarkerStore
from tests.fakes import FakeAlerting, FakeExecutor, output_lines

LS = "ls /check_mk_checks"


@pytest.fixture
def settings(tmp_path: Path) -> MonitorSettings:
    return MonitorSettings(
        container_file=str(tmp_path / "containers"),
        inventory_dir=str(tmp_path / "inventory"),
        ssh_identity="/k",
        check_name="ContainerMonitor",
        timeout_duration=5,
    )


def write_inventory(settings: MonitorSettings, containers: dict) -> None:
    Path(settings.container_file).write_text(json.dumps(containers), encoding="utf-8")


def run_monitor(settings, executor, alerting, writer) -> bool:
    monitor = MonitorRun(settings, executor=executor, alerting=alerting, writer=writer)
    return asyncio.run(monitor.run())


C1 = {"c1": {"ID": "c1", "Host": "h1", "SSHPort": 22, "PrimaryPort": 8080}}


class TestScenarios:
    def test_all_checks_succeed(self, settings, alerting: FakeAlerting, writer: StatusWriter) -> None:
        write_inventory(settings, C1)
        ex = FakeExecutor({
            LS: (0, "cpu.sh\nmem.sh\n"),
            "/check_mk_checks/cpu.sh 8080 c1": (0.05, "0 cpu_c1 - cpu fine\n"),
            "/check_mk_checks/mem.sh 8080 c1": (0.05, "0 mem_c1 - mem fine\n"),
        })

        assert run_monitor(settings, ex, alerting, writer) is True

        lines = output_lines(writer)
        assert "0 cpu_c1 - cpu fine" in lines
        assert "0 mem_c1 - mem fine" in lines
        assert not any("Timeout" in line for line in lines)
        assert MarkerStore(settings.inventory_dir).names() == ["cpu_c1", "mem_c1"]
        assert alerting.reinventories == 1

    def test_slow_check_times_out(self, settings, alerting, writer) -> None:
        settings.timeout_duration = 1
        write_inventory(settings, C1)
        ex = FakeExecutor({
            LS: (0, "cpu.sh\nmem.sh\n"),
            "/check_mk_checks/cpu.sh 8080 c1": (0.05, "0 cpu_c1 - cpu fine\n"),
            "/check_mk_checks/mem.sh 8080 c1": (10.0, "0 mem_c1 - mem fine\n"),
        })

        run_monitor(settings, ex, alerting, writer)

        lines = output_lines(writer)
        assert "0 cpu_c1 - cpu fine" in lines
        assert "2 mem_c1 - Timeout occured during check" in lines
        assert [line for line in lines if "mem_c1" in line] == ["2 mem_c1 - Timeout occured during check"]

    def test_missing_inventory_file(self, settings, alerting, writer) -> None:
        ex = FakeExecutor()
        assert run_monitor(settings, ex, alerting, writer) is True
        assert output_lines(writer) == [
            f"0 ContainerMonitor - Directory does not exists {settings.container_file}"
        ]
        assert ex.calls == []
        assert alerting.reinventories == 0

    def test_vanished_container_markers_removed(self, settings, alerting, writer) -> None:
        store = MarkerStore(settings.inventory_dir)
        store.create("cpu_c1")
        write_inventory(settings, {"c2": {"ID": "c2", "Host": "h2", "SSHPort": 22}})
        ex = FakeExecutor({LS: (0, "")})

        run_monitor(settings, ex, alerting, writer)

        assert not store.exists("cpu_c1")


class TestFailures:
    def test_unreadable_inventory_fails_run(self, settings, alerting, writer) -> None:
        Path(settings.container_file).write_text("[unterminated")
        ex = FakeExecutor()
        assert run_monitor(settings, ex, alerting, writer) is False
        lines = output_lines(writer)
        assert len(lines) == 1
        assert lines[0].startswith(f"2 ContainerMonitor - Could not retrieve {settings.container_file}:")
        assert ex.calls == []

    def test_one_container_failure_does_not_affect_others(self, settings, alerting, writer) -> None:
        write_inventory(settings, {
            "c1": {"ID": "c1", "Host": "h1", "SSHPort": 22, "PrimaryPort": 8080},
            "c2": {"ID": "c2", "Host": "h2", "SSHPort": 23, "PrimaryPort": 9090},
        })

        class PerHostExecutor(FakeExecutor):
            async def run(self, user, identity, host, port, command):
                if host == "h2":
                    self.calls.append((host, port, command))
                    raise CommandError("exit status 255")
                return await super().run(user, identity, host, port, command)

        ex = PerHostExecutor({
            LS: (0, "cpu.sh\n"),
            "/check_mk_checks/cpu.sh 8080 c1": (0, "0 cpu_c1 - ok\n"),
        })
        run_monitor(settings, ex, alerting, writer)

        lines = output_lines(writer)
        assert "0 cpu_c1 - ok" in lines
        assert "2 ContainerMonitor_c2 - Error getting checks for container: exit status 255" in lines

    def test_default_host_is_localhost(self, settings, alerting, writer) -> None:
        write_inventory(settings, {"c1": {"ID": "c1", "SSHPort": 2222}})
        ex = FakeExecutor({LS: (0, "")})
        run_monitor(settings, ex, alerting, writer)
        assert ex.calls == [("localhost", 2222, LS)]

    def test_reinventory_failure_is_not_reported(self, settings, writer) -> None:
        alerting = FakeAlerting(fail_reinventory=True)
        write_inventory(settings, C1)
        ex = FakeExecutor({LS: (0, "")})
        assert run_monitor(settings, ex, alerting, writer) is True
        assert output_lines(writer) == [f"0 ContainerMonitor - Able to open {settings.container_file}"]

    def test_gc_failure_reported_once(self, settings, alerting, writer) -> None:
        write_inventory(settings, {})
        store = MarkerStore(settings.inventory_dir)
        store.create("cpu_c1")
        store.create("mem_c1")

        class BrokenStore(MarkerStore):
            def delete(self, name: str) -> None:
                raise MarkerError(f"cannot remove marker {name}: read-only file system")

        monitor = MonitorRun(settings, executor=FakeExecutor(), alerting=alerting, writer=writer,
                             markers=BrokenStore(settings.inventory_dir))
        asyncio.run(monitor.run())

        diagnostics = [line for line in output_lines(writer) if line.startswith("Error iterating")]
        assert diagnostics == [
            "Error iterating over inventory to delete obsolete markers. "
            "Error: cannot remove marker cpu_c1: read-only file system"
        ]
        assert store.names() == ["cpu_c1", "mem_c1"]

    def test_unlistable_inventory_reported(self, settings, alerting, writer) -> None:
        write_inventory(settings, {})

        class UnlistableStore(MarkerStore):
            def names(self) -> list[str]:
                raise MarkerError(f"cannot list markers in {self.directory}: permission denied")

        monitor = MonitorRun(settings, executor=FakeExecutor(), alerting=alerting, writer=writer,
                             markers=UnlistableStore(settings.inventory_dir))
        assert asyncio.run(monitor.run()) is True

        assert output_lines(writer)[-1] == (
            "Error iterating over inventory to delete obsolete markers. "
            f"Error: cannot list markers in {settings.inventory_dir}: permission denied"
        )

    def test_unexpected_container_error_is_reported(self, settings, alerting, writer) -> None:
        write_inventory(settings, C1)

        class ExplodingExecutor(FakeExecutor):
            async def run(self, user, identity, host, port, command):
                raise RuntimeError("kaboom")

        assert run_monitor(settings, ExplodingExecutor(), alerting, writer) is True
        assert "3 ContainerMonitor_c1 - Unexpected error: kaboom" in output_lines(writer)
        assert alerting.reinventories == 1


class TestRunLock:
    def test_busy_lock_skips_run(self, settings, alerting, writer, tmp_path: Path) -> None:
        lock_path = tmp_path / "monitor.lock"
        settings.lock_file = str(lock_path)
        write_inventory(settings, C1)
        ex = FakeExecutor({LS: (0, "")})

        with open(lock_path, "a") as held:
            fcntl.flock(held.fileno(), fcntl.LOCK_EX)
            try:
                assert run_monitor(settings, ex, alerting, writer) is True
            finally:
                fcntl.flock(held.fileno(), fcntl.LOCK_UN)

        assert output_lines(writer) == [f"1 ContainerMonitor - Another monitor run holds {lock_path}"]
        assert ex.calls == []

    def test_free_lock_runs(self, settings, alerting, writer, tmp_path: Path) -> None:
        settings.lock_file = str(tmp_path / "locks" / "monitor.lock")
        write_inventory(settings, C1)
        ex = FakeExecutor({LS: (0, "")})
        run_monitor(settings, ex, alerting, writer)
        assert ex.calls == [("h1", 22, LS)]

    def test_unopenable_lock_reported(self, settings, alerting, writer, tmp_path: Path) -> None:
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        settings.lock_file = str(blocker / "monitor.lock")
        write_inventory(settings, C1)
        ex = FakeExecutor({LS: (0, "")})

        assert run_monitor(settings, ex, alerting, writer) is False

        lines = output_lines(writer)
        assert len(lines) == 1
        assert lines[0].startswith(f"3 ContainerMonitor - Cannot open lock file {blocker / 'monitor.lock'}:")
        assert ex.calls == []
