"""Entry point for the container monitor — `atlantis-monitor` console script.

Meant to run as a check_mk local check: status lines go to stdout, logs to
stderr.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from rich.console import Console
from rich.panel import Panel

from atlantis_monitor import __version__
from atlantis_monitor.checks.run import MonitorRun
from atlantis_monitor.config import DEFAULT_CONFIG_FILE, ConfigError, MonitorSettings, load_settings

console = Console(stderr=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="atlantis-monitor",
        description="Run check_mk checks on every Atlantis container of this supervisor",
    )
    parser.add_argument("-f", "--container-file", dest="container_file",
                        help="file to get containers information from")
    parser.add_argument("-i", "--ssh-identity", dest="ssh_identity",
                        help="file containing the SSH key for all containers")
    parser.add_argument("-u", "--ssh-user", dest="ssh_user",
                        help="user account to ssh into containers")
    parser.add_argument("-n", "--check-name", dest="check_name",
                        help="service name that will appear in Nagios for the monitor")
    parser.add_argument("-d", "--check-dir", dest="check_dir",
                        help="directory containing all the scripts for the monitoring checks")
    parser.add_argument("-t", "--timeout-duration", dest="timeout_duration", type=int,
                        help="max number of seconds to wait for a monitoring check to finish")
    parser.add_argument("--inventory-dir", dest="inventory_dir",
                        help="directory holding markers of services registered with check_mk")
    parser.add_argument("--cmk-admin", dest="cmk_admin_path", help="path to the cmk_admin tool")
    parser.add_argument("--lock-file", dest="lock_file",
                        help="take an exclusive lock on this file for the duration of the run")
    parser.add_argument("--log-level", dest="log_level", help="log level for stderr diagnostics")
    parser.add_argument("-c", "--config-file", dest="config_file", default=DEFAULT_CONFIG_FILE,
                        help="the config file to use")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="print the resolved configuration to stderr")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def show_settings(settings: MonitorSettings) -> None:
    console.print(
        Panel.fit(
            f"[bold]Atlantis Container Monitor[/bold]\n"
            f"Containers: {settings.container_file}\n"
            f"Inventory:  {settings.inventory_dir}\n"
            f"SSH:        {settings.ssh_user} ({settings.ssh_identity})\n"
            f"Checks:     {settings.check_dir} (timeout {settings.timeout_duration}s)\n"
            f"Lock:       {settings.lock_file or 'disabled'}",
            title=settings.check_name,
            border_style="green",
        )
    )


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    overrides = {
        key: value
        for key, value in vars(args).items()
        if key not in ("config_file", "verbose")
    }

    # Config file warnings must be visible before the configured level is known
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        stream=sys.stderr,
    )
    try:
        settings = load_settings(args.config_file, overrides)
    except ConfigError as e:
        console.print(f"[red]Invalid configuration:[/red] {e}")
        return 2
    logging.getLogger().setLevel(getattr(logging, settings.log_level))

    if args.verbose:
        show_settings(settings)

    ok = asyncio.run(MonitorRun(settings).run())
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
