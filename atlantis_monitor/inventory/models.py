"""Container inventory models — the supervisor's view of running containers.

Only ``Container.host``/``ssh_port``/``primary_port``/``id`` and the ``cmk``
dependency of the manifest matter to the monitor; the rest is carried so an
inventory file round-trips into typed objects without loss.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


class ManifestError(ValueError):
    """Raised when a manifest entry has an invalid shape."""


# ── Data models ──────────────────────────────────────────────────────────────


@dataclass
class AppDep:
    """A declared dependency of an app and its free-form configuration."""

    security_group: list[str] = field(default_factory=list)
    data_map: dict[str, Any] = field(default_factory=dict)
    encrypted_data: str = ""


@dataclass
class Manifest:
    name: str = ""
    description: str = ""
    instances: int = 0
    cpu_shares: int = 0
    memory_limit: int = 0  # MB
    image: str = ""
    app_type: str = ""
    run_commands: list[str] = field(default_factory=list)
    deps: dict[str, AppDep] = field(default_factory=dict)


@dataclass
class Container:
    """A container deployed by the supervisor."""

    id: str
    docker_id: str = ""
    ip: str = ""
    host: str = ""
    primary_port: int = 0
    secondary_ports: list[int] = field(default_factory=list)
    ssh_port: int = 0
    app: str = ""
    sha: str = ""
    env: str = ""
    manifest: Manifest = field(default_factory=Manifest)


# ── Parsing ──────────────────────────────────────────────────────────────────


def _field(raw: dict[str, Any], *names: str, default: Any = None) -> Any:
    """First present key among ``names`` (Go-style and snake_case spellings)."""
    for name in names:
        if name in raw and raw[name] is not None:
            return raw[name]
    return default


def resolve_run_commands(value: Any) -> list[str]:
    """Normalize a manifest ``run_command`` (string or list of strings)."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        for cmd in value:
            if not isinstance(cmd, str):
                raise ManifestError("Invalid Manifest: non-string element in run_command array!")
        return list(value)
    raise ManifestError("Invalid Manifest: run_command should be string or []string")


def parse_app_dep(raw: dict[str, Any] | None) -> AppDep:
    raw = raw or {}
    data_map = _field(raw, "DataMap", "data_map", default={})
    if not isinstance(data_map, dict):
        raise ManifestError(f"Invalid dependency data map: {data_map!r}")
    return AppDep(
        security_group=list(_field(raw, "SecurityGroup", "security_group", default=[])),
        data_map=dict(data_map),
        encrypted_data=_field(raw, "EncryptedData", "encrypted_data", default=""),
    )


def parse_manifest(raw: dict[str, Any] | None) -> Manifest:
    raw = raw or {}
    deps_raw = _field(raw, "Deps", "deps", default={})
    if isinstance(deps_raw, list):
        # Dependency names only, as declared in a manifest's `dependencies`
        deps_raw = {name: {} for name in deps_raw}
    if not isinstance(deps_raw, dict):
        raise ManifestError(f"Invalid manifest deps: {deps_raw!r}")

    run_commands = _field(raw, "RunCommands", "run_commands")
    if run_commands is None:
        run_commands = _field(raw, "RunCommand", "run_command")

    return Manifest(
        name=_field(raw, "Name", "name", default=""),
        description=_field(raw, "Description", "description", default=""),
        instances=int(_field(raw, "Instances", "instances", default=0)),
        cpu_shares=int(_field(raw, "CPUShares", "cpu_shares", default=0)),
        memory_limit=int(_field(raw, "MemoryLimit", "memory_limit", default=0)),
        image=_field(raw, "Image", "image", default=""),
        app_type=_field(raw, "AppType", "app_type", default=""),
        run_commands=resolve_run_commands(run_commands),
        deps={str(name): parse_app_dep(dep) for name, dep in deps_raw.items()},
    )


def parse_container(raw: dict[str, Any], fallback_id: str = "") -> Container:
    container_id = str(_field(raw, "ID", "id", default=fallback_id))
    if not container_id:
        raise ManifestError("Container entry has no ID")
    return Container(
        id=container_id,
        docker_id=_field(raw, "DockerID", "docker_id", default=""),
        ip=_field(raw, "IP", "ip", default=""),
        host=_field(raw, "Host", "host", default=""),
        primary_port=int(_field(raw, "PrimaryPort", "primary_port", default=0)),
        secondary_ports=[int(p) for p in _field(raw, "SecondaryPorts", "secondary_ports", default=[])],
        ssh_port=int(_field(raw, "SSHPort", "ssh_port", default=0)),
        app=_field(raw, "App", "app", default=""),
        sha=_field(raw, "Sha", "sha", default=""),
        env=_field(raw, "Env", "env", default=""),
        manifest=parse_manifest(_field(raw, "Manifest", "manifest")),
    )
