"""Runs check scripts and emits their status lines."""

from .container import DEFAULT_CONTACT_GROUP, ContainerCheck
from .run import MonitorRun
from .service import ServiceCheck
from .status import Severity, StatusWriter, format_line
