"""check_mk local-check output — severities and the stdout status writer.

Every line has the shape ``<severity> <name> - <message>``.
"""

from __future__ import annotations

import sys
from enum import IntEnum
from typing import TextIO


class Severity(IntEnum):
    OK = 0
    WARNING = 1
    CRITICAL = 2
    UNKNOWN = 3


def format_line(severity: Severity, name: str, message: str) -> str:
    """Build one status line. The message is flattened to a single line."""
    flat = " ".join(message.split())
    return f"{int(severity)} {name} - {flat}\n"


class StatusWriter:
    """Writes status and diagnostic lines to a stream as they are produced."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream
        self.lines_written = 0

    @property
    def stream(self) -> TextIO:
        # Resolved lazily so pytest's capsys replacement of sys.stdout is honoured
        return self._stream if self._stream is not None else sys.stdout

    def emit(self, line: str) -> None:
        """Write a line verbatim, terminating it if the producer did not."""
        if not line.endswith("\n"):
            line += "\n"
        self.stream.write(line)
        self.stream.flush()
        self.lines_written += 1

    def status(self, severity: Severity, name: str, message: str) -> None:
        self.emit(format_line(severity, name, message))

    def diagnostic(self, message: str) -> None:
        """Free-form line outside the status protocol (check_mk ignores it)."""
        self.emit(" ".join(message.split()))
