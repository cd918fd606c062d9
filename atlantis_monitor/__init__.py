"""Atlantis container monitor — check_mk local checks for supervisor containers."""

__version__ = "0.1.0"
