"""Exception hierarchy for syslog ingestion."""

from __future__ import annotations


class SyslogError(Exception):
    """Base exception for all syslog errors."""


class SyslogBindError(SyslogError):
    """The receiver could not bind its UDP socket."""
