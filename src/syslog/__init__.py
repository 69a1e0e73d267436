"""Syslog ingestion — RFC 5424 parsing, Veeam event extraction, UDP receiver."""

from src.syslog.exceptions import SyslogBindError, SyslogError
from src.syslog.parser import (
    extract_domain_fields,
    is_relevant,
    map_syslog_severity,
    parse_simple_message,
    parse_syslog,
)
from src.syslog.receiver import SyslogReceiver
from src.syslog.types import DomainEvent, StructuredDataElement, SyslogRecord, SyslogStats

__all__ = [
    "DomainEvent",
    "StructuredDataElement",
    "SyslogBindError",
    "SyslogError",
    "SyslogReceiver",
    "SyslogRecord",
    "SyslogStats",
    "extract_domain_fields",
    "is_relevant",
    "map_syslog_severity",
    "parse_simple_message",
    "parse_syslog",
]
