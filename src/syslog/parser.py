"""Syslog datagram parsing and Veeam field extraction.

Everything here is pure and tolerant: malformed input degrades to ``None`` or
a partial record, it never raises.

Parsing order:

1. RFC 5424 — ``<PRI>VERSION TIMESTAMP HOSTNAME APP-NAME PROCID MSGID SD MSG``
2. Legacy — ``<PRI>content``
3. Otherwise ``None``.

Veeam sends the structured-data NILVALUE ``-`` *followed by* SD elements
(``... - - - [veeam@0 JobID="..."] text``), so a leading ``-`` in front of a
bracket is skipped rather than treated as the start of the message.
"""

from __future__ import annotations

import re
from typing import Any

import structlog

from src.core.types import Severity
from src.syslog.types import StructuredDataElement, SyslogRecord

logger = structlog.stdlib.get_logger()

_RFC5424_RE = re.compile(
    r"^<(\d{1,3})>(\d{1,2})\s+(\S+)\s+(\S+)\s+(\S+)\s+(\S+)\s+(\S+)\s+(.*)$",
    re.DOTALL,
)
_LEGACY_RE = re.compile(r"^<(\d{1,3})>(.*)$", re.DOTALL)
_SD_PARAM_RE = re.compile(r'([^=]+)="([^"]*)"')

_EVENT_DATA_RE = re.compile(r"<EventData[^>]*>(.*?)</EventData>", re.IGNORECASE | re.DOTALL)
_NAMED_DATA_RE = re.compile(r'<Data Name="([^"]+)">([^<]*)</Data>', re.IGNORECASE)
_UNNAMED_DATA_RE = re.compile(r"<Data>([^<]*)</Data>", re.IGNORECASE)
_USER_DATA_RE = re.compile(r"<UserData[^>]*>(.*?)</UserData>", re.IGNORECASE | re.DOTALL)
_USER_JOB_ID_RE = re.compile(r"<JobID[^>]*>([^<]+)</JobID>", re.IGNORECASE)
_USER_SESSION_ID_RE = re.compile(r"<JobSessionID[^>]*>([^<]+)</JobSessionID>", re.IGNORECASE)

# Positional <Data> values shorter than this are ids/flags, not the message.
_MIN_EVENT_MESSAGE_LEN = 10

_RELEVANT_SD_KEYS = frozenset({"JobID", "JobSessionID", "JobType"})
_RELEVANT_PHRASE = "backup job"

_JOB_NAME_PATTERNS = (
    re.compile(r'backup job "([^"]+)"', re.IGNORECASE),
    re.compile(r'job "([^"]+)"', re.IGNORECASE),
    re.compile(r"job '([^']+)'", re.IGNORECASE),
    re.compile(r"VM \(([^)]+)\)", re.IGNORECASE),
)
_SESSION_ID_RE = re.compile(r"ID:\s*([a-f0-9-]+)", re.IGNORECASE)


def _nil(value: str) -> str | None:
    return None if value == "-" else value


def _split_priority(pri: int) -> tuple[int, int]:
    """Return (facility, severity) for a PRI value."""
    return pri // 8, pri % 8


def decode_datagram(raw: bytes | str) -> str:
    """Decode a datagram to text, replacing undecodable bytes."""
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    return text.rstrip("\r\n\x00")


def parse_syslog(raw: bytes | str) -> SyslogRecord | None:
    """Parse a datagram as RFC 5424, falling back to legacy ``<PRI>content``."""
    message = decode_datagram(raw)

    match = _RFC5424_RE.match(message)
    if match:
        pri_s, version_s, timestamp, hostname, app_name, proc_id, msg_id, rest = match.groups()
        pri = int(pri_s)
        facility, severity = _split_priority(pri)
        structured_data, msg = parse_structured_data(rest)
        return SyslogRecord(
            priority=pri,
            facility=facility,
            severity=severity,
            version=int(version_s),
            timestamp=_nil(timestamp),
            hostname=_nil(hostname),
            app_name=_nil(app_name),
            proc_id=_nil(proc_id),
            msg_id=_nil(msg_id),
            structured_data=structured_data,
            msg=msg,
            raw=message,
        )

    return parse_legacy(message)


def parse_legacy(message: str) -> SyslogRecord | None:
    """Parse the minimal ``<PRI>content`` form, or return None."""
    match = _LEGACY_RE.match(message)
    if not match:
        return None
    pri = int(match.group(1))
    facility, severity = _split_priority(pri)
    content = match.group(2)
    return SyslogRecord(
        priority=pri,
        facility=facility,
        severity=severity,
        version=0,
        msg=content.strip(),
        content=content,
        raw=message,
    )


def _find_element_end(rest: str, start: int) -> int:
    """Index of the ``]`` closing the element opened at *start*, or -1.

    Brackets inside double-quoted values are ignored; a quote preceded by a
    backslash does not toggle quoting.
    """
    depth = 0
    in_quotes = False
    for i in range(start, len(rest)):
        char = rest[i]
        if char == '"' and (i == 0 or rest[i - 1] != "\\"):
            in_quotes = not in_quotes
        elif not in_quotes:
            if char == "[":
                depth += 1
            elif char == "]":
                depth -= 1
                if depth == 0:
                    return i
    return -1


def parse_structured_data(rest: str) -> tuple[list[StructuredDataElement], str]:
    """Split the post-header remainder into SD elements and the free-text message.

    Scanning stops at the first character that does not open an element. An
    element with no closing bracket ends the scan and everything from its
    opening bracket onward is returned as message text.
    """
    elements: list[StructuredDataElement] = []
    pos = 0

    # NILVALUE, optionally followed by elements anyway.
    if rest.startswith("-") and (len(rest) == 1 or rest[1].isspace()):
        pos = 1
        while pos < len(rest) and rest[pos] == " ":
            pos += 1

    while pos < len(rest) and rest[pos] == "[":
        end = _find_element_end(rest, pos)
        if end <= pos:
            break
        elements.append(parse_sd_element(rest[pos + 1:end]))
        pos = end + 1
        while pos < len(rest) and rest[pos] == " ":
            pos += 1

    msg = rest[pos:].strip().lstrip("\ufeff") if pos < len(rest) else ""
    return elements, msg


def parse_sd_element(element: str) -> StructuredDataElement:
    """Parse ``sdId key="value" key2="value2"``.

    Keys keep any surrounding whitespace exactly as sent; consumers that want
    clean names strip them.
    """
    space = element.find(" ")
    if space == -1:
        return StructuredDataElement(sd_id=element)
    params = {m.group(1): m.group(2) for m in _SD_PARAM_RE.finditer(element[space + 1:])}
    return StructuredDataElement(sd_id=element[:space], params=params)


def is_relevant(record: SyslogRecord, marker: str = "veeam") -> bool:
    """Heuristic: does this record concern the monitored backup system?"""
    if record.app_name and marker.lower() in record.app_name.lower():
        return True

    for element in record.structured_data:
        if any(key.strip() in _RELEVANT_SD_KEYS for key in element.params):
            return True

    text = record.msg or record.content or ""
    return _RELEVANT_PHRASE in text.lower()


def extract_domain_fields(record: SyslogRecord) -> dict[str, Any]:
    """Flatten a record into the field map consumed by the alert engine."""
    fields: dict[str, Any] = {
        "timestamp": record.timestamp,
        "hostname": record.hostname,
        "appName": record.app_name,
        "message": record.msg,
        "severity": record.severity,
        "raw": record.raw,
    }

    for element in record.structured_data:
        for key, value in element.params.items():
            fields[key.strip()] = value
            fields[key] = value

    if record.msg:
        parse_event_data_xml(record.msg, fields)

    if fields.get("Description"):
        fields["description"] = fields["Description"]
    elif fields.get(" Description"):
        fields["description"] = fields[" Description"]
        fields["Description"] = fields[" Description"]

    return fields


def parse_event_data_xml(message: str, fields: dict[str, Any]) -> None:
    """Pull Windows Event Log values out of *message* into *fields*.

    Positional ``<Data>`` handling follows the layout Veeam's event log
    forwarder produces: index 0 is the job id, index 1 the session id, and
    the last long value is the human-readable message. It is a convention of
    that one layout, not part of any schema.
    """
    event_data = _EVENT_DATA_RE.search(message)
    if event_data:
        body = event_data.group(1)

        for name, value in _NAMED_DATA_RE.findall(body):
            fields[name] = value
            logger.debug("xml_named_data", name=name, value=value)

        values = _UNNAMED_DATA_RE.findall(body)
        if len(values) > 1:
            if values[0].strip():
                fields["JobID"] = values[0]
            if values[1].strip():
                fields["JobSessionID"] = values[1]

        for value in reversed(values):
            if value.strip() and len(value) > _MIN_EVENT_MESSAGE_LEN:
                fields["eventMessage"] = value
                fields["message"] = value
                break

    user_data = _USER_DATA_RE.search(message)
    if user_data:
        body = user_data.group(1)
        job_id = _USER_JOB_ID_RE.search(body)
        if job_id:
            fields["JobID"] = job_id.group(1)
        session_id = _USER_SESSION_ID_RE.search(body)
        if session_id:
            fields["JobSessionID"] = session_id.group(1)


def parse_simple_message(text: str, syslog_severity: int) -> dict[str, Any]:
    """Best-effort facts from a plain-text Veeam message.

    Returns ``message`` and ``severity`` always, plus ``jobName``,
    ``sessionId`` and ``status`` when they can be recognised.
    """
    data: dict[str, Any] = {
        "message": text,
        "severity": map_syslog_severity(syslog_severity),
    }

    for pattern in _JOB_NAME_PATTERNS:
        match = pattern.search(text)
        if match:
            data["jobName"] = match.group(1)
            break

    session = _SESSION_ID_RE.search(text)
    if session:
        data["sessionId"] = session.group(1)

    lowered = text.lower()
    if "started" in lowered:
        data["status"] = "Started"
    elif "completed" in lowered or "finished" in lowered:
        data["status"] = "Completed"
    elif "failed" in lowered or "error" in lowered:
        data["status"] = "Failed"
    elif "warning" in lowered:
        data["status"] = "Warning"

    return data


def map_syslog_severity(severity: int) -> Severity:
    """Syslog 0-2 → critical, 3-4 → warning, 5-7 → info."""
    if severity <= 2:
        return Severity.CRITICAL
    if severity <= 4:
        return Severity.WARNING
    return Severity.INFO
