"""OpenSMTPD filter protocol codec (see ``smtpd-filters(7)``).

smtpd talks to a filter over its stdin/stdout, one ``|``-separated
record per line.  Three kinds of records arrive:

* ``config|<key>|<value>`` during the handshake, ending with ``config|ready``
* ``report|<version>|<timestamp>|<subsystem>|<event>|<session>|<params...>``
* ``filter|<version>|<timestamp>|<subsystem>|<phase>|<session>|<token>|<params...>``

Field order changed twice across protocol versions; the helpers here
hide that from the rest of the filter.
"""

from __future__ import annotations

from dataclasses import dataclass

from .errors import ProtocolError

SUBSYSTEM = "smtp-in"

REPORT_EVENTS = (
    "link-connect",
    "link-disconnect",
    "tx-begin",
    "tx-reset",
    "tx-mail",
    "tx-rcpt",
    "tx-commit",
    "tx-rollback",
)
FILTER_PHASES = ("data-line",)


def parse_version(text: str) -> tuple[int, ...]:
    try:
        return tuple(int(part) for part in text.split("."))
    except ValueError as exc:
        raise ProtocolError("bad protocol version", text) from exc


@dataclass(frozen=True)
class ConfigLine:
    key: str
    value: str

    @property
    def ready(self) -> bool:
        return self.key == "ready"


@dataclass(frozen=True)
class ReportEvent:
    """A ``report|`` record.  *params* is the unsplit remainder of the line."""

    version: tuple[int, ...]
    timestamp: float
    subsystem: str
    event: str
    session_id: str
    params: str

    def message_id(self) -> str:
        return self.params.split("|", 1)[0]

    def envelope(self) -> tuple[str, str, str]:
        """Return ``(message_id, result, address)`` for tx-mail / tx-rcpt."""
        fields = self.params.split("|", 2)
        if len(fields) != 3:
            raise ProtocolError(f"bad {self.event} parameters", self.params)
        message_id, first, second = fields
        # before 0.6 the address came first and the result last
        if self.version < (0, 6):
            return message_id, second, first
        return message_id, first, second

    def commit(self) -> tuple[str, int]:
        """Return ``(message_id, size)`` for tx-commit."""
        fields = self.params.split("|", 1)
        if len(fields) != 2:
            raise ProtocolError("bad tx-commit parameters", self.params)
        try:
            return fields[0], int(fields[1])
        except ValueError as exc:
            raise ProtocolError("bad tx-commit size", self.params) from exc


@dataclass(frozen=True)
class FilterRequest:
    """A ``filter|`` record.  For ``data-line`` *params* is the raw line."""

    version: tuple[int, ...]
    timestamp: float
    subsystem: str
    phase: str
    session_id: str
    token: str
    params: str


def parse_line(line: str) -> ConfigLine | ReportEvent | FilterRequest:
    """Parse one record (without its trailing newline)."""
    kind, _, rest = line.partition("|")

    if kind == "config":
        key, _, value = rest.partition("|")
        if not key:
            raise ProtocolError("empty config key", line)
        return ConfigLine(key=key, value=value)

    if kind == "report":
        fields = rest.split("|", 5)
        if len(fields) < 5:
            raise ProtocolError("short report line", line)
        version, timestamp, subsystem, event, session_id = fields[:5]
        return ReportEvent(
            version=parse_version(version),
            timestamp=_parse_timestamp(timestamp, line),
            subsystem=subsystem,
            event=event,
            session_id=session_id,
            params=fields[5] if len(fields) > 5 else "",
        )

    if kind == "filter":
        fields = rest.split("|", 6)
        if len(fields) < 6:
            raise ProtocolError("short filter line", line)
        version, timestamp, subsystem, phase, first, second = fields[:6]
        parsed_version = parse_version(version)
        # before 0.5 the token came before the session id
        if parsed_version < (0, 5):
            session_id, token = second, first
        else:
            session_id, token = first, second
        return FilterRequest(
            version=parsed_version,
            timestamp=_parse_timestamp(timestamp, line),
            subsystem=subsystem,
            phase=phase,
            session_id=session_id,
            token=token,
            params=fields[6] if len(fields) > 6 else "",
        )

    raise ProtocolError("unknown record type", line)


def _parse_timestamp(text: str, line: str) -> float:
    try:
        return float(text)
    except ValueError as exc:
        raise ProtocolError("bad timestamp", line) from exc


def registration_lines(subsystem: str = SUBSYSTEM) -> list[str]:
    """Lines a filter writes after ``config|ready`` to subscribe to its events."""
    lines = [f"register|report|{subsystem}|{event}" for event in REPORT_EVENTS]
    lines.extend(f"register|filter|{subsystem}|{phase}" for phase in FILTER_PHASES)
    lines.append("register|ready")
    return lines


def format_dataline(request: FilterRequest, line: str) -> str:
    """Format one output line answering a ``data-line`` request."""
    if request.version < (0, 5):
        return f"filter-dataline|{request.token}|{request.session_id}|{line}"
    return f"filter-dataline|{request.session_id}|{request.token}|{line}"
