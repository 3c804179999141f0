"""Per-transaction session state and the header line classifier."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .directory_client import DirectoryClient


class TxState(str, Enum):
    """Logical position of a session within its current transaction."""

    IDLE = "idle"
    ENVELOPE_OPEN = "envelope-open"
    HEADERS_STREAMING = "headers-streaming"
    HEADER_COMPLETE = "header-complete"


class LineKind(str, Enum):
    """Classification of one data line as seen by the header automaton."""

    ADDRESS_BOOK = "address-book"
    FROM = "from"
    TO = "to"
    BLANK = "blank"
    OTHER = "other"
    BODY = "body"


def classify_line(line: str, *, header_complete: bool, marker: str) -> LineKind:
    """Classify *line* given the header state of its transaction.

    *marker* is the literal, case-sensitive prefix of the injected header
    (``"X-Address-Book:"``).  It is recognised anywhere in the message;
    ``From:``/``To:`` and the terminating blank line only before the
    header block has ended.
    """
    if line.startswith(marker):
        return LineKind.ADDRESS_BOOK
    if header_complete:
        return LineKind.BODY
    if line.startswith("From:"):
        return LineKind.FROM
    if line.startswith("To:"):
        return LineKind.TO
    if not line.strip():
        return LineKind.BLANK
    return LineKind.OTHER


@dataclass(eq=False)
class Session:
    """Envelope and header facts for the transaction running on one SMTP session.

    The host reuses one Session across all transactions of a connection,
    so :meth:`reset` must leave nothing behind from the previous one.
    """

    session_id: str
    client: DirectoryClient
    message_id: str | None = None
    envelope_from: str | None = None
    envelope_to: list[str] = field(default_factory=list)
    header_from: str | None = None
    header_to: str | None = None
    header_complete: bool = False
    data_started: bool = False

    def reset(self, client: DirectoryClient, message_id: str | None = None) -> None:
        self.client = client
        self.message_id = message_id
        self.envelope_from = None
        self.envelope_to = []
        self.header_from = None
        self.header_to = None
        self.header_complete = False
        self.data_started = False

    @property
    def state(self) -> TxState:
        if self.header_complete:
            return TxState.HEADER_COMPLETE
        if self.data_started:
            return TxState.HEADERS_STREAMING
        if self.envelope_from is not None or self.envelope_to:
            return TxState.ENVELOPE_OPEN
        return TxState.IDLE
