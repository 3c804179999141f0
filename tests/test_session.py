"""Tests for filter_address_book.session."""

from __future__ import annotations

import pytest

from filter_address_book.session import LineKind, Session, TxState, classify_line
from tests.conftest import StubDirectoryClient

MARKER = "X-Address-Book:"


@pytest.mark.parametrize(
    ("line", "expected"),
    [
        ("X-Address-Book: work", LineKind.ADDRESS_BOOK),
        ("X-Address-Book:", LineKind.ADDRESS_BOOK),
        ("From: a@b.com", LineKind.FROM),
        ("To: c@d.com", LineKind.TO),
        ("", LineKind.BLANK),
        ("   \t", LineKind.BLANK),
        ("Subject: hello", LineKind.OTHER),
        ("Reply-To: e@f.com", LineKind.OTHER),
        ("x-address-book: work", LineKind.OTHER),
    ],
)
def test_classify_in_headers(line: str, expected: LineKind):
    assert classify_line(line, header_complete=False, marker=MARKER) is expected


@pytest.mark.parametrize(
    ("line", "expected"),
    [
        ("From: a@b.com", LineKind.BODY),
        ("To: c@d.com", LineKind.BODY),
        ("", LineKind.BODY),
        ("X-Address-Book: work", LineKind.ADDRESS_BOOK),
    ],
)
def test_classify_in_body(line: str, expected: LineKind):
    assert classify_line(line, header_complete=True, marker=MARKER) is expected


class TestSession:
    def test_new_session_is_idle(self):
        session = Session(session_id="abc", client=StubDirectoryClient())
        assert session.state is TxState.IDLE
        assert session.envelope_to == []
        assert session.header_complete is False

    def test_state_progression(self):
        session = Session(session_id="abc", client=StubDirectoryClient())
        session.envelope_from = "s@x.com"
        assert session.state is TxState.ENVELOPE_OPEN
        session.data_started = True
        assert session.state is TxState.HEADERS_STREAMING
        session.header_complete = True
        assert session.state is TxState.HEADER_COMPLETE

    def test_reset_clears_everything(self):
        old_client = StubDirectoryClient()
        new_client = StubDirectoryClient()
        session = Session(session_id="abc", client=old_client)
        session.message_id = "m0"
        session.envelope_from = "s@x.com"
        session.envelope_to.extend(["r@y.com", "r@y.com"])
        session.header_from = "s@x.com"
        session.header_to = "r@y.com"
        session.header_complete = True
        session.data_started = True

        session.reset(new_client, "m1")

        assert session.client is new_client
        assert session.message_id == "m1"
        assert session.envelope_from is None
        assert session.envelope_to == []
        assert session.header_from is None
        assert session.header_to is None
        assert session.header_complete is False
        assert session.state is TxState.IDLE
