"""Tests for filter_address_book.protocol."""

from __future__ import annotations

import pytest

from filter_address_book.errors import ProtocolError
from filter_address_book.protocol import (
    ConfigLine,
    FilterRequest,
    ReportEvent,
    format_dataline,
    parse_line,
    parse_version,
    registration_lines,
)
from tests.conftest import data_line, report


class TestParseConfig:
    def test_key_value(self):
        record = parse_line("config|smtpd-version|7.4.0")
        assert record == ConfigLine(key="smtpd-version", value="7.4.0")
        assert not record.ready

    def test_ready(self):
        record = parse_line("config|ready")
        assert isinstance(record, ConfigLine)
        assert record.ready

    def test_empty_key(self):
        with pytest.raises(ProtocolError):
            parse_line("config|")


class TestParseReport:
    def test_tx_begin(self):
        record = parse_line(report("tx-begin", "7641df9771b4ed00", "1ef1c203"))
        assert isinstance(record, ReportEvent)
        assert record.version == (0, 7)
        assert record.timestamp == pytest.approx(1700000000.000001)
        assert record.subsystem == "smtp-in"
        assert record.event == "tx-begin"
        assert record.session_id == "7641df9771b4ed00"
        assert record.message_id() == "1ef1c203"

    def test_tx_mail_current_order(self):
        record = parse_line(report("tx-mail", "sess", "m1", "ok", "s@x.com"))
        assert record.envelope() == ("m1", "ok", "s@x.com")

    def test_tx_mail_legacy_order(self):
        record = parse_line(report("tx-mail", "sess", "m1", "s@x.com", "ok", version="0.5"))
        assert record.envelope() == ("m1", "ok", "s@x.com")

    def test_tx_rcpt(self):
        record = parse_line(report("tx-rcpt", "sess", "m1", "permfail", "r@y.com"))
        assert record.envelope() == ("m1", "permfail", "r@y.com")

    def test_tx_mail_missing_fields(self):
        record = parse_line(report("tx-mail", "sess", "m1"))
        with pytest.raises(ProtocolError):
            record.envelope()

    def test_tx_commit(self):
        record = parse_line(report("tx-commit", "sess", "m1", "2048"))
        assert record.commit() == ("m1", 2048)

    def test_tx_commit_bad_size(self):
        record = parse_line(report("tx-commit", "sess", "m1", "big"))
        with pytest.raises(ProtocolError):
            record.commit()

    def test_event_without_params(self):
        record = parse_line(report("link-disconnect", "sess"))
        assert record.params == ""

    def test_short_line(self):
        with pytest.raises(ProtocolError):
            parse_line("report|0.7|1700000000.0|smtp-in")

    def test_bad_version(self):
        with pytest.raises(ProtocolError):
            parse_line("report|x.y|1700000000.0|smtp-in|tx-begin|sess|m1")

    def test_bad_timestamp(self):
        with pytest.raises(ProtocolError):
            parse_line("report|0.7|yesterday|smtp-in|tx-begin|sess|m1")


class TestParseFilter:
    def test_data_line(self):
        record = parse_line(data_line("sess", "tok", "Subject: hello"))
        assert isinstance(record, FilterRequest)
        assert record.phase == "data-line"
        assert record.session_id == "sess"
        assert record.token == "tok"
        assert record.params == "Subject: hello"

    def test_data_line_keeps_pipes(self):
        record = parse_line(data_line("sess", "tok", "a|b||c"))
        assert record.params == "a|b||c"

    def test_empty_data_line(self):
        record = parse_line(data_line("sess", "tok", ""))
        assert record.params == ""

    def test_legacy_token_order(self):
        record = parse_line("filter|0.4|1700000000.0|smtp-in|data-line|tok|sess|line")
        assert record.session_id == "sess"
        assert record.token == "tok"

    def test_short_line(self):
        with pytest.raises(ProtocolError):
            parse_line("filter|0.7|1700000000.0|smtp-in|data-line")


class TestFormat:
    def test_dataline_response(self):
        request = parse_line(data_line("sess", "tok", "x"))
        assert format_dataline(request, "X-Address-Book: work") == (
            "filter-dataline|sess|tok|X-Address-Book: work"
        )

    def test_legacy_dataline_response(self):
        request = parse_line("filter|0.4|1700000000.0|smtp-in|data-line|tok|sess|x")
        assert format_dataline(request, "x") == "filter-dataline|tok|sess|x"

    def test_registration(self):
        lines = registration_lines()
        assert "register|report|smtp-in|tx-begin" in lines
        assert "register|report|smtp-in|link-disconnect" in lines
        assert "register|filter|smtp-in|data-line" in lines
        assert lines[-1] == "register|ready"


def test_unknown_record_type():
    with pytest.raises(ProtocolError):
        parse_line("hello|world")


def test_parse_version():
    assert parse_version("0.7") == (0, 7)
    assert parse_version("0.10") > parse_version("0.7")
