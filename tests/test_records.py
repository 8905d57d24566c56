"""Tests for access log decoding."""

import logging

from tracetail.records import decode_line, truncate

from conftest import make_line


class TestDecodeLine:
    def test_decodes_traefik_fields(self):
        rec = decode_line(make_line(Duration=1500, RouterName="web@docker", Extra="ignored"))
        assert rec is not None
        assert rec.duration == 1500
        assert rec.request_host == "api.example.com"
        assert rec.request_method == "GET"
        assert rec.downstream_status == 200
        assert rec.router_name == "web@docker"

    def test_missing_fields_default(self):
        rec = decode_line("{}")
        assert rec.request_host == ""
        assert rec.duration == 0
        assert rec.downstream_status == 0

    def test_malformed_json_returns_none(self, caplog):
        with caplog.at_level(logging.WARNING, logger="tracetail.records"):
            assert decode_line("{not json") is None
        assert len(caplog.records) == 1
        assert "Failed to parse access log line" in caplog.records[0].getMessage()

    def test_wrong_type_returns_none(self, caplog):
        with caplog.at_level(logging.WARNING, logger="tracetail.records"):
            assert decode_line('{"Duration": "slow"}') is None
            assert decode_line("[1, 2, 3]") is None
        assert len(caplog.records) == 2

    def test_diagnostic_is_truncated(self, caplog):
        line = "x" * 200
        with caplog.at_level(logging.WARNING, logger="tracetail.records"):
            decode_line(line)
        msg = caplog.records[0].getMessage()
        assert "x" * 80 + "..." in msg
        assert "x" * 81 not in msg


class TestTruncate:
    def test_short_text_unchanged(self):
        assert truncate("abc", 80) == "abc"

    def test_long_text_gets_marker(self):
        assert truncate("abcdef", 3) == "abc..."
