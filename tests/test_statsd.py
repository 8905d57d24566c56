"""Tests for DogStatsD formatting and UDP emission."""

import socket

import pytest

from tracetail.normalize import build_tags, normalize
from tracetail.records import AccessLogRecord
from tracetail.statsd import StatsdClient, format_metric, request_metrics

from conftest import drain


def _request(status=200, duration_ns=12_500_000):
    return normalize(AccessLogRecord(RequestHost="api.example.com", RequestMethod="GET",
                                     DownstreamStatus=status, Duration=duration_ns))


class TestFormat:
    def test_counter(self):
        assert format_metric("a.b", 1, "c", ["x:1", "y:2"]) == "a.b:1|c|#x:1,y:2"

    def test_float_two_decimals_with_extra_tag(self):
        line = format_metric("a.b", 12.3456, "h", ["x:1"], ["status:200"])
        assert line == "a.b:12.35|h|#x:1,status:200"


class TestRequestMetrics:
    def test_success_emits_five(self, config):
        req = _request(200)
        lines = request_metrics(req, build_tags(req, config))
        names = [l.split(":", 1)[0] for l in lines]
        assert names == [
            "trace.traefik.request.hits",
            "trace.traefik.request.hits.by_http_status",
            "trace.traefik.request.duration",
            "trace.traefik.request.duration.by_http_status",
            "trace.traefik.request.apdex",
        ]
        assert not any("errors" in n for n in names)

    def test_404_emits_error_counters(self, config):
        req = _request(404)
        lines = request_metrics(req, build_tags(req, config))
        errors = [l for l in lines if l.startswith("trace.traefik.request.errors")]
        assert len(errors) == 2
        assert errors[0].startswith("trace.traefik.request.errors:1|c|#")
        assert errors[1].startswith("trace.traefik.request.errors.by_http_status:1|c|#")
        assert errors[1].endswith(",status:404")

    def test_values(self, config):
        req = _request(200, duration_ns=12_500_000)
        lines = request_metrics(req, build_tags(req, config))
        assert lines[2].startswith("trace.traefik.request.duration:12.50|h|#peer.hostname:api.example.com,")
        assert lines[4].startswith("trace.traefik.request.apdex:1.00|g|#")


class TestStatsdClient:
    def test_sends_one_datagram_per_metric(self, statsd, udp_receiver, config):
        req = _request(500)
        sent = statsd.emit(req, build_tags(req, config))
        received = drain(udp_receiver)

        assert sent == 7
        assert len(received) == 7
        assert all(d.endswith("\n") for d in received)
        assert received[0].startswith("trace.traefik.request.hits:1|c|#")

    def test_send_failure_is_logged_and_not_raised(self, statsd, caplog):
        statsd._sock.close()
        assert statsd.send("trace.traefik.request.hits:1|c|#a:b") is False
        assert statsd.failed == 1
        assert "Failed to send metric" in caplog.text

    def test_emit_continues_after_failure(self, udp_receiver, config):
        host, port = udp_receiver.getsockname()
        client = StatsdClient(host, port)
        calls = []
        original = client.send

        def flaky(line):
            calls.append(line)
            if len(calls) == 1:
                client.failed += 1
                return False
            return original(line)

        client.send = flaky
        req = _request(200)
        assert client.emit(req, build_tags(req, config)) == 4
        assert len(calls) == 5
        assert len(drain(udp_receiver)) == 4
        client.close()

    def test_unresolvable_host_is_fatal(self):
        with pytest.raises(OSError):
            StatsdClient("no-such-host.invalid", 8127)
