import json
import socket

import pytest

from tracetail.config import Config
from tracetail.statsd import StatsdClient


class FakeResponse:
    def __init__(self, status_code=200):
        self.status_code = status_code


class FakeSession:
    """Records posts instead of talking to a collector."""

    def __init__(self, status_code=200, exc=None):
        self.status_code = status_code
        self.exc = exc
        self.posts = []
        self.closed = False

    def post(self, url, json=None, timeout=None):
        self.posts.append({"url": url, "json": json, "timeout": timeout})
        if self.exc is not None:
            raise self.exc
        return FakeResponse(self.status_code)

    def close(self):
        self.closed = True


def make_line(**fields):
    base = {
        "Duration": 12_500_000,
        "RequestHost": "api.example.com",
        "RequestAddr": "api.example.com",
        "RequestMethod": "GET",
        "RequestPath": "/health",
        "DownstreamStatus": 200,
        "OriginStatus": 200,
    }
    base.update(fields)
    return json.dumps(base)


@pytest.fixture
def config():
    return Config(
        dogstatsd_address="127.0.0.1:8127",
        otlp_endpoint="http://127.0.0.1:4318/v1/traces",
        service_name="traefik-test",
        environment="test",
        version="1.2.3",
        trace_workers=1,
        trace_queue_size=100,
        trace_timeout=2.0,
    )


@pytest.fixture
def udp_receiver():
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("127.0.0.1", 0))
    sock.settimeout(2.0)
    yield sock
    sock.close()


@pytest.fixture
def statsd(udp_receiver):
    host, port = udp_receiver.getsockname()
    client = StatsdClient(host, port)
    yield client
    client.close()


def drain(sock, timeout=0.3):
    """Collect every datagram currently waiting on the socket."""
    out = []
    sock.settimeout(timeout)
    while True:
        try:
            data, _ = sock.recvfrom(65536)
        except socket.timeout:
            return out
        out.append(data.decode("utf-8"))
