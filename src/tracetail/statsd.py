"""DogStatsD metric emitter: one UDP datagram per metric line."""

from __future__ import annotations

import logging
import socket
from typing import Iterable, List, Sequence, Union

from tracetail.normalize import NormalizedRequest
from tracetail.records import truncate

logger = logging.getLogger(__name__)

METRIC_PREFIX = "trace.traefik.request"

COUNTER = "c"
GAUGE = "g"
HISTOGRAM = "h"


def format_metric(
    name: str,
    value: Union[int, float],
    kind: str,
    tags: Sequence[str],
    extra: Iterable[str] = (),
) -> str:
    """name:value|kind|#tag1,tag2,... (floats with two decimals)."""
    rendered = f"{value:.2f}" if isinstance(value, float) else str(value)
    all_tags = ",".join([*tags, *extra])
    return f"{name}:{rendered}|{kind}|#{all_tags}"


def request_metrics(request: NormalizedRequest, tags: Sequence[str]) -> List[str]:
    status = (f"status:{request.status_code}",)
    lines = [
        format_metric(f"{METRIC_PREFIX}.hits", 1, COUNTER, tags),
        format_metric(f"{METRIC_PREFIX}.hits.by_http_status", 1, COUNTER, tags, status),
        format_metric(f"{METRIC_PREFIX}.duration", request.duration_ms, HISTOGRAM, tags),
        format_metric(f"{METRIC_PREFIX}.duration.by_http_status", request.duration_ms, HISTOGRAM, tags, status),
        format_metric(f"{METRIC_PREFIX}.apdex", request.apdex_score, GAUGE, tags),
    ]
    if request.is_error:
        lines.append(format_metric(f"{METRIC_PREFIX}.errors", 1, COUNTER, tags))
        lines.append(format_metric(f"{METRIC_PREFIX}.errors.by_http_status", 1, COUNTER, tags, status))
    return lines


class StatsdClient:
    """
    Connected UDP socket to the agent. Construction resolves the address,
    so a bad DOGSTATSD_ADDRESS surfaces as OSError at startup.
    """
    def __init__(self, host: str, port: int):
        family, socktype, proto, _, sockaddr = socket.getaddrinfo(
            host, port, 0, socket.SOCK_DGRAM
        )[0]
        self.address = sockaddr
        self._sock = socket.socket(family, socktype, proto)
        try:
            self._sock.connect(sockaddr)
        except OSError:
            self._sock.close()
            raise
        self.sent = 0
        self.failed = 0
        logger.info("DogStatsD client connected to %s:%s", sockaddr[0], sockaddr[1])

    def send(self, line: str) -> bool:
        try:
            self._sock.send((line + "\n").encode("utf-8"))
        except OSError as exc:
            self.failed += 1
            logger.warning("Failed to send metric to DogStatsD: %s (metric=%s)", exc, truncate(line, 80))
            return False
        self.sent += 1
        return True

    def emit(self, request: NormalizedRequest, tags: Sequence[str]) -> int:
        """Best effort: every line is sent even if an earlier one failed."""
        ok = 0
        for line in request_metrics(request, tags):
            if self.send(line):
                ok += 1
        return ok

    def close(self) -> None:
        self._sock.close()
