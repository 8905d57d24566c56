from __future__ import annotations

from dataclasses import dataclass
from typing import List

from tracetail.config import Config
from tracetail.records import AccessLogRecord

UNKNOWN_HOST = "unknown"
_TAG_UNSAFE = (",", "|", "\n")


@dataclass(frozen=True)
class NormalizedRequest:
    hostname: str
    method: str
    path: str
    status_code: int
    duration_ns: int
    duration_ms: float
    is_error: bool
    apdex_score: float


def apdex_score(duration_s: float, threshold: float) -> float:
    """1.0 satisfied, 0.5 tolerating (up to 4x threshold), 0.0 frustrated."""
    if duration_s <= threshold:
        return 1.0
    if duration_s <= threshold * 4:
        return 0.5
    return 0.0


def normalize(record: AccessLogRecord, apdex_threshold: float = 0.5) -> NormalizedRequest:
    hostname = record.request_host or record.request_addr or UNKNOWN_HOST
    status = record.downstream_status or record.origin_status or 0
    duration_ns = max(record.duration, 0)

    return NormalizedRequest(
        hostname=hostname,
        method=record.request_method,
        path=record.request_path,
        status_code=status,
        duration_ns=duration_ns,
        duration_ms=duration_ns / 1e6,
        is_error=status >= 400,
        apdex_score=apdex_score(duration_ns / 1e9, apdex_threshold),
    )


def sanitize_tag_value(value: str) -> str:
    # DogStatsD uses these as field/tag delimiters
    for ch in _TAG_UNSAFE:
        value = value.replace(ch, "_")
    return value


def build_tags(request: NormalizedRequest, config: Config) -> List[str]:
    """
    Tag order and names follow the nginx-era dashboards; resource_name
    duplicates the hostname on purpose.
    """
    host = sanitize_tag_value(request.hostname)
    return [
        f"peer.hostname:{host}",
        f"http.status_code:{request.status_code}",
        f"resource_name:{host}",
        f"http.method:{sanitize_tag_value(request.method)}",
        f"service:{sanitize_tag_value(config.service_name)}",
        f"env:{sanitize_tag_value(config.environment)}",
        f"version:{sanitize_tag_value(config.version)}",
    ]
