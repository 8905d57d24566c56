from __future__ import annotations

import math
import os
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

# ----------------------------
# Defaults
# ----------------------------
DEFAULT_DOGSTATSD_ADDRESS = "datadog-apm.datadog.svc:8127"
DOGSTATSD_PORT = 8127
OTLP_HTTP_PORT = 4318
STDIN_SENTINEL = "-"


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class Config:
    dogstatsd_address: str = DEFAULT_DOGSTATSD_ADDRESS
    otlp_endpoint: str = f"http://datadog-apm.datadog.svc:{OTLP_HTTP_PORT}/v1/traces"
    service_name: str = "traefik"
    environment: str = "staging"
    version: str = "3.6.7"
    log_file: str = "/var/log/traefik/access.log"
    apdex_threshold: float = 0.5
    log_level: str = "INFO"
    trace_workers: int = 4
    trace_queue_size: int = 10000
    trace_timeout: float = 10.0
    poll_interval: float = 0.1
    retry_interval: float = 5.0

    @property
    def reads_stdin(self) -> bool:
        return self.log_file == STDIN_SENTINEL

    def statsd_host_port(self) -> Tuple[str, int]:
        return split_host_port(self.dogstatsd_address, DOGSTATSD_PORT)


def split_host_port(address: str, default_port: int) -> Tuple[str, int]:
    """
    "host:port" -> ("host", port); "host" -> ("host", default_port).
    Bracketed IPv6 literals ("[::1]:8127") are unwrapped.
    """
    address = address.strip()
    if not address:
        raise ConfigError("empty address")

    if address.startswith("["):
        host, sep, rest = address[1:].partition("]")
        if not sep:
            raise ConfigError(f"invalid address: {address!r}")
        port_part = rest[1:] if rest.startswith(":") else ""
    elif address.count(":") == 1:
        host, port_part = address.split(":", 1)
    else:
        host, port_part = address, ""

    if not port_part:
        return host, default_port
    try:
        port = int(port_part)
    except ValueError:
        raise ConfigError(f"invalid port in address: {address!r}") from None
    if not 0 < port < 65536:
        raise ConfigError(f"port out of range in address: {address!r}")
    return host, port


def _get(env: Mapping[str, str], key: str, default: str) -> str:
    val = env.get(key, "")
    return val.strip() if val and val.strip() else default


def _get_number(env: Mapping[str, str], key: str, default, cast):
    raw = _get(env, key, "")
    if not raw:
        return default
    try:
        val = cast(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from None
    if not math.isfinite(val) or val <= 0:
        raise ConfigError(f"{key} must be a positive finite number, got {raw!r}")
    return val


def load_config(environ: Optional[Mapping[str, str]] = None) -> Config:
    """Build the process-wide Config. Empty variables count as unset."""
    env = os.environ if environ is None else environ

    address = _get(env, "DOGSTATSD_ADDRESS", DEFAULT_DOGSTATSD_ADDRESS)
    host, port = split_host_port(address, DOGSTATSD_PORT)
    display_host = f"[{host}]" if ":" in host else host

    return Config(
        dogstatsd_address=f"{display_host}:{port}",
        otlp_endpoint=_get(env, "OTLP_ENDPOINT", f"http://{display_host}:{OTLP_HTTP_PORT}/v1/traces"),
        service_name=_get(env, "SERVICE_NAME", Config.service_name),
        environment=_get(env, "ENVIRONMENT", Config.environment),
        version=_get(env, "VERSION", Config.version),
        log_file=_get(env, "LOG_FILE", Config.log_file),
        apdex_threshold=_get_number(env, "APDEX_THRESHOLD", Config.apdex_threshold, float),
        log_level=_get(env, "LOG_LEVEL", Config.log_level).upper(),
        trace_workers=_get_number(env, "TRACE_WORKERS", Config.trace_workers, int),
        trace_queue_size=_get_number(env, "TRACE_QUEUE_SIZE", Config.trace_queue_size, int),
        trace_timeout=_get_number(env, "TRACE_TIMEOUT", Config.trace_timeout, float),
        poll_interval=_get_number(env, "POLL_INTERVAL", Config.poll_interval, float),
        retry_interval=_get_number(env, "RETRY_INTERVAL", Config.retry_interval, float),
    )
