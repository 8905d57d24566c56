from __future__ import annotations

import logging
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)

PREVIEW_CHARS = 80


# ----------------------------
# Traefik access log schema
# ----------------------------
class AccessLogRecord(BaseModel):
    """
    One line of Traefik's JSON access log (accessLog.format=json).
    Only the fields the pipeline reads are modelled; everything else is ignored.
    """
    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    start_utc: str = Field(default="", alias="StartUTC")
    start_local: str = Field(default="", alias="StartLocal")
    duration: int = Field(default=0, alias="Duration")           # nanoseconds
    client_host: str = Field(default="", alias="ClientHost")
    request_host: str = Field(default="", alias="RequestHost")
    request_addr: str = Field(default="", alias="RequestAddr")   # Traefik sometimes only fills this
    request_method: str = Field(default="", alias="RequestMethod")
    request_path: str = Field(default="", alias="RequestPath")
    request_protocol: str = Field(default="", alias="RequestProtocol")
    request_scheme: str = Field(default="", alias="RequestScheme")
    downstream_status: int = Field(default=0, alias="DownstreamStatus")
    origin_status: int = Field(default=0, alias="OriginStatus")
    router_name: str = Field(default="", alias="RouterName")
    service_name: str = Field(default="", alias="ServiceName")


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def _error_summary(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    loc = ".".join(str(p) for p in first.get("loc", ())) or "line"
    more = f" (+{len(errors) - 1} more)" if len(errors) > 1 else ""
    return f"{loc}: {first.get('msg')}{more}"


def decode_line(line: str) -> Optional[AccessLogRecord]:
    """
    Parse one trimmed access log line. Malformed input is logged once
    and dropped so the caller can move on to the next line.
    """
    try:
        return AccessLogRecord.model_validate_json(line)
    except ValidationError as exc:
        logger.warning(
            "Failed to parse access log line: %s (first %d chars: %r)",
            _error_summary(exc), PREVIEW_CHARS, truncate(line, PREVIEW_CHARS),
        )
        return None
