from __future__ import annotations

import time
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from tracetail.config import Config
from tracetail.pipeline import Pipeline
from tracetail.records import AccessLogRecord
from tracetail.statsd import StatsdClient
from tracetail.traces import TraceExporter


class TelemetryMiddleware(BaseHTTPMiddleware):
    """
    In-process variant of the sidecar: times each request and pushes it
    through the same metrics/trace path as a Traefik access log line.
    """
    def __init__(self, app, pipeline: Pipeline):
        super().__init__(app)
        self.pipeline = pipeline

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter_ns()
        status = 500
        try:
            resp = await call_next(request)
            status = resp.status_code
            return resp
        finally:
            record = AccessLogRecord(
                Duration=time.perf_counter_ns() - start,
                ClientHost=request.client.host if request.client else "",
                RequestHost=request.url.hostname or "",
                RequestAddr=request.headers.get("host", ""),
                RequestMethod=request.method,
                RequestPath=request.url.path,
                RequestScheme=request.url.scheme,
                DownstreamStatus=int(status),
            )
            self.pipeline.handle_record(record)


def install_telemetry(
    app,
    *,
    config: Config,
    statsd: StatsdClient,
    exporter: Optional[TraceExporter] = None,
) -> Pipeline:
    pipeline = Pipeline(config, statsd, exporter)
    app.add_middleware(TelemetryMiddleware, pipeline=pipeline)
    return pipeline
