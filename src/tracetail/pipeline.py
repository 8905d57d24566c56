from __future__ import annotations

import logging
from typing import Iterable, Optional

from tracetail.config import Config
from tracetail.normalize import NormalizedRequest, build_tags, normalize
from tracetail.records import AccessLogRecord, decode_line
from tracetail.statsd import StatsdClient
from tracetail.traces import TraceExporter

logger = logging.getLogger(__name__)


class Pipeline:
    """decode -> normalize -> metrics (sync) -> trace (detached), one line at a time."""

    def __init__(self, config: Config, statsd: StatsdClient, exporter: Optional[TraceExporter] = None):
        self.config = config
        self.statsd = statsd
        self.exporter = exporter
        self.processed = 0
        self.skipped = 0
        self._announced = False

    def handle_record(self, record: AccessLogRecord) -> NormalizedRequest:
        request = normalize(record, self.config.apdex_threshold)
        tags = build_tags(request, self.config)

        if not self._announced:
            self._announced = True
            logger.info(
                "First access log line processed, sending metrics/traces to Datadog (hostname=%s)",
                request.hostname,
            )

        self.statsd.emit(request, tags)
        if self.exporter is not None:
            self.exporter.submit(request)
        self.processed += 1
        return request

    def process_line(self, line: str) -> bool:
        record = decode_line(line)
        if record is None:
            self.skipped += 1
            return False
        self.handle_record(record)
        return True

    def run(self, lines: Iterable[str]) -> None:
        for line in lines:
            self.process_line(line)
        logger.info("Input ended: %d lines processed, %d skipped", self.processed, self.skipped)
