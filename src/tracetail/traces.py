from __future__ import annotations

import logging
import queue
import secrets
import threading
import time
import uuid
from typing import Any, Dict, List, Optional, Tuple

import requests

from tracetail.config import Config
from tracetail.normalize import NormalizedRequest

logger = logging.getLogger(__name__)

SPAN_KIND_INTERNAL = 1
STATUS_UNSET = 0

_STOP = object()


def new_trace_id() -> str:
    return uuid.uuid4().hex


def new_span_id() -> str:
    return secrets.token_hex(8)


def _str_attr(key: str, value: str) -> Dict[str, Any]:
    return {"key": key, "value": {"stringValue": value}}


def build_trace_payload(request: NormalizedRequest, config: Config, end_ns: int) -> Dict[str, Any]:
    """
    OTLP/JSON document with a single span. The span name and http.route
    carry the hostname so the backend uses it as the resource name.
    HTTP errors stay in attributes; the span status is never an error.
    """
    start_ns = end_ns - request.duration_ns
    route = request.hostname

    return {
        "resourceSpans": [{
            "resource": {
                "attributes": [
                    _str_attr("service.name", config.service_name),
                    _str_attr("service.version", config.version),
                    _str_attr("deployment.environment", config.environment),
                ],
            },
            "scopeSpans": [{
                "scope": {"name": "tracetail"},
                "spans": [{
                    "traceId": new_trace_id(),
                    "spanId": new_span_id(),
                    "name": f"{request.method} {route}",
                    "kind": SPAN_KIND_INTERNAL,
                    "startTimeUnixNano": str(start_ns),
                    "endTimeUnixNano": str(end_ns),
                    "attributes": [
                        _str_attr("http.method", request.method),
                        _str_attr("http.route", route),
                        _str_attr("http.url", request.path),
                        _str_attr("peer.hostname", request.hostname),
                        _str_attr("resource_name", request.hostname),
                        {"key": "http.status_code", "value": {"intValue": str(request.status_code)}},
                        {"key": "http.request.duration", "value": {"doubleValue": request.duration_ms}},
                        _str_attr("service", config.service_name),
                        _str_attr("env", config.environment),
                        _str_attr("version", config.version),
                    ],
                    "status": {"code": STATUS_UNSET},
                }],
            }],
        }],
    }


class TraceExporter:
    """
    Fire-and-forget OTLP/HTTP exporter. submit() only enqueues; a small
    pool of daemon threads builds and posts the spans. The queue is bounded
    and drops the oldest pending span when full.
    """
    def __init__(self, config: Config, session: Optional[requests.Session] = None):
        self.config = config
        self.url = config.otlp_endpoint
        self.timeout = config.trace_timeout
        self.session = session or requests.Session()
        self.q: "queue.Queue[Any]" = queue.Queue(maxsize=config.trace_queue_size)
        self.dropped = 0
        self.sent = 0
        self.failed = 0
        self._stats_lock = threading.Lock()
        self._threads: List[threading.Thread] = []
        for i in range(config.trace_workers):
            t = threading.Thread(target=self._worker, name=f"trace-export-{i}", daemon=True)
            t.start()
            self._threads.append(t)

    def submit(self, request: NormalizedRequest) -> None:
        item: Tuple[NormalizedRequest, int] = (request, time.time_ns())
        while True:
            try:
                self.q.put_nowait(item)
                return
            except queue.Full:
                pass
            try:
                self.q.get_nowait()
                self.q.task_done()
            except queue.Empty:
                continue
            with self._stats_lock:
                self.dropped += 1
            logger.debug("Trace queue full, dropped oldest pending span")

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait until every queued span was handled. False on timeout."""
        deadline = None if timeout is None else time.monotonic() + timeout
        with self.q.all_tasks_done:
            while self.q.unfinished_tasks:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return False
                self.q.all_tasks_done.wait(remaining)
        return True

    def close(self, timeout: float = 5.0) -> None:
        """
        Give pending spans up to `timeout` seconds, then abandon the rest.
        Workers still stuck in a post are daemon threads and are left behind.
        """
        deadline = time.monotonic() + timeout
        if not self.flush(timeout):
            abandoned = self._discard_pending()
            logger.warning("Trace exporter closing with %d spans still pending; dropped", abandoned)
        for _ in self._threads:
            try:
                self.q.put_nowait(_STOP)
            except queue.Full:
                break
        for t in self._threads:
            t.join(timeout=max(0.0, deadline - time.monotonic()))
        self.session.close()

    def _discard_pending(self) -> int:
        count = 0
        while True:
            try:
                self.q.get_nowait()
            except queue.Empty:
                break
            self.q.task_done()
            count += 1
        with self._stats_lock:
            self.dropped += count
        return count

    def export(self, request: NormalizedRequest, end_ns: int) -> bool:
        payload = build_trace_payload(request, self.config, end_ns)
        try:
            resp = self.session.post(self.url, json=payload, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.warning("Failed to send trace for %s: %s", request.hostname, exc)
            return False
        if not 200 <= resp.status_code < 300:
            logger.warning("OTLP endpoint returned non-OK status: %d", resp.status_code)
            return False
        logger.debug("Sent trace %s %s (%d)", request.method, request.hostname, request.status_code)
        return True

    def _worker(self):
        while True:
            item = self.q.get()
            try:
                if item is _STOP:
                    return
                ok = self.export(*item)
                with self._stats_lock:
                    if ok:
                        self.sent += 1
                    else:
                        self.failed += 1
            except Exception:
                with self._stats_lock:
                    self.failed += 1
                logger.exception("Trace export crashed; continuing")
            finally:
                self.q.task_done()
