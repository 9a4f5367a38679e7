"""
Log sinks: Cloud Logging (remote) and JSON lines on stdout (local fallback).

Both sinks accept the same `LogRecord`; the stdout sink emits the special
`logging.googleapis.com/*` keys so that, on Cloud Run / Cloud Functions, the
platform agent still correlates stdout records with the request trace.
"""

from __future__ import annotations

import json
import sys
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Optional, Protocol

from google.cloud import logging as cloud_logging

from logrelay.logv2.severity import Severity


@dataclass(frozen=True, slots=True)
class LogRecord:
    severity: Severity
    log_name: str
    message: str
    payload: Optional[dict[str, Any]]
    labels: Mapping[str, str]
    timestamp: datetime
    trace_id: Optional[str] = None
    span_id: Optional[str] = None
    execution_id: Optional[str] = None


class Sink(Protocol):
    def write(self, record: LogRecord) -> None: ...

    def close(self) -> None: ...


def trace_resource(project_id: Optional[str], trace_id: str) -> str:
    if project_id:
        return f"projects/{project_id}/traces/{trace_id}"
    return trace_id


def _struct_body(record: LogRecord) -> dict[str, Any]:
    body: dict[str, Any] = {"message": record.message}
    if record.payload is not None:
        body["payload"] = record.payload
    return body


class StdoutJsonSink:
    """
    One JSON object per line on stdout.

    The stream is resolved at write time (not captured at construction) so
    redirected/captured stdout keeps working.
    """

    def __init__(self, *, project_id: Optional[str] = None, stream: Any = None) -> None:
        self.project_id = project_id
        self._stream = stream
        self._lock = threading.Lock()

    def to_json(self, record: LogRecord) -> dict[str, Any]:
        obj: dict[str, Any] = {
            "timestamp": record.timestamp.isoformat(),
            "severity": record.severity.name,
            "logName": record.log_name,
            **_struct_body(record),
        }
        if record.labels:
            obj["labels"] = dict(record.labels)
            obj["logging.googleapis.com/labels"] = dict(record.labels)
        if record.trace_id:
            obj["logging.googleapis.com/trace"] = trace_resource(self.project_id, record.trace_id)
        if record.span_id:
            obj["logging.googleapis.com/spanId"] = record.span_id
        if record.execution_id:
            obj["execution_id"] = record.execution_id
        return obj

    def write(self, record: LogRecord) -> None:
        line = json.dumps(self.to_json(record), separators=(",", ":"), ensure_ascii=False, default=str)
        stream = self._stream or sys.stdout
        with self._lock:
            stream.write(line + "\n")
            try:
                stream.flush()
            except Exception:
                pass

    def close(self) -> None:
        # stdout is not ours to close.
        return


class CloudLoggingSink:
    """
    Google Cloud Logging sink (`google-cloud-logging`), writing structured entries.

    The client is created here and owned by this sink; `close()` releases it.
    """

    def __init__(self, *, project_id: str, log_name: str, client: Any = None) -> None:
        self.project_id = str(project_id)
        self.log_name = str(log_name)
        if client is None:
            client = cloud_logging.Client(project=self.project_id)
        self._client = client
        self._logger = client.logger(self.log_name)

    def write(self, record: LogRecord) -> None:
        labels = dict(record.labels)
        if record.execution_id:
            labels["execution_id"] = record.execution_id
        kw: dict[str, Any] = {
            "severity": record.severity.name,
            "timestamp": record.timestamp,
        }
        if labels:
            kw["labels"] = labels
        if record.trace_id:
            kw["trace"] = trace_resource(self.project_id, record.trace_id)
        if record.span_id:
            kw["span_id"] = record.span_id
        # Round-trip through JSON so arbitrary values become protobuf-Struct friendly.
        info = json.loads(json.dumps(_struct_body(record), default=str))
        self._logger.log_struct(info, **kw)

    def close(self) -> None:
        """
        Best-effort shutdown of the client transport.
        """
        client = getattr(self, "_client", None)
        if client is None:
            return
        self._client = None
        try:
            close = getattr(client, "close", None)
            if callable(close):
                close()
        except Exception:
            pass
