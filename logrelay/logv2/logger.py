"""
Request-scoped structured logger.

Usage:
    cfg = LoggerConfig(log_name="my-fn", invoker="my-fn", common_labels={"service": "my-fn"})
    with StructuredLogger.from_config(cfg) as log:
        req_log = log.for_request(request.headers)
        req_log.info("handled", {"items": 3})
        req_log.error("upstream failed", exc)

Leveled calls never raise: sink failures fall back to stdout and notifier
failures are swallowed (both are reported through stdlib logging).
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from logrelay.common.env import clean_text
from logrelay.logv2.config import LoggerConfig, LoggerConfigError, resolve_project_id
from logrelay.logv2.correlation import CorrelationContext, current_correlation, extract_correlation
from logrelay.logv2.redaction import redact_credentials, stringify_errors
from logrelay.logv2.severity import Severity, parse_severity
from logrelay.logv2.sinks import CloudLoggingSink, LogRecord, Sink, StdoutJsonSink


_log = logging.getLogger(__name__)

_MAX_MESSAGE_LEN = 8000


def _error_payload(err: BaseException) -> dict[str, Any]:
    return {"error": str(err), "error_type": type(err).__name__}


def build_payload(data: Any) -> Optional[dict[str, Any]]:
    """
    Normalize caller data into a JSON-encodable mapping (or None).

    Exceptions are always stringified, never serialized as objects.
    """
    if data is None:
        return None
    if isinstance(data, BaseException):
        return _error_payload(data)
    if isinstance(data, Mapping):
        return stringify_errors(data)
    return {"data": stringify_errors(data)}


class StructuredLogger:
    """
    Shared, process-lifetime logger. Owns its sink exclusively.
    """

    def __init__(self, config: LoggerConfig, sink: Sink, *, project_id: Optional[str] = None) -> None:
        self.config = config
        self.project_id = project_id
        self._sink: Sink = sink
        self._fallback = sink if isinstance(sink, StdoutJsonSink) else StdoutJsonSink(project_id=project_id)
        self._closed = False
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: Optional[LoggerConfig] = None, *, cloud_client: Any = None) -> "StructuredLogger":
        """
        Build a logger, preferring Cloud Logging and falling back to stdout JSON.

        Raises LoggerConfigError only when `require_remote_sink` is set and the
        remote sink cannot be built.
        """
        cfg = config or LoggerConfig()

        if cfg.stdout_only:
            if cfg.require_remote_sink:
                raise LoggerConfigError("stdout_only and require_remote_sink are mutually exclusive")
            project_id = resolve_project_id(cfg, autodetect=False)
            return cls(cfg, StdoutJsonSink(project_id=project_id), project_id=project_id)

        project_id = resolve_project_id(cfg)
        if not project_id:
            if cfg.require_remote_sink:
                raise LoggerConfigError(
                    "No GCP project id: set LOG_PROJECT_ID / GOOGLE_CLOUD_PROJECT or configure ADC"
                )
            _log.info("logv2.stdout_fallback reason=no_project_id log_name=%s", cfg.log_name)
            return cls(cfg, StdoutJsonSink(), project_id=None)

        try:
            sink: Sink = CloudLoggingSink(project_id=project_id, log_name=cfg.log_name, client=cloud_client)
        except Exception as e:
            if cfg.require_remote_sink:
                raise LoggerConfigError(f"Cloud Logging client unavailable for project {project_id}: {e}") from e
            _log.warning("logv2.stdout_fallback reason=remote_sink_failed project_id=%s", project_id, exc_info=True)
            sink = StdoutJsonSink(project_id=project_id)
        return cls(cfg, sink, project_id=project_id)

    @property
    def is_remote(self) -> bool:
        return isinstance(self._sink, CloudLoggingSink)

    @property
    def closed(self) -> bool:
        return self._closed

    # ---- emission ----

    def _labels(self, labels: Optional[Mapping[str, Any]]) -> dict[str, str]:
        merged: dict[str, str] = {}
        if self.config.invoker:
            merged["invoker"] = self.config.invoker
        merged.update(self.config.common_labels)
        if labels:
            for k, v in labels.items():
                merged[clean_text(k, max_len=63)] = clean_text(v, max_len=256)
        return merged

    def _write(self, record: LogRecord) -> None:
        sink = self._sink
        try:
            sink.write(record)
            return
        except Exception:
            _log.warning("logv2.sink_write_failed log_name=%s", record.log_name, exc_info=True)
        if sink is self._fallback:
            return
        try:
            self._fallback.write(record)
        except Exception:
            _log.warning("logv2.fallback_write_failed", exc_info=True)

    def _notify(self, record: LogRecord) -> None:
        notifier = self.config.notifier
        if notifier is None or record.severity < self.config.notify_threshold:
            return
        try:
            notifier.notify(record.severity, record.execution_id, record.message, record.payload)
        except Exception:
            # Logging must never fail because a side-channel alert failed.
            _log.warning(
                "logv2.notifier_failed severity=%s execution_id=%s",
                record.severity.name,
                record.execution_id,
                exc_info=True,
            )

    def emit(
        self,
        severity: Any,
        message: Any,
        data: Any,
        correlation: CorrelationContext,
        labels: Optional[Mapping[str, Any]] = None,
        *,
        notify: bool = True,
    ) -> None:
        """
        Build one record with an explicit correlation and write it.

        `notify=False` skips the notifier for this record only.
        """
        sev = parse_severity(severity)
        if sev < self.config.min_severity:
            return
        try:
            payload = build_payload(data)
            if payload is not None and self.config.redact_payload:
                payload = redact_credentials(payload)
            text = "" if message is None else str(message)
            record = LogRecord(
                severity=sev,
                log_name=self.config.log_name,
                message=text[:_MAX_MESSAGE_LEN],
                payload=payload,
                labels=self._labels(labels),
                timestamp=datetime.now(timezone.utc),
                trace_id=correlation.trace_id,
                span_id=correlation.span_id,
                execution_id=correlation.execution_id,
            )
        except Exception:
            _log.warning("logv2.record_build_failed", exc_info=True)
            return
        self._write(record)
        if notify:
            self._notify(record)

    def log(
        self,
        severity: Any,
        message: Any,
        data: Any = None,
        *,
        request: Any = None,
        labels: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """
        Log at `severity`. Correlation comes from `request` (headers mapping or
        an object with `.headers`); without one, the ambient correlation bound
        via `bind_correlation` is used (empty by default).
        """
        if request is not None:
            correlation = extract_correlation(request, self.config.execution_id_headers)
        else:
            correlation = current_correlation()
        self.emit(severity, message, data, correlation, labels)

    def debug(self, message: Any, data: Any = None, *, request: Any = None, labels: Optional[Mapping[str, Any]] = None) -> None:
        self.log(Severity.DEBUG, message, data, request=request, labels=labels)

    def info(self, message: Any, data: Any = None, *, request: Any = None, labels: Optional[Mapping[str, Any]] = None) -> None:
        self.log(Severity.INFO, message, data, request=request, labels=labels)

    def notice(self, message: Any, data: Any = None, *, request: Any = None, labels: Optional[Mapping[str, Any]] = None) -> None:
        self.log(Severity.NOTICE, message, data, request=request, labels=labels)

    def warning(self, message: Any, data: Any = None, *, request: Any = None, labels: Optional[Mapping[str, Any]] = None) -> None:
        self.log(Severity.WARNING, message, data, request=request, labels=labels)

    def error(self, message: Any, err: Any = None, *, request: Any = None, labels: Optional[Mapping[str, Any]] = None) -> None:
        """
        `err` may be an exception (stringified) or any payload value.
        """
        self.log(Severity.ERROR, message, err, request=request, labels=labels)

    def critical(self, message: Any, err: Any = None, *, request: Any = None, labels: Optional[Mapping[str, Any]] = None) -> None:
        self.log(Severity.CRITICAL, message, err, request=request, labels=labels)

    # ---- scoping / lifecycle ----

    def for_request(self, request: Any = None) -> "RequestLogger":
        """
        Capture correlation once and return a bound view.
        """
        if request is not None:
            correlation = extract_correlation(request, self.config.execution_id_headers)
        else:
            correlation = current_correlation()
        return RequestLogger(self, correlation)

    def close(self) -> None:
        """
        Flush and release the sink. Idempotent; later writes go to stdout.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            sink = self._sink
            self._sink = self._fallback
        try:
            sink.close()
        except Exception:
            _log.warning("logv2.sink_close_failed", exc_info=True)

    def __enter__(self) -> "StructuredLogger":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[no-untyped-def]
        self.close()


@dataclass(frozen=True)
class RequestLogger:
    """
    A StructuredLogger view bound to one CorrelationContext.

    Holds no sink ownership; closing is the parent logger's job.
    """

    parent: StructuredLogger
    correlation: CorrelationContext

    def log(
        self,
        severity: Any,
        message: Any,
        data: Any = None,
        *,
        labels: Optional[Mapping[str, Any]] = None,
        notify: bool = True,
    ) -> None:
        self.parent.emit(severity, message, data, self.correlation, labels, notify=notify)

    def debug(self, message: Any, data: Any = None, *, labels: Optional[Mapping[str, Any]] = None) -> None:
        self.log(Severity.DEBUG, message, data, labels=labels)

    def info(self, message: Any, data: Any = None, *, labels: Optional[Mapping[str, Any]] = None) -> None:
        self.log(Severity.INFO, message, data, labels=labels)

    def notice(self, message: Any, data: Any = None, *, labels: Optional[Mapping[str, Any]] = None) -> None:
        self.log(Severity.NOTICE, message, data, labels=labels)

    def warning(self, message: Any, data: Any = None, *, labels: Optional[Mapping[str, Any]] = None) -> None:
        self.log(Severity.WARNING, message, data, labels=labels)

    def error(self, message: Any, err: Any = None, *, labels: Optional[Mapping[str, Any]] = None) -> None:
        self.log(Severity.ERROR, message, err, labels=labels)

    def critical(self, message: Any, err: Any = None, *, labels: Optional[Mapping[str, Any]] = None) -> None:
        self.log(Severity.CRITICAL, message, err, labels=labels)
