"""
logv2: structured logging client for Cloud Run / Cloud Functions.

- Cloud Logging sink, with a JSON-lines stdout fallback
- trace/span/execution-id correlation from request headers
- request-scoped views and an optional high-severity notifier hook
"""

from logrelay.logv2.config import LoggerConfig, LoggerConfigError, detect_project_id, resolve_project_id
from logrelay.logv2.correlation import (
    CorrelationContext,
    bind_correlation,
    current_correlation,
    extract_correlation,
    parse_trace_header,
)
from logrelay.logv2.logger import RequestLogger, StructuredLogger
from logrelay.logv2.notifier import Notifier
from logrelay.logv2.severity import Severity, parse_severity
from logrelay.logv2.sinks import CloudLoggingSink, LogRecord, StdoutJsonSink

__all__ = [
    "CloudLoggingSink",
    "CorrelationContext",
    "LogRecord",
    "LoggerConfig",
    "LoggerConfigError",
    "Notifier",
    "RequestLogger",
    "Severity",
    "StdoutJsonSink",
    "StructuredLogger",
    "bind_correlation",
    "current_correlation",
    "detect_project_id",
    "extract_correlation",
    "parse_severity",
    "parse_trace_header",
    "resolve_project_id",
]
