"""
Structured JSON logging for process diagnostics (stdlib-only).

This configures the *stdlib* root logger. It is what library internals use
(`logging.getLogger(__name__)`) for things like sink fallback or swallowed
notifier failures. Application records go through `logrelay.logv2` instead.

Goals:
- One JSON object per log line (stdout)
- Consistent core fields: service, env, version, sha, severity
"""

from __future__ import annotations

import json
import logging
import os
import sys
import traceback
from datetime import datetime, timezone
from typing import Any

from logrelay.common.env import clean_text, env_any
from logrelay.logv2.severity import parse_severity


_RESERVED_ATTRS: frozenset[str] = frozenset(
    {
        # logging.LogRecord built-ins
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        # our injected keys
        "service",
        "env",
        "version",
        "sha",
        "severity",
        "message",
        "timestamp",
    }
)


def _utc_ts() -> str:
    return datetime.now(timezone.utc).isoformat()


def default_service_name() -> str:
    return env_any("SERVICE_NAME", "K_SERVICE", "FUNCTION_TARGET", default="slack-log-relay", max_len=128)


def default_env_name() -> str:
    return env_any("ENVIRONMENT", "ENV", "APP_ENV", "DEPLOY_ENV", default="unknown", max_len=64)


def default_sha() -> str:
    return env_any("GIT_SHA", "GITHUB_SHA", "COMMIT_SHA", "SHORT_SHA", "BUILD_SHA", "SOURCE_VERSION", default="unknown", max_len=64)


def default_version() -> str:
    # Prefer explicit version; fall back to container/revision identifiers.
    return env_any("APP_VERSION", "VERSION", "IMAGE_TAG", "K_REVISION", default="unknown", max_len=128)


class JsonLogFormatter(logging.Formatter):
    def __init__(self, *, service: str | None = None, env: str | None = None, version: str | None = None, sha: str | None = None) -> None:
        super().__init__()
        self._service = clean_text(service or default_service_name(), max_len=128) or "unknown"
        self._env = clean_text(env or default_env_name(), max_len=64) or "unknown"
        self._version = clean_text(version or default_version(), max_len=128) or "unknown"
        self._sha = clean_text(sha or default_sha(), max_len=64) or "unknown"

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003 (format required by logging)
        severity = parse_severity(getattr(record, "severity", None) or record.levelno)
        payload: dict[str, Any] = {
            "timestamp": _utc_ts(),
            "severity": severity.name,
            "service": self._service,
            "env": self._env,
            "version": self._version,
            "sha": self._sha,
            "message": clean_text(record.getMessage(), max_len=4000),
            "logger": clean_text(record.name, max_len=256),
        }

        if record.exc_info:
            try:
                payload["exception"] = "".join(traceback.format_exception(*record.exc_info))[-8000:]
            except Exception:
                payload["exception"] = "exception_format_failed"
        elif record.stack_info:
            payload["stack"] = clean_text(record.stack_info, max_len=8000)

        # Include any extra fields provided via logger.*(..., extra={...})
        for k, v in record.__dict__.items():
            if k in _RESERVED_ATTRS or k.startswith("_"):
                continue
            payload[str(k)] = v

        return json.dumps(payload, separators=(",", ":"), ensure_ascii=False, default=str)


def _silence_uvicorn_handlers() -> None:
    # Ensure uvicorn loggers flow through root and use our handler.
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        lg = logging.getLogger(name)
        lg.handlers = []
        lg.propagate = True


def init_structured_logging(
    *,
    service: str | None = None,
    env: str | None = None,
    version: str | None = None,
    sha: str | None = None,
    level: str | int | None = None,
) -> None:
    """
    Configure stdlib logging to emit JSON lines to stdout.

    Safe to call multiple times (last call wins).
    """
    lvl = level or os.getenv("LOG_LEVEL", "INFO").upper()
    if isinstance(lvl, str) and lvl not in logging.getLevelNamesMapping():
        lvl = "INFO"
    root = logging.getLogger()
    root.setLevel(lvl)

    root.handlers = []
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setLevel(lvl)
    handler.setFormatter(JsonLogFormatter(service=service, env=env, version=version, sha=sha))
    root.addHandler(handler)

    logging.captureWarnings(True)
    _silence_uvicorn_handlers()
