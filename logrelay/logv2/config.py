from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional

import google.auth
from google.auth.exceptions import DefaultCredentialsError

from logrelay.common.env import clean_text, env_any, env_list, env_str, is_truthy
from logrelay.logv2.correlation import DEFAULT_EXECUTION_ID_HEADERS
from logrelay.logv2.notifier import Notifier
from logrelay.logv2.severity import Severity, parse_severity


logger = logging.getLogger(__name__)

PROJECT_ENV_VARS: tuple[str, ...] = ("GOOGLE_CLOUD_PROJECT", "GCP_PROJECT", "GCLOUD_PROJECT", "PROJECT_ID")


class LoggerConfigError(RuntimeError):
    """
    A remote sink was required but could not be constructed.
    """


@dataclass(frozen=True)
class LoggerConfig:
    """
    Immutable logger configuration.

    Defaults:
    - project_id: None (resolved from env, then platform auto-detect)
    - log_name: "app"
    - invoker: "" (static label identifying the calling service/function)
    - common_labels: {} (merged into every record; per-call labels win)
    - execution_id_headers: Function-Execution-Id, X-Execution-Id, X-Request-Id
    - notifier: None, notify_threshold: ERROR
    - stdout_only: False (True forces the local JSON-lines sink)
    - require_remote_sink: False (True turns sink fallback into LoggerConfigError)
    - min_severity: DEFAULT (records below are dropped)
    - redact_payload: False (True replaces values under credential keys, see redaction.py)
    """

    project_id: Optional[str] = None
    log_name: str = "app"
    invoker: str = ""
    common_labels: Mapping[str, str] = field(default_factory=dict)
    execution_id_headers: tuple[str, ...] = DEFAULT_EXECUTION_ID_HEADERS
    notifier: Optional[Notifier] = None
    notify_threshold: Severity = Severity.ERROR
    stdout_only: bool = False
    require_remote_sink: bool = False
    min_severity: Severity = Severity.DEFAULT
    redact_payload: bool = False

    def __post_init__(self) -> None:
        labels = {clean_text(k, max_len=63): clean_text(v, max_len=256) for k, v in dict(self.common_labels).items()}
        object.__setattr__(self, "common_labels", MappingProxyType(labels))
        object.__setattr__(self, "execution_id_headers", tuple(self.execution_id_headers))
        object.__setattr__(self, "project_id", clean_text(self.project_id, max_len=128) or None)
        object.__setattr__(self, "log_name", clean_text(self.log_name, max_len=512) or "app")
        object.__setattr__(self, "invoker", clean_text(self.invoker, max_len=128))
        object.__setattr__(self, "notify_threshold", parse_severity(self.notify_threshold, default=Severity.ERROR))
        object.__setattr__(self, "min_severity", parse_severity(self.min_severity))

    def with_options(self, **changes: Any) -> "LoggerConfig":
        return dataclasses.replace(self, **changes)

    @classmethod
    def from_env(cls, **overrides: Any) -> "LoggerConfig":
        """
        Build a config from environment variables; keyword overrides win.

        LOG_NAME, LOG_INVOKER (fallback K_SERVICE / FUNCTION_TARGET), LOG_PROJECT_ID,
        LOG_STDOUT_ONLY, LOG_LEVEL, LOG_NOTIFY_THRESHOLD, LOG_EXECUTION_ID_HEADERS,
        LOG_REDACT_PAYLOAD.
        """
        values: dict[str, Any] = {
            "project_id": env_str("LOG_PROJECT_ID"),
            "log_name": env_str("LOG_NAME") or "app",
            "invoker": env_any("LOG_INVOKER", "K_SERVICE", "FUNCTION_TARGET", default="", max_len=128),
            "execution_id_headers": env_list("LOG_EXECUTION_ID_HEADERS", default=DEFAULT_EXECUTION_ID_HEADERS),
            "stdout_only": is_truthy(env_str("LOG_STDOUT_ONLY")),
            "min_severity": parse_severity(env_str("LOG_LEVEL")),
            "notify_threshold": parse_severity(env_str("LOG_NOTIFY_THRESHOLD"), default=Severity.ERROR),
            "redact_payload": is_truthy(env_str("LOG_REDACT_PAYLOAD")),
        }
        values.update(overrides)
        return cls(**values)


def detect_project_id() -> Optional[str]:
    """
    Platform auto-detect through Application Default Credentials.

    Returns None outside GCP (no ADC / no project on the credentials).
    """
    try:
        _, project = google.auth.default()
    except DefaultCredentialsError:
        return None
    except Exception:
        logger.warning("logv2.project_autodetect_failed", exc_info=True)
        return None
    return clean_text(project, max_len=128) or None


def resolve_project_id(config: LoggerConfig, *, autodetect: bool = True) -> Optional[str]:
    """
    explicit -> environment -> platform auto-detect (when `autodetect`).
    """
    if config.project_id:
        return config.project_id
    for k in PROJECT_ENV_VARS:
        v = env_str(k)
        if v:
            return v
    if not autodetect:
        return None
    return detect_project_id()
