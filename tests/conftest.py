from __future__ import annotations

import json
from typing import Any

import pytest

from logrelay.relay import handler as relay_handler


_ENV_VARS = (
    "GOOGLE_CLOUD_PROJECT",
    "GCP_PROJECT",
    "GCLOUD_PROJECT",
    "PROJECT_ID",
    "LOG_NAME",
    "LOG_INVOKER",
    "LOG_PROJECT_ID",
    "LOG_STDOUT_ONLY",
    "LOG_LEVEL",
    "LOG_NOTIFY_THRESHOLD",
    "LOG_NOTIFY_CHANNEL_ID",
    "LOG_EXECUTION_ID_HEADERS",
    "LOG_REDACT_PAYLOAD",
    "K_SERVICE",
    "FUNCTION_TARGET",
    "SLACK_BOT_TOKEN",
    "SLACK_BOT_TOKEN_SECRET",
    "SLACK_ERROR_CHANNEL_ID",
    "SLACK_WARNING_CHANNEL_ID",
    "SLACK_DEFAULT_CHANNEL_ID",
    "DOTENV_PATH",
)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    """
    Test hygiene: no ambient GCP project / ADC auto-detect, no Slack config,
    no local .env, and a fresh process-wide logger cache per test.
    """
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("logrelay.logv2.config.detect_project_id", lambda: None)
    monkeypatch.setattr("logrelay.common.env._dotenv_loaded", True)
    relay_handler.reset_logger_cache()
    relay_handler.reset_sender_cache()
    yield
    relay_handler.reset_logger_cache()
    relay_handler.reset_sender_cache()


def read_records(capsys) -> list[dict[str, Any]]:
    """
    Parse logv2 stdout records (one JSON object per line).
    """
    out = capsys.readouterr().out
    records = []
    for line in out.splitlines():
        line = line.strip()
        if not line:
            continue
        obj = json.loads(line)
        if "logName" in obj:
            records.append(obj)
    return records


class FakeCloudLogger:
    def __init__(self, name: str) -> None:
        self.name = name
        self.entries: list[tuple[dict[str, Any], dict[str, Any]]] = []

    def log_struct(self, info: dict[str, Any], **kw: Any) -> None:
        self.entries.append((info, kw))


class FakeCloudClient:
    def __init__(self) -> None:
        self.loggers: dict[str, FakeCloudLogger] = {}
        self.closed = False

    def logger(self, name: str) -> FakeCloudLogger:
        return self.loggers.setdefault(name, FakeCloudLogger(name))

    def close(self) -> None:
        self.closed = True


class RecordingNotifier:
    def __init__(self, *, fail: bool = False) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.fail = fail

    def notify(self, severity, execution_id, message, payload) -> None:
        self.calls.append((severity, execution_id, message, payload))
        if self.fail:
            raise RuntimeError("notifier down")


class RecordingSender:
    def __init__(self, *, ts: str = "1700000000.000100", error: Exception | None = None) -> None:
        self.calls: list[tuple[str, str]] = []
        self.ts = ts
        self.error = error

    def send(self, channel_id: str, text: str) -> str:
        self.calls.append((channel_id, text))
        if self.error is not None:
            raise self.error
        return self.ts


class FakeWebClient:
    """
    Minimal stand-in for slack_sdk.WebClient.
    """

    def __init__(self, *, ts: str = "1700000000.000200", error: Exception | None = None, auth_error: Exception | None = None) -> None:
        self.posts: list[dict[str, Any]] = []
        self.ts = ts
        self.error = error
        self.auth_error = auth_error

    def auth_test(self) -> dict[str, Any]:
        if self.auth_error is not None:
            raise self.auth_error
        return {"ok": True}

    def chat_postMessage(self, **kwargs: Any) -> dict[str, Any]:  # noqa: N802 (slack_sdk naming)
        self.posts.append(kwargs)
        if self.error is not None:
            raise self.error
        return {"ok": True, "ts": self.ts, "channel": kwargs.get("channel")}
