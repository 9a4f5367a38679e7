"""
Log alert relay: Cloud Logging entry (via Pub/Sub) -> Slack message.

The Log Router publishes each matching LogEntry as JSON; we render a concise
message and pick a channel by severity:

    CRITICAL, ALERT, EMERGENCY, ERROR -> SLACK_ERROR_CHANNEL_ID
    WARNING, NOTICE                   -> SLACK_WARNING_CHANNEL_ID
    anything else / unset bucket      -> SLACK_DEFAULT_CHANNEL_ID

If no channel resolves, the empty channel is passed through and the Slack
client rejects it with SlackValidationError.
"""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

from logrelay.common.env import env_str, load_local_env
from logrelay.logv2 import LoggerConfig, LoggerConfigError, Severity, StructuredLogger
from logrelay.messaging.pubsub import PubSubMessage, parse_background_event
from logrelay.notify.slack import SlackClient, SlackNotifier


SERVICE_NAME = "slack-log-relay"

ERROR_SEVERITIES = frozenset({"CRITICAL", "ALERT", "EMERGENCY", "ERROR"})
WARNING_SEVERITIES = frozenset({"WARNING", "NOTICE"})


class InvalidAlertPayload(ValueError):
    pass


class MessageSender(Protocol):
    def send(self, channel_id: str, text: str) -> str: ...


@dataclass(frozen=True)
class ChannelConfig:
    error: str = ""
    warning: str = ""
    default: str = ""

    @classmethod
    def from_env(cls) -> "ChannelConfig":
        return cls(
            error=env_str("SLACK_ERROR_CHANNEL_ID") or "",
            warning=env_str("SLACK_WARNING_CHANNEL_ID") or "",
            default=env_str("SLACK_DEFAULT_CHANNEL_ID") or "",
        )


def choose_channel_for_severity(severity: Optional[str], channels: ChannelConfig) -> str:
    sev = (severity or "").strip().upper()
    if sev in ERROR_SEVERITIES and channels.error:
        return channels.error
    if sev in WARNING_SEVERITIES and channels.warning:
        return channels.warning
    return channels.default


def _get_string(v: Any) -> str:
    return v if isinstance(v, str) else ""


def format_alert_message(entry: dict[str, Any]) -> str:
    """
    "[SEVERITY] logName", then the textPayload and a compact jsonPayload excerpt when present.
    """
    severity = _get_string(entry.get("severity")) or "DEFAULT"
    log_name = _get_string(entry.get("logName"))
    text = _get_string(entry.get("textPayload"))

    parts = [f"[{severity}] {log_name}"]
    if text:
        parts.append(text)
    json_payload = entry.get("jsonPayload")
    if json_payload is not None:
        try:
            compact = json.dumps(json_payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
        except (TypeError, ValueError):
            compact = None
        if compact is not None:
            parts.append(f"json: {compact}")
    return "\n".join(parts)


def decode_log_entry(data: bytes) -> dict[str, Any]:
    if not data:
        raise InvalidAlertPayload("empty pubsub data")
    try:
        entry = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise InvalidAlertPayload(f"invalid pubsub json: {e}") from e
    if not isinstance(entry, dict):
        raise InvalidAlertPayload(f"invalid pubsub json: expected object, got {type(entry).__name__}")
    return entry


class LogAlertHandler:
    """
    Relay one Pub/Sub LogEntry message to Slack.

    Dependencies are explicit: the process entrypoint builds the logger and
    sender once and hands them in. Without `channels`, channel ids are re-read
    from the environment on every call.
    """

    def __init__(
        self,
        logger: StructuredLogger,
        sender: MessageSender,
        channels: Optional[ChannelConfig] = None,
    ) -> None:
        self.logger = logger
        self.sender = sender
        self.channels = channels

    def handle(self, message: PubSubMessage, request: Any = None) -> str:
        """
        Returns the Slack message `ts`. Raises InvalidAlertPayload or SlackError.
        """
        req_log = self.logger.for_request(request)

        if not message.data:
            req_log.warning("empty pubsub data", {"messageId": message.message_id})
            raise InvalidAlertPayload("empty pubsub data")

        try:
            entry = decode_log_entry(message.data)
        except InvalidAlertPayload as e:
            req_log.error("failed to parse pubsub json", e)
            raise

        text = format_alert_message(entry)
        channels = self.channels or ChannelConfig.from_env()
        channel_id = choose_channel_for_severity(_get_string(entry.get("severity")), channels)

        try:
            ts = self.sender.send(channel_id, text)
        except Exception as e:
            # No notifier: it would post through the client that just failed.
            req_log.log(Severity.ERROR, "slack send failed", e, notify=False)
            raise

        req_log.info("slack message sent", {"ts": ts, "channel": channel_id})
        return ts


# ---- process-wide cached logger / sender ----

_logger_lock = threading.Lock()
_cached_logger: Optional[StructuredLogger] = None

_sender_lock = threading.Lock()
_cached_sender: Optional[SlackClient] = None


def _relay_config(**overrides: Any) -> LoggerConfig:
    cfg = LoggerConfig.from_env(
        log_name=env_str("LOG_NAME") or SERVICE_NAME,
        invoker=SERVICE_NAME,
        common_labels={"service": SERVICE_NAME},
    )
    notify_channel = env_str("LOG_NOTIFY_CHANNEL_ID")
    if notify_channel:
        cfg = cfg.with_options(notifier=SlackNotifier(get_sender(), notify_channel))
    return cfg.with_options(**overrides) if overrides else cfg


def build_logger() -> StructuredLogger:
    load_local_env()
    try:
        return StructuredLogger.from_config(_relay_config())
    except LoggerConfigError:
        # Fallback to a stdout-only logger so callers can still log.
        return StructuredLogger.from_config(_relay_config(stdout_only=True, require_remote_sink=False))


def get_logger(factory: Optional[Callable[[], StructuredLogger]] = None) -> StructuredLogger:
    """
    Return the cached process logger, constructing it exactly once.

    Concurrent first callers block on the lock until construction finishes.
    """
    global _cached_logger
    lg = _cached_logger
    if lg is not None:
        return lg
    with _logger_lock:
        if _cached_logger is None:
            _cached_logger = (factory or build_logger)()
        return _cached_logger


def reset_logger_cache() -> None:
    global _cached_logger
    with _logger_lock:
        lg, _cached_logger = _cached_logger, None
    if lg is not None:
        lg.close()


def get_sender() -> SlackClient:
    global _cached_sender
    with _sender_lock:
        if _cached_sender is None:
            load_local_env()
            _cached_sender = SlackClient.from_env()
        return _cached_sender


def reset_sender_cache() -> None:
    global _cached_sender
    with _sender_lock:
        _cached_sender = None


def handle_log_alert(message: PubSubMessage, request: Any = None) -> str:
    """
    Module-level entrypoint using the cached logger and Slack client.
    """
    return LogAlertHandler(get_logger(), get_sender()).handle(message, request)


def handle_pubsub_event(event: Any, context: Any = None) -> str:  # noqa: ARG001
    """
    Background Cloud Function entrypoint (Pub/Sub trigger): `event` carries
    base64 `data` and `attributes`.
    """
    try:
        message = parse_background_event(event)
    except ValueError as e:
        get_logger().error("invalid pubsub event", e)
        raise InvalidAlertPayload(str(e)) from e
    return handle_log_alert(message)
