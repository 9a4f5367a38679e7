"""
Slack delivery (`slack-sdk`): the relay's message capability and a logv2 notifier.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping, Optional

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError

from logrelay.common.secrets import SecretError, get_slack_bot_token
from logrelay.logv2.severity import Severity


logger = logging.getLogger(__name__)

BOT_TOKEN_PREFIX = "xoxb-"


class SlackError(RuntimeError):
    pass


class SlackNotConfiguredError(SlackError):
    pass


class SlackValidationError(SlackError, ValueError):
    pass


class SlackDeliveryError(SlackError):
    pass


class SlackAuthError(SlackDeliveryError):
    pass


class SlackChannelNotFoundError(SlackDeliveryError):
    pass


class SlackNotInChannelError(SlackDeliveryError):
    pass


_API_ERRORS: dict[str, tuple[type[SlackDeliveryError], str]] = {
    "invalid_auth": (SlackAuthError, "slack authentication failed - please check your bot token and permissions"),
    "channel_not_found": (SlackChannelNotFoundError, "slack channel not found - please check your channel ID"),
    "not_in_channel": (
        SlackNotInChannelError,
        "slack bot is not in the specified channel - please invite the bot to the channel",
    ),
}


def _api_error_code(exc: SlackApiError) -> str:
    """
    Best-effort extraction of the Slack `error` code (e.g. "channel_not_found").
    """
    try:
        code = exc.response.get("error")  # type: ignore[union-attr]
    except Exception:
        code = None
    if code:
        return str(code)
    text = str(exc)
    for known in _API_ERRORS:
        if known in text:
            return known
    return ""


def translate_api_error(exc: SlackApiError) -> SlackDeliveryError:
    mapped = _API_ERRORS.get(_api_error_code(exc))
    if mapped is not None:
        cls, message = mapped
        return cls(message)
    return SlackDeliveryError(f"failed to send slack message: {exc}")


class SlackClient:
    """
    Posts plain-text messages to a channel and returns the message `ts`.

    A disabled client (missing/invalid token, failed auth check) rejects every
    send with SlackNotConfiguredError instead of failing at construction.
    """

    def __init__(self, web_client: Any = None, *, enabled: bool = True) -> None:
        self._client = web_client
        self.enabled = bool(enabled) and web_client is not None

    @classmethod
    def from_env(cls, *, verify_auth: bool = True) -> "SlackClient":
        try:
            token = get_slack_bot_token()
        except SecretError:
            logger.warning("slack.token_lookup_failed; Slack notifications will be disabled.", exc_info=True)
            token = None

        if not token:
            logger.warning("SLACK_BOT_TOKEN is not set. Slack notifications will be disabled.")
            return cls(None, enabled=False)
        if not token.startswith(BOT_TOKEN_PREFIX):
            logger.warning(
                "SLACK_BOT_TOKEN appears to be invalid (should start with %r). Slack notifications will be disabled.",
                BOT_TOKEN_PREFIX,
            )
            return cls(None, enabled=False)

        web_client = WebClient(token=token)
        if verify_auth:
            try:
                web_client.auth_test()
            except Exception as e:
                logger.warning("Slack authentication failed. Slack notifications will be disabled: %s", e)
                return cls(None, enabled=False)
        logger.info("Slack integration initialized successfully")
        return cls(web_client, enabled=True)

    def send(self, channel_id: str, text: str) -> str:
        if not self.enabled:
            raise SlackNotConfiguredError("slack is not properly configured")
        channel = (channel_id or "").strip()
        if not channel:
            raise SlackValidationError("channel ID is required")

        try:
            resp = self._client.chat_postMessage(channel=channel, text=text)
        except SlackApiError as e:
            raise translate_api_error(e) from e
        except Exception as e:
            raise SlackDeliveryError(f"failed to send slack message: {e}") from e
        return str(resp.get("ts") or "")


class SlackNotifier:
    """
    logv2 Notifier that posts high-severity records to one Slack channel.
    """

    def __init__(self, client: SlackClient, channel_id: str) -> None:
        self.client = client
        self.channel_id = channel_id

    @staticmethod
    def format(
        severity: Severity,
        execution_id: Optional[str],
        message: str,
        payload: Optional[Mapping[str, Any]],
    ) -> str:
        text = f"[{severity.name}] {message}"
        if execution_id:
            text += f" (execution: {execution_id})"
        if payload:
            text += "\n" + json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)
        return text

    def notify(
        self,
        severity: Severity,
        execution_id: Optional[str],
        message: str,
        payload: Optional[Mapping[str, Any]],
    ) -> None:
        self.client.send(self.channel_id, self.format(severity, execution_id, message, payload))
