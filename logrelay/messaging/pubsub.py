from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional


@dataclass(frozen=True, slots=True)
class PubSubMessage:
    """
    Payload of a Pub/Sub event.

    `data` is the decoded message body; for a Log Router sink it is a LogEntry
    JSON blob (https://cloud.google.com/logging/docs/export/pubsub#data_format).
    """

    data: bytes = b""
    attributes: dict[str, str] = field(default_factory=dict)
    message_id: Optional[str] = None
    publish_time: Optional[str] = None
    subscription: Optional[str] = None


def _attributes(raw: Any) -> dict[str, str]:
    if not isinstance(raw, Mapping):
        return {}
    return {str(k): str(v) for k, v in raw.items()}


def _decode_data(raw: Any) -> bytes:
    if raw is None:
        return b""
    if isinstance(raw, (bytes, bytearray)):
        return bytes(raw)
    s = str(raw).strip()
    if not s:
        return b""
    try:
        return base64.b64decode(s.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as e:
        raise ValueError("invalid message.data (base64)") from e


def parse_pubsub_push(body: Any) -> PubSubMessage:
    """
    Parse a Pub/Sub push payload (Cloud Run / HTTP push subscription format).

    Expected shape:
      { "message": { "data": "base64...", "attributes": {...}, "messageId": "...", "publishTime": "..." },
        "subscription": "projects/.../subscriptions/..." }

    Missing `data` yields an empty message; deciding whether that is an error
    is the handler's job.
    """
    if not isinstance(body, Mapping):
        raise ValueError("invalid body (not object)")

    msg = body.get("message")
    if not isinstance(msg, Mapping):
        raise ValueError("missing message")

    message_id = msg.get("messageId") or msg.get("message_id") or None
    publish_time = msg.get("publishTime") or msg.get("publish_time") or None
    subscription = body.get("subscription")

    return PubSubMessage(
        data=_decode_data(msg.get("data")),
        attributes=_attributes(msg.get("attributes")),
        message_id=str(message_id) if message_id else None,
        publish_time=str(publish_time) if publish_time else None,
        subscription=str(subscription).strip() if isinstance(subscription, str) and subscription.strip() else None,
    )


def parse_background_event(event: Any) -> PubSubMessage:
    """
    Parse a background-function style event (`{"data": b64, "attributes": {...}}`),
    as delivered to Pub/Sub-triggered Cloud Functions.
    """
    if not isinstance(event, Mapping):
        raise ValueError("invalid event (not object)")
    return PubSubMessage(
        data=_decode_data(event.get("data")),
        attributes=_attributes(event.get("attributes")),
        message_id=str(event.get("messageId") or event.get("message_id") or "") or None,
        publish_time=str(event.get("publishTime") or event.get("publish_time") or "") or None,
    )
