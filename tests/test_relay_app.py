import base64
import json

from fastapi.testclient import TestClient

from logrelay.logv2 import LoggerConfig, StructuredLogger
from logrelay.notify.slack import SlackAuthError, SlackValidationError
from logrelay.relay.app import create_app
from logrelay.relay.handler import ChannelConfig, LogAlertHandler
from tests.conftest import RecordingSender, read_records


def _client(sender) -> TestClient:
    lg = StructuredLogger.from_config(LoggerConfig(log_name="relay-app", stdout_only=True))
    handler = LogAlertHandler(lg, sender, ChannelConfig(error="C_ERR", default="C_DEF"))
    return TestClient(create_app(handler))


def _push(entry=None, raw: bytes | None = None):
    data = raw if raw is not None else json.dumps(entry).encode("utf-8")
    return {
        "message": {"data": base64.b64encode(data).decode("ascii"), "attributes": {}, "messageId": "m1"},
        "subscription": "projects/p/subscriptions/s",
    }


def test_healthz():
    with _client(RecordingSender()) as c:
        assert c.get("/healthz").json() == {"status": "ok"}


def test_push_relays_and_correlates_trace(capsys):
    sender = RecordingSender(ts="42.0")
    with _client(sender) as c:
        r = c.post(
            "/pubsub/push",
            json=_push({"severity": "ERROR", "logName": "projects/p/logs/l", "textPayload": "boom"}),
            headers={"X-Cloud-Trace-Context": "tr/sp;o=1"},
        )
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "ts": "42.0"}
    assert sender.calls == [("C_ERR", "[ERROR] projects/p/logs/l\nboom")]
    (rec,) = read_records(capsys)
    assert rec["logging.googleapis.com/trace"] == "tr"


def test_bad_payload_is_acked_with_400():
    sender = RecordingSender()
    with _client(sender) as c:
        assert c.post("/pubsub/push", json=_push(raw=b"not json")).status_code == 400
        assert c.post("/pubsub/push", json={"subscription": "s"}).status_code == 400
        assert c.post("/pubsub/push", content=b"{", headers={"content-type": "application/json"}).status_code == 400
    assert sender.calls == []


def test_slack_validation_is_400_and_delivery_errors_are_502():
    with _client(RecordingSender(error=SlackValidationError("channel ID is required"))) as c:
        assert c.post("/pubsub/push", json=_push({"severity": "INFO"})).status_code == 400
    with _client(RecordingSender(error=SlackAuthError("slack authentication failed"))) as c:
        r = c.post("/pubsub/push", json=_push({"severity": "INFO"}))
    assert r.status_code == 502
    assert "authentication" in r.json()["detail"]
