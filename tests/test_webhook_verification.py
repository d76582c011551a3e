"""
Signature verification, handshakes and normalization for each webhook handler.
"""

import hashlib
import hmac
import json

import pytest

from config.settings import config
from utils.schemas import ToolSource
from webhooks.base import RawWebhookRequest
from webhooks.dropbox import DropboxWebhookHandler
from webhooks.google import GoogleWebhookHandler
from webhooks.linear import LinearWebhookHandler
from webhooks.microsoft import MicrosoftWebhookHandler
from webhooks.notion import NotionWebhookHandler
from webhooks.registry import WebhookRegistry
from webhooks.slack import SlackWebhookHandler

NOW = 1_700_000_000


def _hex(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


@pytest.fixture
def secrets(monkeypatch):
    monkeypatch.setattr(config, "slack_signing_secret", "slack-secret")
    monkeypatch.setattr(config, "dropbox_app_secret", "dropbox-secret")
    monkeypatch.setattr(config, "linear_webhook_secret", "linear-secret")
    monkeypatch.setattr(config, "notion_webhook_secret", "notion-secret")
    monkeypatch.setattr(config, "google_webhook_token", "google-token")
    monkeypatch.setattr(config, "microsoft_webhook_client_state", "ms-state")
    monkeypatch.setattr(config, "webhook_replay_window_seconds", 300)


def _slack_request(body: bytes, timestamp: int, secret: str = "slack-secret") -> RawWebhookRequest:
    signature = "v0=" + _hex(secret, f"v0:{timestamp}:".encode() + body)
    return RawWebhookRequest(
        body=body,
        headers={"x-slack-signature": signature, "x-slack-request-timestamp": str(timestamp)},
    )


class TestSlackVerification:
    def test_valid_signature(self, secrets):
        handler = SlackWebhookHandler(clock=lambda: NOW)
        assert handler.verify(_slack_request(b'{"type":"event_callback"}', NOW)) is True

    def test_mutated_byte_fails(self, secrets):
        handler = SlackWebhookHandler(clock=lambda: NOW)
        raw = _slack_request(b'{"type":"event_callback"}', NOW)
        tampered = raw.model_copy(update={"body": b'{"type":"event_callbacK"}'})
        assert handler.verify(tampered) is False

    def test_old_signature_on_other_body_fails(self, secrets):
        handler = SlackWebhookHandler(clock=lambda: NOW)
        old = _slack_request(b'{"n":1}', NOW)
        replayed = RawWebhookRequest(body=b'{"n":2}', headers=old.headers)
        assert handler.verify(replayed) is False

    def test_stale_timestamp_fails(self, secrets):
        handler = SlackWebhookHandler(clock=lambda: NOW)
        assert handler.verify(_slack_request(b"{}", NOW - 301)) is False
        assert handler.verify(_slack_request(b"{}", NOW - 299)) is True

    def test_missing_headers_fail(self, secrets):
        assert SlackWebhookHandler(clock=lambda: NOW).verify(RawWebhookRequest(body=b"{}")) is False

    def test_unconfigured_secret_fails(self, secrets, monkeypatch):
        monkeypatch.setattr(config, "slack_signing_secret", "")
        handler = SlackWebhookHandler(clock=lambda: NOW)
        assert handler.verify(_slack_request(b"{}", NOW, secret="")) is False

    def test_url_verification_handshake(self):
        raw = RawWebhookRequest(body=b'{"type":"url_verification","challenge":"abc"}')
        assert SlackWebhookHandler().handshake(raw) == "abc"
        assert SlackWebhookHandler().handshake(RawWebhookRequest(body=b'{"type":"event_callback"}')) is None

    def test_normalize_uses_inner_event(self):
        payload = {"type": "event_callback", "team_id": "T1", "event": {"type": "file_shared", "file_id": "F1"}}
        event = SlackWebhookHandler().normalize(RawWebhookRequest(), payload)
        assert event.event_type == "file_shared"
        assert event.payload["team_id"] == "T1"


class TestHmacBodyHandlers:
    def test_dropbox(self, secrets):
        body = b'{"list_folder":{"accounts":["dbid:1"]}}'
        good = RawWebhookRequest(body=body, headers={"x-dropbox-signature": _hex("dropbox-secret", body)})
        assert DropboxWebhookHandler().verify(good) is True
        assert DropboxWebhookHandler().verify(good.model_copy(update={"body": body + b" "})) is False

    def test_linear(self, secrets):
        body = b'{"type":"Issue","action":"create"}'
        good = RawWebhookRequest(body=body, headers={"linear-signature": _hex("linear-secret", body)})
        assert LinearWebhookHandler().verify(good) is True
        bad = RawWebhookRequest(body=body, headers={"linear-signature": _hex("wrong", body)})
        assert LinearWebhookHandler().verify(bad) is False

    def test_linear_without_signature(self, secrets):
        assert LinearWebhookHandler().verify(RawWebhookRequest(body=b"{}")) is False


class TestNotionVerification:
    def _request(self, body: bytes, timestamp: int) -> RawWebhookRequest:
        signature = _hex("notion-secret", f"{timestamp}.".encode() + body)
        return RawWebhookRequest(
            body=body, headers={"notion-signature": signature, "notion-timestamp": str(timestamp)}
        )

    def test_valid(self, secrets):
        assert NotionWebhookHandler(clock=lambda: NOW).verify(self._request(b'{"type":"page"}', NOW)) is True

    def test_replayed_timestamp(self, secrets):
        assert NotionWebhookHandler(clock=lambda: NOW).verify(self._request(b"{}", NOW - 600)) is False

    def test_dotted_event_type_split(self):
        event = NotionWebhookHandler().normalize(RawWebhookRequest(), {"type": "page.deleted", "workspace_id": "w"})
        assert event.event_type == "page"
        assert event.payload["action"] == "deleted"


class TestGoogleVerification:
    def test_channel_token(self, secrets):
        handler = GoogleWebhookHandler()
        assert handler.verify(RawWebhookRequest(headers={"x-goog-channel-token": "google-token"})) is True
        assert handler.verify(RawWebhookRequest(headers={"x-goog-channel-token": "other"})) is False
        assert handler.verify(RawWebhookRequest()) is False

    def test_event_type_from_resource_state(self):
        raw = RawWebhookRequest(
            headers={"x-goog-resource-state": "update", "x-goog-channel-id": "c1", "x-goog-resource-id": "r1"}
        )
        event = GoogleWebhookHandler().normalize(raw, {})
        assert event.event_type == "update"
        assert event.payload["channel_id"] == "c1"


class TestMicrosoftVerification:
    def test_validation_token_from_query(self):
        raw = RawWebhookRequest(query_params={"validationToken": "tok 1"})
        assert MicrosoftWebhookHandler().handshake(raw) == "tok 1"

    def test_validation_token_from_body(self):
        raw = RawWebhookRequest(body=b'{"validationToken":"tok2"}')
        assert MicrosoftWebhookHandler().handshake(raw) == "tok2"

    def test_client_state_must_match_every_notification(self, secrets):
        good = {"value": [{"clientState": "ms-state", "changeType": "updated"}]}
        mixed = {"value": [{"clientState": "ms-state"}, {"clientState": "nope"}]}
        handler = MicrosoftWebhookHandler()
        assert handler.verify(RawWebhookRequest(body=json.dumps(good).encode())) is True
        assert handler.verify(RawWebhookRequest(body=json.dumps(mixed).encode())) is False
        assert handler.verify(RawWebhookRequest(body=b"not json")) is False


class TestRegistry:
    def test_handlers(self):
        for source in (ToolSource.SLACK, ToolSource.GOOGLE, ToolSource.MICROSOFT, ToolSource.DROPBOX,
                       ToolSource.LINEAR, ToolSource.NOTION):
            assert WebhookRegistry.get_handler(source).source == source
        assert WebhookRegistry.get_handler(ToolSource.FIGMA) is None
        assert WebhookRegistry.has_handler(ToolSource.JIRA) is False
