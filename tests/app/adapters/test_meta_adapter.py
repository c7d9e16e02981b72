"""Tests for Meta adapter (parse webhook, verify signature, send)."""

import hashlib
import hmac
from datetime import datetime, timezone

import httpx
import pytest

from app.adapters.meta import (
    MetaAdapter,
    MetaSendError,
    SignedRequestError,
    SignedRequestSignatureError,
    describe_attachment,
    parse_signed_request,
)
from app.schemas.messaging import OutboundMessage, Platform
from tests.fixtures.http_fixtures import GRAPH_URL
from tests.fixtures.meta_fixtures import signed_request

SECRET = "app-secret"


def _messaging_payload(*events, obj="page"):
    return {"object": obj, "entry": [{"id": "PAGE", "time": 1, "messaging": list(events)}]}


def _event(message=None, postback=None, sender="123", recipient="PAGE"):
    event = {
        "sender": {"id": sender},
        "recipient": {"id": recipient},
        "timestamp": 1767225600000,
    }
    if message is not None:
        event["message"] = message
    if postback is not None:
        event["postback"] = postback
    return event


def _sign(body: bytes, algo=hashlib.sha256) -> str:
    return hmac.new(SECRET.encode(), body, algo).hexdigest()


@pytest.fixture
def adapter():
    return MetaAdapter(graph_api_url=GRAPH_URL)


def test_parse_text_message(adapter):
    """Messenger text event becomes one normalized inbound message."""
    payload = _messaging_payload(_event({"mid": "m_1", "text": "hello"}))
    [inbound] = adapter.parse_webhook(payload, Platform.FACEBOOK)
    assert inbound.platform == Platform.FACEBOOK
    assert inbound.external_conversation_id == "123"
    assert inbound.participant_id == "123"
    assert inbound.recipient_id == "PAGE"
    assert inbound.message_id == "m_1"
    assert inbound.text == "hello"
    assert inbound.metadata.message_type == "text"
    assert inbound.metadata.timestamp == datetime(2026, 1, 1, tzinfo=timezone.utc)


def test_parse_skips_echoes_and_receipts(adapter):
    payload = _messaging_payload(
        _event({"mid": "m_2", "text": "from page", "is_echo": True}),
        {"sender": {"id": "123"}, "recipient": {"id": "PAGE"}, "read": {"watermark": 1}},
        {"sender": {"id": "123"}, "recipient": {"id": "PAGE"}, "delivery": {"mids": []}},
    )
    assert adapter.parse_webhook(payload, Platform.FACEBOOK) == []


def test_parse_postback_uses_payload(adapter):
    payload = _messaging_payload(
        _event(postback={"title": "Get Started", "payload": "GET_STARTED"})
    )
    [inbound] = adapter.parse_webhook(payload, Platform.FACEBOOK)
    assert inbound.text == "GET_STARTED"
    assert inbound.metadata.message_type == "postback"
    assert inbound.metadata.postback_title == "Get Started"


def test_parse_quick_reply_payload_wins_over_text(adapter):
    message = {"mid": "m_3", "text": "Yes", "quick_reply": {"payload": "CONFIRM_YES"}}
    [inbound] = adapter.parse_webhook(
        _messaging_payload(_event(message)), Platform.FACEBOOK
    )
    assert inbound.text == "CONFIRM_YES"
    assert inbound.metadata.message_type == "quick_reply"


def test_parse_attachment_only_message(adapter):
    message = {
        "mid": "m_4",
        "attachments": [{"type": "image", "payload": {"url": "https://cdn/x.png"}}],
    }
    [inbound] = adapter.parse_webhook(
        _messaging_payload(_event(message)), Platform.FACEBOOK
    )
    assert inbound.text == "[Image: https://cdn/x.png]"
    assert inbound.metadata.message_type == "image"
    assert len(inbound.attachments) == 1


def test_parse_unsupported_message(adapter):
    [inbound] = adapter.parse_webhook(
        _messaging_payload(_event({"mid": "m_5"}), obj="instagram"),
        Platform.INSTAGRAM,
    )
    assert inbound.text == "[Unsupported instagram message type]"


def test_parse_instagram_changes_shape(adapter):
    """Legacy Instagram field=messages changes are normalized too."""
    payload = {
        "object": "instagram",
        "entry": [
            {
                "id": "IG",
                "changes": [
                    {"field": "comments", "value": {}},
                    {
                        "field": "messages",
                        "value": {
                            "sender": {"id": "555"},
                            "recipient": {"id": "IG"},
                            "messages": [
                                {"id": "ig_1", "text": {"body": "hola"}, "timestamp": 1}
                            ],
                        },
                    },
                ],
            }
        ],
    }
    [inbound] = adapter.parse_webhook(payload, Platform.INSTAGRAM)
    assert inbound.platform == Platform.INSTAGRAM
    assert inbound.participant_id == "555"
    assert inbound.recipient_id == "IG"
    assert inbound.message_id == "ig_1"
    assert inbound.text == "hola"


def test_parse_instagram_change_replies(adapter):
    payload = {
        "object": "instagram",
        "entry": [
            {
                "changes": [
                    {
                        "field": "messages",
                        "value": {
                            "sender": {"id": "555"},
                            "recipient": {"id": "IG"},
                            "messages": [{"id": "ig_2", "replies": [{"title": "Menu"}]}],
                        },
                    }
                ]
            }
        ],
    }
    [inbound] = adapter.parse_webhook(payload, Platform.INSTAGRAM)
    assert inbound.text == "Menu"


@pytest.mark.parametrize(
    "attachment, expected",
    [
        ({"type": "audio", "payload": {"url": "u"}}, "[Audio message]"),
        ({"type": "video", "payload": {"url": "u"}}, "[Video message]"),
        ({"type": "file", "payload": {"url": "u"}}, "[File attachment: u]"),
        (
            {"type": "location", "payload": {"coordinates": {"lat": 1.5, "long": 2.5}}},
            "[Location: 1.5,2.5]",
        ),
        ({"type": "fallback", "payload": {}}, "[Fallback: Unsupported content]"),
        ({"type": "sticker", "payload": {}}, "[Unsupported attachment type: sticker]"),
    ],
)
def test_describe_attachment(attachment, expected):
    assert describe_attachment(attachment) == expected


def test_verify_webhook_sha256(adapter):
    body = b'{"object":"page"}'
    headers = {"X-Hub-Signature-256": "sha256=" + _sign(body)}
    assert adapter.verify_webhook(SECRET, headers, body)
    assert not adapter.verify_webhook(SECRET, headers, body + b" ")


def test_verify_webhook_sha1_fallback(adapter):
    body = b'{"object":"page"}'
    headers = {"x-hub-signature": "sha1=" + _sign(body, hashlib.sha1)}
    assert adapter.verify_webhook(SECRET, headers, body)


def test_verify_webhook_rejects_missing_signature(adapter):
    assert not adapter.verify_webhook(SECRET, {}, b"{}")
    assert adapter.verify_webhook(None, {}, b"{}")



def test_parse_skips_malformed_events(adapter):
    """Broken items are dropped; well-formed ones in the same delivery survive."""
    payload = _messaging_payload(
        "not-an-event",
        {"sender": "123", "message": {"text": "bad sender"}},
        {"sender": {"id": "123"}, "message": "not-a-dict"},
        _event(message={"mid": "m.1", "text": "kept"}),
    )
    payload["entry"].insert(0, "not-an-entry")
    payload["entry"].append({"changes": [{"field": "messages", "value": []}]})
    [inbound] = adapter.parse_webhook(payload, Platform.FACEBOOK)
    assert inbound.text == "kept"


@pytest.mark.parametrize("entry", ["oops", 42, {"id": "PAGE"}])
def test_parse_tolerates_non_list_entry(adapter, entry):
    payload = {"object": "page", "entry": entry}
    assert adapter.parse_webhook(payload, Platform.FACEBOOK) == []


def test_parse_signed_request():
    payload = {"algorithm": "HMAC-SHA256", "user_id": "4242", "issued_at": 1}
    assert parse_signed_request(signed_request(payload, SECRET), SECRET) == payload


def test_parse_signed_request_rejects_other_secret():
    token = signed_request({"algorithm": "HMAC-SHA256", "user_id": "1"}, "other")
    with pytest.raises(SignedRequestSignatureError):
        parse_signed_request(token, SECRET)


@pytest.mark.parametrize(
    "token",
    [
        "no-separator",
        ".payload-only",
        "sig.@@not-base64@@",
        signed_request(["not", "an", "object"], SECRET),
        signed_request({"algorithm": "HMAC-SHA1", "user_id": "1"}, SECRET),
        signed_request({"user_id": "1"}, SECRET),
    ],
)
def test_parse_signed_request_rejects_malformed(token):
    with pytest.raises(SignedRequestError):
        parse_signed_request(token, SECRET)


@pytest.mark.asyncio
async def test_send_posts_to_graph_api(meta_adapter, graph_api):
    """Reply goes to /{page}/messages with the token as query param."""
    outbound = OutboundMessage(
        platform=Platform.FACEBOOK, account_id="PAGE", recipient_id="123", text="Hi!"
    )
    result = await meta_adapter.send(outbound, "page-token")

    assert result.success is True
    assert result.platform_message_id == "m_1"
    request = graph_api.requests[0]
    assert request.url.path.endswith("/v18.0/PAGE/messages")
    assert request.url.params["access_token"] == "page-token"
    assert graph_api.last_json == {
        "recipient": {"id": "123"},
        "message": {"text": "Hi!"},
        "messaging_type": "RESPONSE",
    }


@pytest.mark.asyncio
async def test_send_raises_on_graph_error(meta_adapter, graph_api):
    graph_api.default = (400, {"error": {"message": "Invalid OAuth access token"}})
    outbound = OutboundMessage(
        platform=Platform.INSTAGRAM, account_id="IG", recipient_id="555", text="Hi!"
    )
    with pytest.raises(MetaSendError, match="Invalid OAuth") as exc_info:
        await meta_adapter.send(outbound, "bad-token")
    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
async def test_send_propagates_transport_errors(meta_adapter, graph_api):
    graph_api.default = httpx.ConnectError("refused")
    outbound = OutboundMessage(
        platform=Platform.FACEBOOK, account_id="PAGE", recipient_id="123", text="Hi!"
    )
    with pytest.raises(httpx.ConnectError):
        await meta_adapter.send(outbound, "page-token")
