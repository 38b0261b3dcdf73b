"""Tests for Meta webhook normalization."""

import hashlib
import hmac
import json
from datetime import UTC, datetime

import pytest

from app.models.conversation import Platform
from app.services import meta_events
from app.services.exceptions import MalformedEvent
from tests.mocks import messenger_payload, text_event


# =============================================================================
# Webhook Signature Verification Tests
# =============================================================================


def test_verify_webhook_signature_valid():
    body = b'{"object":"page","entry":[]}'
    app_secret = "test_secret_123"
    expected_sig = hmac.new(app_secret.encode(), body, hashlib.sha256).hexdigest()

    assert meta_events.verify_webhook_signature(body, f"sha256={expected_sig}", app_secret)


def test_verify_webhook_signature_invalid():
    body = b'{"object":"page","entry":[]}'
    result = meta_events.verify_webhook_signature(
        body, "sha256=invalid_signature_abc123", "test_secret_123"
    )
    assert result is False


def test_verify_webhook_signature_missing_or_wrong_format():
    body = b'{"object":"page","entry":[]}'
    assert meta_events.verify_webhook_signature(body, None, "secret") is False
    assert meta_events.verify_webhook_signature(body, "just_a_hash", "secret") is False


# =============================================================================
# Subscription Handshake Tests
# =============================================================================


def test_verify_subscription_returns_challenge():
    assert meta_events.verify_subscription("subscribe", "tok", "12345", "tok") == "12345"


@pytest.mark.parametrize(
    "mode,token,verify_token",
    [
        ("subscribe", "wrong", "tok"),
        ("unsubscribe", "tok", "tok"),
        ("subscribe", "tok", None),
    ],
)
def test_verify_subscription_rejects(mode, token, verify_token):
    assert meta_events.verify_subscription(mode, token, "12345", verify_token) is None


# =============================================================================
# Key Derivation Tests
# =============================================================================


def test_conversation_key_prefixes_platform():
    assert meta_events.conversation_key(Platform.facebook, "123", "456") == "fb:123:456"
    assert meta_events.conversation_key(Platform.instagram, "u1", "ig9") == "ig:u1:ig9"


def test_idempotency_key_uses_message_id():
    ts = datetime(2026, 1, 1, tzinfo=UTC)
    key = meta_events.idempotency_key(Platform.facebook, "m1", "fb:1:2", ts, "a", [])
    assert key == "facebook:mid:m1"


def test_idempotency_key_hashes_long_message_id():
    ts = datetime(2026, 1, 1, tzinfo=UTC)
    mid = "x" * 500
    key = meta_events.idempotency_key(Platform.facebook, mid, "fb:1:2", ts, "a", [])
    assert key.startswith("facebook:mid-sha256:")
    assert len(key) < 255


def test_idempotency_key_without_message_id_is_content_hash():
    ts = datetime(2026, 1, 1, tzinfo=UTC)
    first = meta_events.idempotency_key(Platform.instagram, None, "ig:1:2", ts, "a", [])
    same = meta_events.idempotency_key(Platform.instagram, None, "ig:1:2", ts, "a", [])
    other = meta_events.idempotency_key(Platform.instagram, None, "ig:1:2", ts, "b", [])
    assert first == same
    assert first != other
    assert first.startswith("instagram:h:")


# =============================================================================
# Normalization Tests
# =============================================================================


def test_normalize_facebook_text_message():
    payload = messenger_payload(text_event(mid="m1", text="Is this available?"))

    events = meta_events.normalize_webhook(payload)

    assert len(events) == 1
    event = events[0]
    assert event.platform == Platform.facebook
    assert event.conversation_key == "fb:123:456"
    assert event.customer_id == "123"
    assert event.page_id == "456"
    assert event.text == "Is this available?"
    assert event.platform_message_id == "m1"
    assert event.idempotency_key == "facebook:mid:m1"
    assert event.customer_name == "Facebook User 123"
    assert event.platform_timestamp == datetime.fromtimestamp(1767225600, tz=UTC)


def test_normalize_instagram_object():
    payload = messenger_payload(
        text_event(mid="ig_m1", sender_id="u77", page_id="ig9"), page_id="ig9", obj="instagram"
    )
    payload["entry"][0]["messaging"][0]["sender"]["username"] = "shopper77"

    events = meta_events.normalize_webhook(payload)

    assert events[0].platform == Platform.instagram
    assert events[0].conversation_key == "ig:u77:ig9"
    assert events[0].customer_name == "shopper77"


def test_normalize_fans_out_multiple_entries_in_order():
    payload = {
        "object": "page",
        "entry": [
            {"id": "456", "messaging": [text_event(mid="a"), text_event(mid="b")]},
            {"id": "789", "messaging": [text_event(mid="c", page_id="789")]},
        ],
    }

    events = meta_events.normalize_webhook(payload)

    assert [event.platform_message_id for event in events] == ["a", "b", "c"]
    assert events[2].page_id == "789"


def test_normalize_numeric_page_id():
    payload = messenger_payload(text_event())
    payload["entry"][0]["id"] = 456

    events = meta_events.normalize_webhook(payload)

    assert events[0].page_id == "456"


def test_normalize_attachments():
    event = text_event(mid="m_img")
    event["message"] = {
        "mid": "m_img",
        "attachments": [
            {"type": "image", "payload": {"url": "https://cdn.test/a.jpg"}},
            {"type": "image", "payload": {"url": "https://cdn.test/b.jpg"}},
            {"type": "fallback"},
        ],
    }

    events = meta_events.normalize_webhook(messenger_payload(event))

    assert events[0].text == ""
    assert events[0].media_urls == ["https://cdn.test/a.jpg", "https://cdn.test/b.jpg"]


def test_normalize_drops_non_message_events():
    payload = messenger_payload(
        {"sender": {"id": "123"}, "delivery": {"mids": ["m1"]}, "timestamp": 1},
        {"sender": {"id": "123"}, "read": {"watermark": 1}, "timestamp": 1},
        {"sender": {"id": "123"}, "postback": {"payload": "GET_STARTED"}, "timestamp": 1},
    )

    assert meta_events.normalize_webhook(payload) == []


def test_normalize_drops_echo_and_page_sender():
    echo = text_event(mid="echo1")
    echo["message"]["is_echo"] = True
    from_page = text_event(mid="self1", sender_id="456")

    assert meta_events.normalize_webhook(messenger_payload(echo, from_page)) == []


def test_normalize_drops_empty_message():
    event = text_event(mid="m_empty", text="")

    assert meta_events.normalize_webhook(messenger_payload(event)) == []


def test_normalize_ignores_changes_entries():
    payload = {"object": "page", "entry": [{"id": "456", "changes": [{"field": "feed"}]}]}

    assert meta_events.normalize_webhook(payload) == []


def test_normalize_accepts_raw_bytes():
    body = json.dumps(messenger_payload(text_event(mid="m_raw"))).encode()

    events = meta_events.normalize_webhook(body)

    assert events[0].platform_message_id == "m_raw"


def test_normalize_missing_timestamp_uses_entry_time():
    event = text_event(mid="m_entry")
    del event["timestamp"]

    events = meta_events.normalize_webhook(messenger_payload(event))

    assert events[0].platform_timestamp == datetime.fromtimestamp(1767225600, tz=UTC)


def test_normalize_without_any_timestamp_uses_now():
    event = text_event(mid="m_now")
    del event["timestamp"]
    payload = messenger_payload(event)
    del payload["entry"][0]["time"]
    before = datetime.now(UTC)

    events = meta_events.normalize_webhook(payload)

    assert events[0].platform_timestamp >= before


def test_key_without_mid_or_timestamp_is_stable_across_deliveries():
    event = text_event(mid=None, text="same words")
    del event["timestamp"]
    payload = messenger_payload(event)
    del payload["entry"][0]["time"]

    first = meta_events.normalize_webhook(payload)
    second = meta_events.normalize_webhook(payload)

    assert first[0].idempotency_key == second[0].idempotency_key
    assert first[0].idempotency_key.startswith("facebook:h:")


def test_normalize_out_of_range_timestamp_keeps_batch():
    bad = text_event(mid="m_far", timestamp=10**20)
    payload = messenger_payload(text_event(mid="m_ok"), bad)

    events = meta_events.normalize_webhook(payload)

    assert [event.platform_message_id for event in events] == ["m_ok", "m_far"]
    assert events[1].platform_timestamp == datetime.fromtimestamp(1767225600, tz=UTC)


def test_normalize_ignores_non_string_sender_fields():
    event = text_event(mid="m_named", sender_id="999")
    event["sender"].update({"name": 5, "username": ["x"], "profile_pic": {"url": "p"}})

    events = meta_events.normalize_webhook(messenger_payload(event))

    assert events[0].customer_name == "Facebook User 999"
    assert events[0].customer_profile_pic is None


@pytest.mark.parametrize(
    "bad_event",
    [
        {"sender": "not-a-dict", "message": {"mid": "x", "text": "hi"}},
        {"sender": {"id": "123"}, "message": ["not", "a", "dict"]},
        {"sender": {"id": "123"}, "timestamp": 1.5, "message": {"mid": "x", "text": "hi"}},
        "not an event",
    ],
)
def test_normalize_skips_unreadable_event_only(bad_event):
    payload = messenger_payload(text_event(mid="m_before"), bad_event, text_event(mid="m_after"))

    events = meta_events.normalize_webhook(payload)

    assert [event.platform_message_id for event in events] == ["m_before", "m_after"]


def test_normalize_skips_unreadable_entry_only():
    payload = messenger_payload(text_event(mid="m_ok"))
    payload["entry"].insert(0, {"no_id": 1, "messaging": [text_event(mid="lost")]})

    events = meta_events.normalize_webhook(payload)

    assert [event.platform_message_id for event in events] == ["m_ok"]


@pytest.mark.parametrize(
    "body",
    [b"not json", b"[1, 2]", {"object": "page", "entry": "nope"}],
)
def test_normalize_malformed_payloads(body):
    with pytest.raises(MalformedEvent):
        meta_events.normalize_webhook(body)
