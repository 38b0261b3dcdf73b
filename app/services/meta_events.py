"""Meta webhook normalization.

Turns a raw Messenger / Instagram webhook body into a list of
``InboundEvent`` objects, one per customer message, in payload order.
Receipts, echoes and other non-message events are dropped here so that only
typed events reach the ingestion pipeline. Nothing in this module touches the
database or the network.

Environment Variables:
    META_APP_SECRET: Used for webhook signature verification
    META_WEBHOOK_VERIFY_TOKEN: Token for the webhook verification challenge
"""

import hashlib
import hmac
import json
from datetime import datetime, timezone

from pydantic import ValidationError

from app.logging import get_logger
from app.models.conversation import Platform
from app.schemas.meta import InboundEvent, MetaEntry, MetaMessagingEvent, MetaWebhookPayload
from app.services.exceptions import MalformedEvent

logger = get_logger(__name__)

_KEY_PREFIX = {Platform.facebook: "fb", Platform.instagram: "ig"}
_FALLBACK_NAME = {Platform.facebook: "Facebook User", Platform.instagram: "Instagram User"}
_MAX_MESSAGE_ID_LENGTH = 200


def verify_webhook_signature(
    payload_body: bytes,
    signature_header: str | None,
    app_secret: str,
) -> bool:
    """Verify Meta webhook signature (X-Hub-Signature-256).

    Meta signs all webhook payloads with the app secret. This function
    verifies the signature to ensure the webhook is authentic.

    Args:
        payload_body: Raw request body bytes
        signature_header: Value of X-Hub-Signature-256 header
        app_secret: Facebook App Secret

    Returns:
        True if signature is valid, False otherwise
    """
    if not signature_header or not signature_header.startswith("sha256="):
        logger.warning("webhook_signature_missing_or_invalid")
        return False

    expected_signature = signature_header[7:]
    computed_signature = hmac.new(
        app_secret.encode(),
        payload_body,
        hashlib.sha256,
    ).hexdigest()

    is_valid = hmac.compare_digest(expected_signature, computed_signature)
    if not is_valid:
        logger.warning("webhook_signature_mismatch")
    return is_valid


def verify_subscription(
    mode: str | None,
    token: str | None,
    challenge: str | None,
    verify_token: str | None,
) -> str | None:
    """Answer the GET verification handshake; returns the challenge or None."""
    if mode != "subscribe" or not verify_token or challenge is None:
        return None
    if not hmac.compare_digest(token or "", verify_token):
        logger.warning("webhook_verify_token_mismatch")
        return None
    return challenge


def conversation_key(platform: Platform, customer_id: str, page_id: str) -> str:
    return f"{_KEY_PREFIX[platform]}:{customer_id}:{page_id}"


def idempotency_key(
    platform: Platform,
    platform_message_id: str | None,
    key: str,
    timestamp: datetime | None,
    text: str,
    media_urls: list[str],
) -> str:
    """Key that identifies one platform delivery across retries.

    Without a mid the key hashes the conversation key and content, plus the
    platform-sent time when there is one.
    """
    if platform_message_id:
        if len(platform_message_id) > _MAX_MESSAGE_ID_LENGTH:
            digest = hashlib.sha256(platform_message_id.encode("utf-8")).hexdigest()
            return f"{platform.value}:mid-sha256:{digest}"
        return f"{platform.value}:mid:{platform_message_id}"
    parts = [key, timestamp.isoformat()] if timestamp else [key]
    material = "|".join([*parts, text, *media_urls])
    digest = hashlib.sha256(material.encode("utf-8")).hexdigest()
    return f"{platform.value}:h:{digest}"


def _resolve_platform(payload: MetaWebhookPayload, platform_hint: str) -> Platform:
    if payload.object == "instagram":
        return Platform.instagram
    if payload.object == "page":
        return Platform.facebook
    try:
        return Platform(platform_hint)
    except ValueError as exc:
        raise MalformedEvent(f"Unknown webhook object {payload.object!r}") from exc


def _parse_timestamp(value) -> datetime | None:
    """Epoch seconds or milliseconds as an aware datetime; None when unusable."""
    if not value or isinstance(value, bool):
        return None
    try:
        seconds = float(value)
        if seconds > 1_000_000_000_000:
            seconds = seconds / 1000
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        logger.warning("meta_webhook_timestamp_invalid value=%r", value)
        return None


def _text_field(value) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None


def _attachment_urls(attachments: object) -> list[str]:
    if not isinstance(attachments, list):
        return []
    urls = []
    for attachment in attachments:
        if not isinstance(attachment, dict):
            continue
        payload = attachment.get("payload")
        url = payload.get("url") if isinstance(payload, dict) else None
        if url:
            urls.append(str(url))
    return urls


def _normalize_messaging_event(
    platform: Platform,
    page_id: str,
    entry_time: datetime | None,
    raw_event: object,
) -> InboundEvent | None:
    messaging_event = MetaMessagingEvent.model_validate(raw_event)
    sender = messaging_event.sender or {}
    sender_id = sender.get("id")
    message = messaging_event.message

    if not message:
        if messaging_event.delivery:
            logger.debug("meta_webhook_delivery_ignored page_id=%s", page_id)
        elif messaging_event.read:
            logger.debug("meta_webhook_read_ignored page_id=%s", page_id)
        elif messaging_event.postback:
            logger.info(
                "meta_webhook_postback_ignored page_id=%s sender_id=%s", page_id, sender_id
            )
        return None

    if message.get("is_echo"):
        return None
    if not sender_id:
        logger.warning("meta_webhook_missing_sender page_id=%s", page_id)
        return None
    sender_id = str(sender_id)
    if sender_id == page_id:
        logger.info("meta_webhook_skip_self page_id=%s sender_id=%s", page_id, sender_id)
        return None

    text = message.get("text") or ""
    if not isinstance(text, str):
        text = str(text)
    media_urls = _attachment_urls(message.get("attachments"))
    if not text and not media_urls:
        logger.info(
            "meta_webhook_empty_message_ignored page_id=%s mid=%s", page_id, message.get("mid")
        )
        return None

    key = conversation_key(platform, sender_id, page_id)
    sent_at = _parse_timestamp(messaging_event.timestamp) or entry_time
    mid = message.get("mid")
    mid = str(mid) if mid else None
    customer_name = (
        _text_field(sender.get("username"))
        or _text_field(sender.get("name"))
        or f"{_FALLBACK_NAME[platform]} {sender_id}"
    )
    return InboundEvent(
        conversation_key=key,
        platform=platform,
        page_id=page_id,
        customer_id=sender_id,
        customer_name=customer_name,
        customer_profile_pic=_text_field(sender.get("profile_pic")),
        text=text,
        media_urls=media_urls,
        platform_timestamp=sent_at or datetime.now(timezone.utc),
        platform_message_id=mid,
        idempotency_key=idempotency_key(platform, mid, key, sent_at, text, media_urls),
    )


def normalize_webhook(
    payload: dict | bytes | str,
    platform_hint: str = "facebook",
) -> list[InboundEvent]:
    """Fan a webhook body out into inbound events.

    An entry or messaging item that cannot be read is logged and skipped;
    the rest of the batch is still returned.

    Args:
        payload: Decoded JSON body, or the raw bytes/str of the request body
        platform_hint: Platform implied by the route; ``facebook`` also serves
            Instagram since both arrive through the same Graph entry point

    Returns:
        Inbound events in platform order; empty when nothing is a message

    Raises:
        MalformedEvent: If the body is not a Meta webhook payload
    """
    if isinstance(payload, (bytes, str)):
        try:
            payload = json.loads(payload)
        except ValueError as exc:
            raise MalformedEvent("Webhook body is not valid JSON") from exc
    if not isinstance(payload, dict):
        raise MalformedEvent("Webhook body must be a JSON object")
    try:
        parsed = MetaWebhookPayload.model_validate(payload)
    except ValidationError as exc:
        raise MalformedEvent("Webhook body does not match the Meta schema", str(exc)) from exc

    platform = _resolve_platform(parsed, platform_hint)
    events: list[InboundEvent] = []
    for raw_entry in parsed.entry:
        try:
            entry = MetaEntry.model_validate(raw_entry)
        except ValidationError as exc:
            logger.warning("meta_webhook_entry_invalid errors=%s", exc.error_count())
            continue
        if entry.changes:
            logger.debug("meta_webhook_changes_ignored page_id=%s", entry.id)
        entry_time = _parse_timestamp(entry.time)
        for raw_event in entry.messaging or []:
            try:
                event = _normalize_messaging_event(platform, entry.id, entry_time, raw_event)
            except ValidationError as exc:
                logger.warning(
                    "meta_webhook_event_invalid page_id=%s errors=%s",
                    entry.id,
                    exc.error_count(),
                )
                continue
            except Exception:
                logger.exception("meta_webhook_event_failed page_id=%s", entry.id)
                continue
            if event is not None:
                events.append(event)
    return events
