"""Outbound dispatcher: agent replies to customers.

Platform, page and recipient come from the stored conversation, never from
the request. A reply is recorded only after the Graph API accepted it, and a
failed send leaves no message row behind.
"""

from __future__ import annotations

import mimetypes

from sqlalchemy.ext.asyncio import AsyncSession

from app.logging import get_logger
from app.models.conversation import Conversation
from app.models.message import MediaType, SenderRole
from app.models.saved_template import TemplateType
from app.models.types import utcnow
from app.schemas.social_inbox import MediaAttachment, SendResult
from app.services.common import commit, validate_enum
from app.services.conversation_locks import conversation_locks
from app.services.exceptions import (
    EmptyReply,
    InvalidReply,
    PlatformSendFailure,
    StoreFailure,
)
from app.services.integrations import integrations
from app.services.messages import messages
from app.services.meta_messaging import MetaGraphClient
from app.services.templates import saved_templates

logger = get_logger(__name__)


def _validate_reply(
    sender_role,
    text: str | None,
    media: list[MediaAttachment] | None,
) -> tuple[SenderRole, str, list[MediaAttachment]]:
    role = validate_enum(sender_role, SenderRole, "sender_role")
    if role == SenderRole.customer:
        raise InvalidReply("Replies cannot be sent as the customer")
    body = (text or "").strip()
    attachments = [
        item.model_copy(update={"url": item.url.strip()})
        for item in media or []
        if item.url.strip()
    ]
    if not body and not attachments:
        raise EmptyReply()
    if body and attachments:
        raise InvalidReply("Send text and media as separate replies")
    return role, body, attachments


async def _record(
    db: AsyncSession,
    conversation: Conversation,
    role: SenderRole,
    sender_name: str | None,
    text: str,
    platform_message_id: str | None,
    media: MediaAttachment | None = None,
) -> int:
    sent_at = utcnow()
    message = messages.build_outbound(
        conversation,
        role,
        sender_name,
        text,
        timestamp=sent_at,
        platform_message_id=platform_message_id,
        media_url=media.url if media else None,
        media_type=media.type if media else None,
    )
    db.add(message)
    await conversation_locks.touch(db, conversation.conversation_id, sent_at)
    try:
        await commit(db, "outbound message")
    except StoreFailure:
        logger.error(
            "outbound_message_not_recorded conversation_id=%s platform_message_id=%s",
            conversation.conversation_id,
            platform_message_id,
        )
        raise
    return message.id


async def send_reply(
    db: AsyncSession,
    graph: MetaGraphClient,
    conversation_id: str,
    sender_role=SenderRole.seller,
    sender_name: str | None = None,
    text: str | None = None,
    media: list[MediaAttachment] | None = None,
) -> SendResult:
    """Send a text or media reply and record what the platform accepted.

    Args:
        db: Database session
        graph: Graph API client
        conversation_id: Conversation key to reply in
        sender_role: admin, seller or ai
        sender_name: Display name stored with the message
        text: Text body (mutually exclusive with media)
        media: Attachments by public URL, one platform call and one message
            row each, sent in order

    Returns:
        SendResult with the platform and local ids of every recorded message

    Raises:
        EmptyReply: If neither text nor media is given
        InvalidReply: If both are given or the role is customer
        ConversationNotFound: If the conversation does not exist
        NoIntegration: If no active page token exists for the conversation
        PlatformSendFailure: If the Graph API rejects or times out; ``delivered``
            tells how many attachments went out before the failure
        StoreFailure: If the sent message could not be saved
    """
    role, body, attachments = _validate_reply(sender_role, text, media)
    conversation = await conversation_locks.get(db, conversation_id)
    token = await integrations.resolve_token(
        db, conversation.platform.value, conversation.page_id
    )
    # Nothing is held open while waiting on the Graph API.
    await commit(db, "reply lookup")

    result = SendResult(conversation_id=conversation_id)
    if body:
        mid = await graph.send_text(
            conversation.platform,
            conversation.page_id,
            conversation.customer_id,
            body,
            token,
        )
        result.platform_message_ids.append(mid)
        result.message_ids.append(
            await _record(db, conversation, role, sender_name, body, mid)
        )
        return result

    for index, attachment in enumerate(attachments):
        try:
            mid = await graph.send_attachment(
                conversation.platform,
                conversation.page_id,
                conversation.customer_id,
                attachment.url,
                attachment.type,
                token,
            )
        except PlatformSendFailure as exc:
            exc.delivered = index
            exc.details = {"remote_status": exc.remote_status, "delivered": index}
            logger.warning(
                "media_reply_partial conversation_id=%s delivered=%s total=%s",
                conversation_id,
                index,
                len(attachments),
            )
            raise
        result.platform_message_ids.append(mid)
        result.message_ids.append(
            await _record(db, conversation, role, sender_name, "", mid, media=attachment)
        )
    return result


def media_type_for_url(url: str) -> MediaType:
    mime, _ = mimetypes.guess_type(url.split("?", 1)[0])
    if mime:
        kind = mime.split("/", 1)[0]
        if kind in ("image", "video", "audio"):
            return MediaType(kind)
    return MediaType.file


async def send_template(
    db: AsyncSession,
    graph: MetaGraphClient,
    conversation_id: str,
    template_id: int,
    sender_role=SenderRole.seller,
    sender_name: str | None = None,
    seller_id: str | None = None,
) -> SendResult:
    """Send a saved template as a reply; seller templates are only usable by their owner."""
    template = await saved_templates.get(db, template_id, seller_id=seller_id)
    if template.type == TemplateType.text:
        return await send_reply(
            db, graph, conversation_id, sender_role, sender_name, text=template.text
        )
    media = [
        MediaAttachment(url=url, type=media_type_for_url(url))
        for url in template.media_urls or []
    ]
    return await send_reply(db, graph, conversation_id, sender_role, sender_name, media=media)
