"""Append-only message log per conversation.

Writes never commit on their own: the ingestion pipeline and the dispatcher
own the surrounding transaction so a message and its conversation update land
together.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.conversation import Conversation
from app.models.message import MediaType, Message, Sender, SenderRole
from app.schemas.meta import InboundEvent
from app.services.common import apply_pagination, execute, insert_or_ignore
from app.services.response import ListResponseMixin


class Messages(ListResponseMixin):
    @staticmethod
    async def append_inbound(db: AsyncSession, event: InboundEvent) -> int | None:
        """Insert the message for an inbound event unless its key was seen before.

        Returns:
            The new message id, or None when the event is a re-delivery
        """
        values = {
            "conversation_id": event.conversation_key,
            "customer_name": event.customer_name,
            "customer_profile_pic": event.customer_profile_pic,
            "sender": Sender.customer,
            "sender_role": SenderRole.customer,
            "sender_name": event.customer_name,
            "message": event.text,
            "media_urls": list(event.media_urls) or None,
            "media_type": None,
            "platform": event.platform,
            "page_id": event.page_id,
            "platform_message_id": event.platform_message_id,
            "idempotency_key": event.idempotency_key,
            "timestamp": event.platform_timestamp,
        }
        return await insert_or_ignore(
            db,
            Message,
            values,
            conflict_columns=["idempotency_key"],
            returning=Message.id,
            operation="inbound message",
        )

    @staticmethod
    def build_outbound(
        conversation: Conversation,
        sender_role: SenderRole,
        sender_name: str | None,
        text: str,
        timestamp: datetime,
        platform_message_id: str | None,
        media_url: str | None = None,
        media_type: MediaType | None = None,
    ) -> Message:
        return Message(
            conversation_id=conversation.conversation_id,
            customer_name=conversation.customer_name or "",
            customer_profile_pic=conversation.customer_profile_pic,
            sender=Sender.bot,
            sender_role=sender_role,
            sender_name=sender_name or "",
            message=text,
            media_urls=[media_url] if media_url else None,
            media_type=media_type,
            platform=conversation.platform,
            page_id=conversation.page_id,
            platform_message_id=platform_message_id,
            timestamp=timestamp,
        )

    @staticmethod
    async def get(db: AsyncSession, message_id: int) -> Message | None:
        return await db.get(Message, message_id)

    @staticmethod
    async def list(
        db: AsyncSession,
        conversation_id: str,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Message]:
        """Messages in ascending ``(timestamp, id)`` order."""
        stmt = (
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.timestamp.asc(), Message.id.asc())
        )
        result = await execute(db, apply_pagination(stmt, limit, offset), "message query")
        return list(result.scalars().all())

    @staticmethod
    async def list_after(
        db: AsyncSession,
        conversation_id: str,
        after_timestamp: datetime,
        after_id: int,
        limit: int = 100,
    ) -> list[Message]:
        """Keyset page: messages strictly after the ``(timestamp, id)`` cursor."""
        stmt = (
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .where(
                (Message.timestamp > after_timestamp)
                | ((Message.timestamp == after_timestamp) & (Message.id > after_id))
            )
            .order_by(Message.timestamp.asc(), Message.id.asc())
            .limit(limit)
        )
        result = await execute(db, stmt, "message query")
        return list(result.scalars().all())

    @staticmethod
    async def count(db: AsyncSession, conversation_id: str) -> int:
        stmt = select(func.count(Message.id)).where(Message.conversation_id == conversation_id)
        result = await execute(db, stmt, "message count")
        return int(result.scalar_one())


messages = Messages()
