"""Conversation lock rows and their transition history."""

import enum
from datetime import datetime

from sqlalchemy import Enum, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.db import Base
from app.models.types import BigIntId, UTCDateTime, utcnow


class Platform(enum.Enum):
    facebook = "facebook"
    instagram = "instagram"


class DeliveryStatus(enum.Enum):
    confirmed = "confirmed"
    hold = "hold"
    cancel = "cancel"
    delivered = "delivered"


class ConversationEventType(enum.Enum):
    assigned = "assigned"
    released = "released"
    status_changed = "status_changed"


class Conversation(Base):
    """One row per customer thread on a page.

    The primary key is the conversation key (e.g. ``fb:<customer>:<page>``) and
    doubles as the lock key: ownership changes are conditional updates on this
    row. ``delivery_status`` tracks fulfillment and is independent of
    ``seller_id``.
    """

    __tablename__ = "conversation_locks"
    __table_args__ = (
        Index("idx_seller_id", "seller_id"),
        Index("idx_delivery_status", "delivery_status"),
        Index("idx_last_message_at", "last_message_at"),
    )

    conversation_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    platform: Mapped[Platform] = mapped_column(Enum(Platform), nullable=False)
    page_id: Mapped[str] = mapped_column(String(128), nullable=False)
    customer_id: Mapped[str] = mapped_column(String(128), nullable=False)
    customer_name: Mapped[str | None] = mapped_column(String(255))
    customer_profile_pic: Mapped[str | None] = mapped_column(Text)

    seller_id: Mapped[str | None] = mapped_column(String(64))
    assigned_by: Mapped[str | None] = mapped_column(String(64))
    assigned_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    locked_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    delivery_status: Mapped[DeliveryStatus] = mapped_column(
        Enum(DeliveryStatus), nullable=False, default=DeliveryStatus.confirmed
    )

    last_message_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow
    )

    @property
    def is_assigned(self) -> bool:
        return self.seller_id is not None

    def __repr__(self) -> str:
        return (
            f"<Conversation(conversation_id={self.conversation_id}, "
            f"seller_id={self.seller_id}, delivery_status={self.delivery_status})>"
        )


class ConversationEvent(Base):
    """Append-only record of assignment and status transitions."""

    __tablename__ = "conversation_events"
    __table_args__ = (Index("idx_conversation_events_conv", "conversation_id", "id"),)

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    conversation_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("conversation_locks.conversation_id"), nullable=False
    )
    event_type: Mapped[ConversationEventType] = mapped_column(
        Enum(ConversationEventType), nullable=False
    )
    seller_id: Mapped[str | None] = mapped_column(String(64))
    actor: Mapped[str | None] = mapped_column(String(64))
    from_status: Mapped[DeliveryStatus | None] = mapped_column(Enum(DeliveryStatus))
    to_status: Mapped[DeliveryStatus | None] = mapped_column(Enum(DeliveryStatus))
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
