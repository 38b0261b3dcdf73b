"""Chat message log.

Rows are written once and never updated. Reads order by ``(timestamp, id)``;
the autoincrement ``id`` breaks ties between equal timestamps.
"""

import enum
from datetime import datetime

from sqlalchemy import JSON, Enum, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.db import Base
from app.models.conversation import Platform
from app.models.types import BigIntId, UTCDateTime, utcnow


class Sender(enum.Enum):
    customer = "customer"
    bot = "bot"


class SenderRole(enum.Enum):
    customer = "customer"
    admin = "admin"
    seller = "seller"
    ai = "ai"


class MediaType(enum.Enum):
    image = "image"
    video = "video"
    audio = "audio"
    file = "file"


class Message(Base):
    __tablename__ = "social_chat_messages"
    __table_args__ = (
        Index("idx_conv_time", "conversation_id", "timestamp"),
        Index("idx_time", "timestamp"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    conversation_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("conversation_locks.conversation_id"), nullable=False
    )
    customer_name: Mapped[str | None] = mapped_column(String(255), default="")
    customer_profile_pic: Mapped[str | None] = mapped_column(Text)

    sender: Mapped[Sender] = mapped_column(Enum(Sender), nullable=False)
    sender_role: Mapped[SenderRole] = mapped_column(
        Enum(SenderRole), nullable=False, default=SenderRole.customer
    )
    sender_name: Mapped[str | None] = mapped_column(String(255), default="")

    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    media_urls: Mapped[list | None] = mapped_column(JSON)
    media_type: Mapped[MediaType | None] = mapped_column(Enum(MediaType))

    platform: Mapped[Platform] = mapped_column(Enum(Platform), nullable=False)
    page_id: Mapped[str] = mapped_column(String(128), nullable=False)
    platform_message_id: Mapped[str | None] = mapped_column(String(255))
    # Inbound deliveries only; NULL for outbound rows.
    idempotency_key: Mapped[str | None] = mapped_column(String(255), unique=True)

    timestamp: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)

    def __repr__(self) -> str:
        return (
            f"<Message(id={self.id}, conversation_id={self.conversation_id}, "
            f"sender={self.sender}, timestamp={self.timestamp})>"
        )
