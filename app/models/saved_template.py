import enum
from datetime import datetime

from sqlalchemy import JSON, Enum, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.db import Base
from app.models.types import BigIntId, UTCDateTime, utcnow


class TemplateScope(enum.Enum):
    global_ = "global"
    seller = "seller"


class TemplateType(enum.Enum):
    text = "text"
    media = "media"


class SavedTemplate(Base):
    """Canned replies. Global templates are shared; seller templates are private."""

    __tablename__ = "saved_templates"
    __table_args__ = (
        Index("idx_scope", "scope"),
        Index("idx_seller", "seller_id"),
        Index("idx_type", "type"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    scope: Mapped[TemplateScope] = mapped_column(
        Enum(TemplateScope, values_callable=lambda cls: [m.value for m in cls]),
        nullable=False,
        default=TemplateScope.seller,
    )
    seller_id: Mapped[str | None] = mapped_column(String(64))
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    type: Mapped[TemplateType] = mapped_column(Enum(TemplateType), nullable=False)
    text: Mapped[str | None] = mapped_column(Text)
    media_urls: Mapped[list | None] = mapped_column(JSON)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow
    )
