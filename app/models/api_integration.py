"""Page access tokens used for outbound Graph API sends."""

import enum
from datetime import datetime

from sqlalchemy import Boolean, Enum, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.db import Base
from app.models.types import BigIntId, UTCDateTime, utcnow


class IntegrationPlatform(enum.Enum):
    facebook = "facebook"
    instagram = "instagram"
    whatsapp = "whatsapp"


class ApiIntegration(Base):
    """Stores the page token for one connected page or business account.

    Rows are written by the page-connection flow and read by the dispatcher.
    Only rows with ``is_active`` set are ever used for sending.
    """

    __tablename__ = "api_integrations"
    __table_args__ = (
        UniqueConstraint("platform", "page_id", name="uniq_platform_page"),
        Index("idx_platform_active", "platform", "is_active"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    platform: Mapped[IntegrationPlatform] = mapped_column(
        Enum(IntegrationPlatform), nullable=False
    )
    page_id: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    page_token: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow
    )

    def __repr__(self) -> str:
        return (
            f"<ApiIntegration(id={self.id}, platform={self.platform}, "
            f"page_id={self.page_id}, is_active={self.is_active})>"
        )
